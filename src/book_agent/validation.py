"""
validation.py
Input sanitization and request schemas.

Provides:
- sanitize_string / sanitize_search_query / validate_task_id / validate_url
- Pydantic models for chat messages, push notification configs and
  REST extraction requests
"""

import re
from typing import Any, List, Literal, Optional

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from src.book_agent.errors import ValidationError

MAX_QUERY_LENGTH = 200

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_TASK_ID = re.compile(r"^[a-zA-Z0-9_-]+$")
_DANGEROUS_PATTERNS = (
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=", re.IGNORECASE),
)
_URL_ADAPTER = TypeAdapter(AnyUrl)


def sanitize_string(value: Any) -> str:
    """Strip control characters (except newline and tab) and surrounding whitespace."""
    if not isinstance(value, str):
        raise ValidationError("Input must be a string")
    return _CONTROL_CHARS.sub("", value).strip()


def sanitize_search_query(value: Any) -> str:
    """
    Sanitize and validate a book search query.

    Raises:
        ValidationError: If the query is empty, longer than 200 characters,
            or contains script tags, javascript: URIs or event handlers
    """
    query = sanitize_string(value)

    if not query:
        raise ValidationError("Search query cannot be empty")

    if len(query) > MAX_QUERY_LENGTH:
        raise ValidationError(f"Search query is too long (max {MAX_QUERY_LENGTH} characters)")

    for pattern in _DANGEROUS_PATTERNS:
        if pattern.search(query):
            raise ValidationError("Search query contains potentially dangerous content")

    return query


def validate_task_id(value: Any) -> str:
    """Task IDs are alphanumeric with underscores and hyphens."""
    if value is None:
        raise ValidationError("Task ID is required")

    task_id = sanitize_string(value)
    if not task_id:
        raise ValidationError("Task ID is required")

    if not _TASK_ID.match(task_id):
        raise ValidationError("Invalid task ID format")

    return task_id


def validate_url(value: Any) -> str:
    """Return the URL unchanged if it is well formed."""
    url = sanitize_string(value)
    try:
        _URL_ADAPTER.validate_python(url)
    except PydanticValidationError:
        raise ValidationError("Invalid URL format")
    return url


def pydantic_error_details(error: PydanticValidationError) -> List[dict]:
    """JSON-safe summary of a pydantic validation error."""
    return [
        {"loc": list(item["loc"]), "msg": item["msg"], "type": item["type"]}
        for item in error.errors()
    ]


# ─── Chat messages ───────────────────────────────────────────────────────────

class MessagePart(BaseModel):
    """One part of a chat message. Accepts `kind` or `type` as discriminator."""
    model_config = ConfigDict(extra="allow")

    kind: Literal["text", "file", "data"]
    text: Optional[str] = None
    file: Optional[Any] = None
    data: Optional[Any] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_type_alias(cls, values: Any) -> Any:
        if isinstance(values, dict) and "kind" not in values and "type" in values:
            values = {**values, "kind": values["type"]}
        return values


class ChatMessage(BaseModel):
    """A chat-platform message."""
    model_config = ConfigDict(extra="allow")

    role: Literal["user", "assistant", "agent"]
    parts: List[MessagePart] = Field(..., min_length=1)

    def first_text(self) -> Optional[str]:
        for part in self.parts:
            if part.kind == "text" and part.text:
                return part.text
        return None


def parse_message(raw: Any) -> ChatMessage:
    """
    Validate the shape of an inbound chat message.

    Raises:
        ValidationError: If the message is missing, has no parts or malformed parts
    """
    if raw is None:
        raise ValidationError("Invalid params: message is required")
    try:
        return ChatMessage.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError("Invalid message structure", details=pydantic_error_details(e))


# ─── Push notifications ──────────────────────────────────────────────────────

class PushAuthentication(BaseModel):
    type: Literal["bearer", "basic"]
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class PushNotificationConfig(BaseModel):
    """Webhook configuration attached to a task. Stored, never invoked."""
    url: Optional[str] = None
    authentication: Optional[PushAuthentication] = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            return validate_url(value)
        except ValidationError as e:
            raise ValueError(e.message)


def parse_push_notification_config(raw: Any) -> PushNotificationConfig:
    if not isinstance(raw, dict):
        raise ValidationError("Invalid push notification configuration")
    try:
        return PushNotificationConfig.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid push notification configuration",
            details=pydantic_error_details(e),
        )


# ─── REST ────────────────────────────────────────────────────────────────────

class BookExtractionRequest(BaseModel):
    """Body of POST /api/extract-book."""
    searchQuery: str = Field(..., min_length=1, max_length=MAX_QUERY_LENGTH)

    @field_validator("searchQuery")
    @classmethod
    def _sanitize(cls, value: str) -> str:
        try:
            return sanitize_search_query(value)
        except ValidationError as e:
            raise ValueError(e.message)


def parse_extraction_request(raw: Any) -> BookExtractionRequest:
    try:
        return BookExtractionRequest.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError("Invalid request data", details=pydantic_error_details(e))
