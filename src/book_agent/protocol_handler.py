"""
protocol_handler.py
A2A protocol handler: JSON-RPC method dispatch and the task state machine.

Tasks move working → completed or working → canceled. Both are terminal for
tasks/cancel. Push-notification config and resubscribe append history
without changing status.

Every handler returns a JSON-RPC envelope. message/stream instead returns an
async iterator of Server-Sent-Events frames, each carrying an envelope.
"""

import logging
import traceback
from typing import Any, AsyncIterator, Dict, Optional, Tuple, Union

from src.book_agent import config
from src.book_agent.a2a_protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    TASK_NOT_CANCELABLE,
    TASK_NOT_FOUND,
    JSONRPCError,
    extract_method_and_params,
    make_error_response,
    make_response,
    method_not_found,
    sse_frame,
    validate_request,
)
from src.book_agent.agent import QUERY_PREFIX, BookExtractorAgent, strip_query_prefix
from src.book_agent.errors import ExternalAPIError, OperationTimeoutError, ValidationError
from src.book_agent.formatter import format_book_response
from src.book_agent.resilience import with_deadline
from src.book_agent.task_store import (
    Artifact,
    Task,
    TaskEvent,
    TaskState,
    TaskStatus,
    TaskStore,
    generate_task_id,
    redact_push_config,
    task_timestamp_ms,
    text_message,
    utc_now_iso,
)
from src.book_agent.validation import (
    ChatMessage,
    parse_message,
    parse_push_notification_config,
    sanitize_search_query,
    sanitize_string,
    validate_task_id,
)

RPCResult = Union[Dict[str, Any], AsyncIterator[str]]

ARTIFACT_TYPE = "book_excerpt"
ARTIFACT_NAME = "Book Excerpt"
TIMEOUT_MESSAGE = "Book extraction request timed out"


def extract_search_query(message: ChatMessage) -> str:
    """
    Pull the search query out of a chat message.

    The first non-empty text part is used; the "Find a book with: query:"
    prefix is dropped and the rest sanitized.

    Raises:
        ValidationError: If there is no usable text or the query is unsafe
    """
    text = message.first_text()
    if text is None:
        raise ValidationError("Message must contain a text part with content")

    text = sanitize_string(text)
    if not text:
        raise ValidationError("Message text cannot be empty")

    return sanitize_search_query(strip_query_prefix(text))


class A2AProtocolHandler:
    """Routes A2A JSON-RPC requests and keeps task state in a TaskStore."""

    def __init__(
        self,
        store: TaskStore,
        agent: BookExtractorAgent,
        request_timeout: float = config.REQUEST_TIMEOUT,
        environment: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            store: Task store owned by the application
            agent: Agent that runs the extraction tool
            request_timeout: Overall deadline in seconds for one extraction
            environment: Overrides APP_ENV for error rendering
            logger: Logger to use instead of the module logger
        """
        self.store = store
        self.agent = agent
        self.request_timeout = request_timeout
        self.environment = environment or config.APP_ENV
        self._logger = logger or logging.getLogger(__name__)

        self._handlers = {
            "message/send": self.handle_message_send,
            "message/stream": self.handle_message_stream,
            "tasks/get": self.handle_task_get,
            "tasks/cancel": self.handle_task_cancel,
            "tasks/setPushNotificationConfig": self.handle_set_push_notification_config,
            "tasks/getPushNotificationConfig": self.handle_get_push_notification_config,
            "tasks/resubscribe": self.handle_task_resubscribe,
        }

    # ─── Routing ─────────────────────────────────────────────────────────────

    async def route_request(self, request: Any) -> RPCResult:
        """
        Validate a JSON-RPC envelope and dispatch it.

        Never raises: every failure is rendered as an error envelope.
        """
        request_id = request.get("id") if isinstance(request, dict) else None
        try:
            validate_request(request)
            method, params, request_id = extract_method_and_params(request)

            handler = self._handlers.get(method)
            if handler is None:
                raise method_not_found(method)

            self._logger.info(f"Routing A2A request: {method}", extra={"method": method, "request_id": request_id})
            return await handler(params, request_id)
        except Exception as e:
            return self.error_response(e, request_id)

    def error_response(self, error: Exception, request_id: Any) -> Dict[str, Any]:
        """Render any exception as a JSON-RPC error envelope."""
        if isinstance(error, JSONRPCError):
            return error.to_response(request_id)
        if isinstance(error, ValidationError):
            return make_error_response(INVALID_PARAMS, error.message, request_id, error.details)

        self._logger.exception(f"Internal error handling request {request_id}")
        if self.environment == "production":
            return make_error_response(INTERNAL_ERROR, "Internal error", request_id)
        data = traceback.format_exc() if self.environment == "development" else None
        return make_error_response(INTERNAL_ERROR, str(error) or type(error).__name__, request_id, data)

    # ─── Task helpers ────────────────────────────────────────────────────────

    def _read_message(self, params: Dict[str, Any]) -> Tuple[ChatMessage, str]:
        message = parse_message(params.get("message"))
        return message, extract_search_query(message)

    def _create_task(self, query: str, message: ChatMessage, session_id: Any = None) -> Task:
        task_id = generate_task_id()
        if session_id is not None:
            session_id = sanitize_string(session_id)
            if not session_id:
                raise ValidationError("Invalid session ID")
        else:
            session_id = f"session_{task_timestamp_ms(task_id)}"

        task = Task(
            id=task_id,
            session_id=session_id,
            status=TaskStatus(
                TaskState.WORKING,
                message={"role": "user", "parts": [part.model_dump(exclude_none=True) for part in message.parts]},
            ),
        )
        task.record(TaskEvent.CREATED, {"searchQuery": query, "userAgent": config.USER_AGENT})
        self.store.create_task(task)
        return task

    async def _extract(self, task: Task, query: str) -> Dict[str, Any]:
        """Run the agent under the request deadline, mapping failures to JSON-RPC errors."""
        self._logger.info(f"Processing book extraction for task {task.id}", extra={"task_id": task.id, "search_query": query})
        try:
            return await with_deadline(
                self.agent.generate(f"{QUERY_PREFIX} {query}"),
                self.request_timeout,
                TIMEOUT_MESSAGE,
            )
        except OperationTimeoutError:
            self._logger.error(f"Book extraction timed out for task {task.id} after {self.request_timeout}s")
            raise JSONRPCError(INTERNAL_ERROR, TIMEOUT_MESSAGE, {"timeout": int(self.request_timeout * 1000)})
        except ExternalAPIError as e:
            self._logger.error(
                f"External API error for task {task.id}: {e.message}",
                extra={"service": e.service, "code": e.code},
            )
            raise JSONRPCError(INTERNAL_ERROR, f"External API error: {e.message}", {"service": e.service, "code": e.code})

    def _complete_task(self, task: Task, result: Dict[str, Any]) -> bool:
        """Attach the result and complete the task. False if it was canceled meanwhile."""
        if task.is_terminal:
            self._logger.warning(f"Discarding result for task {task.id}: already {task.state.value}")
            return False

        task.artifacts = [Artifact(ARTIFACT_TYPE, ARTIFACT_NAME, result)]
        task.transition(
            TaskState.COMPLETED,
            text_message("assistant", format_book_response(result)),
            TaskEvent.COMPLETED,
            {"result": result},
        )
        self.store.update_task(task.id, task)
        return True

    def _task_id(self, params: Dict[str, Any]) -> str:
        raw = params.get("id", params.get("taskId"))
        if raw is None or raw == "":
            raise JSONRPCError(INVALID_PARAMS, "Invalid params: task id is required")
        try:
            return validate_task_id(raw)
        except ValidationError:
            raise JSONRPCError(INVALID_PARAMS, "Invalid task ID format")

    def _require_task(self, task_id: str) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise JSONRPCError(TASK_NOT_FOUND, f"Task not found: {task_id}")
        return task

    # ─── message/send ────────────────────────────────────────────────────────

    async def handle_message_send(self, params: Dict[str, Any], request_id: Any) -> Dict[str, Any]:
        """
        Run one extraction and return {task, message, processingTime}.

        On timeout or upstream failure the task is left in `working`. A task
        canceled while the extraction ran is returned as canceled.
        """
        message, query = self._read_message(params)
        task = self._create_task(query, message, params.get("sessionId"))

        result = await self._extract(task, query)
        self._complete_task(task, result)

        return make_response(
            {
                "task": task.to_dict(),
                "message": task.status.message,
                "processingTime": task.age_ms(),
            },
            request_id,
        )

    # ─── message/stream ──────────────────────────────────────────────────────

    async def handle_message_stream(self, params: Dict[str, Any], request_id: Any) -> AsyncIterator[str]:
        """
        Validate eagerly, then return the SSE frame iterator for the extraction.

        Validation failures become a single error frame and never touch the store.
        """
        try:
            message, query = self._read_message(params)
        except ValidationError as e:
            return self._single_frame(make_error_response(INVALID_PARAMS, e.message, request_id, e.details))

        return self._stream_extraction(message, query, params.get("sessionId"), request_id)

    async def _single_frame(self, payload: Dict[str, Any]) -> AsyncIterator[str]:
        yield sse_frame(payload)

    async def _stream_extraction(
        self,
        message: ChatMessage,
        query: str,
        session_id: Any,
        request_id: Any,
    ) -> AsyncIterator[str]:
        task = None
        try:
            task = self._create_task(query, message, session_id)
            yield sse_frame(make_response(
                {"task": task.to_dict(), "status": "started", "timestamp": utc_now_iso()}, request_id))
            yield sse_frame(make_response(
                {"taskId": task.id, "status": "searching", "message": "Searching for books...",
                 "timestamp": utc_now_iso()}, request_id))

            result = await self._extract(task, query)

            yield sse_frame(make_response(
                {"taskId": task.id, "status": "processing", "message": "Processing book content...",
                 "timestamp": utc_now_iso()}, request_id))

            if self._complete_task(task, result):
                yield sse_frame(make_response(
                    {"task": task.to_dict(), "status": "completed", "timestamp": utc_now_iso()}, request_id))
                yield sse_frame(make_response(
                    {"taskId": task.id, "message": task.status.message, "processingTime": task.age_ms()},
                    request_id))
            else:
                yield sse_frame(make_response(
                    {"task": task.to_dict(), "status": task.state.value, "timestamp": utc_now_iso()}, request_id))
            yield sse_frame(make_response(
                {"taskId": task.id, "status": "stream_complete", "timestamp": utc_now_iso()}, request_id))
        except Exception as e:
            if task is not None and not task.is_terminal:
                self._cancel_after_error(task, e)
            yield sse_frame(self.error_response(e, request_id))

    def _cancel_after_error(self, task: Task, error: Exception) -> None:
        reason = getattr(error, "message", None) or str(error) or "Unknown error"
        task.transition(
            TaskState.CANCELED,
            text_message("assistant", f"Error: {reason}"),
            TaskEvent.CANCELED,
            {"reason": "error", "error": reason, "canceledAt": utc_now_iso()},
        )
        self.store.update_task(task.id, task)
        self._logger.warning(f"Task {task.id} canceled after stream error: {reason}")

    # ─── tasks/* ─────────────────────────────────────────────────────────────

    async def handle_task_get(self, params: Dict[str, Any], request_id: Any) -> Dict[str, Any]:
        """Current task plus retrievedAt and age in milliseconds. Read-only."""
        task = self._require_task(self._task_id(params))
        return make_response(
            {**task.to_dict(), "retrievedAt": utc_now_iso(), "age": task.age_ms()},
            request_id,
        )

    async def handle_task_cancel(self, params: Dict[str, Any], request_id: Any) -> Dict[str, Any]:
        task_id = self._task_id(params)
        task = self._require_task(task_id)

        if task.state == TaskState.CANCELED:
            raise JSONRPCError(
                TASK_NOT_CANCELABLE,
                f"Task already canceled: {task_id}",
                {"currentState": task.state.value},
            )
        if task.is_terminal:
            raise JSONRPCError(
                TASK_NOT_CANCELABLE,
                f"Task not cancelable: {task_id} (already {task.state.value})",
                {"currentState": task.state.value},
            )

        canceled_at = utc_now_iso()
        task.transition(
            TaskState.CANCELED,
            text_message("assistant", "Task was canceled by user request"),
            TaskEvent.CANCELED,
            {"reason": "user_request", "canceledAt": canceled_at},
        )
        self.store.update_task(task_id, task)
        self._logger.info(f"Task canceled: {task_id}")

        return make_response({**task.to_dict(), "canceledAt": canceled_at}, request_id)

    async def handle_set_push_notification_config(self, params: Dict[str, Any], request_id: Any) -> Dict[str, Any]:
        """Store a webhook config on the task. Nothing is ever delivered to it."""
        task_id = self._task_id(params)
        raw_config = params.get("pushNotificationConfig")
        if not raw_config:
            raise JSONRPCError(INVALID_PARAMS, "Invalid params: pushNotificationConfig is required")
        push_config = parse_push_notification_config(raw_config)

        task = self._require_task(task_id)
        configured_at = utc_now_iso()
        task.push_notification_config = push_config
        task.record(
            TaskEvent.PUSH_CONFIG_SET,
            {
                "configuredAt": configured_at,
                "hasUrl": bool(push_config.url),
                "hasAuth": push_config.authentication is not None,
            },
        )
        self.store.update_task(task_id, task)

        return make_response(
            {
                "task": task.to_dict(),
                "pushNotificationConfig": redact_push_config(push_config),
                "configuredAt": configured_at,
            },
            request_id,
        )

    async def handle_get_push_notification_config(self, params: Dict[str, Any], request_id: Any) -> Dict[str, Any]:
        task = self._require_task(self._task_id(params))
        return make_response(
            {
                "taskId": task.id,
                "pushNotificationConfig": redact_push_config(task.push_notification_config),
                "hasConfig": task.push_notification_config is not None,
                "retrievedAt": utc_now_iso(),
            },
            request_id,
        )

    async def handle_task_resubscribe(self, params: Dict[str, Any], request_id: Any) -> Dict[str, Any]:
        """Refresh the caller's view of a task. There is no live push channel."""
        task = self._require_task(self._task_id(params))
        resubscribed_at = utc_now_iso()
        task.record(
            TaskEvent.RESUBSCRIBED,
            {"resubscribedAt": resubscribed_at, "currentState": task.state.value},
        )
        self.store.update_task(task.id, task)

        return make_response(
            {
                "task": task.to_dict(),
                "resubscribed": True,
                "resubscribedAt": resubscribed_at,
                "currentState": task.state.value,
                "message": "Successfully resubscribed to task updates",
            },
            request_id,
        )
