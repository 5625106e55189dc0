"""
a2a_protocol.py
A2A (Agent-to-Agent) protocol helpers for JSON-RPC communication.

Provides:
- JSON-RPC response builders and envelope validation
- Error codes, including the task-level extensions
- Agent card schema for discovery
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from src.book_agent import config
from src.book_agent.tools import TOOL_DEFINITIONS


# ─── JSON-RPC Protocol ───────────────────────────────────────────────────────

class JSONRPCError(Exception):
    """Exception for JSON-RPC errors."""
    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"JSON-RPC Error {code}: {message}")

    def to_response(self, request_id: Optional[Any] = None) -> Dict[str, Any]:
        return make_error_response(self.code, self.message, request_id, self.data)


# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Task-level extensions
TASK_NOT_FOUND = -32001
TASK_NOT_CANCELABLE = -32002

SUPPORTED_METHODS = [
    "message/send",
    "message/stream",
    "tasks/get",
    "tasks/cancel",
    "tasks/setPushNotificationConfig",
    "tasks/getPushNotificationConfig",
    "tasks/resubscribe",
]

_METHOD_NAME = re.compile(r"^[a-zA-Z0-9_/-]+$")


def make_response(result: Any, request_id: Any) -> Dict[str, Any]:
    """Build a JSON-RPC 2.0 success response."""
    return {
        "jsonrpc": "2.0",
        "result": result,
        "id": request_id
    }


def make_error_response(code: int, message: str, request_id: Optional[Any] = None, data: Optional[Any] = None) -> Dict[str, Any]:
    """Build a JSON-RPC 2.0 error response."""
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {
        "jsonrpc": "2.0",
        "error": error,
        "id": request_id
    }


def validate_request(request: Any) -> None:
    """
    Check that a request is a JSON-RPC 2.0 envelope with a usable method name.

    `params` and `id` are optional.

    Raises:
        JSONRPCError: INVALID_REQUEST describing the first problem found
    """
    if not isinstance(request, dict):
        raise JSONRPCError(INVALID_REQUEST, "Invalid Request format")
    if request.get("jsonrpc") != "2.0":
        raise JSONRPCError(INVALID_REQUEST, "Invalid Request format", "jsonrpc must be \"2.0\"")
    method = request.get("method")
    if not method or not isinstance(method, str):
        raise JSONRPCError(INVALID_REQUEST, "Invalid Request: method is required and must be a string")
    if not _METHOD_NAME.match(method):
        raise JSONRPCError(INVALID_REQUEST, "Invalid Request: method contains invalid characters")
    params = request.get("params")
    if params is not None and not isinstance(params, dict):
        raise JSONRPCError(INVALID_REQUEST, "Invalid Request format", "params must be an object")


def extract_method_and_params(request: Dict[str, Any]) -> Tuple[str, Dict[str, Any], Any]:
    """
    Extract method, params, and id from a validated JSON-RPC request.

    Returns:
        Tuple of (method, params, request_id); a missing id becomes "default"
    """
    return (
        request["method"],
        request.get("params") or {},
        "default" if request.get("id") is None else request["id"]
    )


def method_not_found(method: str) -> JSONRPCError:
    return JSONRPCError(METHOD_NOT_FOUND, f"Method not found: {method}", {"availableMethods": list(SUPPORTED_METHODS)})


def sse_frame(payload: Dict[str, Any]) -> str:
    """Encode one Server-Sent-Events frame."""
    return f"data: {json.dumps(payload)}\n\n"


# ─── Agent Card ──────────────────────────────────────────────────────────────

@dataclass
class AgentSkill:
    name: str
    description: str
    input_modes: List[str] = field(default_factory=lambda: ["text"])
    output_modes: List[str] = field(default_factory=lambda: ["text"])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputModes": self.input_modes,
            "outputModes": self.output_modes,
        }


@dataclass
class AgentCard:
    """A2A Agent Card - describes agent capabilities for discovery."""
    name: str
    description: str
    execution_url: str
    skills: List[AgentSkill]
    version: str = config.SERVICE_VERSION
    streaming: bool = True
    push_notifications: bool = False
    methods: List[str] = field(default_factory=lambda: list(SUPPORTED_METHODS))
    provider: Dict[str, str] = field(default_factory=lambda: {"organization": "A2A Book Agent"})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "capabilities": {
                "streaming": self.streaming,
                "pushNotifications": self.push_notifications,
            },
            "provider": self.provider,
            "executionUrl": self.execution_url,
            "defaultInputModes": ["text"],
            "defaultOutputModes": ["text"],
            "skills": [skill.to_dict() for skill in self.skills],
            "extensions": [
                {
                    "name": "a2a-chat-integration",
                    "description": "Task lifecycle methods for chat platforms",
                    "version": self.version,
                    "methods": self.methods,
                }
            ],
        }


def build_agent_card(agent_id: str = config.AGENT_ID) -> AgentCard:
    return AgentCard(
        name="Public Domain Book Extractor",
        description="An A2A-enabled agent that extracts excerpts from public domain books using Project Gutenberg",
        execution_url=f"/a2a/{agent_id}",
        skills=[AgentSkill(tool.name, tool.description) for tool in TOOL_DEFINITIONS.values()],
    )
