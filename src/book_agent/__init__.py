"""
A2A Book Excerpt Agent

This module provides:
- catalog_client: Gutendex search and plain-text download
- extractor: excerpt extraction from full book texts
- tools: the extractBookExcerpt tool and its outcome types
- agent: the book extractor agent (optional LLM planning)
- task_store / protocol_handler: A2A task state machine and JSON-RPC dispatch
- server: FastAPI app with REST and A2A endpoints
"""

from src.book_agent.a2a_protocol import (
    AgentCard,
    JSONRPCError,
    build_agent_card,
    make_response,
    make_error_response,
    validate_request,
    extract_method_and_params,
)

from src.book_agent.agent import BookExtractorAgent
from src.book_agent.catalog_client import CatalogClient, SearchResult, select_text_url
from src.book_agent.errors import (
    BookAgentError,
    EnvironmentValidationError,
    ExternalAPIError,
    OperationTimeoutError,
    RateLimitError,
    ValidationError,
)
from src.book_agent.extractor import extract_excerpt
from src.book_agent.formatter import format_book_response
from src.book_agent.protocol_handler import A2AProtocolHandler
from src.book_agent.task_store import Task, TaskEvent, TaskState, TaskStore

from src.book_agent.tools import (
    ExcerptFound,
    ExtractionFailure,
    ExtractionOutcome,
    NoBooksFound,
    NoPlainText,
    ToolDefinition,
    TOOL_DEFINITIONS,
    extract_book_excerpt,
    get_tool_names,
    get_tools_description_for_llm,
)

__all__ = [
    # Protocol
    "AgentCard",
    "JSONRPCError",
    "build_agent_card",
    "make_response",
    "make_error_response",
    "validate_request",
    "extract_method_and_params",
    "A2AProtocolHandler",
    # Tasks
    "Task",
    "TaskEvent",
    "TaskState",
    "TaskStore",
    # Catalog & extraction
    "CatalogClient",
    "SearchResult",
    "select_text_url",
    "extract_excerpt",
    "format_book_response",
    "BookExtractorAgent",
    # Errors
    "BookAgentError",
    "EnvironmentValidationError",
    "ExternalAPIError",
    "OperationTimeoutError",
    "RateLimitError",
    "ValidationError",
    # Tools
    "ExcerptFound",
    "ExtractionFailure",
    "ExtractionOutcome",
    "NoBooksFound",
    "NoPlainText",
    "ToolDefinition",
    "TOOL_DEFINITIONS",
    "extract_book_excerpt",
    "get_tool_names",
    "get_tools_description_for_llm",
]
