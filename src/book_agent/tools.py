"""
tools.py
The book excerpt tool and the outcome types it produces.

Provides:
- ExtractionOutcome variants: ExcerptFound, NoBooksFound, NoPlainText, ExtractionFailure
- extract_book_excerpt: search, download and excerpt a public domain book
- Tool registry used by the agent and the agent card
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import urlparse

import httpx

from src.book_agent.catalog_client import (
    CATALOG_SERVICE,
    CatalogClient,
    classify_transport_error,
    select_text_url,
)
from src.book_agent.errors import ExternalAPIError, ValidationError
from src.book_agent.extractor import extract_excerpt
from src.book_agent.validation import sanitize_search_query

SOURCE_NAME = "Project Gutenberg"

NO_RESULTS_SUGGESTIONS = [
    "Try using different keywords",
    "Check spelling of author names or book titles",
    "Try more general search terms",
]


# ─── Outcomes ────────────────────────────────────────────────────────────────

@dataclass
class ExcerptFound:
    """A book was found and an excerpt extracted."""
    title: str
    authors: str
    excerpt: str
    source: str = SOURCE_NAME
    download_count: int = 0
    languages: List[str] = field(default_factory=list)
    subjects: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "authors": self.authors,
            "excerpt": self.excerpt,
            "source": self.source,
            "downloadCount": self.download_count,
            "languages": self.languages,
            "subjects": self.subjects,
        }


@dataclass
class NoBooksFound:
    """The catalog had no match for the query."""
    suggestions: List[str] = field(default_factory=lambda: list(NO_RESULTS_SUGGESTIONS))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "No books found for that query.",
            "suggestions": self.suggestions,
        }


@dataclass
class NoPlainText:
    """A book was found but has no plain-text download."""
    title: str
    authors: str
    available_formats: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": f'Found book "{self.title}" but no plain text version is available.',
            "availableFormats": self.available_formats,
            "title": self.title,
            "authors": self.authors,
        }


@dataclass
class ExtractionFailure:
    """The extraction failed for a reason worth reporting to the user."""
    code: str
    message: str
    details: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"error": self.message, "code": self.code}
        if self.details is not None:
            result["details"] = self.details
        return result

    @classmethod
    def from_error(cls, error: Exception) -> "ExtractionFailure":
        if isinstance(error, ExternalAPIError):
            return cls(error.code, error.message, {"service": error.service, "details": error.details})
        if isinstance(error, ValidationError):
            return cls(error.code, error.message, error.details)
        return cls(
            "UNKNOWN_ERROR",
            "An unexpected error occurred while fetching book data.",
            str(error),
        )


ExtractionOutcome = Union[ExcerptFound, NoBooksFound, NoPlainText, ExtractionFailure]


# ─── Tool ────────────────────────────────────────────────────────────────────

def _author_names(book: Dict[str, Any]) -> str:
    authors = book.get("authors")
    if not isinstance(authors, list) or not authors:
        return "Unknown Author"
    return ", ".join(
        (author.get("name") if isinstance(author, dict) else None) or "Unknown Author"
        for author in authors
    )


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return bool(parsed.scheme and parsed.netloc)


async def extract_book_excerpt(client: CatalogClient, search_query: str) -> ExtractionOutcome:
    """
    Find a book matching `search_query` and return a short excerpt from it.

    The first search result is used. A missing book or a missing plain-text
    format is an outcome, not an error.

    Raises:
        ValidationError: If the query is empty, too long or unsafe
        ExternalAPIError: If the catalog or the download fails
    """
    query = sanitize_search_query(search_query)

    result = await client.search(query)
    if result.is_empty:
        return NoBooksFound()

    book = result.first()
    if not isinstance(book, dict):
        raise ExternalAPIError("Invalid book data structure from Gutenberg API", CATALOG_SERVICE)

    title = book.get("title") or "Unknown Title"
    authors = _author_names(book)
    formats = book.get("formats") or {}

    text_url = select_text_url(formats)
    if not text_url:
        return NoPlainText(title, authors, list(formats.keys()))

    if not _is_valid_url(text_url):
        raise ExternalAPIError(f'Invalid text URL format for book "{title}"', CATALOG_SERVICE)

    try:
        full_text = await client.fetch_text(text_url, title)
    except httpx.HTTPError as e:
        raise classify_transport_error(e) from e

    if not full_text:
        raise ExternalAPIError(f'Invalid content format for book "{title}"', CATALOG_SERVICE)

    return ExcerptFound(
        title=title,
        authors=authors,
        excerpt=extract_excerpt(full_text),
        download_count=book.get("download_count") or 0,
        languages=book.get("languages") or [],
        subjects=book.get("subjects") or [],
    )


# ─── Tool Registry ───────────────────────────────────────────────────────────

@dataclass
class ToolDefinition:
    """Definition of a tool including its metadata and implementation."""
    name: str
    description: str
    parameters: Dict[str, str]  # param_name -> type description
    function: Callable[..., Awaitable[ExtractionOutcome]]

    def to_schema(self) -> Dict[str, Any]:
        """Convert to schema format for LLM consumption."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters
        }


EXTRACT_TOOL_NAME = "extractBookExcerpt"

TOOL_DEFINITIONS: Dict[str, ToolDefinition] = {
    EXTRACT_TOOL_NAME: ToolDefinition(
        name=EXTRACT_TOOL_NAME,
        description="Searches for a public domain book on Project Gutenberg and returns a short excerpt",
        parameters={
            "searchQuery": 'string - The query to search for a book, e.g. "Sherlock Holmes" or "Pride and Prejudice"',
        },
        function=extract_book_excerpt,
    ),
}


def get_tool_names() -> List[str]:
    """Get list of all available tool names."""
    return list(TOOL_DEFINITIONS.keys())


def get_tools_description_for_llm() -> str:
    """
    Generate a formatted description of all tools for LLM consumption.

    Returns:
        A string describing all available tools
    """
    lines = ["Available tools:\n"]

    for name, tool in TOOL_DEFINITIONS.items():
        params_str = ", ".join(f"{k}: {v}" for k, v in tool.parameters.items()) if tool.parameters else "none"
        lines.append(f"- {name}: {tool.description}")
        lines.append(f"  Parameters: {params_str}")
        lines.append("")

    return "\n".join(lines)
