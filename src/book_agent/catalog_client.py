"""
catalog_client.py
Async client for the Gutendex catalog of Project Gutenberg books.

Provides:
- CatalogClient: search the catalog and download plain-text book bodies
- select_text_url: pick the best plain-text download link for a book
- classify_transport_error: map httpx failures onto ExternalAPIError codes
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from src.book_agent import config
from src.book_agent.errors import ExternalAPIError
from src.book_agent.resilience import CircuitBreaker, CircuitOpenError, with_retry

CATALOG_SERVICE = "gutendex"

# Highest priority first
PLAIN_TEXT_FORMATS = (
    "text/plain; charset=us-ascii",
    "text/plain",
    "text/plain; charset=utf-8",
)


@dataclass
class SearchResult:
    """Books returned by a catalog search."""
    count: int
    results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.results

    def first(self) -> Optional[Dict[str, Any]]:
        return self.results[0] if self.results else None


def select_text_url(formats: Optional[Dict[str, str]]) -> Optional[str]:
    """Return the download URL of the preferred plain-text format, if any."""
    if not formats:
        return None
    for mime_type in PLAIN_TEXT_FORMATS:
        url = formats.get(mime_type)
        if url:
            return url
    return None


def classify_transport_error(error: httpx.HTTPError, service: str = CATALOG_SERVICE) -> ExternalAPIError:
    """Translate an httpx failure into an ExternalAPIError with a stable code."""
    if isinstance(error, httpx.TimeoutException):
        return ExternalAPIError(
            "Request timeout while searching for books",
            service,
            code="TIMEOUT_ERROR",
            details="The search request took too long to complete",
        )

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429:
            return ExternalAPIError(
                "Too many requests to Gutenberg API",
                service,
                code="RATE_LIMIT_ERROR",
                details="Please try again later",
            )
        if status in (500, 502, 503):
            return ExternalAPIError(
                "Gutenberg API is temporarily unavailable",
                service,
                code="SERVICE_UNAVAILABLE",
                details="Please try again later",
            )
        if status == 404:
            return ExternalAPIError(
                "Gutenberg API endpoint not found",
                service,
                code="API_NOT_FOUND",
                details="The search service is currently unavailable",
            )
        return ExternalAPIError(
            f"Gutenberg API returned error {status}",
            service,
            code="API_ERROR",
            details={"status": status},
        )

    if isinstance(error, httpx.RequestError):
        return ExternalAPIError(
            "Unable to connect to Gutenberg API",
            service,
            code="CONNECTION_ERROR",
            details="Please check your internet connection",
        )

    return ExternalAPIError(
        "An unexpected error occurred while searching for books",
        service,
        code="UNKNOWN_ERROR",
        details=str(error),
    )


class CatalogClient:
    """Client for the Gutendex search API and Gutenberg text downloads."""

    def __init__(
        self,
        base_url: str = config.GUTENDEX_URL,
        search_timeout: float = config.SEARCH_TIMEOUT,
        fetch_timeout: float = config.FETCH_TIMEOUT,
        max_retries: int = config.MAX_RETRIES,
        max_content_bytes: int = config.MAX_CONTENT_BYTES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        breaker: Optional[CircuitBreaker] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the catalog client.

        Args:
            base_url: Gutendex books endpoint
            search_timeout: Per-attempt search timeout in seconds
            fetch_timeout: Text download timeout in seconds
            max_retries: Total search attempts before giving up
            max_content_bytes: Largest text body accepted
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Backoff sleep function
            breaker: Circuit breaker guarding searches
            logger: Logger to use instead of the module logger
        """
        self.base_url = base_url.rstrip("/")
        self.search_timeout = search_timeout
        self.fetch_timeout = fetch_timeout
        self.max_retries = max_retries
        self.max_content_bytes = max_content_bytes
        self._sleep = sleep
        self._breaker = breaker or CircuitBreaker()
        self._logger = logger or logging.getLogger(__name__)
        self._client = httpx.AsyncClient(
            transport=transport,
            headers={"User-Agent": config.USER_AGENT},
            follow_redirects=True,
        )

    async def search(self, query: str) -> SearchResult:
        """
        Search the catalog for books matching `query`.

        Raises:
            ExternalAPIError: If every attempt fails or the response is malformed
        """
        self._logger.info(f"Searching catalog for {query!r}")

        async def attempt() -> httpx.Response:
            response = await self._client.get(
                self.base_url,
                params={"search": query},
                headers={"Accept": "application/json"},
                timeout=self.search_timeout,
            )
            response.raise_for_status()
            return response

        async def search_with_retry() -> httpx.Response:
            return await with_retry(
                attempt,
                max_retries=self.max_retries,
                retry_on=(httpx.HTTPError,),
                sleep=self._sleep,
                label="Catalog search",
            )

        try:
            response = await self._breaker.call(search_with_retry)
        except CircuitOpenError:
            raise ExternalAPIError(
                "Gutenberg API is temporarily unavailable",
                CATALOG_SERVICE,
                code="SERVICE_UNAVAILABLE",
                details="Too many recent failures, please try again later",
            )
        except httpx.HTTPError as e:
            self._logger.error(f"Catalog search failed after {self.max_retries} attempts: {e!r}")
            raise classify_transport_error(e) from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise ExternalAPIError("Invalid response format from Gutenberg API", CATALOG_SERVICE)

        results = data["results"]
        self._logger.debug(f"Catalog returned {len(results)} results for {query!r}")
        return SearchResult(count=data.get("count", len(results)), results=results)

    async def fetch_text(self, url: str, title: str = "book") -> str:
        """
        Download the plain-text body of a book.

        Raises:
            ExternalAPIError: On timeout, HTTP 404 or an oversized body
            httpx.HTTPError: On any other transport failure
        """
        self._logger.info(f"Fetching text for {title!r} from {url}")
        try:
            async with self._client.stream(
                "GET",
                url,
                headers={"Accept": "text/plain"},
                timeout=self.fetch_timeout,
            ) as response:
                response.raise_for_status()

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_content_bytes:
                    raise self._too_large(title)

                chunks = []
                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > self.max_content_bytes:
                        raise self._too_large(title)
                    chunks.append(chunk)

                encoding = response.charset_encoding or "utf-8"
        except httpx.TimeoutException as e:
            raise ExternalAPIError(
                f'Timeout while fetching content for "{title}"',
                CATALOG_SERVICE,
                code="TIMEOUT_ERROR",
            ) from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise ExternalAPIError(
                    f'Book content not found for "{title}"',
                    CATALOG_SERVICE,
                    code="NOT_FOUND",
                ) from e
            raise

        try:
            return b"".join(chunks).decode(encoding, errors="replace")
        except LookupError:
            return b"".join(chunks).decode("utf-8", errors="replace")

    def _too_large(self, title: str) -> ExternalAPIError:
        return ExternalAPIError(
            f'Content for "{title}" exceeds {self.max_content_bytes} bytes',
            CATALOG_SERVICE,
            code="CONTENT_TOO_LARGE",
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
