"""Shared fixtures: a fake Gutendex behind httpx.MockTransport."""

from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from src.book_agent.catalog_client import CatalogClient

GUTENDEX_URL = "https://gutendex.com/books"
TEXT_URL = "https://www.gutenberg.org/files/1661/1661-0.txt"

NARRATIVE = [
    "To Sherlock Holmes she is always the woman. I have seldom heard him mention her",
    "under any other name. In his eyes she eclipses and predominates the whole of her sex.",
    "It was not that he felt any emotion akin to love for Irene Adler. All emotions, and",
    "that one particularly, were abhorrent to his cold, precise but admirably balanced mind.",
    "He was, I take it, the most perfect reasoning and observing machine that the world has",
    "seen, but as a lover he would have placed himself in a false position. He never spoke",
    "of the softer passions, save with a gibe and a sneer. They were admirable things for",
    "the observer, excellent for drawing the veil from men's motives and actions. But for",
    "the trained reasoner to admit such intrusions into his own delicate and finely adjusted",
    "temperament was to introduce a distracting factor which might throw a doubt upon all.",
    "Grit in a sensitive instrument, or a crack in one of his own high-power lenses, would",
    "not be more disturbing than a strong emotion in a nature such as his. And yet there",
]

BOOK_TEXT = "\n".join(
    [
        "The Project Gutenberg eBook of The Adventures of Sherlock Holmes",
        "",
        "Title: The Adventures of Sherlock Holmes",
        "Author: Arthur Conan Doyle",
        "",
        "*** START OF THE PROJECT GUTENBERG EBOOK THE ADVENTURES OF SHERLOCK HOLMES ***",
        "",
        "CHAPTER I.",
        "",
    ]
    + NARRATIVE
    + [
        "",
        "*** END OF THE PROJECT GUTENBERG EBOOK THE ADVENTURES OF SHERLOCK HOLMES ***",
        "Updated editions will replace the previous one and the old editions will be renamed.",
    ]
)

SHERLOCK = {
    "id": 1661,
    "title": "The Adventures of Sherlock Holmes",
    "authors": [{"name": "Doyle, Arthur Conan", "birth_year": 1859, "death_year": 1930}],
    "subjects": [
        "Detective and mystery stories, English",
        "Holmes, Sherlock (Fictitious character) -- Fiction",
        "Private investigators -- England -- Fiction",
    ],
    "languages": ["en"],
    "download_count": 48213,
    "formats": {
        "text/html": "https://www.gutenberg.org/ebooks/1661.html.images",
        "text/plain; charset=us-ascii": TEXT_URL,
        "application/epub+zip": "https://www.gutenberg.org/ebooks/1661.epub3.images",
    },
}


class FakeGutendex:
    """
    MockTransport handler standing in for gutendex.com and the text mirror.

    Set `search_handler` or `text_handler` to override a response (they may
    raise httpx exceptions to simulate transport failures).
    """

    def __init__(self, books: Optional[List[Dict[str, Any]]] = None, text: str = BOOK_TEXT):
        self.books = [SHERLOCK] if books is None else books
        self.text = text
        self.search_handler: Optional[Callable[[httpx.Request], httpx.Response]] = None
        self.text_handler: Optional[Callable[[httpx.Request], httpx.Response]] = None
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "gutendex.com":
            if self.search_handler is not None:
                return self.search_handler(request)
            return httpx.Response(
                200,
                json={"count": len(self.books), "next": None, "previous": None, "results": self.books},
            )
        if self.text_handler is not None:
            return self.text_handler(request)
        return httpx.Response(200, text=self.text)

    @property
    def searches(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == "gutendex.com"]


def always_timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


@pytest.fixture
def gutendex() -> FakeGutendex:
    return FakeGutendex()


@pytest.fixture
def sleeps() -> List[float]:
    """Backoff delays requested by the client, in order."""
    return []


@pytest.fixture
def make_catalog_client(gutendex, sleeps):
    """Factory for CatalogClients wired to the fake Gutendex."""
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    def factory(**kwargs) -> CatalogClient:
        kwargs.setdefault("base_url", GUTENDEX_URL)
        kwargs.setdefault("transport", httpx.MockTransport(gutendex))
        kwargs.setdefault("sleep", fake_sleep)
        return CatalogClient(**kwargs)

    return factory


@pytest.fixture
def catalog_client(make_catalog_client) -> CatalogClient:
    return make_catalog_client()
