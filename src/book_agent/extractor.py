"""
extractor.py
Pulls a short, clean narrative excerpt out of a Project Gutenberg text.
"""

import re
from typing import List

EXCERPT_PLACEHOLDER = "Excerpt not available for this book."
MAX_EXCERPT_LENGTH = 500
TRUNCATED_LENGTH = 497
MIN_EXCERPT_LENGTH = 100
EXCERPT_LINES = 10
START_SCAN_LINES = 20
MIN_START_LINE_LENGTH = 50

HEADER_MARKER = re.compile(r"project gutenberg", re.IGNORECASE)
FOOTER_MARKERS = (
    re.compile(r"end of project gutenberg", re.IGNORECASE),
    re.compile(r"end of.*?project gutenberg", re.IGNORECASE),
)

_LINE_BREAKS = re.compile(r"[\r\n]+")
_HEADING = re.compile(r"^(chapter|contents|index|table of contents)", re.IGNORECASE)
_ROMAN_NUMERAL = re.compile(r"^[IVX]+\.?\s*$", re.IGNORECASE)
_DIGITS = re.compile(r"^\d+\.?\s*$")
_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^\w\s.,!?;:'\"()-]")
_QUOTES = str.maketrans({
    "“": '"',
    "”": '"',
    "„": '"',
    "‘": "'",
    "’": "'",
    "‚": "'",
})


def strip_boilerplate(full_text: str) -> str:
    """
    Remove the catalog header and footer from a book text.

    Everything from the first footer marker line onward is dropped, then the
    last remaining header marker line and everything before it.
    """
    lines = _LINE_BREAKS.split(full_text)

    for index, line in enumerate(lines):
        if any(marker.search(line) for marker in FOOTER_MARKERS):
            lines = lines[:index]
            break

    header_end = -1
    for index, line in enumerate(lines):
        if HEADER_MARKER.search(line):
            header_end = index

    return "\n".join(lines[header_end + 1:])


def _is_narrative_line(line: str) -> bool:
    return (
        len(line) > MIN_START_LINE_LENGTH
        and not _HEADING.match(line)
        and not _ROMAN_NUMERAL.match(line)
        and not _DIGITS.match(line)
    )


def find_start_index(lines: List[str]) -> int:
    """Index of the first narrative-looking line among the first 20, else 0."""
    for index in range(min(START_SCAN_LINES, len(lines))):
        if _is_narrative_line(lines[index].strip()):
            return index
    return 0


def clean_passage(text: str) -> str:
    """Collapse whitespace, straighten quotes and drop unexpected characters."""
    text = _WHITESPACE.sub(" ", text.strip())
    text = text.translate(_QUOTES)
    return _DISALLOWED.sub("", text)


def _truncate(text: str) -> str:
    if len(text) > MAX_EXCERPT_LENGTH:
        return text[:TRUNCATED_LENGTH] + "..."
    return text


def extract_excerpt(full_text: str) -> str:
    """
    Extract a short excerpt (at most 500 characters) from a full book text.

    Args:
        full_text: The raw downloaded text, header and footer included

    Returns:
        The cleaned excerpt, or a fixed placeholder when nothing usable remains
    """
    cleaned = strip_boilerplate(full_text or "")
    lines = [line for line in _LINE_BREAKS.split(cleaned) if line.strip()]

    start = find_start_index(lines)
    end = start + EXCERPT_LINES
    excerpt = clean_passage(" ".join(lines[start:end]))

    if len(excerpt) > MAX_EXCERPT_LENGTH:
        excerpt = _truncate(excerpt)
    elif len(excerpt) < MIN_EXCERPT_LENGTH and end < len(lines):
        more = clean_passage(" ".join(lines[end:end + EXCERPT_LINES]))
        excerpt = _truncate(f"{excerpt} {more}".strip())

    excerpt = excerpt.strip()
    return excerpt or EXCERPT_PLACEHOLDER
