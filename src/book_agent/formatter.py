"""
formatter.py
Renders extraction results as chat-friendly text.
"""

from typing import Any, Dict

ATTRIBUTION = "*Excerpt from Project Gutenberg - Public Domain*"
MAX_SUBJECTS = 5


def format_error(result: Dict[str, Any]) -> str:
    message = f"❌ Error: {result['error']}"

    suggestions = result.get("suggestions")
    if isinstance(suggestions, list) and suggestions:
        message += "\n\n💡 Suggestions:\n"
        for index, suggestion in enumerate(suggestions, start=1):
            message += f"{index}. {suggestion}\n"

    if result.get("code"):
        message += f"\n\nError Code: {result['code']}"

    return message


def format_book_response(result: Dict[str, Any]) -> str:
    """
    Render a book result (or error result) as markdown-ish chat text.

    Args:
        result: Either {title, authors, excerpt, ...} or {error, code?, suggestions?}

    Returns:
        The display text. Malformed results are reported as an error message.
    """
    if not isinstance(result, dict):
        return "❌ Error: Failed to format book response"

    if result.get("error"):
        return format_error(result)

    title = result.get("title")
    authors = result.get("authors")
    excerpt = result.get("excerpt")
    if not title or not authors or not excerpt:
        return "❌ Error: Invalid book result format: missing required fields"

    response = f"📚 **{title}**\n\n*By {authors}*\n\n{excerpt}"

    source = result.get("source")
    if source:
        response += f"\n\n*Source: {source}*"

    download_count = result.get("downloadCount")
    if isinstance(download_count, int) and not isinstance(download_count, bool) and download_count:
        response += f"\n*Downloads: {download_count:,}*"

    languages = result.get("languages")
    if isinstance(languages, list) and languages:
        response += f"\n*Languages: {', '.join(languages)}*"

    subjects = result.get("subjects")
    if isinstance(subjects, list) and subjects:
        more = "..." if len(subjects) > MAX_SUBJECTS else ""
        response += f"\n*Topics: {', '.join(subjects[:MAX_SUBJECTS])}{more}*"

    response += f"\n\n{ATTRIBUTION}"

    return response
