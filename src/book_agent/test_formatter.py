"""Tests for chat response formatting."""

from src.book_agent.formatter import ATTRIBUTION, format_book_response

BOOK = {
    "title": "Pride and Prejudice",
    "authors": "Austen, Jane",
    "excerpt": "It is a truth universally acknowledged...",
    "source": "Project Gutenberg",
    "downloadCount": 1234,
    "languages": ["en", "fr"],
    "subjects": ["Courtship", "Sisters", "England", "Manners", "Women", "Class"],
}


def test_success_rendering():
    text = format_book_response(BOOK)

    assert text.startswith("📚 **Pride and Prejudice**\n\n*By Austen, Jane*\n\nIt is a truth")
    assert "*Source: Project Gutenberg*" in text
    assert "*Downloads: 1,234*" in text
    assert "*Languages: en, fr*" in text
    assert "*Topics: Courtship, Sisters, England, Manners, Women...*" in text
    assert "Class" not in text
    assert text.endswith(ATTRIBUTION)


def test_optional_metadata_omitted():
    text = format_book_response({"title": "T", "authors": "A", "excerpt": "E"})

    assert text == f"📚 **T**\n\n*By A*\n\nE\n\n{ATTRIBUTION}"


def test_five_subjects_have_no_ellipsis():
    text = format_book_response({**BOOK, "subjects": BOOK["subjects"][:5]})

    assert "*Topics: Courtship, Sisters, England, Manners, Women*" in text


def test_error_with_suggestions():
    text = format_book_response({
        "error": "No books found for that query.",
        "suggestions": ["Try different keywords", "Check spelling"],
    })

    assert text == (
        "❌ Error: No books found for that query."
        "\n\n💡 Suggestions:\n1. Try different keywords\n2. Check spelling\n"
    )


def test_error_with_code():
    text = format_book_response({"error": "Gutenberg API is down", "code": "SERVICE_UNAVAILABLE"})

    assert text == "❌ Error: Gutenberg API is down\n\nError Code: SERVICE_UNAVAILABLE"


def test_missing_fields_reported():
    text = format_book_response({"title": "Only a title"})

    assert text == "❌ Error: Invalid book result format: missing required fields"


def test_non_dict_result():
    assert format_book_response(None) == "❌ Error: Failed to format book response"
