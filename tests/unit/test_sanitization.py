import pytest

from zoning.domain.sanitization import (
    ITEM_NAME_MAX_LENGTH,
    NOTE_MAX_LENGTH,
    normalize_name,
    sanitize_item_name,
    sanitize_note,
    sanitize_text,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("  Spinach  ", "spinach"),
        ("Greek   Yogurt", "greek yogurt"),
        ("<b>Kale</b>", "kale"),
        ("whole-wheat bread!", "whole-wheat bread"),
        ("tom &amp; jerry", "tom jerry"),
        ("***", ""),
        ("", ""),
    ],
)
def test_item_names_are_lowercased_and_restricted(raw: str, expected: str) -> None:
    assert sanitize_item_name(raw) == expected


@pytest.mark.unit
def test_lengths_are_capped() -> None:
    assert len(sanitize_item_name("a" * 300)) == ITEM_NAME_MAX_LENGTH
    assert len(sanitize_note("b" * 900)) == NOTE_MAX_LENGTH


@pytest.mark.unit
def test_text_sanitizer_removes_markup_and_quotes() -> None:
    assert sanitize_text('Say "hi"<script>alert(1)</script>\n\n  now') == "Say hialert(1) now"


@pytest.mark.unit
def test_normalize_name_is_the_match_key() -> None:
    assert normalize_name("  KALE ") == "kale"
