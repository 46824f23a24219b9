from __future__ import annotations

import html
import re

ITEM_NAME_MAX_LENGTH = 100
NOTE_MAX_LENGTH = 500

_TAG_RE = re.compile(r"<[^>]*>")
_UNSAFE_CHARS_RE = re.compile(r"[<>'\"&]")
_WHITESPACE_RE = re.compile(r"\s+")
_ITEM_NAME_DISALLOWED_RE = re.compile(r"[^a-z0-9\s-]")


def sanitize_text(value: str, max_length: int | None = None) -> str:
    """Strip markup and unsafe characters, collapse whitespace, then cap length."""
    sanitized = _TAG_RE.sub("", html.unescape(value))
    sanitized = _UNSAFE_CHARS_RE.sub("", sanitized)
    sanitized = _WHITESPACE_RE.sub(" ", sanitized).strip()
    if max_length is not None and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
    return sanitized


def sanitize_item_name(name: str) -> str:
    sanitized = sanitize_text(name, ITEM_NAME_MAX_LENGTH).lower()
    sanitized = _ITEM_NAME_DISALLOWED_RE.sub("", sanitized)
    return _WHITESPACE_RE.sub(" ", sanitized).strip()


def sanitize_note(note: str) -> str:
    return sanitize_text(note, NOTE_MAX_LENGTH)


def normalize_name(name: str) -> str:
    # Match key for classification results.
    return name.strip().lower()
