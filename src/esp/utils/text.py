"""Text helpers."""

from __future__ import annotations

from typing import Optional


ENTITY_PREFIX = "http://www.wikidata.org/entity/"


def blank_to_none(value: Optional[str]) -> Optional[str]:
    """Return stripped text, or None when empty."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def identifier_key(identifier: Optional[str]) -> Optional[str]:
    """Case-insensitive dedup key for an external identifier."""
    value = blank_to_none(identifier)
    return value.casefold() if value else None


def normalize_qid(value: Optional[str]) -> Optional[str]:
    """Normalize a QID or entity URI into upper-case ``Q123`` form."""
    text = blank_to_none(value)
    if text is None:
        return None
    if text.startswith(ENTITY_PREFIX):
        text = text[len(ENTITY_PREFIX) :]
    return text.upper()


def truncate(text: Optional[str], max_chars: int = 2000) -> str:
    """Truncate long response bodies for log and error messages."""
    value = text or ""
    if len(value) > max_chars:
        return value[:max_chars] + "..."
    return value
