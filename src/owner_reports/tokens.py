"""Placeholder token normalisation.

Text-generation tools and PowerPoint itself like to smuggle run markup,
entities and invisible characters into ``{{TOKEN}}`` bodies.  Each pass
below removes one kind of noise; :func:`normalize_token` chains them.
"""

from __future__ import annotations

import re
from collections.abc import Callable

PLACEHOLDER_RE = re.compile(r"\{\{([^{}]+)\}\}")
TAG_RE = re.compile(r"<[^>]+>")
ENTITY_RE = re.compile(r"&[a-z0-9#]+;", re.IGNORECASE)
HIDDEN_CHAR_RE = re.compile(r"[\u200B-\u200D\u2060\uFEFF\u00A0\u202F]")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_TOKEN_CHAR_RE = re.compile(r"[^A-Za-z0-9_]")


# ── Passes ───────────────────────────────────────────────────────


def strip_hidden_characters(value: str) -> str:
    """Remove zero-width and non-breaking characters."""
    return HIDDEN_CHAR_RE.sub("", value)


def strip_entities(value: str) -> str:
    return ENTITY_RE.sub("", value)


def strip_tags(value: str) -> str:
    return TAG_RE.sub("", value)


def strip_braces(value: str) -> str:
    return value.replace("{", "").replace("}", "")


def collapse_whitespace(value: str) -> str:
    """Drop every whitespace run; token names never contain spaces."""
    return _WHITESPACE_RE.sub("", value)


def drop_non_token_characters(value: str) -> str:
    return _NON_TOKEN_CHAR_RE.sub("", value)


def upper(value: str) -> str:
    return value.upper()


# Entities go before tags so ``&lt;b&gt;`` cannot turn into a tag.
NORMALIZATION_PASSES: tuple[Callable[[str], str], ...] = (
    strip_entities,
    strip_hidden_characters,
    strip_tags,
    strip_braces,
    collapse_whitespace,
    drop_non_token_characters,
    upper,
)


# ── Public API ───────────────────────────────────────────────────


def normalize_token(value: object) -> str | None:
    """Return the canonical form of a placeholder body, or ``None``.

    The result only contains ``[A-Z0-9_]`` so normalising it again is a
    no-op.
    """
    if not isinstance(value, str):
        return None
    for step in NORMALIZATION_PASSES:
        value = step(value)
    return value or None


def flatten_markup(xml: str) -> str:
    """Return the visible text of an XML payload (tags and hidden chars removed)."""
    return strip_tags(strip_hidden_characters(xml))


def find_placeholder_tokens(xml: str) -> list[str]:
    """Return normalised tokens of every ``{{...}}`` span, in document order."""
    found: list[str] = []
    for match in PLACEHOLDER_RE.finditer(flatten_markup(xml)):
        token = normalize_token(match.group(1))
        if token:
            found.append(token)
    return found
