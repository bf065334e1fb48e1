"""Plain-text helpers shared by rule-based extraction and relationship scoring."""

from __future__ import annotations

import re
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

_SENTENCE_BREAK = re.compile(r"[.!?\n]")
_PUNCTUATION = ".,!?;:()[]{}\"'`"
_MIN_KEYWORD_LENGTH = 3

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
        "has", "had", "do", "does", "did", "will", "would", "could", "should",
        "this", "that", "from", "not", "can", "all",
    }
)  # fmt: skip


def first_sentence(text: str) -> str:
    """Return the first non-empty sentence of ``text``, stripped."""
    for part in _SENTENCE_BREAK.split(text):
        stripped = part.strip()
        if stripped:
            return stripped
    return ""


def sentences(text: str) -> list[str]:
    """Split ``text`` into stripped, non-empty sentences."""
    return [s.strip() for s in _SENTENCE_BREAK.split(text) if s.strip()]


def truncate(text: str, limit: int) -> str:
    """Cap ``text`` at ``limit`` characters, marking the cut with ``...``."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def extract_keywords(text: str) -> list[str]:
    """Return lowercase content words of three or more characters."""
    keywords: list[str] = []
    for raw in text.lower().split():
        word = raw.strip(_PUNCTUATION)
        if len(word) >= _MIN_KEYWORD_LENGTH and word not in STOP_WORDS:
            keywords.append(word)
    return keywords


def common_words(first: cabc.Iterable[str], second: cabc.Iterable[str]) -> list[str]:
    """Return words present in both inputs, once each, in ``second`` order."""
    remaining = set(first)
    shared: list[str] = []
    for word in second:
        if word in remaining:
            shared.append(word)
            remaining.discard(word)
    return shared


def unique(items: cabc.Iterable[str]) -> tuple[str, ...]:
    """Return non-empty ``items`` with duplicates removed, preserving order."""
    return tuple(dict.fromkeys(item for item in items if item))


def file_extension(path: str) -> str:
    """Return the extension of the final path component, without the dot."""
    name = path.rsplit("/", 1)[-1]
    stem, dot, extension = name.rpartition(".")
    if not dot or not stem:
        return ""
    return extension


def contains_any(text: str, needles: cabc.Iterable[str]) -> bool:
    """Return whether the lowercase ``text`` contains any of ``needles``."""
    lowered = text.lower()
    return any(needle in lowered for needle in needles)
