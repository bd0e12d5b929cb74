from __future__ import annotations

import re
import unicodedata

_DOTS_RE = re.compile(r"\.")
_NON_WORD_RE = re.compile(r"[^a-z0-9&+#]+")
_SPACE_RE = re.compile(r"\s+")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def normalize_line(line: str) -> str:
    return _SPACE_RE.sub(" ", line or "").strip()


def fold_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def normalize_key(text: str | None) -> str:
    """Lower-case, accent-folded, punctuation-free key used for all table lookups.

    Dots are dropped rather than spaced so abbreviations collapse ("U.S.A." -> "usa").
    """
    if not text:
        return ""
    lowered = fold_accents(text).lower()
    lowered = _DOTS_RE.sub("", lowered)
    return normalize_line(_NON_WORD_RE.sub(" ", lowered))


def slugify(text: str | None, fallback: str = "unknown_role") -> str:
    slug = _SLUG_RE.sub("_", fold_accents(text or "").lower()).strip("_")
    return slug or fallback


def contains_phrase(text: str, phrase: str) -> bool:
    """Whole-word phrase match on already normalized text."""
    if not phrase:
        return False
    return re.search(rf"(?<![a-z0-9]){re.escape(phrase)}(?![a-z0-9])", text) is not None


def contains_any(text: str, markers: tuple[str, ...]) -> bool:
    return any(contains_phrase(text, marker) for marker in markers)

