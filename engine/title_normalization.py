from __future__ import annotations

import re
import unicodedata

_SUFFIX_OPENERS_RE = re.compile(r"[\(\[]")
_WS_RE = re.compile(r"\s+")
_ISRC_RE = re.compile(r"^[A-Z]{2}[A-Z0-9]{3}[0-9]{7}$")


def clean_search_title(value: str) -> str:
    """Drop everything from the first ``(`` or ``[``, e.g. "Song (Remastered 2011)" -> "Song"."""
    text = str(value or "")
    match = _SUFFIX_OPENERS_RE.search(text)
    if match:
        text = text[: match.start()]
    return _WS_RE.sub(" ", text).strip()


def build_search_query(artist: str, title: str) -> str:
    return normalize_match_text(f"{artist or ''} {title or ''}")


def normalize_match_text(value: str) -> str:
    text = unicodedata.normalize("NFKC", str(value or "")).lower()
    return _WS_RE.sub(" ", text).strip()


def normalize_isrc(value: str | None) -> str | None:
    """Return the upper-cased ISRC when well formed, else ``None``.

    Country code, three-character registrant, then seven digits (year and
    designation). Hyphens and spaces are ignored.
    """
    text = re.sub(r"[\s-]+", "", str(value or "")).upper()
    if not _ISRC_RE.match(text):
        return None
    return text


def is_valid_isrc(value: str | None) -> bool:
    return normalize_isrc(value) is not None
