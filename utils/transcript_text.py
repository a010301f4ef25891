"""Noise filtering for recognized transcript segments."""

import re
import unicodedata

_LETTERS = re.compile(r"[A-Za-z؀-ۿ]")


def _is_punctuation_or_symbol(char: str) -> bool:
    return unicodedata.category(char)[0] in {"P", "S"}


def sanitize_transcript(text: str | None) -> str:
    """Return cleaned text, or an empty string when the segment is noise.

    Empty strings, punctuation/symbol-only strings and very short strings
    with fewer than two Latin or Arabic letters are treated as noise.
    """
    cleaned = (text or "").strip()
    if not cleaned:
        return ""
    if all(_is_punctuation_or_symbol(ch) or ch.isspace() for ch in cleaned):
        return ""
    letters = len(_LETTERS.findall(cleaned))
    if len(cleaned) < 3 and letters < 2:
        return ""
    return cleaned
