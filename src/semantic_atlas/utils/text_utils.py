"""Text helpers for cluster labels and member snippets."""

import re
from typing import Iterable, List

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9 ]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_label(raw: str, max_words: int = 3, keep_words: int = 2) -> str:
    """
    Turn a free-form label suggestion into a short title-cased label.

    Punctuation is stripped. Labels longer than ``max_words`` words are cut
    down to their first ``keep_words`` words.

    Args:
        raw: Label text as returned by a labelling model
        max_words: Longest label kept as-is
        keep_words: Words kept when the label is too long

    Returns:
        Cleaned label, or an empty string if nothing survives
    """
    clean = _WHITESPACE.sub(" ", _NON_ALNUM.sub(" ", raw or "")).strip()
    if not clean:
        return ""
    words = clean.split(" ")
    if len(words) > max_words:
        words = words[:keep_words]
    return " ".join(w.capitalize() for w in words)


def clean_texts(texts: Iterable[str], max_chars: int = 500) -> List[str]:
    """Collapse whitespace and truncate each text, dropping empty entries."""
    cleaned = []
    for text in texts:
        if text is None:
            continue
        t = _WHITESPACE.sub(" ", str(text)).strip()
        if not t:
            continue
        cleaned.append(t[:max_chars])
    return cleaned
