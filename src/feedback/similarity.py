"""Word-overlap (Jaccard) similarity used by the detection strategies."""

import re

_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    text = _PUNCT_RE.sub("", text.lower())
    return _WS_RE.sub(" ", text).strip()


def jaccard_similarity(set1: set[str] | frozenset[str], set2: set[str] | frozenset[str]) -> float:
    """Jaccard index of two sets. Two empty sets are identical."""
    if not set1 and not set2:
        return 1.0
    if not set1 or not set2:
        return 0.0
    return len(set1 & set2) / len(set1 | set2)


def calculate_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity over the normalized word sets of two texts (0-1)."""
    words1 = set(normalize_text(text1 or "").split())
    words2 = set(normalize_text(text2 or "").split())
    return jaccard_similarity(words1, words2)
