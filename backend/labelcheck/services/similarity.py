"""Text normalization and similarity primitives shared by the merger and comparator."""

import re
import unicodedata
from typing import Optional

from rapidfuzz.distance import Levenshtein

from ..models import ADDITIVE_KEYS, AdditiveDisclosure


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def normalize_for_similarity(text: Optional[str]) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text).lower()
    # Curly quotes are punctuation too
    text = text.replace("’", "'").replace("‘", "'")
    text = re.sub(r"[^\w\s]", " ", text)
    text = text.replace("_", " ")
    return normalize_whitespace(text)


def similarity_ratio(a: Optional[str], b: Optional[str]) -> float:
    """1 - edit distance / longer length, on normalized strings.

    Two empty strings are identical (1.0); one empty string scores 0.0.
    """
    norm_a = normalize_for_similarity(a)
    norm_b = normalize_for_similarity(b)
    if not norm_a and not norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0
    return Levenshtein.normalized_similarity(norm_a, norm_b)


def additive_agreement(
    extracted: Optional[AdditiveDisclosure],
    expected: Optional[AdditiveDisclosure],
) -> float:
    """Fraction of the five additive flags that agree. A missing side counts as all-false."""
    extracted = extracted or AdditiveDisclosure()
    expected = expected or AdditiveDisclosure()
    agree = sum(1 for key in ADDITIVE_KEYS if getattr(extracted, key) == getattr(expected, key))
    return agree / len(ADDITIVE_KEYS)


def is_single_edit_apart(a: str, b: str) -> bool:
    if a == b:
        return True
    if abs(len(a) - len(b)) > 1:
        return False
    return Levenshtein.distance(a, b, score_cutoff=1) <= 1
