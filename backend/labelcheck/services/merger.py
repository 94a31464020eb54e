"""Candidate merger: per-field best-of-N consensus over extraction candidates.

Different passes can get different fields right, so selection happens field
by field rather than picking one whole record:

1. Score every candidate's value against the expected value (similarity in [0, 1]).
2. If any candidate's evaluation scored the field 1, only those candidates compete.
3. Highest similarity wins; ties prefer a non-null value, then the lowest index.
4. The merged score for the field is 1 if any candidate scored it 1.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..models import FIELD_KEYS, AccuracyDecision, ExpectedLabel, ExtractedLabel, FieldAccuracy
from .extraction import ExtractionCandidate
from .heuristics import build_default_fields, count_missing_fields, get_evaluation_flags
from .similarity import additive_agreement, similarity_ratio

logger = logging.getLogger(__name__)


@dataclass
class Contender:
    """One candidate's standing for a single field."""
    index: int
    score: int
    similarity: float
    has_value: bool


def get_expected_value(expected: ExpectedLabel, key: str) -> Any:
    if key == "additives_disclosed":
        return expected.additives_detected
    return getattr(expected, key)


def similarity_score(key: str, value: Any, expected_value: Any) -> float:
    """Similarity between an extracted value and the expected value for one field."""
    if key == "additives_disclosed":
        return additive_agreement(value, expected_value)
    extracted_text = value.text if value is not None else ""
    expected_text = expected_value.text if expected_value is not None else ""
    return similarity_ratio(extracted_text, expected_text)


def select_contender(contenders: list[Contender], has_accurate: bool) -> Contender:
    """Best contender for one field; see module docstring for the ordering."""
    pool = [c for c in contenders if c.score == 1] if has_accurate else contenders
    return min(pool, key=lambda c: (-c.similarity, not c.has_value, c.index))


def merge_candidates(
    candidates: list[ExtractionCandidate],
    expected: ExpectedLabel,
) -> tuple[ExtractedLabel, AccuracyDecision]:
    """Build one merged label and aggregate decision from scored candidates.

    Candidates whose evaluation is missing count as 0 on every field except
    the ones the scope policy forces to pass.
    """
    if not candidates:
        raise ValueError("Cannot merge an empty candidate list")

    flags = get_evaluation_flags(expected)
    fallback_fields = build_default_fields(flags, 0)
    candidate_fields = [
        candidate.evaluation.fields if candidate.evaluation is not None else fallback_fields
        for candidate in candidates
    ]

    merged_values: dict[str, Any] = {}
    merged_scores: dict[str, int] = {}

    for key in FIELD_KEYS:
        expected_value = get_expected_value(expected, key)
        contenders = []
        for position, candidate in enumerate(candidates):
            value = getattr(candidate.extracted, key)
            contenders.append(Contender(
                index=candidate.index,
                score=candidate_fields[position].get(key),
                similarity=similarity_score(key, value, expected_value),
                has_value=value is not None,
            ))

        has_accurate = any(c.score == 1 for c in contenders)
        best = select_contender(contenders, has_accurate)
        winner = next(c for c in candidates if c.index == best.index)
        value = getattr(winner.extracted, key)
        # Fresh copy so the merged label never aliases a candidate's field
        merged_values[key] = value.model_copy(deep=True) if value is not None else None
        merged_scores[key] = 1 if has_accurate else 0

    merged_label = ExtractedLabel(**merged_values)
    decision = AccuracyDecision.from_fields(FieldAccuracy(**merged_scores))
    logger.info(f"Merged evaluation: {merged_scores} passed={decision.passed}")
    return merged_label, decision


def select_most_complete(candidates: list[ExtractionCandidate]) -> ExtractionCandidate:
    """Candidate with the fewest null fields; ties go to the lowest index."""
    if not candidates:
        raise ValueError("No candidates to select from")
    return min(candidates, key=lambda c: (count_missing_fields(c.extracted), c.index))


def log_candidate_evaluations(candidates: list[ExtractionCandidate], image_name: Optional[str] = None) -> None:
    suffix = f" ({image_name})" if image_name else ""
    for candidate in candidates:
        evaluation = candidate.evaluation.model_dump() if candidate.evaluation is not None else None
        logger.info(f"Evaluation attempt {candidate.index + 1}{suffix}: {evaluation}")
