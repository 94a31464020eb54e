"""AI evaluator: asks the model to score one candidate against the expected record."""

import asyncio
import logging
from typing import Any, Optional, Sequence

from pydantic.alias_generators import to_camel

from ..models import AccuracyDecision, ExpectedLabel, ExtractedLabel, FieldAccuracy
from .errors import LabelExtractionError, ModelError
from .extraction import ExtractionCandidate
from .heuristics import EvaluationFlags, apply_evaluation_overrides, get_evaluation_flags
from .model_client import VisionModelClient, as_json
from .prompts import EVALUATION_INSTRUCTIONS, EVALUATION_SYSTEM_PROMPT
from .retry import RetryPolicy, call_with_fallback

logger = logging.getLogger(__name__)

ALWAYS_COMPARED = ("brand_name", "class_type", "net_contents", "government_warning", "bottler_producer")


def _dump(value: Any) -> Any:
    if value is None:
        return None
    return value.model_dump(by_alias=True, mode="json")


def build_projections(
    expected: ExpectedLabel,
    extracted: ExtractedLabel,
    flags: EvaluationFlags,
) -> tuple[dict, dict]:
    """Expected/extracted views with out-of-scope optional fields nulled on both sides."""
    expected_view = {to_camel(key): _dump(getattr(expected, key)) for key in ALWAYS_COMPARED}
    extracted_view = {to_camel(key): _dump(getattr(extracted, key)) for key in ALWAYS_COMPARED}

    expected_view["alcoholContent"] = _dump(expected.alcohol_content) if flags.include_alcohol else None
    extracted_view["alcoholContent"] = _dump(extracted.alcohol_content) if flags.include_alcohol else None
    expected_view["countryOfOrigin"] = _dump(expected.country_of_origin) if flags.include_country else None
    extracted_view["countryOfOrigin"] = _dump(extracted.country_of_origin) if flags.include_country else None
    expected_view["additivesDisclosed"] = _dump(expected.additives_detected) if flags.include_additives else None
    extracted_view["additivesDisclosed"] = _dump(extracted.additives_disclosed) if flags.include_additives else None

    return expected_view, extracted_view


class AIEvaluator:
    """Scores extraction candidates with one model call each."""

    def __init__(
        self,
        client: VisionModelClient,
        models: Sequence[str],
        policy: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.models = list(models)
        self.policy = policy or RetryPolicy()

    async def run_evaluation_pass(
        self,
        expected: ExpectedLabel,
        extracted: ExtractedLabel,
        label: str = "evaluate",
    ) -> Optional[AccuracyDecision]:
        """Score one candidate. None when the call fails or returns nothing usable."""
        flags = get_evaluation_flags(expected)
        expected_view, extracted_view = build_projections(expected, extracted, flags)
        message = {
            "role": "user",
            "content": [
                {
                    "type": "text",
                    "text": (
                        EVALUATION_INSTRUCTIONS
                        + "Expected:\n" + as_json(expected_view)
                        + "\n\nExtracted:\n" + as_json(extracted_view)
                    ),
                }
            ],
        }

        async def call(model: str):
            return await self.client.parse(model, EVALUATION_SYSTEM_PROMPT, message, FieldAccuracy)

        try:
            response = await call_with_fallback(self.models, call, self.policy, label)
        except (ModelError, LabelExtractionError) as e:
            logger.warning(f"[{label}] evaluation failed: {e}")
            return None

        if response.parsed is None:
            logger.warning(f"[{label}] evaluation returned no parseable scores")
            return None

        fields = apply_evaluation_overrides(response.parsed, flags)
        return AccuracyDecision.from_fields(fields)

    async def evaluate_candidates(
        self,
        expected: Optional[ExpectedLabel],
        candidates: list[ExtractionCandidate],
    ) -> list[ExtractionCandidate]:
        """Score every candidate concurrently; no-op without expected data."""
        if expected is None:
            return candidates

        evaluations = await asyncio.gather(
            *(
                self.run_evaluation_pass(expected, candidate.extracted, f"evaluate attempt {candidate.index + 1}")
                for candidate in candidates
            )
        )
        for candidate, evaluation in zip(candidates, evaluations):
            candidate.evaluation = evaluation
        return candidates
