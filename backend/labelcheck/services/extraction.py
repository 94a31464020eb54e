"""Extraction orchestrator: independent vision-model passes over one label image.

Each pass is free to use any model in the fallback list. Passes run
concurrently and share no state; each one yields at most one candidate.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from ..models import AccuracyDecision, ExtractedLabel
from .errors import CapacityError, LabelExtractionError, ModelError, NoLabelDataError, UpstreamError
from .model_client import VisionModelClient, image_message
from .prompts import EXTRACTION_PROMPT, SYSTEM_PROMPT
from .retry import RetryPolicy, call_with_content_policy_retry, call_with_fallback

logger = logging.getLogger(__name__)


@dataclass
class ExtractionCandidate:
    """One attempt's output. ``evaluation`` is assigned once, by the evaluator."""
    extracted: ExtractedLabel
    evaluation: Optional[AccuracyDecision] = None
    index: int = 0


class ExtractionOrchestrator:
    """Runs N extraction passes and keeps the ones that produced a valid record."""

    def __init__(
        self,
        client: VisionModelClient,
        models: Sequence[str],
        policy: Optional[RetryPolicy] = None,
        attempts: int = 2,
    ):
        self.client = client
        self.models = list(models)
        self.policy = policy or RetryPolicy()
        self.attempts = attempts

    async def run_extraction_pass(self, image_url: str, attempt: int) -> Optional[ExtractedLabel]:
        """One pass. Returns None when the response does not fit the schema."""
        label = f"extract-label attempt {attempt}"
        message = image_message(EXTRACTION_PROMPT, image_url)

        async def call(model: str):
            async def once():
                return await self.client.parse(model, SYSTEM_PROMPT, message, ExtractedLabel)
            return model, await call_with_content_policy_retry(once, self.policy, label)

        start = time.perf_counter()
        model, response = await call_with_fallback(self.models, call, self.policy, label)
        duration_ms = int((time.perf_counter() - start) * 1000)

        logger.info(f"[{label}] model '{model}' call duration: {duration_ms}ms")
        if response.usage:
            logger.info(f"[{label}] token usage: {response.usage}")
        else:
            logger.info(f"[{label}] token usage not returned")
        logger.debug(f"[{label}] raw output text: {response.output_text}")

        return response.parsed

    async def run_extraction_passes(self, image_url: str) -> list[ExtractionCandidate]:
        """Run all passes concurrently.

        Raises:
            NoLabelDataError: no pass produced a valid record.
            CapacityError: no candidate, and a pass exhausted the rate-limit budget.
            UpstreamError: no candidate, and a pass failed with a non-retryable model error.
        """
        logger.info(f"Running {self.attempts} parallel extractions")
        outcomes = await asyncio.gather(
            *(self.run_extraction_pass(image_url, attempt + 1) for attempt in range(self.attempts)),
            return_exceptions=True,
        )

        candidates: list[ExtractionCandidate] = []
        failures: list[BaseException] = []
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, (LabelExtractionError, ModelError)):
                    raise outcome
                logger.warning(f"Extraction candidate {index + 1} failed: {outcome}")
                failures.append(outcome)
            elif outcome is None:
                logger.warning(f"Extraction candidate {index + 1} returned no data")
            else:
                candidates.append(ExtractionCandidate(extracted=outcome, evaluation=None, index=index))

        if candidates:
            return candidates

        for failure in failures:
            if isinstance(failure, CapacityError):
                raise failure
        for failure in failures:
            if isinstance(failure, LabelExtractionError):
                raise failure
            raise UpstreamError(f"Vision model request failed: {failure}") from failure
        raise NoLabelDataError("No label data extracted")
