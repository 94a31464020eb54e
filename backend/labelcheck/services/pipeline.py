"""End-to-end label pipeline: image in, merged label and decision out.

Steps: validate configuration, prepare the image, run the extraction passes,
score each candidate when expected data exists, then merge (or pick the most
complete candidate when there is nothing to score against).

Every public entry point returns either ``ExtractLabelSuccess`` or
``ExtractLabelError``; errors never escape as exceptions.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import ValidationError

from ..config import Settings, get_settings
from ..models import AccuracyDecision, ExpectedLabel, ExtractedLabel, LabelReport
from .comparison import LabelComparator
from .errors import ConfigurationError, InvalidInputError, LabelExtractionError
from .evaluation import AIEvaluator
from .extraction import ExtractionOrchestrator
from .image_service import ImageService
from .merger import log_candidate_evaluations, merge_candidates, select_most_complete
from .model_client import VisionModelClient
from .report import ReportBuilder
from .retry import RetryPolicy, SleepFn

logger = logging.getLogger(__name__)


@dataclass
class ExtractLabelSuccess:
    label: ExtractedLabel
    evaluation: Optional[AccuracyDecision] = None
    report: Optional[LabelReport] = None
    processing_time_ms: int = 0


@dataclass
class ExtractLabelError:
    status: int
    error: str


ExtractLabelResult = Union[ExtractLabelSuccess, ExtractLabelError]


def parse_expected_data(raw: Any) -> Optional[ExpectedLabel]:
    """
    Parse the optional expected payload (JSON string, dict, or model).

    Missing, malformed or invalid data yields None: extraction still runs,
    only scoring is skipped.
    """
    if raw is None or isinstance(raw, ExpectedLabel):
        return raw
    if isinstance(raw, str) and not raw.strip():
        return None

    try:
        if isinstance(raw, (str, bytes)):
            return ExpectedLabel.model_validate_json(raw)
        return ExpectedLabel.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Expected data failed validation: {e.errors(include_url=False)}")
        return None


def normalize_expected_data(expected: ExpectedLabel) -> ExpectedLabel:
    """The regulation requires the warning header in bold capitals, so expect that."""
    warning = expected.government_warning.model_copy(update={"is_bold": True, "is_all_caps": True})
    return expected.model_copy(update={"government_warning": warning})


class LabelPipeline:
    """Runs extraction, evaluation and merging for one image at a time."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[VisionModelClient] = None,
        image_service: Optional[ImageService] = None,
        report_builder: Optional[ReportBuilder] = None,
        sleep: Optional[SleepFn] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self.image_service = image_service or ImageService(self.settings)
        self.report_builder = report_builder or ReportBuilder(LabelComparator(self.settings))
        if sleep is not None:
            self.policy = RetryPolicy.from_settings(self.settings, sleep)
        else:
            self.policy = RetryPolicy.from_settings(self.settings)

    @property
    def is_configured(self) -> bool:
        settings = self.settings
        has_models = bool(settings.model_deployments())
        if self._client is not None:
            return has_models
        return bool(settings.openai_endpoint and settings.openai_api_key and has_models)

    def _resolve_client(self) -> tuple[VisionModelClient, list[str]]:
        """Client and model list; raises ConfigurationError before any model call."""
        models = self.settings.model_deployments()
        if not models:
            raise ConfigurationError("Missing model deployment configuration")
        if self._client is None:
            self._client = VisionModelClient.from_settings(self.settings)
        return self._client, models

    async def extract_from_bytes(
        self,
        image_bytes: Optional[bytes],
        mime_type: Optional[str],
        expected: Optional[ExpectedLabel] = None,
        image_name: Optional[str] = None,
    ) -> ExtractLabelResult:
        """Validate, compress and encode raw image bytes, then extract."""
        return await self._guard(self._run_bytes(image_bytes, mime_type, expected, image_name, with_report=False))

    async def extract_from_image_url(
        self,
        image_url: str,
        expected: Optional[ExpectedLabel] = None,
        image_name: Optional[str] = None,
    ) -> ExtractLabelResult:
        """Extract from an already model-usable reference (data URL or hosted URL)."""
        return await self._guard(self._run(image_url, expected, image_name, with_report=False))

    async def verify(
        self,
        expected: Optional[ExpectedLabel],
        image_bytes: Optional[bytes] = None,
        mime_type: Optional[str] = None,
        image_url: Optional[str] = None,
        image_name: Optional[str] = None,
    ) -> ExtractLabelResult:
        """Extract and score, then build the verification report."""
        if expected is None:
            return ExtractLabelError(status=400, error="Expected label data is required")
        if image_url is not None:
            return await self._guard(self._run(image_url, expected, image_name, with_report=True))
        return await self._guard(self._run_bytes(image_bytes, mime_type, expected, image_name, with_report=True))

    async def _guard(self, work) -> ExtractLabelResult:
        try:
            return await work
        except LabelExtractionError as e:
            logger.error(f"Label extraction failed ({e.status_code}): {e.message}")
            return ExtractLabelError(status=e.status_code, error=e.message)

    async def _run_bytes(
        self,
        image_bytes: Optional[bytes],
        mime_type: Optional[str],
        expected: Optional[ExpectedLabel],
        image_name: Optional[str],
        with_report: bool,
    ) -> ExtractLabelSuccess:
        self._resolve_client()

        is_valid, error_msg = self.image_service.validate_image(image_bytes, mime_type)
        if not is_valid:
            raise InvalidInputError(error_msg)

        # Pillow work is CPU bound, keep it off the event loop
        image_url = await asyncio.to_thread(self.image_service.to_data_url, image_bytes, mime_type)
        return await self._run(image_url, expected, image_name, with_report)

    async def _run(
        self,
        image_url: str,
        expected: Optional[ExpectedLabel],
        image_name: Optional[str],
        with_report: bool,
    ) -> ExtractLabelSuccess:
        start_time = time.time()
        client, models = self._resolve_client()
        if not image_url:
            raise InvalidInputError("Image file is required")
        if expected is not None:
            expected = normalize_expected_data(expected)

        orchestrator = ExtractionOrchestrator(client, models, self.policy, self.settings.extraction_attempts)
        candidates = await orchestrator.run_extraction_passes(image_url)
        extract_ms = int((time.time() - start_time) * 1000)

        if expected is None:
            best = select_most_complete(candidates)
            logger.info(f"No expected data; selected candidate {best.index + 1} of {len(candidates)}")
            return ExtractLabelSuccess(
                label=best.extracted,
                evaluation=None,
                processing_time_ms=int((time.time() - start_time) * 1000),
            )

        evaluator = AIEvaluator(client, models, self.policy)
        await evaluator.evaluate_candidates(expected, candidates)
        log_candidate_evaluations(candidates, image_name)
        label, decision = merge_candidates(candidates, expected)

        report = None
        if with_report:
            # With no candidate scored, the merged decision is only defaults; compare deterministically
            scored = any(c.evaluation is not None for c in candidates)
            report = self.report_builder.build(label, expected, decision if scored else None)
        total_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Timing breakdown: extract={extract_ms}ms, evaluate+merge={total_ms - extract_ms}ms, total={total_ms}ms")

        return ExtractLabelSuccess(label=label, evaluation=decision, report=report, processing_time_ms=total_ms)
