"""Batch processing service for multiple label verification."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..config import get_settings
from ..models import BatchItemResult, ExpectedLabel, VerificationStatus
from .errors import InvalidInputError
from .pipeline import ExtractLabelError, LabelPipeline, parse_expected_data

logger = logging.getLogger(__name__)


@dataclass
class BatchItem:
    """One image and, when supplied, its expected record."""
    image_name: str
    image_bytes: bytes
    mime_type: Optional[str] = None
    expected: Optional[ExpectedLabel] = None


def parse_expected_map(raw: Optional[str]) -> Dict[str, Any]:
    """
    Parse the batch ``expected`` payload: a JSON object keyed by image filename.

    Raises:
        InvalidInputError: payload is not a JSON object.
    """
    if raw is None or not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Expected data map is not valid JSON: {e.msg}")
    if not isinstance(payload, dict):
        raise InvalidInputError("Expected data map must be a JSON object keyed by filename")
    return payload


def match_expected(
    images: Dict[str, Tuple[bytes, Optional[str]]],
    expected_map: Dict[str, Any],
) -> Tuple[List[BatchItem], List[BatchItemResult]]:
    """
    Pair uploaded images with their expected records.

    Images without an entry are still extracted (no report). Entries without
    an uploaded image become error results.

    Returns:
        Tuple of (items to process, results for unmatched entries)
    """
    items = []
    for image_name, (image_bytes, mime_type) in images.items():
        expected = parse_expected_data(expected_map.get(image_name))
        if image_name in expected_map and expected is None:
            logger.warning(f"Expected data for '{image_name}' is invalid; extracting without verification")
        elif image_name not in expected_map:
            logger.warning(f"Uploaded image has no expected entry: '{image_name}'")
        items.append(BatchItem(image_name=image_name, image_bytes=image_bytes, mime_type=mime_type, expected=expected))

    unmatched = [
        BatchItemResult(
            image_name=name,
            success=False,
            error=f"Image file not found: '{name}'",
            status_code=400,
        )
        for name in expected_map
        if name not in images
    ]
    return items, unmatched


def summarize(results: List[BatchItemResult]) -> Tuple[int, int, int]:
    """Count (passed, warnings, failed). Errors count as failed."""
    passed = warnings = failed = 0
    for r in results:
        if not r.success:
            failed += 1
        elif r.report is None:
            continue
        elif r.report.overall_status == VerificationStatus.PASS:
            passed += 1
        elif r.report.overall_status == VerificationStatus.WARN:
            warnings += 1
        else:
            failed += 1
    return passed, warnings, failed


class BatchProcessor:
    """Process labels in sequential chunks of concurrent requests."""

    def __init__(self, pipeline: LabelPipeline, parallel_limit: Optional[int] = None):
        self.pipeline = pipeline
        self.parallel_limit = parallel_limit or get_settings().batch_parallel_limit

    async def process_batch(self, items: List[BatchItem]) -> List[BatchItemResult]:
        """
        Process every item; results come back in input order.

        A failing item becomes an error result and never aborts the batch.
        """
        results: List[BatchItemResult] = []
        total = len(items)
        for start in range(0, total, self.parallel_limit):
            chunk = items[start:start + self.parallel_limit]
            chunk_start = time.time()
            outcomes = await asyncio.gather(
                *(self._process_item(item) for item in chunk),
                return_exceptions=True,
            )
            for item, outcome in zip(chunk, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"Error processing {item.image_name}: {outcome!r}")
                    outcome = BatchItemResult(
                        image_name=item.image_name,
                        success=False,
                        error=f"Processing error: {str(outcome)}",
                        status_code=500,
                    )
                results.append(outcome)
            logger.info(
                f"Batch progress: {min(start + len(chunk), total)}/{total} "
                f"(chunk took {int((time.time() - chunk_start) * 1000)}ms)"
            )
        return results

    async def _process_item(self, item: BatchItem) -> BatchItemResult:
        if item.expected is not None:
            outcome = await self.pipeline.verify(
                item.expected,
                image_bytes=item.image_bytes,
                mime_type=item.mime_type,
                image_name=item.image_name,
            )
        else:
            outcome = await self.pipeline.extract_from_bytes(
                item.image_bytes, item.mime_type, None, item.image_name
            )

        if isinstance(outcome, ExtractLabelError):
            return BatchItemResult(
                image_name=item.image_name,
                success=False,
                error=outcome.error,
                status_code=outcome.status,
            )
        return BatchItemResult(
            image_name=item.image_name,
            success=True,
            label=outcome.label,
            evaluation=outcome.evaluation,
            report=outcome.report,
        )
