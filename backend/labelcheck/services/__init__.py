"""Services for extraction, evaluation, merging, comparison, and batch processing."""

from .errors import (
    LabelExtractionError,
    ConfigurationError,
    InvalidInputError,
    UpstreamError,
    NoLabelDataError,
    CapacityError,
    ModelError,
    RateLimitedError,
    ContentPolicyError,
    ModelCallError,
)
from .heuristics import (
    EvaluationFlags,
    parse_abv,
    should_check_alcohol_content,
    should_check_country_of_origin,
    should_check_additives,
    get_evaluation_flags,
    build_default_fields,
    count_missing_fields,
)
from .model_client import VisionModelClient, ModelResponse
from .retry import RetryPolicy, BackoffState, call_with_fallback
from .extraction import ExtractionCandidate, ExtractionOrchestrator
from .evaluation import AIEvaluator
from .merger import merge_candidates, select_most_complete
from .comparison import LabelComparator, calculate_overall_status, apply_warning_downgrade
from .report import ReportBuilder
from .image_service import ImageService
from .pipeline import (
    LabelPipeline,
    ExtractLabelSuccess,
    ExtractLabelError,
    parse_expected_data,
    normalize_expected_data,
)
from .batch import BatchItem, BatchProcessor, match_expected, parse_expected_map, summarize

__all__ = [
    "LabelExtractionError",
    "ConfigurationError",
    "InvalidInputError",
    "UpstreamError",
    "NoLabelDataError",
    "CapacityError",
    "ModelError",
    "RateLimitedError",
    "ContentPolicyError",
    "ModelCallError",
    "EvaluationFlags",
    "parse_abv",
    "should_check_alcohol_content",
    "should_check_country_of_origin",
    "should_check_additives",
    "get_evaluation_flags",
    "build_default_fields",
    "count_missing_fields",
    "VisionModelClient",
    "ModelResponse",
    "RetryPolicy",
    "BackoffState",
    "call_with_fallback",
    "ExtractionCandidate",
    "ExtractionOrchestrator",
    "AIEvaluator",
    "merge_candidates",
    "select_most_complete",
    "LabelComparator",
    "calculate_overall_status",
    "apply_warning_downgrade",
    "ReportBuilder",
    "ImageService",
    "LabelPipeline",
    "ExtractLabelSuccess",
    "ExtractLabelError",
    "parse_expected_data",
    "normalize_expected_data",
    "BatchItem",
    "BatchProcessor",
    "match_expected",
    "parse_expected_map",
    "summarize",
]
