"""Pydantic models for label data and request/response schemas."""

from .schemas import (
    FIELD_KEYS,
    ADDITIVE_KEYS,
    ProductType,
    SimpleField,
    GovernmentWarningField,
    AdditiveDisclosure,
    ExtractedLabel,
    ExpectedLabel,
    FieldAccuracy,
    AccuracyDecision,
    VerificationStatus,
    VerificationResult,
    LabelReport,
    ExtractLabelResponse,
    VerifyLabelResponse,
    ExtractLabelJSONRequest,
    BatchItemResult,
    BatchVerificationResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "FIELD_KEYS",
    "ADDITIVE_KEYS",
    "ProductType",
    "SimpleField",
    "GovernmentWarningField",
    "AdditiveDisclosure",
    "ExtractedLabel",
    "ExpectedLabel",
    "FieldAccuracy",
    "AccuracyDecision",
    "VerificationStatus",
    "VerificationResult",
    "LabelReport",
    "ExtractLabelResponse",
    "VerifyLabelResponse",
    "ExtractLabelJSONRequest",
    "BatchItemResult",
    "BatchVerificationResponse",
    "ErrorResponse",
    "HealthResponse",
]
