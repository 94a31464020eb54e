"""Pydantic schemas for label data, scoring, and API requests/responses.

Attributes are snake_case; the JSON wire format (UI payloads, model output)
is camelCase. Every model accepts either spelling on input.
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Comparable field keys, in report order.
FIELD_KEYS = (
    "brand_name",
    "class_type",
    "alcohol_content",
    "net_contents",
    "government_warning",
    "bottler_producer",
    "country_of_origin",
    "additives_disclosed",
)

ADDITIVE_KEYS = (
    "fdc_yellow_no_5",
    "cochineal_extract",
    "carmine",
    "aspartame",
    "sulfites_ge_10ppm",
)


class ProductType(str, Enum):
    """Product category supplied with the expected record."""
    BEER = "beer"
    WINE = "wine"
    WHISKEY = "whiskey"
    RUM = "rum"
    OTHER_SPIRITS = "other_spirits"


class SimpleField(CamelModel):
    """A single transcribed value."""
    text: str = Field(..., min_length=1)


class GovernmentWarningField(SimpleField):
    """Government warning text plus header typography flags."""
    is_bold: bool = False
    is_all_caps: bool = False


class AdditiveDisclosure(CamelModel):
    """Five independent additive disclosure flags."""
    fdc_yellow_no_5: bool = False
    cochineal_extract: bool = False
    carmine: bool = False
    aspartame: bool = False
    # Wire name keeps lowercase "ppm"
    sulfites_ge_10ppm: bool = Field(False, alias="sulfitesGe10ppm")

    def any_disclosed(self) -> bool:
        return any(getattr(self, key) for key in ADDITIVE_KEYS)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, dict):
        text = value.get("text")
        if text is None or (isinstance(text, str) and not text.strip()):
            return None
    if isinstance(value, str):
        return {"text": value} if value.strip() else None
    return value


class ExtractedLabel(CamelModel):
    """One extraction attempt. ``None`` means not visibly present or not confidently read."""
    brand_name: Optional[SimpleField] = None
    class_type: Optional[SimpleField] = None
    alcohol_content: Optional[SimpleField] = None
    net_contents: Optional[SimpleField] = None
    government_warning: Optional[GovernmentWarningField] = None
    bottler_producer: Optional[SimpleField] = None
    country_of_origin: Optional[SimpleField] = None
    additives_disclosed: Optional[AdditiveDisclosure] = None

    @field_validator(
        "brand_name", "class_type", "alcohol_content", "net_contents",
        "government_warning", "bottler_producer", "country_of_origin",
        mode="before",
    )
    @classmethod
    def _normalize_blank(cls, value: Any) -> Any:
        # Models sometimes emit {"text": ""} or a bare string instead of null/object
        return _blank_to_none(value)

    def text_of(self, key: str) -> str:
        """Transcribed text for a text field, or empty string."""
        value = getattr(self, key)
        return value.text if value is not None else ""


class ExpectedLabel(CamelModel):
    """Reference record supplied by the caller."""
    product_type: Optional[ProductType] = None
    brand_name: SimpleField
    class_type: SimpleField
    alcohol_content: Optional[SimpleField] = None
    net_contents: SimpleField
    government_warning: GovernmentWarningField
    bottler_producer: SimpleField
    country_of_origin: Optional[SimpleField] = None
    age_years: Optional[float] = Field(None, ge=0)
    is_imported: bool = False
    beer_has_added_flavors_with_alcohol: bool = False
    additives_detected: AdditiveDisclosure = Field(default_factory=AdditiveDisclosure)

    @field_validator("alcohol_content", "country_of_origin", mode="before")
    @classmethod
    def _normalize_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("product_type", mode="before")
    @classmethod
    def _normalize_product_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in {p.value for p in ProductType}:
                return None
        return value

    def text_of(self, key: str) -> str:
        value = getattr(self, key)
        return value.text if value is not None else ""


FieldScore = Literal[0, 1]


class FieldAccuracy(CamelModel):
    """Binary score per comparable field."""
    brand_name: FieldScore
    class_type: FieldScore
    alcohol_content: FieldScore
    net_contents: FieldScore
    government_warning: FieldScore
    bottler_producer: FieldScore
    country_of_origin: FieldScore
    additives_disclosed: FieldScore

    @model_validator(mode="before")
    @classmethod
    def _unwrap_and_coerce(cls, data: Any) -> Any:
        """Adapt evaluator response variants to 0/1 scores.

        Accepts booleans, "0"/"1", "pass"/"fail", and payloads nested
        under a ``fields`` key.
        """
        if not isinstance(data, dict):
            return data
        if isinstance(data.get("fields"), dict):
            data = data["fields"]
        return {key: _coerce_score(value) for key, value in data.items()}

    @classmethod
    def uniform(cls, score: int) -> "FieldAccuracy":
        return cls(**{key: score for key in FIELD_KEYS})

    def get(self, key: str) -> int:
        return getattr(self, key)

    def all_pass(self) -> bool:
        return all(getattr(self, key) == 1 for key in FIELD_KEYS)


def _coerce_score(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float) and value in (0.0, 1.0):
        return int(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "pass", "yes", "accurate"):
            return 1
        if lowered in ("0", "false", "fail", "no", "inaccurate"):
            return 0
    return value


class AccuracyDecision(CamelModel):
    """Per-field scores plus their conjunction."""
    fields: FieldAccuracy

    @computed_field
    @property
    def passed(self) -> bool:
        return self.fields.all_pass()

    @classmethod
    def from_fields(cls, fields: FieldAccuracy) -> "AccuracyDecision":
        return cls(fields=fields)


class VerificationStatus(str, Enum):
    """Status of a field verification."""
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"

    @property
    def glyph(self) -> str:
        return {"pass": "✅", "warn": "⚠️", "fail": "❌"}[self.value]


class VerificationResult(CamelModel):
    """Result for a single compared field or rule check."""
    field: str
    extracted: str
    expected: str
    status: VerificationStatus
    message: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "field": "Brand",
                "extracted": "OLD TOM DISTILLERY",
                "expected": "Old Tom Distillery",
                "status": "pass",
                "message": "Brand matches"
            }
        }
    )


class LabelReport(CamelModel):
    """Overall verification report for a label."""
    overall_status: VerificationStatus
    results: list[VerificationResult]
    summary: str
    passed_count: int
    warning_count: int
    failed_count: int


class ExtractLabelResponse(CamelModel):
    """Successful extraction, with the aggregate decision when expected data was supplied."""
    label: ExtractedLabel
    evaluation: Optional[AccuracyDecision] = None


class VerifyLabelResponse(ExtractLabelResponse):
    """Extraction plus the presentation report."""
    report: LabelReport
    processing_time_ms: int


class ExtractLabelJSONRequest(CamelModel):
    """JSON alternative to multipart upload."""
    image_data_url: Optional[str] = None
    expected: Optional[Any] = None
    image_name: Optional[str] = None


class BatchItemResult(CamelModel):
    """Result for one image in a batch."""
    image_name: str
    success: bool
    label: Optional[ExtractedLabel] = None
    evaluation: Optional[AccuracyDecision] = None
    report: Optional[LabelReport] = None
    error: Optional[str] = None
    status_code: Optional[int] = None


class BatchVerificationResponse(CamelModel):
    """Response for batch verification."""
    total: int
    passed: int
    warnings: int
    failed: int
    results: list[BatchItemResult]
    processing_time_ms: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Image file is required"
            }
        }
    )


class HealthResponse(CamelModel):
    """Health check response."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    status: str
    version: str
    model_configured: bool
