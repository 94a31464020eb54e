"""Deterministic comparator: fuzzy field-by-field checks without a model call."""

import re
import logging
from typing import Optional, List

from ..config import Settings, get_settings
from ..models import ADDITIVE_KEYS, ExpectedLabel, ExtractedLabel, VerificationResult, VerificationStatus
from .heuristics import parse_abv, should_check_alcohol_content, should_check_country_of_origin
from .similarity import is_single_edit_apart, normalize_for_similarity, normalize_whitespace, similarity_ratio

logger = logging.getLogger(__name__)


# Standard government warning text, as printed in all caps and in mixed case
STANDARD_GOV_WARNING_UPPER = (
    "GOVERNMENT WARNING: (1) ACCORDING TO THE SURGEON GENERAL, WOMEN SHOULD NOT DRINK ALCOHOLIC "
    "BEVERAGES DURING PREGNANCY BECAUSE OF THE RISK OF BIRTH DEFECTS. (2) CONSUMPTION OF ALCOHOLIC "
    "BEVERAGES IMPAIRS YOUR ABILITY TO DRIVE A CAR OR OPERATE MACHINERY, AND MAY CAUSE HEALTH PROBLEMS."
)
STANDARD_GOV_WARNING_LONG = (
    "GOVERNMENT WARNING: (1) According to the Surgeon General, women should not drink alcoholic "
    "beverages during pregnancy because of the risk of birth defects. (2) Consumption of alcoholic "
    "beverages impairs your ability to drive a car or operate machinery, and may cause health problems."
)

COUNTRY_PREFIXES = ("produced in", "made in", "product of", "imported from", "origin")

FIELD_LABELS = {
    "brand_name": "Brand",
    "class_type": "Class/Type",
    "alcohol_content": "Alcohol Content",
    "net_contents": "Net Contents",
    "bottler_producer": "Bottler/Producer",
    "government_warning": "Government Warning",
    "country_of_origin": "Country of Origin",
}

ADDITIVE_LABELS = {
    "fdc_yellow_no_5": "FD&C Yellow No. 5",
    "cochineal_extract": "Cochineal Extract",
    "carmine": "Carmine",
    "aspartame": "Aspartame",
    "sulfites_ge_10ppm": "Sulfites (10 ppm or more)",
}

GOVERNMENT_WARNING_FIELD = FIELD_LABELS["government_warning"]


def normalize_gov_warning(text: str) -> str:
    return normalize_whitespace(text).upper()


STANDARD_GOV_WARNINGS = {normalize_gov_warning(w) for w in (STANDARD_GOV_WARNING_UPPER, STANDARD_GOV_WARNING_LONG)}


def is_standard_warning(text: str) -> bool:
    return normalize_gov_warning(text) in STANDARD_GOV_WARNINGS


def split_quantity(text: str) -> tuple[Optional[float], str]:
    """Split '750 ML' into (750.0, 'ml'). The unit is everything that is not a number."""
    value = parse_abv(text.replace(",", ""))
    unit = re.sub(r"[\d.,]", "", text.lower())
    unit = re.sub(r"[^a-z]", "", unit)
    return value, unit


def strip_country_prefix(text: str) -> str:
    for prefix in COUNTRY_PREFIXES:
        if text.startswith(prefix):
            return text[len(prefix):].strip(" :")
    return text


def apply_warning_downgrade(results: List[VerificationResult]) -> List[VerificationResult]:
    """A government warning that is the only failure becomes a warning.

    Returns a new list; the inputs are not modified.
    """
    failures = [r for r in results if r.status == VerificationStatus.FAIL]
    if len(failures) != 1 or failures[0].field != GOVERNMENT_WARNING_FIELD:
        return list(results)
    return [
        r.model_copy(update={"status": VerificationStatus.WARN})
        if r.field == GOVERNMENT_WARNING_FIELD and r.status == VerificationStatus.FAIL
        else r
        for r in results
    ]


def calculate_overall_status(results: List[VerificationResult]) -> VerificationStatus:
    if any(r.status == VerificationStatus.FAIL for r in results):
        return VerificationStatus.FAIL
    if any(r.status == VerificationStatus.WARN for r in results):
        return VerificationStatus.WARN
    return VerificationStatus.PASS


class LabelComparator:
    """Compares extracted label fields against the expected record."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def compare_labels(self, extracted: ExtractedLabel, expected: ExpectedLabel) -> List[VerificationResult]:
        """Compare every applicable field deterministically; see ``finalize``."""
        results = [self.compare_field(key, extracted, expected) for key in self.scored_fields(expected)]
        return self.finalize(results, extracted, expected)

    @staticmethod
    def scored_fields(expected: ExpectedLabel) -> List[str]:
        """
        Fields that are matched against the application record.

        Alcohol content and country of origin are only included when the
        scope policy puts them in scope for this label. The government
        warning is not listed: it is always compared by ``finalize``.
        """
        keys = ["brand_name", "class_type", "net_contents", "bottler_producer"]
        if should_check_alcohol_content(expected):
            keys.append("alcohol_content")
        if should_check_country_of_origin(expected):
            keys.append("country_of_origin")
        return keys

    def finalize(
        self,
        field_results: List[VerificationResult],
        extracted: ExtractedLabel,
        expected: ExpectedLabel,
    ) -> List[VerificationResult]:
        """
        Append the government warning comparison and regulatory rule checks
        to per-field results, then apply the government-warning downgrade.
        """
        results = list(field_results)
        results.append(self.compare_field("government_warning", extracted, expected))
        results.extend(self.regulatory_checks(extracted, expected))
        return apply_warning_downgrade(results)

    def compare_field(self, key: str, extracted: ExtractedLabel, expected: ExpectedLabel) -> VerificationResult:
        extracted_text = extracted.text_of(key)
        expected_text = expected.text_of(key)
        if key in ("brand_name", "class_type", "bottler_producer"):
            return self._compare_text(FIELD_LABELS[key], extracted_text, expected_text)
        if key == "alcohol_content":
            return self._compare_alcohol(extracted_text, expected_text)
        if key == "net_contents":
            return self._compare_net_contents(extracted_text, expected_text)
        if key == "government_warning":
            return self._compare_government_warning(extracted_text, expected_text)
        if key == "country_of_origin":
            return self._compare_country(extracted_text, expected_text)
        raise ValueError(f"Field '{key}' has no deterministic comparison")

    def regulatory_checks(self, extracted: ExtractedLabel, expected: ExpectedLabel) -> List[VerificationResult]:
        """Required statements the label must carry, independent of field matching."""
        results = []
        disclosed = extracted.additives_disclosed
        for key in ADDITIVE_KEYS:
            if getattr(expected.additives_detected, key) and not (disclosed and getattr(disclosed, key)):
                name = ADDITIVE_LABELS[key]
                results.append(VerificationResult(
                    field=f"Additive Disclosure: {name}",
                    extracted="Not disclosed",
                    expected="Disclosed",
                    status=VerificationStatus.FAIL,
                    message=f"{name} is present in the product but not disclosed on the label",
                ))

        if expected.is_imported and not extracted.text_of("country_of_origin"):
            results.append(VerificationResult(
                field="Country of Origin Statement",
                extracted="",
                expected=expected.text_of("country_of_origin") or "Required for imports",
                status=VerificationStatus.FAIL,
                message="Imported product is missing a country of origin statement",
            ))
        return results

    def _compare_text(self, field: str, extracted: str, expected: str) -> VerificationResult:
        """
        Fuzzy text comparison on normalized strings.

        Thresholds:
        - > 0.85: Pass
        - > 0.6: Warn
        - otherwise: Fail
        """
        if not extracted:
            return VerificationResult(
                field=field, extracted="", expected=expected,
                status=VerificationStatus.FAIL,
                message=f"{field} not found on label",
            )

        score = similarity_ratio(extracted, expected)
        logger.debug(f"{field} comparison: '{extracted}' vs '{expected}' -> score={score:.2f}")

        if score > self.settings.text_match_threshold:
            status, message = VerificationStatus.PASS, f"{field} matches"
        elif score > self.settings.text_review_threshold:
            status, message = VerificationStatus.WARN, f"{field} is similar ({score:.0%}) - review recommended"
        else:
            status, message = VerificationStatus.FAIL, f"{field} does not match ({score:.0%} similar)"
        return VerificationResult(field=field, extracted=extracted, expected=expected, status=status, message=message)

    def _compare_alcohol(self, extracted: str, expected: str) -> VerificationResult:
        """Numeric ABV comparison: < 0.1 Pass, < 1.0 Warn, otherwise Fail."""
        field = FIELD_LABELS["alcohol_content"]
        extracted_abv = parse_abv(extracted)
        expected_abv = parse_abv(expected)

        if extracted_abv is None or expected_abv is None:
            return VerificationResult(
                field=field, extracted=extracted, expected=expected,
                status=VerificationStatus.FAIL,
                message="ABV not found on label" if extracted_abv is None else "Expected ABV has no numeric value",
            )

        difference = abs(extracted_abv - expected_abv)
        if difference < self.settings.abv_match_tolerance:
            status, message = VerificationStatus.PASS, "ABV matches"
        elif difference < self.settings.abv_review_tolerance:
            status, message = VerificationStatus.WARN, f"ABV differs by {difference:.2f}% - review recommended"
        else:
            status, message = VerificationStatus.FAIL, (
                f"ABV does not match: label shows {extracted_abv:g}%, application states {expected_abv:g}%"
            )
        return VerificationResult(field=field, extracted=extracted, expected=expected, status=status, message=message)

    def _compare_net_contents(self, extracted: str, expected: str) -> VerificationResult:
        """
        Unit and quantity comparison.

        Units must match exactly. With matching units: < 0.1 Pass,
        within 5% of expected Warn, otherwise Fail.
        """
        field = FIELD_LABELS["net_contents"]
        if not extracted:
            return VerificationResult(
                field=field, extracted="", expected=expected,
                status=VerificationStatus.FAIL,
                message="Net contents not found on label",
            )

        extracted_value, extracted_unit = split_quantity(extracted)
        expected_value, expected_unit = split_quantity(expected)

        if extracted_unit != expected_unit:
            return VerificationResult(
                field=field, extracted=extracted, expected=expected,
                status=VerificationStatus.FAIL,
                message=f"Net contents unit differs: '{extracted_unit}' vs '{expected_unit}'",
            )
        if extracted_value is None or expected_value is None:
            return VerificationResult(
                field=field, extracted=extracted, expected=expected,
                status=VerificationStatus.FAIL,
                message="Net contents quantity could not be read",
            )

        difference = abs(extracted_value - expected_value)
        if difference < self.settings.net_contents_match_tolerance:
            status, message = VerificationStatus.PASS, "Net contents match"
        elif difference < expected_value * self.settings.net_contents_review_ratio:
            status, message = VerificationStatus.WARN, "Net contents are close - review recommended"
        else:
            status, message = VerificationStatus.FAIL, "Net contents do not match"
        return VerificationResult(field=field, extracted=extracted, expected=expected, status=status, message=message)

    def _compare_government_warning(self, extracted: str, expected: str) -> VerificationResult:
        """
        Government warning is accepted when any of these hold:
        - identical after whitespace/case normalization
        - the extracted text contains the expected text (loose normalization)
        - both sides are one of the standard warning texts
        - the loose-normalized texts are at most one edit apart
        """
        field = GOVERNMENT_WARNING_FIELD
        strict_extracted = normalize_gov_warning(extracted)
        strict_expected = normalize_gov_warning(expected)
        loose_extracted = normalize_for_similarity(extracted)
        loose_expected = normalize_for_similarity(expected)

        if extracted and strict_extracted == strict_expected:
            status, message = VerificationStatus.PASS, "Government warning matches"
        elif loose_expected and loose_expected in loose_extracted:
            status, message = VerificationStatus.PASS, "Government warning contains expected wording"
        elif is_standard_warning(extracted) and is_standard_warning(expected):
            status, message = VerificationStatus.PASS, "Government warning matches standard wording"
        elif loose_extracted and is_single_edit_apart(loose_extracted, loose_expected):
            status, message = VerificationStatus.PASS, "Government warning matches (one character differs)"
        elif not extracted:
            status, message = VerificationStatus.FAIL, "Government warning not found on label"
        else:
            status, message = VerificationStatus.FAIL, "Government warning does not match"
        return VerificationResult(field=field, extracted=extracted, expected=expected, status=status, message=message)

    def _compare_country(self, extracted: str, expected: str) -> VerificationResult:
        field = FIELD_LABELS["country_of_origin"]
        if not extracted:
            return VerificationResult(
                field=field, extracted="", expected=expected,
                status=VerificationStatus.FAIL,
                message="Country of origin not found on label",
            )

        norm_extracted = normalize_for_similarity(extracted)
        norm_expected = normalize_for_similarity(expected)
        if (
            norm_extracted == norm_expected
            or strip_country_prefix(norm_extracted) == norm_expected
            or (norm_expected and norm_expected in norm_extracted)
        ):
            status, message = VerificationStatus.PASS, "Country of origin matches"
        elif similarity_ratio(extracted, expected) > self.settings.country_review_threshold:
            status, message = VerificationStatus.WARN, "Country of origin is similar - review recommended"
        else:
            status, message = VerificationStatus.FAIL, "Country of origin does not match"
        return VerificationResult(field=field, extracted=extracted, expected=expected, status=status, message=message)
