"""Verification report builder: per-field results, overall status and summary."""

import logging
from typing import List, Optional

from ..models import AccuracyDecision, ExpectedLabel, ExtractedLabel, LabelReport, VerificationResult, VerificationStatus
from .comparison import FIELD_LABELS, LabelComparator, calculate_overall_status

logger = logging.getLogger(__name__)


class ReportBuilder:
    """Turns a label and its optional AI decision into the report the UI shows."""

    def __init__(self, comparator: Optional[LabelComparator] = None):
        self.comparator = comparator or LabelComparator()

    def build(
        self,
        extracted: ExtractedLabel,
        expected: ExpectedLabel,
        evaluation: Optional[AccuracyDecision] = None,
    ) -> LabelReport:
        """
        Build the report for one label.

        Fields the AI evaluator scored use its decision when one exists and
        the deterministic comparator otherwise. The government warning is
        always compared deterministically.
        """
        if evaluation is None:
            results = self.comparator.compare_labels(extracted, expected)
        else:
            field_results = [
                self._from_evaluation(key, extracted, expected, evaluation)
                for key in self.comparator.scored_fields(expected)
            ]
            results = self.comparator.finalize(field_results, extracted, expected)

        overall_status = calculate_overall_status(results)
        passed = sum(1 for r in results if r.status == VerificationStatus.PASS)
        warnings = sum(1 for r in results if r.status == VerificationStatus.WARN)
        failed = sum(1 for r in results if r.status == VerificationStatus.FAIL)

        logger.info(
            f"Report: overall={overall_status.value} passed={passed} warnings={warnings} failed={failed} "
            f"(source={'ai' if evaluation is not None else 'deterministic'})"
        )

        return LabelReport(
            overall_status=overall_status,
            results=results,
            summary=self._generate_summary(results, overall_status),
            passed_count=passed,
            warning_count=warnings,
            failed_count=failed,
        )

    def _from_evaluation(
        self,
        key: str,
        extracted: ExtractedLabel,
        expected: ExpectedLabel,
        evaluation: AccuracyDecision,
    ) -> VerificationResult:
        field = FIELD_LABELS[key]
        if evaluation.fields.get(key) == 1:
            status, message = VerificationStatus.PASS, f"{field} verified"
        elif not extracted.text_of(key):
            status, message = VerificationStatus.FAIL, f"{field} not found on label"
        else:
            status, message = VerificationStatus.FAIL, f"{field} does not match application"
        return VerificationResult(
            field=field,
            extracted=extracted.text_of(key),
            expected=expected.text_of(key),
            status=status,
            message=message,
        )

    def _generate_summary(self, results: List[VerificationResult], overall_status: VerificationStatus) -> str:
        """Generate human-readable summary."""
        if overall_status == VerificationStatus.PASS:
            return f"{VerificationStatus.PASS.glyph} All fields verified successfully. Label matches application data."

        issues = [
            f"{r.status.glyph} {r.field}: {r.message}"
            for r in results
            if r.status != VerificationStatus.PASS
        ]
        return "\n".join(issues)
