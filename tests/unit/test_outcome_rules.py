"""Unit tests for mapping analyzer verdicts to submission outcomes."""

import pytest

from label_review.models.schemas import SubmissionStatus, ValidationResponse
from label_review.rules.outcome_rules import TIER1_FIELDS, classify_outcome, tier1_failures


def _response(payload) -> ValidationResponse:
    return ValidationResponse.model_validate(payload)


class TestClassifyOutcome:
    def test_clean_high_confidence_pass_is_approved(self, payload):
        outcome = classify_outcome(_response(payload()))
        assert outcome.status == SubmissionStatus.APPROVED
        assert outcome.needs_attention is False

    def test_medium_confidence_can_auto_approve(self, payload):
        outcome = classify_outcome(_response(payload(confidence="medium")))
        assert outcome.status == SubmissionStatus.APPROVED

    def test_low_confidence_always_needs_review(self, payload):
        outcome = classify_outcome(_response(payload(confidence="low")))
        assert outcome.status == SubmissionStatus.PENDING
        assert outcome.needs_attention is True

    @pytest.mark.parametrize("field", TIER1_FIELDS)
    @pytest.mark.parametrize("status", ["MISMATCH", "NOT_FOUND"])
    def test_tier1_failure_overrides_overall_pass(self, payload, field, status):
        outcome = classify_outcome(_response(payload(overall_pass=True, **{field: status})))
        assert outcome.status == SubmissionStatus.PENDING
        assert outcome.needs_attention is True

    def test_not_applicable_tier1_field_still_passes(self, payload):
        outcome = classify_outcome(_response(payload(alcoholContent="NOT_APPLICABLE")))
        assert outcome.status == SubmissionStatus.APPROVED

    def test_analyzer_fail_is_not_approved(self, payload):
        outcome = classify_outcome(_response(payload(overall_pass=False)))
        assert outcome.status == SubmissionStatus.PENDING
        assert outcome.needs_attention is True

    def test_tier2_mismatch_does_not_block_approval(self, payload):
        data = payload()
        data["fieldResults"].append(
            {"fieldName": "vintageDate", "formValue": "2019", "labelValue": "2018", "matchStatus": "MISMATCH", "notes": ""}
        )
        outcome = classify_outcome(_response(data))
        assert outcome.status == SubmissionStatus.APPROVED

    def test_never_yields_admin_only_statuses(self, payload):
        for confidence in ("high", "medium", "low"):
            for overall in (True, False):
                outcome = classify_outcome(_response(payload(confidence=confidence, overall_pass=overall)))
                assert outcome.status in (SubmissionStatus.APPROVED, SubmissionStatus.PENDING)


class TestTier1Failures:
    def test_lists_failing_tier1_fields_only(self, payload):
        data = payload(netContents="MISMATCH", healthWarning="NOT_FOUND")
        data["fieldResults"].append(
            {"fieldName": "fancifulName", "formValue": "x", "labelValue": "", "matchStatus": "NOT_FOUND", "notes": ""}
        )
        assert tier1_failures(_response(data)) == ["netContents", "healthWarning"]
