"""Outcome rules — turn an analyzer verdict into a submission status.

The analyzer's own overallPass is not enough for auto-approval: the Tier 1
fields are re-checked here, so a model that over-reports a pass cannot
approve a label whose mandatory statements mismatch. Automatic analysis
only ever yields "approved" or "pending + needs attention";
needs_revision and rejected are left to admin review.
"""

from typing import NamedTuple

from label_review.models.schemas import (
    Confidence,
    MatchStatus,
    SubmissionStatus,
    ValidationResponse,
)

# Mandatory regulatory checks (27 CFR Parts 4, 5, 7 and 16).
# Names are the fieldName values the analyzer reports.
TIER1_FIELDS = (
    "brandName",
    "classTypeDesignation",
    "alcoholContent",
    "netContents",
    "healthWarning",
    "nameAndAddress",
)

TIER1_PASSING_STATUSES = {MatchStatus.MATCH, MatchStatus.NOT_APPLICABLE}


class Outcome(NamedTuple):
    status: SubmissionStatus
    needs_attention: bool


NEEDS_REVIEW = Outcome(SubmissionStatus.PENDING, True)
AUTO_APPROVED = Outcome(SubmissionStatus.APPROVED, False)


def tier1_failures(response: ValidationResponse) -> list[str]:
    """Names of Tier 1 fields whose verdict is MISMATCH or NOT_FOUND."""
    return [
        fr.field_name
        for fr in response.field_results
        if fr.field_name in TIER1_FIELDS and fr.match_status not in TIER1_PASSING_STATUSES
    ]


def classify_outcome(response: ValidationResponse) -> Outcome:
    """Map a validated analyzer response to (status, needs_attention).

    1. Low confidence always goes to a human, whatever the field verdicts.
    2. Otherwise approve only if overallPass is true and no Tier 1 field
       failed.
    3. Everything else stays pending and is flagged for attention.
    """
    if response.confidence == Confidence.LOW:
        return NEEDS_REVIEW

    if response.overall_pass and not tier1_failures(response):
        return AUTO_APPROVED

    return NEEDS_REVIEW
