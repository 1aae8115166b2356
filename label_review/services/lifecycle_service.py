"""Submission lifecycle — the legal transitions and the user/admin actions.

The transition functions are pure: they look at a Submission snapshot and
return the field updates for the move, or raise IllegalTransitionError.

    PENDING ──begin──▶ VALIDATING ──complete──▶ APPROVED | PENDING
       ▲                   └────release───────▶ PENDING
       │ resubmit
    NEEDS_REVISION ◀──review── PENDING | APPROVED | NEEDS_REVISION | REJECTED

Only validation runs change status automatically, and only to approved or
pending. needs_revision and rejected are reachable through admin review.
"""

from typing import Any, Optional

from label_review.models.schemas import (
    HistoryEntry,
    LifecycleState,
    Review,
    ReviewAction,
    Submission,
    SubmissionStatus,
    utcnow,
)
from label_review.services.store import SubmissionStore
from label_review.utils.exceptions import (
    IllegalTransitionError,
    InvalidStatusError,
    ReviewValidationError,
    SubmissionNotFoundError,
    ValidationInProgressError,
    VersionConflictError,
)
from label_review.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Fields a user edit may change. Lifecycle fields, ownership and timestamps
# are only written by the transitions below.
EDITABLE_FIELDS = {
    "product_type",
    "source",
    "serial_number",
    "brand_name",
    "fanciful_name",
    "class_type_designation",
    "alcohol_content",
    "net_contents",
    "name_address_on_label",
    "country_of_origin",
    "grape_varietals",
    "appellation_of_origin",
    "vintage_date",
    "age_statement",
    "state_of_distillation",
    "health_warning_confirmed",
}


def begin_validation(submission: Submission) -> dict[str, Any]:
    if submission.state != LifecycleState.PENDING:
        raise IllegalTransitionError(
            f"Cannot start validation from state '{submission.state.value}'"
        )
    return {"validation_in_progress": True}


def complete_validation(
    submission: Submission, status: SubmissionStatus, needs_attention: bool
) -> dict[str, Any]:
    if submission.state != LifecycleState.VALIDATING:
        raise IllegalTransitionError(
            f"Cannot complete validation from state '{submission.state.value}'"
        )
    if status not in (SubmissionStatus.APPROVED, SubmissionStatus.PENDING):
        raise IllegalTransitionError(f"Validation cannot set status '{status.value}'")
    return {
        "status": status,
        "needs_attention": needs_attention,
        "validation_in_progress": False,
        "updated_at": utcnow(),
    }


def release_validation(submission: Submission, needs_attention: Optional[bool] = None) -> dict[str, Any]:
    """Drop the validation lock without touching status.

    needs_attention is left as-is unless given (stale discards leave it,
    failures raise it).
    """
    updates: dict[str, Any] = {"validation_in_progress": False}
    if needs_attention is not None:
        updates["needs_attention"] = needs_attention
    return updates


def flag_attention(submission: Submission) -> dict[str, Any]:
    """Raise needsAttention on an idle submission without changing its status."""
    if submission.state == LifecycleState.VALIDATING:
        raise IllegalTransitionError("Cannot flag a submission while it is being validated")
    return {"needs_attention": True, "updated_at": utcnow()}


def apply_edit(
    submission: Submission, changes: dict[str, Any], expected_version: Optional[int] = None
) -> dict[str, Any]:
    if submission.state == LifecycleState.VALIDATING:
        raise ValidationInProgressError("Submission is being validated. Please wait.")
    if submission.status != SubmissionStatus.PENDING:
        raise InvalidStatusError("Only pending submissions can be edited")
    if expected_version is not None and submission.version != expected_version:
        raise VersionConflictError("Submission was modified by another request. Please refresh.")

    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise IllegalTransitionError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    return {**changes, "version": submission.version + 1, "updated_at": utcnow()}


def apply_resubmit(submission: Submission) -> dict[str, Any]:
    if submission.status != SubmissionStatus.NEEDS_REVISION:
        raise InvalidStatusError("Only submissions with 'Needs Revision' status can be resubmitted")
    return {
        "status": SubmissionStatus.PENDING,
        "needs_attention": False,
        "validation_in_progress": False,
        "version": submission.version + 1,
        "updated_at": utcnow(),
    }


def apply_review(submission: Submission, action: ReviewAction) -> dict[str, Any]:
    if submission.state == LifecycleState.VALIDATING:
        raise ValidationInProgressError("Cannot review while validation is in progress")
    return {
        "status": SubmissionStatus(action.value),
        "needs_attention": False,
        "updated_at": utcnow(),
    }


async def edit_submission(
    store: SubmissionStore,
    submission_id: str,
    user_id: str,
    changes: dict[str, Any],
    expected_version: Optional[int] = None,
) -> Submission:
    """Apply a user edit with optimistic locking.

    Raises:
        SubmissionNotFoundError: Missing submission, or not owned by user_id.
        InvalidStatusError: The submission is not pending.
        ValidationInProgressError: A validation run owns the document.
        VersionConflictError: expected_version is stale.
    """
    async with store.transaction(submission_id) as tx:
        current = _owned(tx.submission, submission_id, user_id)
        updates = apply_edit(current, changes, expected_version)
        tx.update(**updates)
        tx.add_history(HistoryEntry(version=current.version, changes=dict(changes), changed_by=user_id))

    LOGGER.info(f"Submission {submission_id} edited (version {updates['version']})")
    return await store.get_submission(submission_id)


async def resubmit_submission(store: SubmissionStore, submission_id: str, user_id: str) -> Submission:
    """Send a needs_revision submission back to pending with a new version."""
    async with store.transaction(submission_id) as tx:
        current = _owned(tx.submission, submission_id, user_id)
        updates = apply_resubmit(current)
        tx.update(**updates)
        tx.add_history(HistoryEntry(version=current.version, changes={"action": "resubmit"}, changed_by=user_id))

    LOGGER.info(f"Submission {submission_id} resubmitted (version {updates['version']})")
    return await store.get_submission(submission_id)


async def review_submission(
    store: SubmissionStore,
    submission_id: str,
    admin_id: str,
    action: ReviewAction,
    feedback_to_user: Optional[str] = None,
    internal_notes: Optional[str] = None,
) -> Review:
    """Record an admin decision and move the submission to that status.

    Feedback to the user is mandatory when requesting a revision or
    rejecting. The version is not bumped: a review is not a content change.
    """
    action = ReviewAction(action)
    feedback_to_user = (feedback_to_user or "").strip() or None
    internal_notes = (internal_notes or "").strip() or None

    if action == ReviewAction.NEEDS_REVISION and not feedback_to_user:
        raise ReviewValidationError("Feedback to user is required when requesting revision")
    if action == ReviewAction.REJECTED and not feedback_to_user:
        raise ReviewValidationError("Rejection reason is required")

    async with store.transaction(submission_id) as tx:
        if tx.submission is None:
            raise SubmissionNotFoundError("Submission not found")
        current = tx.submission
        tx.update(**apply_review(current, action))
        review = Review(
            admin_id=admin_id,
            action=action,
            feedback_to_user=feedback_to_user,
            internal_notes=internal_notes,
        )
        tx.add_review(review)
        tx.add_history(
            HistoryEntry(
                version=current.version,
                changes={"action": "admin_review", "reviewAction": action.value},
                changed_by=admin_id,
            )
        )

    LOGGER.info(f"Submission {submission_id} reviewed by {admin_id}: {action.value}")
    return review


def _owned(submission: Optional[Submission], submission_id: str, user_id: str) -> Submission:
    # Someone else's submission is reported as missing
    if submission is None or submission.user_id != user_id:
        raise SubmissionNotFoundError(f"Submission {submission_id} not found")
    return submission
