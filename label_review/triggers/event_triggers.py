"""Event triggers — decide whether a domain event starts a validation run.

Three events map to one orchestrator run each:
  - image created: run on the uploaded image unless a run already owns
    the submission
  - submission created: run with image polling, since the upload may lag
  - submission updated: run only for a resubmit (needs_revision -> pending)
    or a content edit (pending -> pending with a version bump)

The orchestrator's own writes never bump the version, so they never pass
the update filter; that is what breaks the write -> trigger -> write loop.

Triggers do not retry. Events that cannot be turned into a run (missing
parent, missing image URL, malformed snapshot) are logged and dropped
without touching the submission.
"""

from dataclasses import replace
from typing import Optional

from pydantic import ValidationError

from label_review.models.events import ImageCreatedEvent, SubmissionCreatedEvent, SubmissionUpdatedEvent
from label_review.models.schemas import LabelImage, LifecycleState, Submission, SubmissionStatus
from label_review.services.store import SubmissionStore
from label_review.services.validation_service import RunOutcome, RunState, ValidationOrchestrator
from label_review.utils.exceptions import TriggerSetupError
from label_review.utils.logging import get_logger

LOGGER = get_logger(__name__)


def revalidation_reason(before: Submission, after: Submission) -> Optional[str]:
    """Why an update should re-run validation, or None to ignore it."""
    if before.status == SubmissionStatus.NEEDS_REVISION and after.status == SubmissionStatus.PENDING:
        return "Resubmission"

    if (
        before.status == SubmissionStatus.PENDING
        and after.status == SubmissionStatus.PENDING
        and after.version > before.version
        and not after.validation_in_progress
    ):
        return "Edit"

    return None


class EventTriggers:
    def __init__(self, store: SubmissionStore, orchestrator: ValidationOrchestrator):
        self.store = store
        self.orchestrator = orchestrator

    async def on_image_created(self, event: ImageCreatedEvent) -> Optional[RunOutcome]:
        try:
            image = self._image_from_event(event)
            parent = await self.store.get_submission(event.submission_id)
            if parent is None:
                raise TriggerSetupError(f"Parent submission {event.submission_id} not found")
        except TriggerSetupError as e:
            LOGGER.warning(str(e))
            return None

        # Best-effort dedup; the orchestrator's claim is the real gate
        if parent.validation_in_progress:
            LOGGER.info(f"Validation already in progress for {parent.id}, skipping")
            return None

        LOGGER.info(
            f"Image uploaded for submission {parent.id} (version {parent.version}), starting validation"
        )
        outcome = await self.orchestrator.run(parent.id, parent, parent.version, image=image)
        return await self._follow_up(outcome)

    async def on_submission_created(self, event: SubmissionCreatedEvent) -> Optional[RunOutcome]:
        try:
            submission = event.snapshot()
        except ValidationError as e:
            LOGGER.error(f"Malformed submission {event.submission_id} in create event: {e}")
            return None

        LOGGER.info(f"Submission {submission.id} created, starting validation")
        outcome = await self.orchestrator.run(
            submission.id, submission, submission.version, wait_for_image=True
        )
        return await self._follow_up(outcome)

    async def on_submission_updated(self, event: SubmissionUpdatedEvent) -> Optional[RunOutcome]:
        try:
            before, after = event.snapshots()
        except ValidationError as e:
            LOGGER.error(f"Malformed submission {event.submission_id} in update event: {e}")
            return None

        reason = revalidation_reason(before, after)
        if reason is None:
            return None

        LOGGER.info(f"{reason} detected for {after.id} (version {after.version})")
        outcome = await self.orchestrator.run(after.id, after, after.version)
        return await self._follow_up(outcome)

    async def _follow_up(self, outcome: RunOutcome) -> RunOutcome:
        """Re-run once for an image that arrived while the run owned the submission.

        Image events that find a run in progress are dropped; without this a
        second upload would wait for an unrelated edit to be analyzed. A run
        that auto-approved cannot be followed by another run, so the
        submission is flagged for admin attention instead.
        """
        if outcome.state not in (RunState.COMPLETED, RunState.FAILED):
            return outcome

        latest = await self.store.latest_image(outcome.submission_id)
        if latest is None or latest.id == outcome.image_id:
            return outcome

        current = await self.store.get_submission(outcome.submission_id)
        if current is None:
            return outcome
        if current.state == LifecycleState.APPROVED and outcome.status == SubmissionStatus.APPROVED:
            flagged = await self.orchestrator.flag_unanalyzed_image(current.id, current.version, latest.id)
            return replace(outcome, needs_attention=True) if flagged else outcome
        if current.state != LifecycleState.PENDING:
            return outcome

        LOGGER.info(f"Newer image {latest.id} arrived for {current.id} during validation, re-validating")
        return await self.orchestrator.run(current.id, current, current.version, image=latest)

    @staticmethod
    def _image_from_event(event: ImageCreatedEvent) -> LabelImage:
        if not event.image_ref:
            raise TriggerSetupError(f"Image doc missing downloadUrl for submission {event.submission_id}")
        return event.to_image()
