"""Validation service — orchestrates one AI validation run for a submission.

For each run, keyed by submission id and the version seen at trigger time:
  1. Claims the submission (validationInProgress=true) with a
     compare-and-swap inside one store transaction
  2. Resolves the image to analyze (supplied, else the most recent upload)
  3. Projects the form fields the analyzer needs
  4. Calls the analyzer through the retry wrapper
  5. Re-reads the submission and discards the result if the version moved
  6. Classifies the verdict and commits result + status together

Terminal states: COMPLETED, STALE_DISCARDED, FAILED. SKIPPED means the
claim was refused and nothing was written. Once a claim succeeds the
submission never stays locked: every exit path clears validationInProgress.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from label_review.config import Settings, get_settings
from label_review.models.schemas import (
    FormData,
    LabelImage,
    LifecycleState,
    Submission,
    SubmissionStatus,
    ValidationResult,
)
from label_review.rules.outcome_rules import classify_outcome
from label_review.services.analyzer_service import LabelAnalyzer, Ok
from label_review.services.lifecycle_service import (
    begin_validation,
    complete_validation,
    flag_attention,
    release_validation,
)
from label_review.services.store import SubmissionStore
from label_review.utils.file_validation import validate_image_reference
from label_review.utils.logging import get_logger
from label_review.utils.retry import with_retry

LOGGER = get_logger(__name__)

NO_IMAGE_MESSAGE = "No label image was found for this submission. Upload an image and resubmit."


class RunState(str, Enum):
    COMPLETED = "completed"
    STALE_DISCARDED = "stale_discarded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RunOutcome:
    """What a run did. status/needs_attention are set only when written."""

    state: RunState
    submission_id: str
    status: Optional[SubmissionStatus] = None
    needs_attention: Optional[bool] = None
    image_id: Optional[str] = None
    result_id: Optional[str] = None
    reason: str = ""


class ValidationOrchestrator:
    """Runs the validation state machine against a SubmissionStore.

    Args:
        store: Document store holding submissions and their subcollections.
        analyzer: Label analyzer; wrapped with the retry policy from settings.
        settings: Retry and image-poll configuration.
        sleep: Awaitable sleep, shared by the retry backoff and image polling.
    """

    def __init__(
        self,
        store: SubmissionStore,
        analyzer: LabelAnalyzer,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.analyzer = analyzer
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._analyze = with_retry(
            max_attempts=self.settings.retry_max_attempts,
            base_delay=self.settings.retry_base_delay,
            sleep=sleep,
        )(analyzer.analyze)

    async def run(
        self,
        submission_id: str,
        submission: Submission,
        expected_version: int,
        image: Optional[LabelImage] = None,
        wait_for_image: bool = False,
    ) -> RunOutcome:
        """Run one validation for `submission` as of `expected_version`.

        Args:
            submission_id: Id of the submission document.
            submission: Snapshot taken when the run was triggered; its form
                fields are what gets analyzed.
            expected_version: Version the result will be valid for.
            image: Pre-resolved image (image upload path). When omitted the
                most recent image is used.
            wait_for_image: Poll briefly for the first upload (creation path).

        Returns:
            RunOutcome describing the terminal state. Never raises: a store
            failure while claiming ends as FAILED with nothing written, and
            failures after the claim end as FAILED with a system_error result.
        """
        try:
            refused = await self._claim(submission_id, expected_version)
        except Exception as e:
            # The claim transaction did not commit, so there is nothing to release
            LOGGER.exception(f"Could not claim submission {submission_id} for validation")
            return RunOutcome(RunState.FAILED, submission_id, reason=str(e) or type(e).__name__)
        if refused is not None:
            return refused

        LOGGER.info(f"Validation started for {submission_id} (version {expected_version})")
        image_id = image.id if image else None

        try:
            resolved = image or await self._resolve_image(submission_id, wait_for_image)
            if resolved is None:
                return await self._fail_no_image(submission_id, expected_version)
            image_id = resolved.id
            validate_image_reference(resolved)

            form = FormData.from_submission(submission)
            analysis = await self._analyze(form, resolved)

            return await self._commit(submission_id, expected_version, resolved, analysis)
        except Exception as e:
            LOGGER.error(f"Validation failed for submission {submission_id}: {e!r}")
            return await self._fail_system_error(submission_id, expected_version, image_id, e)

    async def _claim(self, submission_id: str, expected_version: int) -> Optional[RunOutcome]:
        """Set validationInProgress if the submission is idle at expected_version.

        Returns None when the claim succeeded, else the outcome explaining
        why the run did not start.
        """
        async with self.store.transaction(submission_id) as tx:
            current = tx.submission
            if current is None:
                LOGGER.warning(f"Submission {submission_id} not found, validation not started")
                return RunOutcome(RunState.SKIPPED, submission_id, reason="submission not found")
            if current.state == LifecycleState.VALIDATING:
                LOGGER.info(f"Validation already in progress for {submission_id}, skipping")
                return RunOutcome(RunState.SKIPPED, submission_id, reason="validation already in progress")
            if current.state != LifecycleState.PENDING:
                LOGGER.info(f"Submission {submission_id} is {current.status.value}, skipping validation")
                return RunOutcome(RunState.SKIPPED, submission_id, reason=f"status is {current.status.value}")
            if current.version != expected_version:
                LOGGER.info(
                    f"Submission {submission_id} already at version {current.version} "
                    f"(expected {expected_version}), validation not started"
                )
                return RunOutcome(RunState.STALE_DISCARDED, submission_id, reason="version changed before start")

            tx.update(**begin_validation(current))
        return None

    async def flag_unanalyzed_image(self, submission_id: str, expected_version: int, image_id: str) -> bool:
        """Flag an approved submission whose newest image was never analyzed.

        Automatic runs only start from pending, so an image that arrives
        while the approving run holds the claim is handed to an admin
        instead. Returns True when the flag was written.
        """
        async with self.store.transaction(submission_id) as tx:
            current = tx.submission
            if current is None or current.version != expected_version:
                return False
            if current.state != LifecycleState.APPROVED:
                return False
            tx.update(**flag_attention(current))

        LOGGER.warning(
            f"Image {image_id} for {submission_id} arrived during an approving run and was not analyzed. "
            f"Flagged for admin review."
        )
        return True

    async def _resolve_image(self, submission_id: str, wait_for_image: bool) -> Optional[LabelImage]:
        # Uploads can land after the submission document; the creation
        # path polls with a fixed delay before declaring the image missing.
        attempts = max(1, self.settings.image_poll_attempts) if wait_for_image else 1
        for attempt in range(attempts):
            image = await self.store.latest_image(submission_id)
            if image is not None:
                return image
            if attempt < attempts - 1:
                await self._sleep(self.settings.image_poll_delay)
        return None

    async def _commit(
        self,
        submission_id: str,
        expected_version: int,
        image: LabelImage,
        analysis: Ok,
    ) -> RunOutcome:
        async with self.store.transaction(submission_id) as tx:
            current = tx.submission
            if current is None:
                LOGGER.warning(f"Submission {submission_id} deleted during validation")
                return RunOutcome(RunState.FAILED, submission_id, image_id=image.id, reason="submission deleted")

            if current.version != expected_version:
                LOGGER.info(
                    f"Submission {submission_id} version changed "
                    f"({expected_version} -> {current.version}). Discarding stale results."
                )
                tx.update(**release_validation(current))
                return RunOutcome(
                    RunState.STALE_DISCARDED, submission_id, image_id=image.id, reason="version changed"
                )

            outcome = classify_outcome(analysis.response)
            result = ValidationResult.from_response(
                analysis.response, submission_version=expected_version, image_id=image.id, raw=analysis.raw
            )
            tx.add_validation_result(result)
            tx.update(**complete_validation(current, outcome.status, outcome.needs_attention))

        LOGGER.info(
            f"Validation complete for {submission_id}: status={outcome.status.value}, "
            f"needsAttention={outcome.needs_attention}, confidence={analysis.response.confidence.value}"
        )
        return RunOutcome(
            RunState.COMPLETED,
            submission_id,
            status=outcome.status,
            needs_attention=outcome.needs_attention,
            image_id=image.id,
            result_id=result.id,
        )

    async def _fail_no_image(self, submission_id: str, expected_version: int) -> RunOutcome:
        LOGGER.warning(f"No images found for submission {submission_id}")
        result = ValidationResult.failure("image_present", NO_IMAGE_MESSAGE, submission_version=expected_version)
        async with self.store.transaction(submission_id) as tx:
            if tx.submission is None:
                return RunOutcome(RunState.FAILED, submission_id, reason="submission deleted")
            tx.add_validation_result(result)
            tx.update(**release_validation(tx.submission, needs_attention=True))
        return RunOutcome(
            RunState.FAILED, submission_id, needs_attention=True, result_id=result.id, reason="no image"
        )

    async def _fail_system_error(
        self,
        submission_id: str,
        expected_version: int,
        image_id: Optional[str],
        error: Exception,
    ) -> RunOutcome:
        message = str(error) or type(error).__name__
        result = ValidationResult.failure(
            "system_error",
            f"Validation failed: {message}. Flagged for admin review.",
            submission_version=expected_version,
            image_id=image_id,
            raw={"error": message},
        )
        try:
            async with self.store.transaction(submission_id) as tx:
                if tx.submission is None:
                    return RunOutcome(RunState.FAILED, submission_id, image_id=image_id, reason=message)
                tx.add_validation_result(result)
                tx.update(**release_validation(tx.submission, needs_attention=True))
        except Exception:
            # Not retried: the submission may stay flagged inconsistently
            LOGGER.exception(f"Failed to update submission {submission_id} after validation error")
            return RunOutcome(RunState.FAILED, submission_id, image_id=image_id, reason=message)

        return RunOutcome(
            RunState.FAILED,
            submission_id,
            needs_attention=True,
            image_id=image_id,
            result_id=result.id,
            reason=message,
        )
