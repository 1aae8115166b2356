"""Submission store — the versioned document store the validation core runs on.

A submission document owns four append-only subcollections: images,
validation results, reviews and history. Every lifecycle mutation goes
through ``transaction()``, which hands out the current snapshot and applies
the buffered writes together when the block exits cleanly. A block that
raises leaves the store untouched.

``InMemorySubmissionStore`` serializes transactions per submission, which
makes read-check-write sequences (claiming the validation lock, the
staleness check) true compare-and-swap operations. Stores without atomic
conditional writes can only narrow the duplicate-run window, not close it.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from label_review.models.schemas import (
    HistoryEntry,
    LabelImage,
    Review,
    Submission,
    ValidationResult,
)
from label_review.utils.exceptions import SubmissionNotFoundError


class SubmissionTransaction:
    """Buffered writes against one submission document.

    Attributes:
        submission: Snapshot read when the transaction opened, or None if
            the document does not exist.
    """

    def __init__(self, submission: Optional[Submission]):
        self.submission = submission
        self.updates: dict[str, Any] = {}
        self.validation_results: list[ValidationResult] = []
        self.reviews: list[Review] = []
        self.history: list[HistoryEntry] = []

    def update(self, **fields: Any) -> None:
        if self.submission is None:
            raise SubmissionNotFoundError("Cannot update a submission that does not exist")
        self.updates.update(fields)

    def add_validation_result(self, result: ValidationResult) -> None:
        self.validation_results.append(result)

    def add_review(self, review: Review) -> None:
        self.reviews.append(review)

    def add_history(self, entry: HistoryEntry) -> None:
        self.history.append(entry)


class SubmissionStore(ABC):
    """Async interface of the document store."""

    @abstractmethod
    async def create_submission(self, submission: Submission) -> Submission: ...

    @abstractmethod
    async def get_submission(self, submission_id: str) -> Optional[Submission]: ...

    @abstractmethod
    async def add_image(self, image: LabelImage) -> LabelImage: ...

    @abstractmethod
    async def list_images(self, submission_id: str) -> list[LabelImage]:
        """Images ordered newest first."""

    @abstractmethod
    async def list_validation_results(self, submission_id: str) -> list[ValidationResult]:
        """Validation results ordered newest first."""

    @abstractmethod
    async def list_reviews(self, submission_id: str) -> list[Review]: ...

    @abstractmethod
    async def list_history(self, submission_id: str) -> list[HistoryEntry]: ...

    @abstractmethod
    def transaction(self, submission_id: str):
        """Async context manager yielding a SubmissionTransaction."""

    async def latest_image(self, submission_id: str) -> Optional[LabelImage]:
        images = await self.list_images(submission_id)
        return images[0] if images else None

    async def latest_validation_result(self, submission_id: str) -> Optional[ValidationResult]:
        results = await self.list_validation_results(submission_id)
        return results[0] if results else None


class InMemorySubmissionStore(SubmissionStore):
    """Process-local store used by the service and the test suite."""

    def __init__(self):
        self._submissions: dict[str, Submission] = {}
        self._images: dict[str, list[LabelImage]] = defaultdict(list)
        self._results: dict[str, list[ValidationResult]] = defaultdict(list)
        self._reviews: dict[str, list[Review]] = defaultdict(list)
        self._history: dict[str, list[HistoryEntry]] = defaultdict(list)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def create_submission(self, submission: Submission) -> Submission:
        async with self._locks[submission.id]:
            if submission.id in self._submissions:
                raise ValueError(f"Submission {submission.id} already exists")
            self._submissions[submission.id] = submission
        return submission

    async def get_submission(self, submission_id: str) -> Optional[Submission]:
        return self._submissions.get(submission_id)

    async def add_image(self, image: LabelImage) -> LabelImage:
        if image.submission_id not in self._submissions:
            raise SubmissionNotFoundError(f"Submission {image.submission_id} not found")
        self._images[image.submission_id].append(image)
        return image

    async def list_images(self, submission_id: str) -> list[LabelImage]:
        return sorted(reversed(self._images.get(submission_id, [])), key=lambda i: i.created_at, reverse=True)

    async def list_validation_results(self, submission_id: str) -> list[ValidationResult]:
        return sorted(reversed(self._results.get(submission_id, [])), key=lambda r: r.created_at, reverse=True)

    async def list_reviews(self, submission_id: str) -> list[Review]:
        return sorted(reversed(self._reviews.get(submission_id, [])), key=lambda r: r.created_at, reverse=True)

    async def list_history(self, submission_id: str) -> list[HistoryEntry]:
        return list(self._history.get(submission_id, []))

    @asynccontextmanager
    async def transaction(self, submission_id: str) -> AsyncIterator[SubmissionTransaction]:
        async with self._locks[submission_id]:
            tx = SubmissionTransaction(self._submissions.get(submission_id))
            yield tx
            self._commit(submission_id, tx)

    def _commit(self, submission_id: str, tx: SubmissionTransaction) -> None:
        if tx.updates:
            current = self._submissions[submission_id]
            fields = {**current.model_dump(), **tx.updates}
            # Re-validate so an illegal status/flag combination never lands
            self._submissions[submission_id] = Submission.model_validate(fields)
        self._results[submission_id].extend(tx.validation_results)
        self._reviews[submission_id].extend(tx.reviews)
        self._history[submission_id].extend(tx.history)
