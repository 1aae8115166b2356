"""Unit tests for the in-memory submission store."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from label_review.models.schemas import LifecycleState, SubmissionStatus, ValidationResult, utcnow
from label_review.utils.exceptions import SubmissionNotFoundError


class TestSubmissionModel:
    def test_new_submission_is_pending_version_one(self, make_submission):
        submission = make_submission()
        assert submission.version == 1
        assert submission.status == SubmissionStatus.PENDING
        assert submission.state == LifecycleState.PENDING

    def test_validating_state(self, make_submission):
        assert make_submission(validation_in_progress=True).state == LifecycleState.VALIDATING

    def test_validating_non_pending_submission_is_unrepresentable(self, make_submission):
        with pytest.raises(ValidationError):
            make_submission(status="approved", validation_in_progress=True)

    def test_accepts_camel_case_documents(self, make_submission):
        doc = make_submission().model_dump(mode="json", by_alias=True)
        assert "validationInProgress" in doc
        assert "nameAddressOnLabel" in doc


class TestTransactions:
    @pytest.mark.asyncio
    async def test_commit_applies_updates_and_appends(self, store, make_submission):
        submission = await store.create_submission(make_submission())
        async with store.transaction(submission.id) as tx:
            tx.update(needs_attention=True)
            tx.add_validation_result(ValidationResult.failure("image_present", "missing"))

        current = await store.get_submission(submission.id)
        assert current.needs_attention is True
        assert len(await store.list_validation_results(submission.id)) == 1

    @pytest.mark.asyncio
    async def test_exception_discards_buffered_writes(self, store, make_submission):
        submission = await store.create_submission(make_submission())
        with pytest.raises(RuntimeError):
            async with store.transaction(submission.id) as tx:
                tx.update(needs_attention=True)
                tx.add_validation_result(ValidationResult.failure("image_present", "missing"))
                raise RuntimeError("boom")

        current = await store.get_submission(submission.id)
        assert current.needs_attention is False
        assert await store.list_validation_results(submission.id) == []

    @pytest.mark.asyncio
    async def test_illegal_combination_is_never_committed(self, store, make_submission):
        submission = await store.create_submission(make_submission(validation_in_progress=True))
        with pytest.raises(ValidationError):
            async with store.transaction(submission.id) as tx:
                tx.update(status=SubmissionStatus.APPROVED)

        assert (await store.get_submission(submission.id)).state == LifecycleState.VALIDATING

    @pytest.mark.asyncio
    async def test_missing_submission_snapshot_is_none(self, store):
        async with store.transaction("nope") as tx:
            assert tx.submission is None
            with pytest.raises(SubmissionNotFoundError):
                tx.update(needs_attention=True)


class TestSubcollections:
    @pytest.mark.asyncio
    async def test_images_newest_first(self, store, make_submission, make_image):
        submission = await store.create_submission(make_submission())
        now = utcnow()
        older = await store.add_image(make_image(submission.id, created_at=now - timedelta(seconds=5)))
        newer = await store.add_image(make_image(submission.id, created_at=now))

        assert [i.id for i in await store.list_images(submission.id)] == [newer.id, older.id]
        assert (await store.latest_image(submission.id)).id == newer.id

    @pytest.mark.asyncio
    async def test_latest_result_breaks_timestamp_ties_by_insertion(self, store, make_submission):
        submission = await store.create_submission(make_submission())
        now = utcnow()
        first = ValidationResult.failure("a", "first").model_copy(update={"created_at": now})
        second = ValidationResult.failure("b", "second").model_copy(update={"created_at": now})
        async with store.transaction(submission.id) as tx:
            tx.add_validation_result(first)
            tx.add_validation_result(second)

        assert (await store.latest_validation_result(submission.id)).id == second.id

    @pytest.mark.asyncio
    async def test_image_for_unknown_submission_is_rejected(self, store, make_image):
        with pytest.raises(SubmissionNotFoundError):
            await store.add_image(make_image("missing"))

    @pytest.mark.asyncio
    async def test_duplicate_create_is_rejected(self, store, make_submission):
        submission = await store.create_submission(make_submission())
        with pytest.raises(ValueError):
            await store.create_submission(submission)
