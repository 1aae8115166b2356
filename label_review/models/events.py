"""Domain events that can start a validation run.

Submission snapshots arrive as raw documents (camelCase keys, no id) the
way the document store delivers them; triggers parse them into Submission.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from label_review.models.schemas import ImageType, LabelImage, Submission, WireModel, utcnow


class ImageCreatedEvent(WireModel):
    submission_id: str
    image_id: str
    image_ref: Optional[str] = None  # download URL of the uploaded image
    image_type: ImageType = ImageType.OTHER
    storage_path: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    def to_image(self) -> LabelImage:
        return LabelImage(
            id=self.image_id,
            submission_id=self.submission_id,
            image_type=self.image_type,
            storage_path=self.storage_path,
            download_url=self.image_ref,
            created_at=self.created_at,
        )


class SubmissionCreatedEvent(WireModel):
    submission_id: str
    submission: dict[str, Any]

    def snapshot(self) -> Submission:
        return parse_snapshot(self.submission_id, self.submission)


class SubmissionUpdatedEvent(WireModel):
    submission_id: str
    before: dict[str, Any]
    after: dict[str, Any]

    def snapshots(self) -> tuple[Submission, Submission]:
        return (
            parse_snapshot(self.submission_id, self.before),
            parse_snapshot(self.submission_id, self.after),
        )


def parse_snapshot(submission_id: str, document: dict[str, Any]) -> Submission:
    # Documents written before versioning carry no version field
    return Submission.model_validate({"version": 1, **document, "id": submission_id})
