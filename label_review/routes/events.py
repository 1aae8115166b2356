from fastapi import APIRouter, BackgroundTasks, Request

from label_review.models.events import ImageCreatedEvent, SubmissionCreatedEvent, SubmissionUpdatedEvent
from label_review.triggers.event_triggers import EventTriggers

router = APIRouter(prefix="/events", tags=["events"])

# Event deliveries are acknowledged right away; the validation run happens
# after the response and its outcome is only visible on the submission.
ACCEPTED = {"accepted": True}


def _triggers(request: Request) -> EventTriggers:
    return request.app.state.triggers


@router.post("/image-created", status_code=202)
async def image_created(event: ImageCreatedEvent, request: Request, background_tasks: BackgroundTasks):
    """Start validation for a newly uploaded label image."""
    background_tasks.add_task(_triggers(request).on_image_created, event)
    return ACCEPTED


@router.post("/submission-created", status_code=202)
async def submission_created(event: SubmissionCreatedEvent, request: Request, background_tasks: BackgroundTasks):
    """Start validation for a new submission (waits briefly for its image)."""
    background_tasks.add_task(_triggers(request).on_submission_created, event)
    return ACCEPTED


@router.post("/submission-updated", status_code=202)
async def submission_updated(event: SubmissionUpdatedEvent, request: Request, background_tasks: BackgroundTasks):
    """Re-validate on resubmit or content edit; other updates are ignored."""
    background_tasks.add_task(_triggers(request).on_submission_updated, event)
    return ACCEPTED
