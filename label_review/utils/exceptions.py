"""Error taxonomy for the validation core and the submission actions."""


class LabelReviewError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


class AnalyzerError(LabelReviewError):
    """Raised when the label analyzer call fails (transport, status, empty reply)."""


class MalformedResponseError(AnalyzerError):
    """Raised when the analyzer replies with a payload that breaks the response contract."""


class InvalidImageError(LabelReviewError):
    """Raised when an image record has no usable storage reference."""


class TriggerSetupError(LabelReviewError):
    """Raised when an event cannot be turned into a validation run."""


class IllegalTransitionError(LabelReviewError):
    """Raised when a lifecycle transition is not allowed from the current state."""


class SubmissionActionError(LabelReviewError):
    """Base for user/admin action rejections.

    Each subclass carries the HTTP status and machine code an API layer
    should answer with.
    """

    status_code = 500
    code = "INTERNAL_ERROR"


class SubmissionNotFoundError(SubmissionActionError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidStatusError(SubmissionActionError):
    status_code = 400
    code = "INVALID_STATUS"


class ValidationInProgressError(SubmissionActionError):
    status_code = 423
    code = "VALIDATION_IN_PROGRESS"


class VersionConflictError(SubmissionActionError):
    status_code = 409
    code = "VERSION_CONFLICT"


class ReviewValidationError(SubmissionActionError):
    status_code = 400
    code = "VALIDATION_ERROR"
