from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class WireModel(BaseModel):
    """Base for stored documents and event payloads.

    Documents travel with camelCase keys (``validationInProgress``,
    ``fieldResults``); Python code uses the snake_case attribute names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    NEEDS_REVISION = "needs_revision"
    REJECTED = "rejected"


class LifecycleState(str, Enum):
    """Submission state with the in-flight validation folded into the status.

    VALIDATING is the only state in which ``validation_in_progress`` is true,
    and it is always a pending submission.
    """

    PENDING = "pending"
    VALIDATING = "validating"
    APPROVED = "approved"
    NEEDS_REVISION = "needs_revision"
    REJECTED = "rejected"


class ProductType(str, Enum):
    WINE = "wine"
    DISTILLED_SPIRITS = "distilled_spirits"
    MALT_BEVERAGE = "malt_beverage"


class ProductSource(str, Enum):
    DOMESTIC = "domestic"
    IMPORTED = "imported"


class ImageType(str, Enum):
    BRAND_FRONT = "brand_front"
    BACK = "back"
    OTHER = "other"


class MatchStatus(str, Enum):
    MATCH = "MATCH"
    MISMATCH = "MISMATCH"
    NOT_FOUND = "NOT_FOUND"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ReviewAction(str, Enum):
    APPROVED = "approved"
    NEEDS_REVISION = "needs_revision"
    REJECTED = "rejected"


class Submission(WireModel):
    """One label-approval application.

    ``version`` is the only concurrency token: it grows on every content edit
    and resubmission and never on validation bookkeeping writes.
    """

    id: str = Field(default_factory=new_id)
    user_id: str

    # Form fields declared by the applicant
    product_type: ProductType
    source: ProductSource = ProductSource.DOMESTIC
    serial_number: str = ""
    brand_name: str
    fanciful_name: Optional[str] = None
    class_type_designation: str
    alcohol_content: str = ""
    net_contents: str
    name_address_on_label: str
    country_of_origin: Optional[str] = None
    # Wine-specific
    grape_varietals: Optional[str] = None
    appellation_of_origin: Optional[str] = None
    vintage_date: Optional[str] = None
    # Spirits-specific
    age_statement: Optional[str] = None
    state_of_distillation: Optional[str] = None
    health_warning_confirmed: bool = False

    # Lifecycle
    status: SubmissionStatus = SubmissionStatus.PENDING
    needs_attention: bool = False
    validation_in_progress: bool = False
    version: int = Field(default=1, ge=1)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _validating_only_while_pending(self):
        if self.validation_in_progress and self.status != SubmissionStatus.PENDING:
            raise ValueError(
                f"validationInProgress cannot be set on a '{self.status.value}' submission"
            )
        return self

    @property
    def state(self) -> LifecycleState:
        if self.validation_in_progress:
            return LifecycleState.VALIDATING
        return LifecycleState(self.status.value)


class LabelImage(WireModel):
    """An uploaded label photo. Immutable once created."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_id)
    submission_id: str
    image_type: ImageType = ImageType.OTHER
    storage_path: Optional[str] = None
    download_url: Optional[str] = None
    original_filename: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class FormData(WireModel):
    """The subset of a submission the label analyzer compares against the image.

    Internal and administrative fields (owner, lifecycle flags, version,
    timestamps) are never sent.
    """

    product_type: ProductType
    source: ProductSource
    serial_number: str = ""
    brand_name: str
    fanciful_name: Optional[str] = None
    class_type_designation: str
    alcohol_content: str = ""
    net_contents: str
    name_address_on_label: str
    country_of_origin: Optional[str] = None
    grape_varietals: Optional[str] = None
    appellation_of_origin: Optional[str] = None
    vintage_date: Optional[str] = None
    age_statement: Optional[str] = None
    state_of_distillation: Optional[str] = None

    @field_validator(
        "fanciful_name",
        "country_of_origin",
        "grape_varietals",
        "appellation_of_origin",
        "vintage_date",
        "age_statement",
        "state_of_distillation",
    )
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @classmethod
    def from_submission(cls, submission: Submission) -> "FormData":
        return cls.model_validate(submission.model_dump(include=set(cls.model_fields)))


class FieldResult(WireModel):
    """Per-field verdict from the analyzer (e.g. brandName -> MATCH).

    Models sometimes echo numeric values (an ABV of 45, 750 for mL) as JSON
    numbers; they are kept as strings.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    field_name: str
    form_value: Optional[str] = ""
    label_value: Optional[str] = ""
    match_status: MatchStatus
    notes: Optional[str] = ""


class ComplianceWarning(WireModel):
    check: str       # e.g., "image_present", "system_error", "health_warning"
    message: str
    severity: Severity = Severity.WARNING


class ValidationResponse(WireModel):
    """The analyzer's structured verdict, after schema validation."""

    extracted_text: str
    field_results: list[FieldResult]
    compliance_warnings: list[ComplianceWarning] = []
    overall_pass: StrictBool
    confidence: Confidence

    @field_validator("compliance_warnings", mode="before")
    @classmethod
    def _null_warnings_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ValidationResult(ValidationResponse):
    """One entry of a submission's append-only validation log."""

    id: str = Field(default_factory=new_id)
    raw_ai_response: dict[str, Any] = {}
    submission_version: Optional[int] = None
    image_id: Optional[str] = None
    processed_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_response(
        cls,
        response: ValidationResponse,
        submission_version: int,
        image_id: Optional[str],
        raw: Optional[dict[str, Any]] = None,
    ) -> "ValidationResult":
        return cls(
            **response.model_dump(),
            raw_ai_response=raw if raw is not None else response.model_dump(mode="json", by_alias=True),
            submission_version=submission_version,
            image_id=image_id,
        )

    @classmethod
    def failure(
        cls,
        check: str,
        message: str,
        submission_version: Optional[int] = None,
        image_id: Optional[str] = None,
        raw: Optional[dict[str, Any]] = None,
    ) -> "ValidationResult":
        """A synthetic result for a run that produced no analysis."""
        return cls(
            extracted_text="",
            field_results=[],
            compliance_warnings=[ComplianceWarning(check=check, message=message, severity=Severity.ERROR)],
            overall_pass=False,
            confidence=Confidence.LOW,
            raw_ai_response=raw or {},
            submission_version=submission_version,
            image_id=image_id,
        )


class Review(WireModel):
    """An admin decision. Append-only."""

    id: str = Field(default_factory=new_id)
    admin_id: str
    action: ReviewAction
    feedback_to_user: Optional[str] = None
    internal_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class HistoryEntry(WireModel):
    """Audit record written by every user/admin action."""

    id: str = Field(default_factory=new_id)
    version: int
    changes: dict[str, Any] = {}
    changed_by: str
    created_at: datetime = Field(default_factory=utcnow)
