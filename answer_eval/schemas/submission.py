# answer_eval/schemas/submission.py
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from answer_eval.core.config import settings
from answer_eval.models.status import StatusAxis


class AnswerImage(BaseModel):
    """Reference into the blob store; the bytes behind ``url`` are fetchable."""

    url: str
    key: str
    original_name: str | None = None


class SubmissionMeta(BaseModel):
    time_spent: int = Field(default=0, ge=0)
    device_info: str | None = None
    app_version: str | None = None
    source_type: Literal["qr_scan", "direct_access", "set_practice"] = "qr_scan"


class SubmissionCreate(BaseModel):
    question_id: int
    images: list[AnswerImage] = Field(
        default_factory=list, max_length=settings.MAX_IMAGES_PER_SUBMISSION
    )
    text_answer: str | None = Field(
        default=None, max_length=settings.MAX_TEXT_ANSWER_LENGTH
    )
    question_set_id: str | None = None
    meta: SubmissionMeta = Field(default_factory=SubmissionMeta)


class StatusSnapshot(BaseModel):
    main: str
    review: str
    evaluation: str
    popularity: str


class SubmitResponse(BaseModel):
    submission_id: int
    attempt_number: int
    status: StatusSnapshot
    evaluation: dict[str, Any] | None = None


class StatusHistoryEntry(BaseModel):
    id: int
    axis: str
    previous_value: str | None = None
    new_value: str
    reason: str | None = None
    actor: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ExtractionStats(BaseModel):
    total_images: int = 0
    successful: int = 0
    failed: int = 0
    average_processing_ms: int = 0


class SubmissionPublic(BaseModel):
    id: int
    learner_id: str
    question_id: int
    tenant_id: str
    question_set_id: str | None = None
    attempt_number: int

    answer_images: list[dict[str, Any]] = []
    text_answer: str | None = None

    main_status: str
    review_status: str
    evaluation_status: str
    popularity_status: str
    evaluation_mode: str

    evaluation: dict[str, Any] | None = None

    submitted_at: datetime
    evaluated_at: datetime | None = None
    reviewed_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubmissionDetail(SubmissionPublic):
    meta: dict[str, Any] = {}
    extracted_texts: list[dict[str, Any]] | None = None
    extraction_stats: ExtractionStats = ExtractionStats()
    reviewed_by: str | None = None
    status_history: list[StatusHistoryEntry] = []


class TransitionRequest(BaseModel):
    axis: StatusAxis
    value: str
    reason: str | None = None


class TransitionResponse(BaseModel):
    submission: SubmissionPublic
    history_entry: StatusHistoryEntry


class BulkTransitionRequest(TransitionRequest):
    submission_ids: list[int] = Field(min_length=1, max_length=500)


class AttemptStatus(BaseModel):
    question_id: int
    attempts_used: int
    max_attempts: int
    remaining: int
    can_submit: bool
    next_attempt_number: int | None = None
