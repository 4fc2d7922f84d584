# answer_eval/models/submission.py
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    JSON,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from answer_eval.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        # one row per attempt slot; the allocator relies on this to detect lost races
        UniqueConstraint(
            "learner_id", "question_id", "attempt_number", name="uq_submission_attempt"
        ),
        CheckConstraint("attempt_number >= 1", name="ck_submission_attempt_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)

    learner_id = Column(String(64), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    question_set_id = Column(String(64), nullable=True)

    attempt_number = Column(Integer, nullable=False)

    # [{"url": ..., "key": ..., "original_name": ...}]
    answer_images = Column(JSON, nullable=False, default=list)
    text_answer = Column(Text, nullable=True)
    meta = Column(JSON, nullable=False, default=dict)

    # 四个状态维度，互不覆盖
    main_status = Column(String(20), nullable=False, default="pending", index=True)
    review_status = Column(String(20), nullable=False, default="review_pending", index=True)
    evaluation_status = Column(String(20), nullable=False, default="not_evaluated", index=True)
    popularity_status = Column(String(20), nullable=False, default="not_popular")

    # copied from the question at submission time
    evaluation_mode = Column(String(10), nullable=False)

    evaluation = Column(JSON, nullable=True)
    # [{"text", "provider", "success", "error", "processing_ms"}] per image
    extracted_texts = Column(JSON, nullable=True)

    reviewed_by = Column(String(64), nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    evaluated_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class SubmissionStatusHistory(Base):
    """Append-only; rows are never updated or deleted."""

    __tablename__ = "submission_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(
        Integer, ForeignKey("submissions.id"), nullable=False, index=True
    )

    axis = Column(String(20), nullable=False)
    previous_value = Column(String(20), nullable=True)
    new_value = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    actor = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
