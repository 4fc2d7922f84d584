"""
Submission Status Machine

Generic key-value-with-history primitive over the four status axes of a
submission. Any value of an axis may follow any other; business rules about
which transitions happen live in the evaluation orchestrator.
"""

import logging
from datetime import datetime, timezone
from typing import List, Sequence

from sqlalchemy.orm import Session

from answer_eval.core.errors import InvalidStatusValue, SubmissionNotFound
from answer_eval.models.status import (
    AXIS_COLUMNS,
    AXIS_VALUES,
    EvaluationStatus,
    ReviewStatus,
    StatusAxis,
)
from answer_eval.models.submission import Submission, SubmissionStatusHistory

logger = logging.getLogger(__name__)

_EVALUATED = {
    EvaluationStatus.AUTO_EVALUATED.value,
    EvaluationStatus.MANUAL_EVALUATED.value,
}


def normalize(axis, value) -> tuple[StatusAxis, str]:
    try:
        axis = StatusAxis(axis)
    except ValueError:
        raise InvalidStatusValue(f"unknown status axis: {axis!r}")
    try:
        value = AXIS_VALUES[axis](value).value
    except ValueError:
        allowed = ", ".join(v.value for v in AXIS_VALUES[axis])
        raise InvalidStatusValue(
            f"{value!r} is not a valid {axis.value} status",
            details=f"Allowed values: {allowed}",
        )
    return axis, value


def lock_submission(db: Session, submission_id: int) -> Submission:
    """Load a submission for a read-modify-write (row lock where supported)."""
    submission = (
        db.query(Submission)
        .filter(Submission.id == submission_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if submission is None:
        raise SubmissionNotFound(f"submission {submission_id} not found")
    return submission


def apply_transition(
    db: Session,
    submission: Submission,
    axis,
    new_value,
    *,
    reason: str | None = None,
    actor: str | None = None,
) -> SubmissionStatusHistory:
    """
    Overwrite one axis of an already locked submission and stage the matching
    history row. Nothing is committed; the caller commits both together.
    """
    axis, new_value = normalize(axis, new_value)
    column = AXIS_COLUMNS[axis]
    previous = getattr(submission, column)

    setattr(submission, column, new_value)

    now = datetime.now(timezone.utc)
    if (
        axis is StatusAxis.EVALUATION
        and new_value in _EVALUATED
        and submission.evaluated_at is None
    ):
        submission.evaluated_at = now
    if (
        axis is StatusAxis.REVIEW
        and new_value == ReviewStatus.REVIEW_COMPLETED.value
        and submission.reviewed_at is None
    ):
        submission.reviewed_at = now

    entry = SubmissionStatusHistory(
        submission_id=submission.id,
        axis=axis.value,
        previous_value=previous,
        new_value=new_value,
        reason=reason,
        actor=actor,
        created_at=now,
    )
    db.add(submission)
    db.add(entry)
    # flush now so history ids follow call order
    db.flush()

    logger.info(
        f"Submission {submission.id}: {axis.value} {previous} -> {new_value} "
        f"(actor={actor}, reason={reason})"
    )
    return entry


def transition(
    db: Session,
    submission_id: int,
    axis,
    new_value,
    *,
    reason: str | None = None,
    actor: str | None = None,
) -> tuple[Submission, SubmissionStatusHistory]:
    """
    Set ``axis`` to ``new_value`` and append one history record, atomically.
    """
    submission = lock_submission(db, submission_id)
    try:
        entry = apply_transition(
            db, submission, axis, new_value, reason=reason, actor=actor
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(submission)
    db.refresh(entry)
    return submission, entry


def bulk_transition(
    db: Session,
    submission_ids: Sequence[int],
    axis,
    new_value,
    *,
    reason: str | None = None,
    actor: str | None = None,
) -> List[Submission]:
    """
    Apply one transition to many submissions in a single transaction.
    Either every submission gets its value and history record or none does.
    """
    axis, new_value = normalize(axis, new_value)
    updated = []
    try:
        # dedupe, keep order
        for submission_id in dict.fromkeys(submission_ids):
            submission = lock_submission(db, submission_id)
            apply_transition(db, submission, axis, new_value, reason=reason, actor=actor)
            updated.append(submission)
        db.commit()
    except Exception:
        db.rollback()
        raise
    for submission in updated:
        db.refresh(submission)
    return updated


def get_history(db: Session, submission_id: int) -> List[SubmissionStatusHistory]:
    return (
        db.query(SubmissionStatusHistory)
        .filter(SubmissionStatusHistory.submission_id == submission_id)
        .order_by(SubmissionStatusHistory.id.asc())
        .all()
    )


def current_status(submission: Submission) -> dict:
    return {axis.value: getattr(submission, column) for axis, column in AXIS_COLUMNS.items()}
