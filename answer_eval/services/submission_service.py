# answer_eval/services/submission_service.py
from typing import List, Optional

from sqlalchemy.orm import Session

from answer_eval.core.errors import SubmissionNotFound
from answer_eval.models.submission import Submission
from answer_eval.schemas.submission import (
    ExtractionStats,
    StatusHistoryEntry,
    SubmissionDetail,
    SubmissionPublic,
)
from answer_eval.services import status_machine


def get_submission(db: Session, submission_id: int) -> Optional[Submission]:
    return db.get(Submission, submission_id)


def get_submission_or_raise(
    db: Session, submission_id: int, *, tenant_id: str | None = None
) -> Submission:
    submission = get_submission(db, submission_id)
    if submission is None or (tenant_id is not None and submission.tenant_id != tenant_id):
        raise SubmissionNotFound(f"submission {submission_id} not found")
    return submission


def list_submissions_for_learner(
    db: Session,
    *,
    learner_id: str,
    question_id: int | None = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Submission]:
    """
    学生查看自己的所有提交
    """
    query = db.query(Submission).filter(Submission.learner_id == learner_id)
    if question_id is not None:
        query = query.filter(Submission.question_id == question_id)
    return (
        query.order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def list_submissions_for_question(
    db: Session,
    *,
    question_id: int,
    tenant_id: str | None = None,
    main_status: str | None = None,
    review_status: str | None = None,
    evaluation_status: str | None = None,
    popularity_status: str | None = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Submission]:
    """
    评阅人按题目查看所有学生的提交, optionally narrowed by status values.
    """
    query = db.query(Submission).filter(Submission.question_id == question_id)
    if tenant_id is not None:
        query = query.filter(Submission.tenant_id == tenant_id)

    filters = {
        "main": main_status,
        "review": review_status,
        "evaluation": evaluation_status,
        "popularity": popularity_status,
    }
    for axis, value in filters.items():
        if value is None:
            continue
        axis, value = status_machine.normalize(axis, value)
        query = query.filter(getattr(Submission, f"{axis.value}_status") == value)

    return (
        query.order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def extraction_stats(submission: Submission) -> ExtractionStats:
    records = submission.extracted_texts or []
    successful = [r for r in records if r.get("success")]
    timings = [r.get("processing_ms") or 0 for r in records]
    return ExtractionStats(
        total_images=len(records),
        successful=len(successful),
        failed=len(records) - len(successful),
        average_processing_ms=int(sum(timings) / len(timings)) if timings else 0,
    )


def build_detail(db: Session, submission: Submission) -> SubmissionDetail:
    public = SubmissionPublic.model_validate(submission).model_dump()
    return SubmissionDetail(
        **public,
        meta=submission.meta or {},
        extracted_texts=submission.extracted_texts,
        extraction_stats=extraction_stats(submission),
        reviewed_by=submission.reviewed_by,
        status_history=[
            StatusHistoryEntry.model_validate(entry)
            for entry in status_machine.get_history(db, submission.id)
        ],
    )
