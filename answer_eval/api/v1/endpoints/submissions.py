# answer_eval/api/v1/endpoints/submissions.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from answer_eval.core.security import (
    Identity,
    get_current_admin,
    get_current_evaluator,
    get_current_identity,
    get_current_learner,
)
from answer_eval.db.session import get_db
from answer_eval.schemas.submission import (
    AttemptStatus,
    BulkTransitionRequest,
    StatusHistoryEntry,
    StatusSnapshot,
    SubmissionCreate,
    SubmissionDetail,
    SubmissionPublic,
    SubmitResponse,
    TransitionRequest,
    TransitionResponse,
)
from answer_eval.services import (
    attempt_allocator,
    question_service,
    status_machine,
    submission_service,
)
from answer_eval.services.evaluation_orchestrator import (
    EvaluationOrchestrator,
    get_orchestrator,
)

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("/", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
def submit_answer(
    obj_in: SubmissionCreate,
    db: Session = Depends(get_db),
    learner: Identity = Depends(get_current_learner),
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator),
):
    """
    学生提交答案；auto 模式的题目会直接打分（或入队）。
    """
    sub = orchestrator.submit(
        db, learner_id=learner.user_id, tenant_id=learner.tenant_id, obj_in=obj_in
    )
    return SubmitResponse(
        submission_id=sub.id,
        attempt_number=sub.attempt_number,
        status=StatusSnapshot(**status_machine.current_status(sub)),
        evaluation=sub.evaluation,
    )


@router.get("/me", response_model=List[SubmissionPublic])
def list_my_submissions(
    question_id: int | None = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    learner: Identity = Depends(get_current_learner),
):
    """
    学生查看自己的所有提交。
    """
    return submission_service.list_submissions_for_learner(
        db, learner_id=learner.user_id, question_id=question_id, skip=skip, limit=limit
    )


@router.get("/attempts/{question_id}", response_model=AttemptStatus)
def get_attempt_status(
    question_id: int,
    db: Session = Depends(get_db),
    learner: Identity = Depends(get_current_learner),
):
    question_service.get_question_or_raise(db, question_id, tenant_id=learner.tenant_id)
    return attempt_allocator.attempt_status(
        db, learner_id=learner.user_id, question_id=question_id
    )


@router.get("/question/{question_id}", response_model=List[SubmissionPublic])
def list_submissions_for_question(
    question_id: int,
    main_status: str | None = None,
    review_status: str | None = None,
    evaluation_status: str | None = None,
    popularity_status: str | None = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    evaluator: Identity = Depends(get_current_evaluator),
):
    """
    评阅人按题目查看提交，可按状态过滤。
    """
    question_service.get_question_or_raise(db, question_id, tenant_id=evaluator.tenant_id)
    return submission_service.list_submissions_for_question(
        db,
        question_id=question_id,
        tenant_id=evaluator.tenant_id,
        main_status=main_status,
        review_status=review_status,
        evaluation_status=evaluation_status,
        popularity_status=popularity_status,
        skip=skip,
        limit=limit,
    )


@router.post("/bulk-transition", response_model=List[SubmissionPublic])
def bulk_transition(
    obj_in: BulkTransitionRequest,
    db: Session = Depends(get_db),
    admin: Identity = Depends(get_current_admin),
):
    for submission_id in obj_in.submission_ids:
        submission_service.get_submission_or_raise(db, submission_id, tenant_id=admin.tenant_id)
    return status_machine.bulk_transition(
        db,
        obj_in.submission_ids,
        obj_in.axis,
        obj_in.value,
        reason=obj_in.reason,
        actor=admin.user_id,
    )


@router.get("/{submission_id}", response_model=SubmissionDetail)
def get_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    学生只能看自己的提交；评阅人/管理员可看本租户的所有提交。
    """
    sub = submission_service.get_submission_or_raise(
        db, submission_id, tenant_id=identity.tenant_id
    )
    if not identity.is_staff and sub.learner_id != identity.user_id:
        raise HTTPException(status_code=404, detail="Submission not found")
    return submission_service.build_detail(db, sub)


@router.get("/{submission_id}/history", response_model=List[StatusHistoryEntry])
def get_submission_history(
    submission_id: int,
    db: Session = Depends(get_db),
    evaluator: Identity = Depends(get_current_evaluator),
):
    submission_service.get_submission_or_raise(db, submission_id, tenant_id=evaluator.tenant_id)
    return status_machine.get_history(db, submission_id)


@router.post("/{submission_id}/transition", response_model=TransitionResponse)
def transition_submission(
    submission_id: int,
    obj_in: TransitionRequest,
    db: Session = Depends(get_db),
    evaluator: Identity = Depends(get_current_evaluator),
):
    submission_service.get_submission_or_raise(db, submission_id, tenant_id=evaluator.tenant_id)
    sub, entry = status_machine.transition(
        db,
        submission_id,
        obj_in.axis,
        obj_in.value,
        reason=obj_in.reason,
        actor=evaluator.user_id,
    )
    return TransitionResponse(
        submission=SubmissionPublic.model_validate(sub),
        history_entry=StatusHistoryEntry.model_validate(entry),
    )
