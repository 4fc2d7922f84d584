# answer_eval/api/v1/endpoints/evaluations.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from answer_eval.core.security import Identity, get_current_evaluator
from answer_eval.db.session import get_db
from answer_eval.schemas.evaluation import ManualEvaluationRequest, ReviewActionRequest
from answer_eval.schemas.submission import SubmissionDetail
from answer_eval.services import submission_service
from answer_eval.services.evaluation_orchestrator import (
    EvaluationOrchestrator,
    get_orchestrator,
)

router = APIRouter(prefix="/evaluations", tags=["evaluations"])


@router.post("/{submission_id}/manual", response_model=SubmissionDetail)
def evaluate_manually(
    submission_id: int,
    obj_in: ManualEvaluationRequest,
    db: Session = Depends(get_db),
    evaluator: Identity = Depends(get_current_evaluator),
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator),
):
    """
    评阅人给 manual 模式的提交打分；publish=true 时同时发布。
    """
    submission_service.get_submission_or_raise(db, submission_id, tenant_id=evaluator.tenant_id)
    sub = orchestrator.evaluate_manually(
        db,
        submission_id,
        obj_in.evaluation,
        evaluator_id=evaluator.user_id,
        publish=obj_in.publish,
    )
    return submission_service.build_detail(db, sub)


@router.post("/{submission_id}/reevaluate", response_model=SubmissionDetail)
def reevaluate(
    submission_id: int,
    db: Session = Depends(get_db),
    evaluator: Identity = Depends(get_current_evaluator),
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator),
):
    submission_service.get_submission_or_raise(db, submission_id, tenant_id=evaluator.tenant_id)
    sub = orchestrator.reevaluate(db, submission_id, actor=evaluator.user_id)
    return submission_service.build_detail(db, sub)


@router.post("/{submission_id}/accept-review", response_model=SubmissionDetail)
def accept_review(
    submission_id: int,
    obj_in: ReviewActionRequest | None = None,
    db: Session = Depends(get_db),
    evaluator: Identity = Depends(get_current_evaluator),
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator),
):
    submission_service.get_submission_or_raise(db, submission_id, tenant_id=evaluator.tenant_id)
    sub = orchestrator.accept_review(
        db, submission_id, evaluator_id=evaluator.user_id, reason=obj_in.reason if obj_in else None
    )
    return submission_service.build_detail(db, sub)


@router.post("/{submission_id}/complete-review", response_model=SubmissionDetail)
def complete_review(
    submission_id: int,
    obj_in: ReviewActionRequest | None = None,
    db: Session = Depends(get_db),
    evaluator: Identity = Depends(get_current_evaluator),
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator),
):
    submission_service.get_submission_or_raise(db, submission_id, tenant_id=evaluator.tenant_id)
    sub = orchestrator.complete_review(
        db, submission_id, evaluator_id=evaluator.user_id, reason=obj_in.reason if obj_in else None
    )
    return submission_service.build_detail(db, sub)
