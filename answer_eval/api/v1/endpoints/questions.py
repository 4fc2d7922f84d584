# answer_eval/api/v1/endpoints/questions.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from answer_eval.core.security import Identity, get_current_evaluator, get_current_identity
from answer_eval.db.session import get_db
from answer_eval.schemas.question import GuidelineUpdate, QuestionPublic
from answer_eval.services import question_service

router = APIRouter(prefix="/questions", tags=["questions"])


@router.get("/{question_id}", response_model=QuestionPublic)
def get_question(
    question_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),  # 任意登录用户可看
):
    return question_service.get_question_or_raise(db, question_id, tenant_id=identity.tenant_id)


@router.put("/{question_id}/guideline", response_model=QuestionPublic)
def update_guideline(
    question_id: int,
    obj_in: GuidelineUpdate,
    db: Session = Depends(get_db),
    evaluator: Identity = Depends(get_current_evaluator),
):
    """
    评阅人更新评分标准；留空则使用默认评分框架。
    """
    q = question_service.get_question_or_raise(db, question_id, tenant_id=evaluator.tenant_id)
    return question_service.update_guideline(
        db, db_obj=q, evaluation_guideline=obj_in.evaluation_guideline
    )
