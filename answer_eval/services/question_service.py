# answer_eval/services/question_service.py
from typing import Optional

from sqlalchemy.orm import Session

from answer_eval.core.errors import QuestionNotFound
from answer_eval.models.question import Question


def get_question(db: Session, question_id: int) -> Optional[Question]:
    return db.get(Question, question_id)


def get_question_or_raise(
    db: Session, question_id: int, *, tenant_id: str | None = None
) -> Question:
    question = get_question(db, question_id)
    if question is None or (tenant_id is not None and question.tenant_id != tenant_id):
        raise QuestionNotFound(f"question {question_id} not found")
    return question


def update_guideline(
    db: Session,
    *,
    db_obj: Question,
    evaluation_guideline: str | None,
) -> Question:
    """
    The guideline is the only field of a question this service may change.
    """
    guideline = (evaluation_guideline or "").strip()
    db_obj.evaluation_guideline = guideline or None
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj
