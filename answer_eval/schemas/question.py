# answer_eval/schemas/question.py
from pydantic import BaseModel
from datetime import datetime


class QuestionPublic(BaseModel):
    id: int
    tenant_id: str
    title: str | None = None
    question_text: str
    max_score: int
    evaluation_guideline: str | None = None
    evaluation_mode: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class GuidelineUpdate(BaseModel):
    """Empty / blank guideline means: score against the default rubric."""
    evaluation_guideline: str | None = None
