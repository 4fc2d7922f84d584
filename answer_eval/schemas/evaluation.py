# answer_eval/schemas/evaluation.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ExtractedText(BaseModel):
    """Outcome of extracting one image; failures carry a sentinel ``text``."""

    text: str
    success: bool
    provider: str | None = None
    error: str | None = None
    processing_ms: int = 0


class EvaluationResult(BaseModel):
    # accuracy/relevancy on 0-100 and marks bounded by the question's max_score
    # are tracked as two separate numbers
    accuracy: int = Field(ge=0, le=100)
    marks: float = Field(ge=0)
    max_marks: int

    strengths: list[str] = []
    weaknesses: list[str] = []
    suggestions: list[str] = []
    comments: list[str] = []
    feedback: str = ""
    remark: str = ""

    extracted_texts: list[str] = []

    # auto / manual / fallback
    source: Literal["auto", "manual", "fallback"] = "auto"
    backend: str | None = None
    fallback_reason: str | None = None
    evaluated_by: str | None = None
    evaluated_at: datetime | None = None

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"


class ManualEvaluationIn(BaseModel):
    """Evaluator-supplied result; range checks against the question happen in the scorer."""

    accuracy: int
    marks: float
    strengths: list[str] = []
    weaknesses: list[str] = []
    suggestions: list[str] = []
    comments: list[str] = []
    feedback: str = ""
    remark: str = ""


class ManualEvaluationRequest(BaseModel):
    evaluation: ManualEvaluationIn
    publish: bool = False


class ReviewActionRequest(BaseModel):
    reason: str | None = None
