# answer_eval/models/question.py
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from answer_eval.db.base import Base

class Question(Base):
    """Subjective question; owned by the content service, read here."""

    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    title = Column(String(255), nullable=True)
    question_text = Column(Text, nullable=False)

    max_score = Column(Integer, nullable=False, default=10)
    evaluation_guideline = Column(Text, nullable=True)
    # auto / manual
    evaluation_mode = Column(String(10), nullable=False, default="auto")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
