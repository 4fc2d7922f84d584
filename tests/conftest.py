"""
Shared fixtures: in-memory SQLite database, seeded questions, and scripted
extraction providers / scoring backends so no test talks to a real API.
"""

import os

# Set environment variables before importing the package
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["EVALUATION_ASYNC"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["ALLOCATION_BACKOFF_SECONDS"] = "0"

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from answer_eval.core.errors import ProviderUnavailable
from answer_eval.db.base import Base
from answer_eval.db.session import create_db_engine
from answer_eval.models.question import Question
from answer_eval.models.status import INITIAL_STATUSES
from answer_eval.models.submission import Submission
from answer_eval.services.evaluation_orchestrator import EvaluationOrchestrator
from answer_eval.services.evaluation_scorer import EvaluationScorer
from answer_eval.services.extraction_gateway import ExtractionGateway
from answer_eval.services.extraction_providers import ExtractionProvider
from answer_eval.services.scoring_backends import ScoringBackend

TENANT = "tenant-1"

GOOD_REPLY = """ACCURACY: 80
MARKS AWARDED: 8

STRENGTHS:
- Clear definition of the term
- Relevant example

WEAKNESSES:
- Conclusion is thin

SUGGESTIONS:
- Add a data point in the introduction

DETAILED FEEDBACK:
A well structured answer that covers the main demand.

COMMENTS:
- Good use of headings
- Needs a stronger close

REMARK:
Solid answer overall.
"""


class ScriptedProvider(ExtractionProvider):
    """
    ``script`` maps image key -> text, or -> Exception to simulate a failed call.
    Keys missing from the script extract as ``text of <key>``.
    """

    def __init__(self, name, script=None, available=True):
        super().__init__(timeout=2)
        self.name = name
        self.script = script or {}
        self.available = available
        self.calls = []

    def ensure_available(self):
        if not self.available:
            raise ProviderUnavailable(f"{self.name} disabled")

    def _extract_text(self, ref):
        self.calls.append(ref.key)
        outcome = self.script.get(ref.key, f"text of {ref.key}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class ScriptedBackend(ScoringBackend):
    def __init__(self, name, reply=GOOD_REPLY, available=True):
        super().__init__(timeout=2)
        self.name = name
        self.reply = reply
        self.available = available
        self.prompts = []

    def ensure_available(self):
        if not self.available:
            raise ProviderUnavailable(f"{self.name} disabled")

    def complete(self, prompt):
        self.prompts.append(prompt)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


@pytest.fixture(scope="function")
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def make_question(db, **kwargs):
    values = {
        "tenant_id": TENANT,
        "title": "Federalism",
        "question_text": "Discuss the features of cooperative federalism in India.",
        "max_score": 10,
        "evaluation_mode": "auto",
    }
    values.update(kwargs)
    question = Question(**values)
    db.add(question)
    db.commit()
    db.refresh(question)
    return question


def make_submission(db, question, learner_id="learner-1", **kwargs):
    """Store a submission directly, skipping allocation and evaluation."""
    values = {
        "learner_id": learner_id,
        "question_id": question.id,
        "tenant_id": TENANT,
        "attempt_number": 1,
        "text_answer": "My typed answer",
        "evaluation_mode": question.evaluation_mode,
        **INITIAL_STATUSES,
    }
    values.update(kwargs)
    submission = Submission(**values)
    db.add(submission)
    db.commit()
    db.refresh(submission)
    return submission


@pytest.fixture
def auto_question(db_session):
    return make_question(db_session)


@pytest.fixture
def manual_question(db_session):
    return make_question(db_session, title="Essay", evaluation_mode="manual")


@pytest.fixture
def backend():
    return ScriptedBackend("primary-llm")


@pytest.fixture
def provider():
    return ScriptedProvider("primary-ocr")


@pytest.fixture
def orchestrator(provider, backend):
    return EvaluationOrchestrator(
        ExtractionGateway([provider], max_workers=2),
        EvaluationScorer([backend]),
        auto_publish_min_accuracy=0,
        evaluation_async=False,
    )


@pytest.fixture
def file_sessionmaker(tmp_path):
    """File-backed database for tests that need several connections at once."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'pipeline.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()
