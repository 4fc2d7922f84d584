"""
RQ task entry point and the queued submission path (Redis is not touched).
"""

from types import SimpleNamespace

from answer_eval.core.config import settings
from answer_eval.schemas.submission import SubmissionCreate
from answer_eval.services import status_machine
from answer_eval.services.evaluation_orchestrator import EvaluationOrchestrator
from answer_eval.services.evaluation_scorer import EvaluationScorer
from answer_eval.services.extraction_gateway import ExtractionGateway
from answer_eval.workers import queue, tasks
from tests.conftest import TENANT, make_submission


class TestEvaluationTask:
    def test_task_scores_submission(self, db_session, auto_question, orchestrator, monkeypatch):
        monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)
        monkeypatch.setattr(tasks, "get_orchestrator", lambda: orchestrator)
        submission_id = make_submission(db_session, auto_question).id

        result = tasks.evaluation_task(submission_id)

        assert result["status"] == "success"
        assert result["evaluation_status"] == "auto_evaluated"
        assert result["main_status"] == "published"
        assert result["accuracy"] == 80
        assert result["source"] == "auto"

    def test_duplicate_delivery_does_not_rescore(self, db_session, auto_question, orchestrator, backend, monkeypatch):
        monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)
        monkeypatch.setattr(tasks, "get_orchestrator", lambda: orchestrator)
        submission_id = make_submission(db_session, auto_question).id

        first = tasks.evaluation_task(submission_id)
        second = tasks.evaluation_task(submission_id)

        assert len(backend.prompts) == 1
        assert second["status"] == "success"
        assert second["evaluation_status"] == first["evaluation_status"] == "auto_evaluated"
        assert len(status_machine.get_history(db_session, submission_id)) == 3

    def test_task_reports_missing_submission(self, db_session, orchestrator, monkeypatch):
        monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)
        monkeypatch.setattr(tasks, "get_orchestrator", lambda: orchestrator)

        result = tasks.evaluation_task(12345)

        assert result["status"] == "error"
        assert result["error"] == "SUBMISSION_NOT_FOUND"


class TestQueuedSubmission:
    def test_submit_enqueues_instead_of_scoring(self, db_session, auto_question, provider, backend, monkeypatch):
        queued = []

        def fake_enqueue(submission_id):
            queued.append(submission_id)
            return "job-1"

        monkeypatch.setattr(queue, "enqueue_evaluation_task", fake_enqueue)
        orchestrator = EvaluationOrchestrator(
            ExtractionGateway([provider]),
            EvaluationScorer([backend]),
            evaluation_async=True,
        )

        sub = orchestrator.submit(
            db_session,
            learner_id="learner-1",
            tenant_id=TENANT,
            obj_in=SubmissionCreate(question_id=auto_question.id, text_answer="answer"),
        )

        assert queued == [sub.id]
        assert sub.evaluation_status == "not_evaluated"
        assert backend.prompts == []


class FakeQueue:
    def __init__(self):
        self.jobs = []

    def enqueue(self, func, *args, **kwargs):
        self.jobs.append((func, args, kwargs))
        return SimpleNamespace(id=f"job-{len(self.jobs)}")


class TestEnqueue:
    def test_evaluation_task_goes_on_evaluation_queue(self, monkeypatch):
        fake = FakeQueue()
        monkeypatch.setattr(queue, "get_evaluation_queue", lambda: fake)

        job_id = queue.enqueue_evaluation_task(42)

        assert job_id == "job-1"
        func, args, kwargs = fake.jobs[0]
        assert func is tasks.evaluation_task
        assert args == (42,)
        assert kwargs["job_timeout"] == settings.EVALUATION_JOB_TIMEOUT_SECONDS
