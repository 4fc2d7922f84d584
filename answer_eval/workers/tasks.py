"""
Evaluation Tasks for Worker
Executed by RQ workers when EVALUATION_ASYNC is on: the request stores the
submission and returns, the worker runs extraction + scoring afterwards.
"""

import logging

from answer_eval.core.errors import PipelineError
from answer_eval.db.session import SessionLocal
from answer_eval.services.evaluation_orchestrator import get_orchestrator

logger = logging.getLogger(__name__)


def evaluation_task(submission_id: int) -> dict:
    """
    Worker task to auto-evaluate one submission.

    Returns:
        Dictionary summarising the recorded statuses, or the error.
    """
    db = SessionLocal()
    try:
        logger.info(f"Starting evaluation task for submission {submission_id}")

        submission = get_orchestrator().run_auto_evaluation(db, submission_id)
        evaluation = submission.evaluation or {}

        logger.info(
            f"Completed evaluation task for submission {submission_id}: "
            f"evaluation={submission.evaluation_status}, main={submission.main_status}"
        )
        return {
            "status": "success",
            "submission_id": submission.id,
            "evaluation_status": submission.evaluation_status,
            "main_status": submission.main_status,
            "review_status": submission.review_status,
            "accuracy": evaluation.get("accuracy"),
            "marks": evaluation.get("marks"),
            "source": evaluation.get("source"),
        }

    except PipelineError as e:
        logger.error(f"Evaluation failed for submission {submission_id}: {e}")
        return {
            "status": "error",
            "submission_id": submission_id,
            "error": e.code,
            "message": e.message,
        }

    except Exception as e:
        logger.error(
            f"Unexpected error during evaluation task for submission {submission_id}: {e}",
            exc_info=True,
        )
        return {
            "status": "error",
            "submission_id": submission_id,
            "error": str(e),
            "message": "Unexpected error during evaluation",
        }

    finally:
        db.close()
