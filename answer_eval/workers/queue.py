# answer_eval/workers/queue.py

from redis import Redis
from rq import Queue

from answer_eval.core.config import settings

EVALUATION_QUEUE_NAME = "evaluation"

_redis_conn: Redis | None = None


def get_redis_connection() -> Redis:
    global _redis_conn
    if _redis_conn is None:
        _redis_conn = Redis.from_url(settings.REDIS_URL)
    return _redis_conn


def get_evaluation_queue() -> Queue:
    return Queue(EVALUATION_QUEUE_NAME, connection=get_redis_connection())


def enqueue_evaluation_task(submission_id: int) -> str:
    """Queue auto evaluation of one stored submission; returns the RQ job id."""
    from answer_eval.workers.tasks import evaluation_task

    job = get_evaluation_queue().enqueue(
        evaluation_task,
        submission_id,
        job_timeout=settings.EVALUATION_JOB_TIMEOUT_SECONDS,
    )
    return job.id
