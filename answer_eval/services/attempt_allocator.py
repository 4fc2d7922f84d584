"""
Attempt Allocator
Assigns the next attempt number for a (learner, question) pair under the attempt cap.

No counter is stored anywhere: each allocation reads the pair's existing
submissions, proposes max+1 and writes the new row. The unique constraint on
(learner_id, question_id, attempt_number) turns a lost race into an
IntegrityError, after which the whole read-then-write is retried.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from answer_eval.core.config import settings
from answer_eval.core.errors import AttemptLimitExceeded, TransientAllocationFailure
from answer_eval.models.submission import Submission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairUsage:
    count: int
    max_attempt: int


def _pair_usage(db: Session, learner_id: str, question_id: int) -> PairUsage:
    count, max_attempt = (
        db.query(
            func.count(Submission.id),
            func.coalesce(func.max(Submission.attempt_number), 0),
        )
        .filter(
            Submission.learner_id == learner_id,
            Submission.question_id == question_id,
        )
        .one()
    )
    return PairUsage(count=int(count), max_attempt=int(max_attempt))


def _backoff(retry: int, base: float) -> None:
    if base <= 0:
        return
    time.sleep(random.uniform(0, base * (2 ** retry)))


def allocate_attempt(
    db: Session,
    *,
    learner_id: str,
    question_id: int,
    build: Callable[[int], Submission],
    max_attempts: int | None = None,
    max_retries: int | None = None,
    backoff_seconds: float | None = None,
) -> Submission:
    """
    Reserve the next attempt slot and persist the submission built for it.

    Args:
        build: called with the candidate attempt number, returns an unsaved
            Submission for that slot. It may be called more than once.

    Returns:
        The committed Submission.

    Raises:
        AttemptLimitExceeded: the pair already holds ``max_attempts`` submissions
            (nothing is written).
        TransientAllocationFailure: every retry lost a race with a concurrent
            submission for the same pair.
    """
    if max_attempts is None:
        max_attempts = settings.MAX_ATTEMPTS
    if max_retries is None:
        max_retries = settings.ALLOCATION_MAX_RETRIES
    if backoff_seconds is None:
        backoff_seconds = settings.ALLOCATION_BACKOFF_SECONDS

    for retry in range(max_retries + 1):
        usage = _pair_usage(db, learner_id, question_id)
        if usage.count >= max_attempts:
            db.rollback()
            raise AttemptLimitExceeded(
                "Maximum submission limit reached",
                details=f"Maximum {max_attempts} attempts allowed per question",
            )

        candidate = usage.max_attempt + 1
        # a gap left by some earlier failure must not push us past the cap
        if candidate > max_attempts:
            db.rollback()
            raise AttemptLimitExceeded(
                "Maximum submission limit reached",
                details=f"Attempt {candidate} exceeds the limit of {max_attempts}",
            )

        submission = build(candidate)
        db.add(submission)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(
                f"Attempt {candidate} for learner={learner_id} question={question_id} "
                f"was taken concurrently (retry {retry + 1}/{max_retries})"
            )
            if retry < max_retries:
                _backoff(retry, backoff_seconds)
            continue

        db.refresh(submission)
        logger.info(
            f"Allocated attempt {submission.attempt_number} for learner={learner_id} "
            f"question={question_id} (submission {submission.id})"
        )
        return submission

    logger.warning(
        f"Attempt allocation for learner={learner_id} question={question_id} "
        f"exhausted {max_retries} retries"
    )
    raise TransientAllocationFailure(
        "Could not allocate an attempt number, please retry",
        details="Concurrent submissions for this question collided",
    )


def attempt_status(
    db: Session,
    *,
    learner_id: str,
    question_id: int,
    max_attempts: int | None = None,
) -> dict:
    if max_attempts is None:
        max_attempts = settings.MAX_ATTEMPTS
    usage = _pair_usage(db, learner_id, question_id)
    remaining = max(0, max_attempts - usage.count)
    can_submit = remaining > 0 and usage.max_attempt < max_attempts
    return {
        "question_id": question_id,
        "attempts_used": usage.count,
        "max_attempts": max_attempts,
        "remaining": remaining,
        "can_submit": can_submit,
        "next_attempt_number": usage.max_attempt + 1 if can_submit else None,
    }
