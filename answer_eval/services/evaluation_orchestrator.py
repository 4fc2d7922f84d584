"""
Evaluation Orchestrator

Coordinates one learner submission end to end:
validate -> allocate attempt -> persist -> [auto: extract -> score] -> statuses.

Business rules on statuses live here, the status machine only records them:
  - auto mode, scored and accuracy >= AUTO_PUBLISH_MIN_ACCURACY:
        evaluation -> auto_evaluated, then main -> published and
        review -> review_completed (auto-progression, two history entries)
  - auto mode, scored below the threshold:
        evaluation -> auto_evaluated, main -> not_published (awaits review)
  - auto mode, no usable text / no backend / unexpected error:
        evaluation -> evaluation_failed (flagged, can be re-evaluated)
  - manual mode: nothing happens until evaluate_manually()
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from answer_eval.core.config import settings
from answer_eval.core.errors import (
    AlreadyEvaluated,
    ExtractionUnavailable,
    InvalidEvaluationMode,
    InvalidStateTransition,
    InvalidSubmission,
    NoContent,
    SubmissionNotFound,
)
from answer_eval.models.question import Question
from answer_eval.models.status import (
    EvaluationMode,
    EvaluationStatus,
    INITIAL_STATUSES,
    MainStatus,
    ReviewStatus,
    StatusAxis,
)
from answer_eval.models.submission import Submission
from answer_eval.schemas.evaluation import EvaluationResult, ManualEvaluationIn
from answer_eval.schemas.submission import AnswerImage, SubmissionCreate
from answer_eval.services import question_service, status_machine
from answer_eval.services.attempt_allocator import allocate_attempt
from answer_eval.services.evaluation_scorer import (
    EvaluationScorer,
    QuestionSnapshot,
    compose_answer_text,
    fallback_evaluation,
    get_evaluation_scorer,
)
from answer_eval.services.extraction_gateway import (
    ExtractionGateway,
    get_extraction_gateway,
)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

# auto evaluation may (re)run from these states
_AUTO_RUNNABLE = {
    EvaluationStatus.NOT_EVALUATED.value,
    EvaluationStatus.EVALUATION_FAILED.value,
}


class EvaluationOrchestrator:
    def __init__(
        self,
        gateway: ExtractionGateway,
        scorer: EvaluationScorer,
        *,
        auto_publish_min_accuracy: int | None = None,
        evaluation_async: bool | None = None,
    ):
        self.gateway = gateway
        self.scorer = scorer
        self.auto_publish_min_accuracy = (
            settings.AUTO_PUBLISH_MIN_ACCURACY
            if auto_publish_min_accuracy is None
            else auto_publish_min_accuracy
        )
        self.evaluation_async = (
            settings.EVALUATION_ASYNC if evaluation_async is None else evaluation_async
        )

    # ------------------------------------------------------------------ submit

    def submit(
        self,
        db: Session,
        *,
        learner_id: str,
        tenant_id: str,
        obj_in: SubmissionCreate,
    ) -> Submission:
        """
        学生提交答案: allocate the attempt, store it, and run auto evaluation
        when the question asks for it.

        Raises:
            NoContent, InvalidSubmission, QuestionNotFound, AttemptLimitExceeded,
            TransientAllocationFailure. Nothing is written when these are raised.
        """
        text_answer = (obj_in.text_answer or "").strip() or None
        if not obj_in.images and not text_answer:
            raise NoContent(
                "Either images or text answer must be provided",
                details="At least one form of answer (image or text) is required",
            )

        broken = [
            position
            for position, image in enumerate(obj_in.images, start=1)
            if not image.url.strip() or not image.key.strip()
        ]
        if broken:
            raise InvalidSubmission(
                "Invalid image reference",
                details=f"Image(s) {broken} are missing a url or key",
            )

        question = question_service.get_question_or_raise(
            db, obj_in.question_id, tenant_id=tenant_id
        )
        mode = question.evaluation_mode
        images = [image.model_dump() for image in obj_in.images]
        meta = obj_in.meta.model_dump()

        def build(attempt_number: int) -> Submission:
            return Submission(
                learner_id=learner_id,
                question_id=question.id,
                tenant_id=tenant_id,
                question_set_id=obj_in.question_set_id,
                attempt_number=attempt_number,
                answer_images=images,
                text_answer=text_answer,
                meta=meta,
                evaluation_mode=mode,
                **INITIAL_STATUSES,
            )

        submission = allocate_attempt(
            db,
            learner_id=learner_id,
            question_id=question.id,
            build=build,
        )
        logger.info(
            f"Stored submission {submission.id} (attempt {submission.attempt_number}, "
            f"mode={mode}, images={len(images)}, text={'yes' if text_answer else 'no'})"
        )

        if submission.evaluation_mode != EvaluationMode.AUTO.value:
            return submission

        if self.evaluation_async:
            from answer_eval.workers.queue import enqueue_evaluation_task

            job_id = enqueue_evaluation_task(submission.id)
            logger.info(f"Queued evaluation job {job_id} for submission {submission.id}")
            return submission

        return self.run_auto_evaluation(db, submission.id, question=question)

    # --------------------------------------------------------- auto evaluation

    def run_auto_evaluation(
        self,
        db: Session,
        submission_id: int,
        *,
        question: Optional[Question] = None,
        actor: str = SYSTEM_ACTOR,
    ) -> Submission:
        """
        Extract + score one auto-mode submission and record the outcome.
        Provider and scoring failures end up as data, never as exceptions.

        A submission that is no longer runnable (duplicate job delivery, or
        already evaluated by someone else) is returned untouched.
        """
        submission = db.get(Submission, submission_id)
        if submission is None:
            raise SubmissionNotFound(f"submission {submission_id} not found")
        if submission.evaluation_status not in _AUTO_RUNNABLE:
            logger.info(
                f"Submission {submission_id} is already {submission.evaluation_status}; "
                f"skipping auto evaluation"
            )
            return submission
        if question is None:
            question = question_service.get_question_or_raise(db, submission.question_id)

        # commit() expires ORM rows; everything read past this point is plain data
        snapshot = QuestionSnapshot.from_question(question)
        refs = [AnswerImage(**image) for image in submission.answer_images or []]
        text_answer = submission.text_answer
        # release the transaction before calling out to providers
        db.commit()

        extracted = []
        try:
            extracted = self.gateway.extract(refs) if refs else []
            answer_text = compose_answer_text(text_answer, extracted)
            result = self.scorer.score(
                snapshot,
                answer_text,
                extracted_texts=[item.text for item in extracted],
            )
        except ExtractionUnavailable as exc:
            logger.warning(f"Submission {submission_id}: {exc}")
            result = fallback_evaluation(snapshot, str(exc), [item.text for item in extracted])
        except Exception as exc:
            logger.error(
                f"Unexpected error evaluating submission {submission_id}: {exc}",
                exc_info=True,
            )
            result = fallback_evaluation(snapshot, f"unexpected error: {exc}", [item.text for item in extracted])

        return self._record_auto_result(db, submission_id, result, extracted, actor=actor)

    def _record_auto_result(
        self,
        db: Session,
        submission_id: int,
        result: EvaluationResult,
        extracted: list,
        *,
        actor: str,
    ) -> Submission:
        try:
            submission = status_machine.lock_submission(db, submission_id)
            if submission.evaluation_status not in _AUTO_RUNNABLE:
                logger.info(
                    f"Submission {submission_id} became {submission.evaluation_status} "
                    f"while scoring; discarding the {result.source} result"
                )
                db.rollback()
                return submission

            submission.evaluation = result.model_dump(mode="json")
            submission.extracted_texts = [item.model_dump() for item in extracted]

            if result.is_fallback:
                status_machine.apply_transition(
                    db, submission, StatusAxis.EVALUATION, EvaluationStatus.EVALUATION_FAILED,
                    reason=result.fallback_reason, actor=actor,
                )
            else:
                status_machine.apply_transition(
                    db, submission, StatusAxis.EVALUATION, EvaluationStatus.AUTO_EVALUATED,
                    reason=f"scored by {result.backend}", actor=actor,
                )
                self._auto_progress(db, submission, result, actor=actor)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(submission)
        logger.info(
            f"Submission {submission_id} evaluation={submission.evaluation_status} "
            f"main={submission.main_status} review={submission.review_status}"
        )
        return submission

    def _auto_progress(
        self,
        db: Session,
        submission: Submission,
        result: EvaluationResult,
        *,
        actor: str,
    ) -> None:
        if submission.evaluation_mode != EvaluationMode.AUTO.value:
            return

        if result.accuracy >= self.auto_publish_min_accuracy:
            reason = "auto-published after automatic evaluation"
            status_machine.apply_transition(
                db, submission, StatusAxis.MAIN, MainStatus.PUBLISHED, reason=reason, actor=actor
            )
            status_machine.apply_transition(
                db, submission, StatusAxis.REVIEW, ReviewStatus.REVIEW_COMPLETED, reason=reason, actor=actor
            )
        else:
            status_machine.apply_transition(
                db, submission, StatusAxis.MAIN, MainStatus.NOT_PUBLISHED,
                reason=(
                    f"accuracy {result.accuracy} below auto-publish threshold "
                    f"{self.auto_publish_min_accuracy}"
                ),
                actor=actor,
            )

    def reevaluate(
        self,
        db: Session,
        submission_id: int,
        *,
        actor: str = SYSTEM_ACTOR,
    ) -> Submission:
        submission = db.get(Submission, submission_id)
        if submission is None:
            raise SubmissionNotFound(f"submission {submission_id} not found")
        if submission.evaluation_mode != EvaluationMode.AUTO.value:
            raise InvalidEvaluationMode(
                "Answer is not in auto evaluation mode",
                details="Only auto-mode answers can be re-evaluated automatically",
            )
        if submission.evaluation_status not in _AUTO_RUNNABLE:
            raise InvalidStateTransition(
                f"Submission is already {submission.evaluation_status}",
                details="Re-evaluation is only possible from not_evaluated or evaluation_failed",
            )
        logger.info(f"Re-evaluating submission {submission_id} (requested by {actor})")
        if self.evaluation_async:
            from answer_eval.workers.queue import enqueue_evaluation_task

            job_id = enqueue_evaluation_task(submission_id)
            logger.info(f"Queued re-evaluation job {job_id} for submission {submission_id}")
            return submission
        return self.run_auto_evaluation(db, submission_id, actor=actor)

    # ------------------------------------------------------- manual evaluation

    def evaluate_manually(
        self,
        db: Session,
        submission_id: int,
        payload: ManualEvaluationIn,
        *,
        evaluator_id: str,
        publish: bool = False,
    ) -> Submission:
        try:
            submission = status_machine.lock_submission(db, submission_id)
            if submission.evaluation_mode != EvaluationMode.MANUAL.value:
                raise InvalidEvaluationMode(
                    "Answer is not in manual evaluation mode",
                    details="Only answers in manual evaluation mode can be manually evaluated",
                )
            if submission.evaluation_status == EvaluationStatus.MANUAL_EVALUATED.value:
                raise AlreadyEvaluated(
                    "Answer has already been evaluated",
                    details=f"Submission {submission_id} is manual_evaluated",
                )

            question = question_service.get_question_or_raise(db, submission.question_id)
            result = self.scorer.validate_manual(question, payload, evaluator_id=evaluator_id)

            submission.evaluation = result.model_dump(mode="json")
            submission.reviewed_by = evaluator_id
            status_machine.apply_transition(
                db, submission, StatusAxis.EVALUATION, EvaluationStatus.MANUAL_EVALUATED,
                reason="manual evaluation", actor=evaluator_id,
            )
            if publish:
                status_machine.apply_transition(
                    db, submission, StatusAxis.MAIN, MainStatus.PUBLISHED,
                    reason="published with manual evaluation", actor=evaluator_id,
                )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(submission)
        logger.info(
            f"Submission {submission_id} manually evaluated by {evaluator_id} "
            f"(marks={result.marks}/{result.max_marks}, publish={publish})"
        )
        return submission

    # ------------------------------------------------------------------ review

    def accept_review(
        self, db: Session, submission_id: int, *, evaluator_id: str, reason: str | None = None
    ) -> Submission:
        return self._review_step(
            db, submission_id,
            expected=ReviewStatus.REVIEW_PENDING,
            target=ReviewStatus.REVIEW_ACCEPTED,
            evaluator_id=evaluator_id,
            reason=reason or "review accepted",
        )

    def complete_review(
        self, db: Session, submission_id: int, *, evaluator_id: str, reason: str | None = None
    ) -> Submission:
        return self._review_step(
            db, submission_id,
            expected=ReviewStatus.REVIEW_ACCEPTED,
            target=ReviewStatus.REVIEW_COMPLETED,
            evaluator_id=evaluator_id,
            reason=reason or "review completed",
        )

    def _review_step(
        self,
        db: Session,
        submission_id: int,
        *,
        expected: ReviewStatus,
        target: ReviewStatus,
        evaluator_id: str,
        reason: str,
    ) -> Submission:
        try:
            submission = status_machine.lock_submission(db, submission_id)
            if submission.review_status != expected.value:
                raise InvalidStateTransition(
                    f"Review is {submission.review_status}",
                    details=f"Expected {expected.value} to move to {target.value}",
                )
            submission.reviewed_by = evaluator_id
            status_machine.apply_transition(
                db, submission, StatusAxis.REVIEW, target, reason=reason, actor=evaluator_id
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(submission)
        return submission


_orchestrator_instance: EvaluationOrchestrator | None = None


def get_orchestrator() -> EvaluationOrchestrator:
    global _orchestrator_instance
    if _orchestrator_instance is None:
        _orchestrator_instance = EvaluationOrchestrator(
            get_extraction_gateway(), get_evaluation_scorer()
        )
    return _orchestrator_instance
