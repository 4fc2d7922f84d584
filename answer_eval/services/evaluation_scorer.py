"""
Evaluation Scorer
Turns answer text plus a question's grading guideline into an EvaluationResult.

Auto mode prompts the scoring backends in order and parses the first usable
reply; if none is usable it returns a clearly labelled fallback result instead
of raising. Manual mode only validates what a human evaluator supplied.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Union

from answer_eval.core.config import settings
from answer_eval.core.errors import (
    EvaluationParseFailure,
    ExtractionUnavailable,
    InvalidEvaluationPayload,
    ProviderUnavailable,
)
from answer_eval.models.question import Question
from answer_eval.schemas.evaluation import (
    EvaluationResult,
    ExtractedText,
    ManualEvaluationIn,
)
from answer_eval.services.extraction_providers import NO_READABLE_TEXT
from answer_eval.services.scoring_backends import ScoringBackend, build_backends

logger = logging.getLogger(__name__)

DEFAULT_RUBRIC = """EVALUATION FRAMEWORK:
Introduction - does the answer open by framing the question directly, with a relevant definition, context or data point?
Body - are the demands of the question addressed in order, with correct facts, relevant examples and a clear structure (headings, points, diagrams where useful)?
Conclusion - does the answer close with a concise, forward-looking summary (20-30 words) that follows from the body?
Language - is the writing clear, precise and within the expected length?
Award marks for correct, relevant content first; presentation only separates otherwise similar answers."""

IMAGE_SEPARATOR = "\n\n--- Next Image ---\n\n"

_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")
_DECORATION = re.compile(r"^[#>*_\s]+|[*_\s]+$")
_BULLET = re.compile(r"^(?:[-*•]\s+|\d+[.)]\s+)")

_NUMERIC_HEADERS = {
    "accuracy": re.compile(r"^(?:accuracy|relevancy)\s*[:\-]\s*", re.IGNORECASE),
    "marks": re.compile(r"^(?:marks awarded|marks|score)\s*[:\-]\s*", re.IGNORECASE),
}
_SECTION_HEADERS = {
    "strengths": re.compile(r"^strengths\s*:\s*", re.IGNORECASE),
    "weaknesses": re.compile(r"^weaknesses\s*:\s*", re.IGNORECASE),
    "suggestions": re.compile(r"^suggestions\s*:\s*", re.IGNORECASE),
    "feedback": re.compile(r"^(?:detailed feedback|feedback)\s*:\s*", re.IGNORECASE),
    "comments": re.compile(r"^comments\s*:\s*", re.IGNORECASE),
    "remark": re.compile(r"^remark\s*:\s*", re.IGNORECASE),
}
_PROSE_SECTIONS = {"feedback", "remark"}


@dataclass(frozen=True)
class QuestionSnapshot:
    """
    The question fields scoring reads, copied out of the ORM row so the
    provider calls never trigger a lazy reload (and a new transaction).
    """

    id: int
    question_text: str
    max_score: int
    evaluation_guideline: Optional[str] = None

    @classmethod
    def from_question(cls, question: Question) -> "QuestionSnapshot":
        return cls(
            id=question.id,
            question_text=question.question_text,
            max_score=question.max_score,
            evaluation_guideline=question.evaluation_guideline,
        )


QuestionLike = Union[Question, QuestionSnapshot]


def usable_texts(extracted: Sequence[ExtractedText]) -> List[str]:
    return [
        item.text
        for item in extracted
        if item.success and item.text.strip() and item.text.strip() != NO_READABLE_TEXT
    ]


def compose_answer_text(text_answer: str | None, extracted: Sequence[ExtractedText]) -> str:
    """
    Typed answer and extracted image text as one block for the prompt.

    Raises:
        ExtractionUnavailable: neither a typed answer nor any readable image text.
    """
    parts = []
    if text_answer and text_answer.strip():
        parts.append("Manual Answer:\n" + text_answer.strip())
    texts = usable_texts(extracted)
    if texts:
        parts.append("Extracted from Images:\n" + IMAGE_SEPARATOR.join(texts))
    if not parts:
        raise ExtractionUnavailable("no readable text could be extracted from the answer")
    return "\n\n---\n\n".join(parts)


def build_prompt(question: QuestionLike, answer_text: str) -> str:
    guideline = (question.evaluation_guideline or "").strip() or DEFAULT_RUBRIC
    max_marks = question.max_score
    return f"""Please evaluate this student's answer to the given question using the following evaluation framework.

{guideline}

QUESTION:
{question.question_text}

MAXIMUM MARKS: {max_marks}

STUDENT'S ANSWER:
{answer_text}

Please use the exact section headers as shown below, and do not change their names or order.

ACCURACY: [Score out of 100 - how accurate and relevant the answer is]
MARKS AWARDED: [Marks out of {max_marks}]

STRENGTHS:
- [List 2-3 specific strengths]

WEAKNESSES:
- [List 2-3 areas for improvement]

SUGGESTIONS:
- [List 2-3 specific recommendations]

DETAILED FEEDBACK:
[Provide constructive feedback about the answer]

COMMENTS:
- [3-4 short comments, 5-12 words each]

REMARK:
[1-2 line summary of the overall answer quality]
"""


def _clean(line: str) -> str:
    return _DECORATION.sub("", line.strip())


def parse_evaluation(text: str, max_marks: int) -> EvaluationResult:
    """
    Parse a backend reply written in the section-header grammar of build_prompt.

    Raises:
        EvaluationParseFailure: neither an accuracy nor a marks line was found.
    """
    numbers: dict = {}
    lists = {"strengths": [], "weaknesses": [], "suggestions": [], "comments": []}
    prose = {"feedback": [], "remark": []}
    section = None

    for raw in (text or "").splitlines():
        line = _clean(raw)
        if not line:
            continue

        # a "Score: ..." bullet inside a list is content, not a header
        in_list_item = section is not None and bool(_BULLET.match(raw.strip()))

        numeric_hit = False
        for field, pattern in _NUMERIC_HEADERS.items():
            if in_list_item:
                break
            if pattern.match(line):
                match = _NUMBER.search(pattern.sub("", line, count=1))
                if match:
                    numbers.setdefault(field, float(match.group(1)))
                section = None
                numeric_hit = True
                break
        if numeric_hit:
            continue

        header_hit = False
        for name, pattern in _SECTION_HEADERS.items():
            if pattern.match(line):
                section = name
                line = pattern.sub("", line, count=1).strip()
                header_hit = True
                break
        if section is None or (header_hit and not line):
            continue

        content = _BULLET.sub("", line).strip()
        if not content:
            continue
        if section in _PROSE_SECTIONS:
            prose[section].append(content)
        elif content not in lists[section]:
            lists[section].append(content)

    if not numbers:
        raise EvaluationParseFailure("reply has no ACCURACY or MARKS AWARDED line")

    # one number missing: derive it proportionally from the other
    accuracy = numbers.get("accuracy")
    marks = numbers.get("marks")
    if accuracy is None:
        accuracy = (marks / max_marks) * 100 if max_marks else 0
    if marks is None:
        marks = round(accuracy / 100 * max_marks * 2) / 2

    return EvaluationResult(
        accuracy=int(round(min(100.0, max(0.0, accuracy)))),
        marks=min(float(max_marks), max(0.0, marks)),
        max_marks=max_marks,
        strengths=lists["strengths"],
        weaknesses=lists["weaknesses"],
        suggestions=lists["suggestions"],
        comments=lists["comments"],
        feedback=" ".join(prose["feedback"]),
        remark=" ".join(prose["remark"]),
        source="auto",
    )


def fallback_evaluation(question: QuestionLike, reason: str, extracted_texts: List[str] | None = None) -> EvaluationResult:
    return EvaluationResult(
        accuracy=0,
        marks=0,
        max_marks=question.max_score,
        feedback=(
            "Automatic evaluation could not be completed for this answer. "
            "It has been flagged for another evaluation attempt."
        ),
        remark="Evaluation pending.",
        extracted_texts=extracted_texts or [],
        source="fallback",
        fallback_reason=reason,
        evaluated_at=datetime.now(timezone.utc),
    )


class EvaluationScorer:
    def __init__(self, backends: Sequence[ScoringBackend]):
        self.backends = list(backends)

    def score(
        self,
        question: QuestionLike,
        answer_text: str,
        *,
        extracted_texts: List[str] | None = None,
    ) -> EvaluationResult:
        """Never raises; the worst case is a fallback result."""
        prompt = build_prompt(question, answer_text)
        reason = "no scoring backend is configured"

        for backend in self.backends:
            try:
                backend.ensure_available()
            except ProviderUnavailable as exc:
                logger.info(f"Scoring backend {backend.name} skipped: {exc}")
                continue

            try:
                reply = backend.complete(prompt)
            except Exception as exc:
                reason = f"{backend.name} failed: {exc}"
                logger.warning(f"Scoring backend {backend.name} failed: {exc}")
                continue

            try:
                result = parse_evaluation(reply, question.max_score)
            except EvaluationParseFailure as exc:
                reason = f"{backend.name} reply could not be parsed: {exc}"
                logger.warning(f"Could not parse {backend.name} evaluation: {exc}")
                continue

            result.backend = backend.name
            result.extracted_texts = extracted_texts or []
            result.evaluated_at = datetime.now(timezone.utc)
            logger.info(
                f"Scored question {question.id} with {backend.name}: "
                f"accuracy={result.accuracy}, marks={result.marks}/{question.max_score}"
            )
            return result

        logger.warning(f"Falling back to placeholder evaluation for question {question.id}: {reason}")
        return fallback_evaluation(question, reason, extracted_texts)

    def validate_manual(
        self,
        question: Question,
        payload: ManualEvaluationIn,
        *,
        evaluator_id: str | None = None,
    ) -> EvaluationResult:
        errors = []
        if not 0 <= payload.accuracy <= 100:
            errors.append("accuracy must be between 0 and 100")
        if not 0 <= payload.marks <= question.max_score:
            errors.append(f"marks must be between 0 and {question.max_score}")

        lists = {}
        for field in ("strengths", "weaknesses", "suggestions", "comments"):
            items = [item.strip() for item in getattr(payload, field) if item and item.strip()]
            if len(items) > settings.MAX_FEEDBACK_ITEMS:
                errors.append(f"{field} accepts at most {settings.MAX_FEEDBACK_ITEMS} items")
            lists[field] = items

        if len(payload.remark) > settings.MAX_REMARK_LENGTH:
            errors.append(f"remark must be at most {settings.MAX_REMARK_LENGTH} characters")

        if errors:
            raise InvalidEvaluationPayload("Invalid evaluation", details="; ".join(errors))

        return EvaluationResult(
            accuracy=payload.accuracy,
            marks=payload.marks,
            max_marks=question.max_score,
            feedback=payload.feedback.strip(),
            remark=payload.remark.strip(),
            source="manual",
            evaluated_by=evaluator_id,
            evaluated_at=datetime.now(timezone.utc),
            **lists,
        )


_scorer_instance: EvaluationScorer | None = None


def get_evaluation_scorer() -> EvaluationScorer:
    global _scorer_instance
    if _scorer_instance is None:
        _scorer_instance = EvaluationScorer(build_backends())
    return _scorer_instance
