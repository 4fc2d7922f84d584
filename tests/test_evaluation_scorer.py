"""
Evaluation scorer: reply parsing, backend fallback, manual validation.
"""

import pytest

from answer_eval.core.errors import (
    EvaluationParseFailure,
    ExtractionUnavailable,
    InvalidEvaluationPayload,
)
from answer_eval.models.question import Question
from answer_eval.schemas.evaluation import ExtractedText, ManualEvaluationIn
from answer_eval.services.evaluation_scorer import (
    DEFAULT_RUBRIC,
    EvaluationScorer,
    QuestionSnapshot,
    build_prompt,
    compose_answer_text,
    parse_evaluation,
)
from answer_eval.services.extraction_providers import NO_READABLE_TEXT, failed
from tests.conftest import GOOD_REPLY, ScriptedBackend


@pytest.fixture
def question():
    return Question(
        id=1,
        tenant_id="tenant-1",
        question_text="Explain the water cycle.",
        max_score=10,
        evaluation_mode="auto",
    )


class TestParseEvaluation:
    def test_full_reply(self):
        result = parse_evaluation(GOOD_REPLY, 10)

        assert result.accuracy == 80
        assert result.marks == 8
        assert result.max_marks == 10
        assert result.strengths == ["Clear definition of the term", "Relevant example"]
        assert result.weaknesses == ["Conclusion is thin"]
        assert result.suggestions == ["Add a data point in the introduction"]
        assert result.comments == ["Good use of headings", "Needs a stronger close"]
        assert result.feedback == "A well structured answer that covers the main demand."
        assert result.remark == "Solid answer overall."
        assert result.source == "auto"

    def test_markdown_decorated_headers(self):
        reply = (
            "**Accuracy:** 92\n"
            "**Marks Awarded:** 9/10\n\n"
            "**Strengths:**\n"
            "* Precise\n"
            "* Precise\n"
            "### Remark: Excellent work\n"
        )
        result = parse_evaluation(reply, 10)

        assert result.accuracy == 92
        assert result.marks == 9
        assert result.strengths == ["Precise"]
        assert result.remark == "Excellent work"

    def test_alternative_header_names(self):
        reply = "Relevancy: 70\nScore: 14\nFeedback: Covers the basics."
        result = parse_evaluation(reply, 20)

        assert result.accuracy == 70
        assert result.marks == 14
        assert result.feedback == "Covers the basics."

    def test_marks_only_derives_accuracy(self):
        result = parse_evaluation("MARKS AWARDED: 6", 10)
        assert result.accuracy == 60
        assert result.marks == 6

    def test_accuracy_only_derives_marks(self):
        result = parse_evaluation("ACCURACY: 75", 10)
        assert result.marks == 7.5

    def test_values_are_clamped(self):
        result = parse_evaluation("ACCURACY: 140\nMARKS AWARDED: 15", 10)
        assert result.accuracy == 100
        assert result.marks == 10

    def test_reply_without_numbers_fails(self):
        with pytest.raises(EvaluationParseFailure):
            parse_evaluation("I am unable to grade this answer.", 10)

    def test_score_bullet_inside_list_keeps_section(self):
        reply = """ACCURACY: 70
MARKS AWARDED: 7

STRENGTHS:
* Score: strong structure throughout
- Relevant example
* Marks: well chosen data points

WEAKNESSES:
- Conclusion is thin
"""
        result = parse_evaluation(reply, 10)

        assert result.accuracy == 70
        assert result.marks == 7
        assert result.strengths == [
            "Score: strong structure throughout",
            "Relevant example",
            "Marks: well chosen data points",
        ]
        assert result.weaknesses == ["Conclusion is thin"]

    def test_numeric_header_after_list_ends_section(self):
        result = parse_evaluation("STRENGTHS:\n- Clear\nMARKS AWARDED: 6\nnot a strength", 10)

        assert result.marks == 6
        assert result.strengths == ["Clear"]


class TestComposeAnswerText:
    def test_text_and_images_are_combined(self):
        extracted = [
            ExtractedText(text="page one", success=True, provider="ocr"),
            failed("ocr", "timeout"),
            ExtractedText(text=NO_READABLE_TEXT, success=True, provider="ocr"),
            ExtractedText(text="page four", success=True, provider="ocr"),
        ]
        combined = compose_answer_text("typed part", extracted)

        assert combined.startswith("Manual Answer:\ntyped part")
        assert "Extracted from Images:\npage one" in combined
        assert "page four" in combined
        assert "timeout" not in combined
        assert NO_READABLE_TEXT not in combined

    def test_nothing_readable_raises(self):
        with pytest.raises(ExtractionUnavailable):
            compose_answer_text("  ", [failed("ocr", "timeout")])


class TestBuildPrompt:
    def test_uses_question_guideline(self, question):
        question.evaluation_guideline = "Award marks for naming all four stages."
        prompt = build_prompt(question, "answer")

        assert "Award marks for naming all four stages." in prompt
        assert DEFAULT_RUBRIC not in prompt
        assert "MAXIMUM MARKS: 10" in prompt

    def test_blank_guideline_uses_default_rubric(self, question):
        question.evaluation_guideline = "   "
        assert DEFAULT_RUBRIC in build_prompt(question, "answer")

    def test_snapshot_matches_orm_question(self, question):
        question.evaluation_guideline = "Award marks for naming all four stages."
        snapshot = QuestionSnapshot.from_question(question)

        assert snapshot.max_score == 10
        assert build_prompt(snapshot, "answer") == build_prompt(question, "answer")


class TestScore:
    def test_first_usable_backend_wins(self, question):
        first = ScriptedBackend("first", available=False)
        second = ScriptedBackend("second")
        third = ScriptedBackend("third")

        result = EvaluationScorer([first, second, third]).score(
            question, "answer", extracted_texts=["page one"]
        )

        assert result.backend == "second"
        assert result.accuracy == 80
        assert result.extracted_texts == ["page one"]
        assert result.evaluated_at is not None
        assert first.prompts == [] and third.prompts == []

    def test_failing_and_unparseable_backends_fall_through(self, question):
        broken = ScriptedBackend("broken", reply=RuntimeError("503"))
        chatty = ScriptedBackend("chatty", reply="Nice answer!")
        good = ScriptedBackend("good")

        result = EvaluationScorer([broken, chatty, good]).score(question, "answer")

        assert result.backend == "good"
        assert not result.is_fallback

    def test_fallback_when_nothing_works(self, question):
        result = EvaluationScorer([ScriptedBackend("chatty", reply="Nice answer!")]).score(
            question, "answer"
        )

        assert result.is_fallback
        assert result.source == "fallback"
        assert result.accuracy == 0
        assert result.marks == 0
        assert result.max_marks == 10
        assert "chatty" in result.fallback_reason

    def test_fallback_without_backends(self, question):
        result = EvaluationScorer([]).score(question, "answer")
        assert result.is_fallback
        assert result.fallback_reason == "no scoring backend is configured"


class TestValidateManual:
    def test_valid_payload(self, question):
        payload = ManualEvaluationIn(
            accuracy=85, marks=8.5, strengths=[" Good ", ""], remark="Well done"
        )
        result = EvaluationScorer([]).validate_manual(question, payload, evaluator_id="eval-1")

        assert result.source == "manual"
        assert result.evaluated_by == "eval-1"
        assert result.strengths == ["Good"]
        assert result.max_marks == 10

    @pytest.mark.parametrize(
        "payload",
        [
            ManualEvaluationIn(accuracy=101, marks=5),
            ManualEvaluationIn(accuracy=50, marks=11),
            ManualEvaluationIn(accuracy=50, marks=-1),
            ManualEvaluationIn(accuracy=50, marks=5, comments=["c"] * 11),
            ManualEvaluationIn(accuracy=50, marks=5, remark="x" * 2251),
        ],
    )
    def test_invalid_payload(self, question, payload):
        with pytest.raises(InvalidEvaluationPayload) as exc_info:
            EvaluationScorer([]).validate_manual(question, payload)
        assert exc_info.value.code == "INVALID_EVALUATION"
