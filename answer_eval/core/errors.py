"""
Error taxonomy for the submission & evaluation pipeline.

PipelineError subclasses are surfaced to callers (the HTTP layer maps them to
responses by ``code``/``status_code``). The provider/parse errors at the bottom
are internal: the pipeline absorbs them and records the outcome as data.
"""


class PipelineError(Exception):
    code = "PIPELINE_ERROR"
    status_code = 400

    def __init__(self, message: str, *, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or message


class AttemptLimitExceeded(PipelineError):
    code = "LIMIT_EXCEEDED"
    status_code = 400


class TransientAllocationFailure(PipelineError):
    code = "ALLOCATION_CONFLICT"
    status_code = 503


class NoContent(PipelineError):
    code = "NO_CONTENT"
    status_code = 400


class InvalidSubmission(PipelineError):
    code = "INVALID_INPUT"
    status_code = 400


class QuestionNotFound(PipelineError):
    code = "QUESTION_NOT_FOUND"
    status_code = 404


class SubmissionNotFound(PipelineError):
    code = "SUBMISSION_NOT_FOUND"
    status_code = 404


class InvalidEvaluationMode(PipelineError):
    code = "INVALID_EVALUATION_MODE"
    status_code = 400


class AlreadyEvaluated(PipelineError):
    code = "ALREADY_EVALUATED"
    status_code = 409


class InvalidStatusValue(PipelineError):
    code = "INVALID_STATUS"
    status_code = 422


class InvalidStateTransition(PipelineError):
    code = "INVALID_STATE"
    status_code = 409


class InvalidEvaluationPayload(PipelineError):
    code = "INVALID_EVALUATION"
    status_code = 422


# Internal errors, never propagated past the orchestrator


class ProviderUnavailable(Exception):
    """A provider/backend cannot serve any request (no credentials, outage)."""


class ExtractionUnavailable(Exception):
    pass


class EvaluationParseFailure(Exception):
    pass
