# answer_eval/models/status.py
from enum import Enum


class MainStatus(str, Enum):
    PENDING = "pending"
    REJECTED = "rejected"
    PUBLISHED = "published"
    NOT_PUBLISHED = "not_published"


class ReviewStatus(str, Enum):
    REVIEW_PENDING = "review_pending"
    REVIEW_ACCEPTED = "review_accepted"
    REVIEW_COMPLETED = "review_completed"


class EvaluationStatus(str, Enum):
    NOT_EVALUATED = "not_evaluated"
    AUTO_EVALUATED = "auto_evaluated"
    MANUAL_EVALUATED = "manual_evaluated"
    EVALUATION_FAILED = "evaluation_failed"


class PopularityStatus(str, Enum):
    POPULAR = "popular"
    NOT_POPULAR = "not_popular"


class EvaluationMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class StatusAxis(str, Enum):
    MAIN = "main"
    REVIEW = "review"
    EVALUATION = "evaluation"
    POPULARITY = "popularity"


# axis -> (Submission column, allowed values)
AXIS_COLUMNS = {
    StatusAxis.MAIN: "main_status",
    StatusAxis.REVIEW: "review_status",
    StatusAxis.EVALUATION: "evaluation_status",
    StatusAxis.POPULARITY: "popularity_status",
}

AXIS_VALUES = {
    StatusAxis.MAIN: MainStatus,
    StatusAxis.REVIEW: ReviewStatus,
    StatusAxis.EVALUATION: EvaluationStatus,
    StatusAxis.POPULARITY: PopularityStatus,
}

INITIAL_STATUSES = {
    "main_status": MainStatus.PENDING.value,
    "review_status": ReviewStatus.REVIEW_PENDING.value,
    "evaluation_status": EvaluationStatus.NOT_EVALUATED.value,
    "popularity_status": PopularityStatus.NOT_POPULAR.value,
}
