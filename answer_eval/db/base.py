# answer_eval/db/base.py
from sqlalchemy.orm import declarative_base

Base = declarative_base()

from answer_eval.models.question import Question  # noqa
from answer_eval.models.submission import Submission, SubmissionStatusHistory  # noqa
