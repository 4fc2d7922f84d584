"""Answer submission & evaluation service."""
from answer_eval.db.session import engine
from answer_eval.db.base import Base


def init_db(bind=None):
    # questions, submissions and the status history table
    Base.metadata.create_all(bind=bind or engine)
