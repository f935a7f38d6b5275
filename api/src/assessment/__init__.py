"""Quiz assessment.

Provides:
- Deterministic scoring of learner responses
- Attempt lifecycle with server-side limits and deadlines
- Background reclaim of overdue attempts
"""

from .models import ASSESSMENT_TABLES_CQL, AttemptState, QuizAttempt
from .scoring import AttemptScore, ScoreResult, score, score_attempt
from .service import (
    AssessmentError,
    AttemptClosedError,
    AttemptInProgressError,
    AttemptManager,
    AttemptNotFoundError,
    AttemptsExhaustedError,
)


__all__ = [
    "ASSESSMENT_TABLES_CQL",
    "AssessmentError",
    "AttemptClosedError",
    "AttemptInProgressError",
    "AttemptManager",
    "AttemptNotFoundError",
    "AttemptScore",
    "AttemptState",
    "AttemptsExhaustedError",
    "QuizAttempt",
    "ScoreResult",
    "score",
    "score_attempt",
]
