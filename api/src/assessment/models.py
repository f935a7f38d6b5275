"""Database models for quiz attempts.

Cassandra table definitions for:
- Quiz attempts: one row per (learner, quiz, attempt_number)
- Lookup by attempt id
- Open attempts index: scanned by the deadline sweeper

Architecture: Dual-write pattern, the attempt row is the source of truth and
the lookup/index rows are maintained alongside it.
"""

import json
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from src.core.clock import ensure_utc_aware, utc_now


class AttemptState(str, Enum):
    """Quiz attempt lifecycle state. Only ``open`` accepts changes."""

    OPEN = "open"
    SUBMITTED = "submitted"
    TIMED_OUT = "timed_out"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Attempts of one learner on one quiz, clustered by attempt number.
# responses and details are JSON text.
QUIZ_ATTEMPTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_attempts (
    learner_id UUID,
    quiz_id UUID,
    attempt_number INT,
    id UUID,
    part_id UUID,
    course_id UUID,
    state TEXT,
    responses TEXT,
    question_order LIST<UUID>,
    raw_score DECIMAL,
    max_score DECIMAL,
    percent_score DECIMAL,
    passed BOOLEAN,
    pending_review INT,
    details TEXT,
    started_at TIMESTAMP,
    deadline_at TIMESTAMP,
    last_activity_at TIMESTAMP,
    finished_at TIMESTAMP,
    PRIMARY KEY ((learner_id, quiz_id), attempt_number)
) WITH CLUSTERING ORDER BY (attempt_number ASC)
"""

# Lookup: attempt id -> attempt key
QUIZ_ATTEMPTS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_attempts_by_id (
    id UUID PRIMARY KEY,
    learner_id UUID,
    quiz_id UUID,
    attempt_number INT
)
"""

# Open attempts, single partition per shard, removed on finalization
OPEN_QUIZ_ATTEMPTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.open_quiz_attempts (
    shard INT,
    id UUID,
    learner_id UUID,
    quiz_id UUID,
    attempt_number INT,
    deadline_at TIMESTAMP,
    last_activity_at TIMESTAMP,
    PRIMARY KEY (shard, id)
)
"""

ASSESSMENT_TABLES_CQL = [
    QUIZ_ATTEMPTS_TABLE_CQL,
    QUIZ_ATTEMPTS_BY_ID_TABLE_CQL,
    OPEN_QUIZ_ATTEMPTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class QuizAttempt:
    """One scored run of a quiz by one learner.

    Attributes:
        id: Surrogate attempt UUID (used by clients)
        learner_id: Learner UUID
        quiz_id: Quiz UUID
        part_id: Quiz part UUID
        course_id: Course UUID (for progress recompute)
        attempt_number: 1-based, dense per (learner, quiz)
        state: open, submitted or timed_out
        responses: question_id (str) -> stored answer
        question_order: Delivery order of question ids
        raw_score: Points awarded (set on finalization)
        max_score: Points possible (set on finalization)
        percent_score: raw/max as a percentage (set on finalization)
        passed: percent_score >= quiz pass threshold
        pending_review: Number of free-text answers awaiting review
        details: Per-question grading results
        started_at: Server time the attempt was created
        deadline_at: started_at + time limit, None when untimed
        last_activity_at: Server time of the last accepted change
        finished_at: Server time of finalization
    """

    def __init__(
        self,
        id: UUID,
        learner_id: UUID,
        quiz_id: UUID,
        part_id: UUID,
        course_id: UUID,
        attempt_number: int,
        state: str = AttemptState.OPEN.value,
        responses: dict[str, Any] | None = None,
        question_order: list[UUID] | None = None,
        raw_score: Decimal | None = None,
        max_score: Decimal | None = None,
        percent_score: Decimal | None = None,
        passed: bool = False,
        pending_review: int = 0,
        details: list[dict[str, Any]] | None = None,
        started_at: datetime | None = None,
        deadline_at: datetime | None = None,
        last_activity_at: datetime | None = None,
        finished_at: datetime | None = None,
    ):
        self.id = id
        self.learner_id = learner_id
        self.quiz_id = quiz_id
        self.part_id = part_id
        self.course_id = course_id
        self.attempt_number = attempt_number
        self.state = state
        self.responses = responses or {}
        self.question_order = question_order or []
        self.raw_score = raw_score
        self.max_score = max_score
        self.percent_score = percent_score
        self.passed = passed
        self.pending_review = pending_review
        self.details = details or []
        self.started_at = ensure_utc_aware(started_at) or utc_now()
        self.deadline_at = ensure_utc_aware(deadline_at)
        self.last_activity_at = ensure_utc_aware(last_activity_at) or self.started_at
        self.finished_at = ensure_utc_aware(finished_at)

    @property
    def is_open(self) -> bool:
        return self.state == AttemptState.OPEN.value

    def is_overdue(self, now: datetime, untimed_expiry: timedelta | None = None) -> bool:
        """Open attempt past its deadline, or untimed and idle too long."""
        if not self.is_open:
            return False
        if self.deadline_at is not None:
            return now >= self.deadline_at
        if untimed_expiry is not None:
            return now - self.last_activity_at >= untimed_expiry
        return False

    def time_spent_seconds(self, time_limit_seconds: int | None = None) -> int:
        """Seconds spent on a finalized attempt, capped at the time limit.

        Reclaimed attempts count up to their last activity, not the reclaim.
        """
        if self.is_open:
            return 0
        end = (
            self.last_activity_at
            if self.state == AttemptState.TIMED_OUT.value
            else self.finished_at
        )
        if end is None:
            return 0
        elapsed = max(0, int((end - self.started_at).total_seconds()))
        if time_limit_seconds:
            elapsed = min(elapsed, time_limit_seconds)
        return elapsed

    @classmethod
    def from_row(cls, row: Any) -> "QuizAttempt":
        """Create QuizAttempt instance from Cassandra row."""
        return cls(
            id=row.id,
            learner_id=row.learner_id,
            quiz_id=row.quiz_id,
            part_id=row.part_id,
            course_id=row.course_id,
            attempt_number=row.attempt_number,
            state=row.state or AttemptState.OPEN.value,
            responses=json.loads(row.responses) if row.responses else {},
            question_order=list(row.question_order or []),
            raw_score=row.raw_score,
            max_score=row.max_score,
            percent_score=row.percent_score,
            passed=bool(row.passed),
            pending_review=row.pending_review or 0,
            details=json.loads(row.details) if row.details else [],
            started_at=row.started_at,
            deadline_at=row.deadline_at,
            last_activity_at=row.last_activity_at,
            finished_at=row.finished_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "learner_id": self.learner_id,
            "quiz_id": self.quiz_id,
            "part_id": self.part_id,
            "course_id": self.course_id,
            "attempt_number": self.attempt_number,
            "state": self.state,
            "responses": self.responses,
            "question_order": self.question_order,
            "raw_score": self.raw_score,
            "max_score": self.max_score,
            "percent_score": self.percent_score,
            "passed": self.passed,
            "pending_review": self.pending_review,
            "details": self.details,
            "started_at": self.started_at,
            "deadline_at": self.deadline_at,
            "last_activity_at": self.last_activity_at,
            "finished_at": self.finished_at,
        }

    def __repr__(self) -> str:
        return (
            f"<QuizAttempt learner={self.learner_id} quiz={self.quiz_id} "
            f"#{self.attempt_number} {self.state}>"
        )
