# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Quiz attempt persistence."""

import json
from typing import TYPE_CHECKING
from uuid import UUID

from src.assessment.models import QuizAttempt


if TYPE_CHECKING:
    from cassandra.cluster import Session


# Every open attempt lives in one index partition
OPEN_ATTEMPTS_SHARD = 0


class AttemptRepository:
    """Cassandra storage for quiz attempts."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._list_attempts = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_attempts
            WHERE learner_id = ? AND quiz_id = ?
        """)

        self._get_attempt = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_attempts
            WHERE learner_id = ? AND quiz_id = ? AND attempt_number = ?
        """)

        self._get_attempt_key = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_attempts_by_id WHERE id = ?
        """)

        columns = """
            (learner_id, quiz_id, attempt_number, id, part_id, course_id, state,
             responses, question_order, raw_score, max_score, percent_score,
             passed, pending_review, details, started_at, deadline_at,
             last_activity_at, finished_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """

        # Attempt numbers are never reused
        self._insert_attempt = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quiz_attempts {columns} IF NOT EXISTS
        """)

        self._upsert_attempt = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quiz_attempts {columns}
        """)

        self._insert_attempt_key = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quiz_attempts_by_id
            (id, learner_id, quiz_id, attempt_number)
            VALUES (?, ?, ?, ?)
        """)

        self._upsert_open_attempt = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.open_quiz_attempts
            (shard, id, learner_id, quiz_id, attempt_number, deadline_at,
             last_activity_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        self._delete_open_attempt = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.open_quiz_attempts
            WHERE shard = ? AND id = ?
        """)

        self._list_open_attempts = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.open_quiz_attempts WHERE shard = ?
        """)

    def _attempt_params(self, attempt: QuizAttempt) -> list:
        return [
            attempt.learner_id,
            attempt.quiz_id,
            attempt.attempt_number,
            attempt.id,
            attempt.part_id,
            attempt.course_id,
            attempt.state,
            json.dumps(attempt.responses),
            attempt.question_order,
            attempt.raw_score,
            attempt.max_score,
            attempt.percent_score,
            attempt.passed,
            attempt.pending_review,
            json.dumps(attempt.details),
            attempt.started_at,
            attempt.deadline_at,
            attempt.last_activity_at,
            attempt.finished_at,
        ]

    async def list_attempts(self, learner_id: UUID, quiz_id: UUID) -> list[QuizAttempt]:
        """All attempts of a learner on a quiz, by attempt number."""
        rows = await self.session.aexecute(self._list_attempts, [learner_id, quiz_id])
        attempts = [QuizAttempt.from_row(row) for row in rows]
        return sorted(attempts, key=lambda a: a.attempt_number)

    async def get_attempt(self, attempt_id: UUID) -> QuizAttempt | None:
        """Get attempt by its surrogate id."""
        result = await self.session.aexecute(self._get_attempt_key, [attempt_id])
        key = result.one()
        if not key:
            return None

        result = await self.session.aexecute(
            self._get_attempt, [key.learner_id, key.quiz_id, key.attempt_number]
        )
        row = result.one()
        return QuizAttempt.from_row(row) if row else None

    async def create_attempt(self, attempt: QuizAttempt) -> bool:
        """Insert a new attempt.

        Returns:
            False if the attempt number was already taken
        """
        result = await self.session.aexecute(
            self._insert_attempt, self._attempt_params(attempt)
        )
        if not result.was_applied:
            return False

        await self.session.aexecute(
            self._insert_attempt_key,
            [attempt.id, attempt.learner_id, attempt.quiz_id, attempt.attempt_number],
        )
        await self._sync_open_index(attempt)
        return True

    async def save_attempt(self, attempt: QuizAttempt) -> None:
        """Persist attempt changes and keep the open index in step."""
        await self.session.aexecute(self._upsert_attempt, self._attempt_params(attempt))
        await self._sync_open_index(attempt)

    async def _sync_open_index(self, attempt: QuizAttempt) -> None:
        if attempt.is_open:
            await self.session.aexecute(
                self._upsert_open_attempt,
                [
                    OPEN_ATTEMPTS_SHARD,
                    attempt.id,
                    attempt.learner_id,
                    attempt.quiz_id,
                    attempt.attempt_number,
                    attempt.deadline_at,
                    attempt.last_activity_at,
                ],
            )
        else:
            await self.session.aexecute(
                self._delete_open_attempt, [OPEN_ATTEMPTS_SHARD, attempt.id]
            )

    async def list_open_attempts(self) -> list[QuizAttempt]:
        """Every attempt still open, as last recorded."""
        rows = await self.session.aexecute(
            self._list_open_attempts, [OPEN_ATTEMPTS_SHARD]
        )
        attempts = []
        for row in rows:
            result = await self.session.aexecute(
                self._get_attempt, [row.learner_id, row.quiz_id, row.attempt_number]
            )
            attempt_row = result.one()
            if attempt_row:
                attempts.append(QuizAttempt.from_row(attempt_row))
        return attempts
