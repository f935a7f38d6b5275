"""Quiz attempt lifecycle.

Business logic for:
- Starting attempts within the attempt cap, one open attempt at a time
- Recording responses while the attempt is open and on time
- Submission, server-side deadline enforcement and scoring
- Reclaiming overdue attempts (timed and abandoned untimed ones)
- Question delivery in the attempt's order

Callers serialize work on one (learner, quiz) pair; ``expire_overdue`` takes
that lock itself since it runs outside any request.
"""

import random
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

import structlog

from src.assessment.models import AttemptState, QuizAttempt
from src.assessment.scoring import InvalidAnswerError, score_attempt, serialize_answer
from src.catalog.models import Part, Question, Quiz
from src.core.clock import Clock, utc_now


if TYPE_CHECKING:
    from src.assessment.repository import AttemptRepository
    from src.catalog.service import CatalogService
    from src.core.locks import KeyedLock
    from src.progress.service import ProgressService


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class AssessmentError(Exception):
    """Base assessment error."""

    def __init__(self, message: str, code: str = "assessment_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class AttemptsExhaustedError(AssessmentError):
    """Learner already used every allowed attempt."""

    def __init__(self, message: str = "No attempts left for this quiz"):
        super().__init__(message, "attempts_exhausted")


class AttemptInProgressError(AssessmentError):
    """An open attempt already exists for this quiz."""

    def __init__(self, message: str = "An attempt is already in progress"):
        super().__init__(message, "attempt_in_progress")


class AttemptClosedError(AssessmentError):
    """Attempt no longer accepts responses."""

    def __init__(self, message: str = "Attempt is closed"):
        super().__init__(message, "attempt_closed")


class AttemptNotFoundError(AssessmentError):
    """Attempt not found (or not owned by the learner)."""

    def __init__(self, message: str = "Attempt not found"):
        super().__init__(message, "attempt_not_found")


class QuizNotFoundError(AssessmentError):
    """Quiz not found."""

    def __init__(self, message: str = "Quiz not found"):
        super().__init__(message, "quiz_not_found")


class QuestionNotFoundError(AssessmentError):
    """Question does not belong to the attempt's quiz."""

    def __init__(self, message: str = "Question not found in quiz"):
        super().__init__(message, "question_not_found")


class InvalidResponseError(AssessmentError):
    """Answer does not fit the question."""

    def __init__(self, message: str = "Invalid answer"):
        super().__init__(message, "invalid_answer")


# ==============================================================================
# Attempt Manager
# ==============================================================================


class AttemptManager:
    """Owns creation, response recording, timeout and submission of attempts."""

    def __init__(
        self,
        attempts: "AttemptRepository",
        catalog: "CatalogService",
        progress: "ProgressService",
        locks: "KeyedLock",
        untimed_expiry: timedelta | None = timedelta(days=7),
        clock: Clock = utc_now,
    ):
        self.attempts = attempts
        self.catalog = catalog
        self.progress = progress
        self.locks = locks
        self.untimed_expiry = untimed_expiry
        self.clock = clock

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _load_quiz(self, quiz_id: UUID) -> tuple[Quiz, Part]:
        quiz = await self.catalog.get_quiz(quiz_id)
        if quiz is None:
            raise QuizNotFoundError
        part = await self.catalog.get_part(quiz.part_id)
        if part is None:
            raise QuizNotFoundError("Quiz part not found")
        return quiz, part

    async def _owned_attempt(self, attempt_id: UUID, learner_id: UUID) -> QuizAttempt:
        attempt = await self.attempts.get_attempt(attempt_id)
        if attempt is None or attempt.learner_id != learner_id:
            raise AttemptNotFoundError
        return attempt

    async def _finalize(
        self,
        attempt: QuizAttempt,
        quiz: Quiz,
        state: AttemptState,
    ) -> QuizAttempt:
        """Score and close an open attempt, then refresh course progress."""
        now = self.clock()
        questions = await self.catalog.list_questions(quiz.id)
        result = score_attempt(questions, attempt.responses)

        attempt.state = state.value
        attempt.raw_score = result.raw_score
        attempt.max_score = result.max_score
        attempt.percent_score = result.percent_score
        attempt.passed = result.percent_score >= Decimal(quiz.pass_threshold_percent)
        attempt.pending_review = result.pending_review
        attempt.details = [detail.to_dict() for detail in result.details]
        attempt.finished_at = now

        await self.attempts.save_attempt(attempt)

        logger.info(
            "attempt_finalized",
            attempt_id=str(attempt.id),
            learner_id=str(attempt.learner_id),
            quiz_id=str(attempt.quiz_id),
            attempt_number=attempt.attempt_number,
            state=attempt.state,
            percent_score=str(attempt.percent_score),
            passed=attempt.passed,
            pending_review=attempt.pending_review,
        )

        await self.progress.refresh_after_change(attempt.learner_id, attempt.course_id)
        return attempt

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start_attempt(self, learner_id: UUID, quiz_id: UUID) -> QuizAttempt:
        """Create the learner's next attempt on a quiz.

        Raises:
            PartLockedError: If the quiz part is not yet available
            AttemptsExhaustedError: If the attempt cap is reached
            AttemptInProgressError: If an open attempt exists
        """
        quiz, part = await self._load_quiz(quiz_id)
        await self.progress.ensure_part_available(learner_id, part)

        existing = await self.attempts.list_attempts(learner_id, quiz_id)

        now = self.clock()
        for attempt in existing:
            if attempt.is_overdue(now, self.untimed_expiry):
                await self._finalize(attempt, quiz, AttemptState.TIMED_OUT)

        closed = sum(1 for a in existing if not a.is_open)
        if closed >= quiz.max_attempts:
            raise AttemptsExhaustedError
        if any(a.is_open for a in existing):
            raise AttemptInProgressError

        questions = await self.catalog.list_questions(quiz_id)
        attempt_id = uuid4()
        order = [q.id for q in questions]
        if quiz.shuffle_questions:
            random.Random(attempt_id.int).shuffle(order)

        now = self.clock()
        attempt = QuizAttempt(
            id=attempt_id,
            learner_id=learner_id,
            quiz_id=quiz_id,
            part_id=part.id,
            course_id=part.course_id,
            attempt_number=len(existing) + 1,
            state=AttemptState.OPEN.value,
            question_order=order,
            started_at=now,
            deadline_at=(
                now + timedelta(seconds=quiz.time_limit_seconds)
                if quiz.is_timed
                else None
            ),
            last_activity_at=now,
        )

        if not await self.attempts.create_attempt(attempt):
            # Another writer took this attempt number first
            raise AttemptInProgressError

        logger.info(
            "attempt_started",
            attempt_id=str(attempt.id),
            learner_id=str(learner_id),
            quiz_id=str(quiz_id),
            attempt_number=attempt.attempt_number,
            deadline_at=attempt.deadline_at.isoformat() if attempt.deadline_at else None,
        )
        return attempt

    async def record_response(
        self,
        learner_id: UUID,
        attempt_id: UUID,
        question_id: UUID,
        answer: Any,
    ) -> QuizAttempt:
        """Store (or overwrite) the answer to one question.

        An attempt found past its deadline is closed as timed out and the
        answer is rejected.

        Raises:
            AttemptNotFoundError: If the attempt is unknown to this learner
            AttemptClosedError: If the attempt is closed or overdue
            PartLockedError: If the quiz part is not available
            QuestionNotFoundError: If the question is not in the quiz
            InvalidResponseError: If the answer does not fit the question
        """
        attempt = await self._owned_attempt(attempt_id, learner_id)
        if not attempt.is_open:
            raise AttemptClosedError

        quiz, part = await self._load_quiz(attempt.quiz_id)

        if attempt.is_overdue(self.clock(), self.untimed_expiry):
            await self._finalize(attempt, quiz, AttemptState.TIMED_OUT)
            raise AttemptClosedError("Attempt deadline has passed")

        await self.progress.ensure_part_available(learner_id, part)

        questions = await self.catalog.list_questions(quiz.id)
        question = next((q for q in questions if q.id == question_id), None)
        if question is None:
            raise QuestionNotFoundError

        try:
            attempt.responses[str(question_id)] = serialize_answer(question, answer)
        except InvalidAnswerError as e:
            raise InvalidResponseError(str(e)) from e

        attempt.last_activity_at = self.clock()
        await self.attempts.save_attempt(attempt)

        logger.debug(
            "attempt_response_recorded",
            attempt_id=str(attempt.id),
            question_id=str(question_id),
            answered=len(attempt.responses),
        )
        return attempt

    async def submit(self, learner_id: UUID, attempt_id: UUID) -> QuizAttempt:
        """Close and score an attempt.

        Already closed attempts are returned as stored. Past the deadline the
        attempt closes as timed out, whatever the client sends.
        """
        attempt = await self._owned_attempt(attempt_id, learner_id)
        if not attempt.is_open:
            return attempt

        quiz, _ = await self._load_quiz(attempt.quiz_id)
        state = (
            AttemptState.TIMED_OUT
            if attempt.is_overdue(self.clock(), self.untimed_expiry)
            else AttemptState.SUBMITTED
        )
        return await self._finalize(attempt, quiz, state)

    async def expire_overdue(self) -> int:
        """Close every overdue open attempt as timed out.

        Returns:
            Number of attempts closed
        """
        expired = 0
        for candidate in await self.attempts.list_open_attempts():
            if not candidate.is_overdue(self.clock(), self.untimed_expiry):
                continue

            async with self.locks.hold("quiz", candidate.learner_id, candidate.quiz_id):
                # Re-read under the lock, a submit may have won the race
                attempt = await self.attempts.get_attempt(candidate.id)
                if attempt is None or not attempt.is_overdue(
                    self.clock(), self.untimed_expiry
                ):
                    continue

                quiz = await self.catalog.get_quiz(attempt.quiz_id)
                if quiz is None:
                    logger.warning("attempt_quiz_missing", attempt_id=str(attempt.id))
                    continue

                await self._finalize(attempt, quiz, AttemptState.TIMED_OUT)
                expired += 1

        if expired:
            logger.info("overdue_attempts_expired", count=expired)
        return expired

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_attempt(self, learner_id: UUID, attempt_id: UUID) -> QuizAttempt:
        """Read one attempt as stored."""
        return await self._owned_attempt(attempt_id, learner_id)

    async def list_attempts(self, learner_id: UUID, quiz_id: UUID) -> list[QuizAttempt]:
        """Read every attempt of a learner on a quiz."""
        return await self.attempts.list_attempts(learner_id, quiz_id)

    async def get_quiz(self, quiz_id: UUID) -> Quiz:
        quiz, _ = await self._load_quiz(quiz_id)
        return quiz

    async def get_delivery(
        self, learner_id: UUID, attempt_id: UUID
    ) -> tuple[QuizAttempt, Quiz, list[Question]]:
        """Attempt, quiz and questions in the attempt's delivery order."""
        attempt = await self._owned_attempt(attempt_id, learner_id)
        quiz, _ = await self._load_quiz(attempt.quiz_id)
        questions = await self.catalog.list_questions(quiz.id)

        rank = {question_id: index for index, question_id in enumerate(attempt.question_order)}
        ordered = sorted(
            questions, key=lambda q: (rank.get(q.id, len(rank)), q.position)
        )
        return attempt, quiz, ordered
