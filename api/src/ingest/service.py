"""Event ingestion.

Validates inbound events (shape and referential existence) before any state
changes, then dispatches them to the progress tracker or the attempt manager
under a per-resource lock:
- ("part", learner, part) for progress events
- ("quiz", learner, quiz) for every quiz action

Events on different resources proceed concurrently.
"""

from typing import TYPE_CHECKING, Any, NoReturn

import structlog
from pydantic import ValidationError

from src.assessment.models import QuizAttempt
from src.assessment.scoring import InvalidAnswerError, normalize_answer
from src.assessment.service import AttemptNotFoundError
from src.catalog.models import Part, PartType, Quiz
from src.core.context import set_learner_id
from src.progress.models import PartProgress

from .schemas import ProgressEventIn, QuizAction, QuizEventIn


if TYPE_CHECKING:
    from src.assessment.service import AttemptManager
    from src.catalog.service import CatalogService
    from src.core.locks import KeyedLock
    from src.progress.service import ProgressService


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class EventValidationError(Exception):
    """Event rejected before dispatch; nothing was changed."""

    def __init__(self, message: str, code: str = "invalid_event"):
        self.message = message
        self.code = code
        super().__init__(message)


# ==============================================================================
# Event Ingestor
# ==============================================================================


class EventIngestor:
    """Entry point for progress and quiz events."""

    def __init__(
        self,
        catalog: "CatalogService",
        progress: "ProgressService",
        attempts: "AttemptManager",
        locks: "KeyedLock",
    ):
        self.catalog = catalog
        self.progress = progress
        self.attempts = attempts
        self.locks = locks

    @staticmethod
    def parse_event(payload: dict[str, Any]) -> ProgressEventIn | QuizEventIn:
        """Parse a raw event (e.g. from a queue); quiz events carry ``quiz_id``.

        Raises:
            EventValidationError: If the payload is malformed
        """
        model = QuizEventIn if "quiz_id" in payload else ProgressEventIn
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise EventValidationError(
                f"Malformed event: {e.error_count()} error(s)", "invalid_event"
            ) from e

    async def ingest(self, payload: dict[str, Any]) -> PartProgress | QuizAttempt:
        """Parse and process a raw event."""
        event = self.parse_event(payload)
        if isinstance(event, QuizEventIn):
            return await self.ingest_quiz(event)
        return await self.ingest_progress(event)

    # ==========================================================================
    # Validation
    # ==========================================================================

    def _reject(self, code: str, message: str, **fields: Any) -> NoReturn:
        logger.info("event_rejected", code=code, **fields)
        raise EventValidationError(message, code)

    async def _require_enrollment(self, event: Any, part: Part) -> None:
        enrollment = await self.progress.get_enrollment(event.learner_id, part.course_id)
        if enrollment is None:
            self._reject(
                "not_enrolled",
                "Learner is not enrolled in the part's course",
                learner_id=str(event.learner_id),
                course_id=str(part.course_id),
            )

    async def _validate_progress(self, event: ProgressEventIn) -> Part:
        part = await self.catalog.get_part(event.part_id)
        if part is None:
            self._reject("unknown_part", "Unknown part", part_id=str(event.part_id))
        if part.part_type == PartType.QUIZ:
            self._reject(
                "wrong_part_type",
                "Quiz parts take quiz events",
                part_id=str(part.id),
            )
        if event.acknowledged and part.part_type != PartType.DOCUMENT:
            self._reject(
                "wrong_part_type",
                "Only document parts can be acknowledged",
                part_id=str(part.id),
            )
        if not event.acknowledged and not (part.duration_seconds or event.duration):
            self._reject(
                "invalid_event",
                "duration is required for parts without a known length",
                part_id=str(part.id),
            )
        await self._require_enrollment(event, part)
        return part

    async def _validate_quiz(self, event: QuizEventIn) -> tuple[Quiz, Part]:
        quiz = await self.catalog.get_quiz(event.quiz_id)
        if quiz is None:
            self._reject("unknown_quiz", "Unknown quiz", quiz_id=str(event.quiz_id))
        part = await self.catalog.get_part(quiz.part_id)
        if part is None:
            self._reject("unknown_part", "Quiz part not found", quiz_id=str(quiz.id))
        await self._require_enrollment(event, part)

        if event.action == QuizAction.START:
            return quiz, part

        try:
            attempt = await self.attempts.get_attempt(event.learner_id, event.attempt_id)
        except AttemptNotFoundError:
            attempt = None
        if attempt is None or attempt.quiz_id != quiz.id:
            self._reject(
                "unknown_attempt",
                "Unknown attempt for this learner and quiz",
                attempt_id=str(event.attempt_id),
            )

        if event.action == QuizAction.ANSWER:
            questions = await self.catalog.list_questions(quiz.id)
            question = next((q for q in questions if q.id == event.question_id), None)
            if question is None:
                self._reject(
                    "unknown_question",
                    "Question is not part of this quiz",
                    question_id=str(event.question_id),
                )
            try:
                normalize_answer(question, event.answer)
            except InvalidAnswerError as e:
                self._reject(
                    "invalid_answer",
                    str(e),
                    question_id=str(question.id),
                    answer=event.answer,
                )

        return quiz, part

    # ==========================================================================
    # Dispatch
    # ==========================================================================

    async def ingest_progress(self, event: ProgressEventIn) -> PartProgress:
        """Validate and apply a progress event.

        Raises:
            EventValidationError: If the event is malformed or references
                unknown data
            PartLockedError: If the part is not yet available
        """
        set_learner_id(event.learner_id)
        part = await self._validate_progress(event)

        async with self.locks.hold("part", event.learner_id, part.id):
            if event.acknowledged:
                return await self.progress.acknowledge_document(
                    event.learner_id, part, client_timestamp=event.timestamp
                )
            return await self.progress.report_progress(
                event.learner_id,
                part,
                position=event.position,
                duration=event.duration,
                client_timestamp=event.timestamp,
            )

    async def ingest_quiz(self, event: QuizEventIn) -> QuizAttempt:
        """Validate and apply a quiz event.

        Raises:
            EventValidationError: If the event is malformed or references
                unknown data
            AssessmentError: On attempt policy conflicts
            PartLockedError: If the quiz part is not yet available
        """
        set_learner_id(event.learner_id)
        quiz, _ = await self._validate_quiz(event)

        async with self.locks.hold("quiz", event.learner_id, quiz.id):
            match event.action:
                case QuizAction.START:
                    return await self.attempts.start_attempt(event.learner_id, quiz.id)
                case QuizAction.ANSWER:
                    return await self.attempts.record_response(
                        event.learner_id,
                        event.attempt_id,
                        event.question_id,
                        event.answer,
                    )
                case QuizAction.SUBMIT:
                    return await self.attempts.submit(event.learner_id, event.attempt_id)

        raise EventValidationError(f"Unsupported action {event.action}")
