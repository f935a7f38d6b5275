"""Learner progress service layer.

Business logic for:
- Course enrollment
- Video position reports and document acknowledgements
- Part availability (sequential gating inside and across modules)
- Module and enrollment recompute, with outbound signals

Part updates run under the caller's part lock; every recompute of a course
runs under the ``("course", learner, course)`` lock taken here, always after
any part or quiz lock.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.catalog.models import CourseStructure, Part, PartType
from src.core.clock import Clock, utc_now
from src.signals.models import LearningSignal, SignalType

from .aggregator import recompute_enrollment
from .gate import ModuleEvaluation, apply_evaluation, evaluate_module
from .models import Enrollment, ModuleProgress, ModuleStatus, PartProgress
from .tracker import (
    acknowledge_document,
    merge_part_progress,
    new_part_progress,
    progress_changed,
)


if TYPE_CHECKING:
    from src.assessment.models import QuizAttempt
    from src.assessment.repository import AttemptRepository
    from src.catalog.service import CatalogService
    from src.core.locks import KeyedLock
    from src.signals.emitter import SignalEmitter

    from .repository import ProgressRepository


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotEnrolledError(ProgressError):
    """Learner not enrolled in course."""

    def __init__(self, message: str = "Learner is not enrolled in this course"):
        super().__init__(message, "not_enrolled")


class PartLockedError(ProgressError):
    """Part requested before its predecessor is completed."""

    def __init__(self, message: str = "Part is locked until the previous part is completed"):
        super().__init__(message, "part_locked")


class WrongPartTypeError(ProgressError):
    """Operation does not apply to this kind of part."""

    def __init__(self, message: str = "Operation not supported for this part type"):
        super().__init__(message, "wrong_part_type")


class MissingDurationError(ProgressError):
    """No duration known to turn a position into a percentage."""

    def __init__(self, message: str = "Part duration is unknown"):
        super().__init__(message, "invalid_event")


# ==============================================================================
# Course State
# ==============================================================================


@dataclass
class CourseState:
    """Evaluated state of one learner across one course (nothing persisted)."""

    structure: CourseStructure
    part_progress: dict[UUID, PartProgress]
    stored_modules: dict[UUID, ModuleProgress]
    evaluations: dict[UUID, ModuleEvaluation] = field(default_factory=dict)
    modules: dict[UUID, ModuleProgress] = field(default_factory=dict)
    changed_modules: list[UUID] = field(default_factory=list)
    completed_modules: list[UUID] = field(default_factory=list)
    best_passing_scores: dict[UUID, Decimal] = field(default_factory=dict)


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Service for learner progress and course completion."""

    def __init__(
        self,
        repository: "ProgressRepository",
        catalog: "CatalogService",
        attempts: "AttemptRepository",
        locks: "KeyedLock",
        signals: "SignalEmitter | None" = None,
        completion_threshold: Decimal = Decimal(90),
        sequential_modules: bool = True,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.catalog = catalog
        self.attempts = attempts
        self.locks = locks
        self.signals = signals
        self.completion_threshold = completion_threshold
        self.sequential_modules = sequential_modules
        self.clock = clock

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def enroll(self, learner_id: UUID, course_id: UUID) -> Enrollment:
        """Enroll a learner in a course. Enrolling twice returns the existing one.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        structure = await self.catalog.load_course_structure(course_id)

        async with self.locks.hold("course", learner_id, course_id):
            existing = await self.repository.get_enrollment(learner_id, course_id)
            if existing:
                return existing

            now = self.clock()
            enrollment = Enrollment(
                course_id=course_id,
                learner_id=learner_id,
                enrolled_at=now,
                updated_at=now,
            )
            await self.repository.save_enrollment(enrollment)

            logger.info(
                "learner_enrolled",
                learner_id=str(learner_id),
                course_id=str(course_id),
            )

            # Seed module records (first module available)
            return await self._recompute(learner_id, structure, enrollment)

    async def get_enrollment(self, learner_id: UUID, course_id: UUID) -> Enrollment | None:
        """Get enrollment by learner and course."""
        return await self.repository.get_enrollment(learner_id, course_id)

    async def require_enrollment(self, learner_id: UUID, course_id: UUID) -> Enrollment:
        """Get enrollment or raise NotEnrolledError."""
        enrollment = await self.repository.get_enrollment(learner_id, course_id)
        if enrollment is None:
            raise NotEnrolledError
        return enrollment

    async def list_enrollments(self, learner_id: UUID) -> list[Enrollment]:
        """All enrollments of a learner."""
        enrollments = []
        for course_id in await self.repository.list_learner_course_ids(learner_id):
            enrollment = await self.repository.get_enrollment(learner_id, course_id)
            if enrollment:
                enrollments.append(enrollment)
        return enrollments

    # ==========================================================================
    # Part Progress Operations
    # ==========================================================================

    async def report_progress(
        self,
        learner_id: UUID,
        part: Part,
        position: float,
        duration: float | None = None,
        client_timestamp: datetime | None = None,
    ) -> PartProgress:
        """Merge a position report into the part's progress.

        The catalog duration wins over the reported one. The caller holds
        the ``("part", learner, part)`` lock.

        Raises:
            WrongPartTypeError: If the part is a quiz
            MissingDurationError: If no duration is known
            NotEnrolledError: If the learner is not enrolled
            PartLockedError: If the part is not yet available
        """
        if part.part_type == PartType.QUIZ:
            raise WrongPartTypeError("Quiz parts progress through attempts")

        effective_duration = part.duration_seconds or duration
        if not effective_duration or effective_duration <= 0:
            raise MissingDurationError

        await self.ensure_part_available(learner_id, part)

        current = await self._load_part_progress(learner_id, part)
        threshold = (
            part.completion_threshold
            if part.completion_threshold is not None
            else self.completion_threshold
        )
        merged = merge_part_progress(
            current,
            position=position,
            duration=effective_duration,
            threshold=threshold,
            now=self.clock(),
            client_timestamp=client_timestamp,
        )
        return await self._store_part_progress(current, merged)

    async def acknowledge_document(
        self,
        learner_id: UUID,
        part: Part,
        client_timestamp: datetime | None = None,
    ) -> PartProgress:
        """Record that a document part was read. Completes it at 100%.

        Raises:
            WrongPartTypeError: If the part is not a document
            NotEnrolledError: If the learner is not enrolled
            PartLockedError: If the part is not yet available
        """
        if part.part_type != PartType.DOCUMENT:
            raise WrongPartTypeError("Only document parts can be acknowledged")

        await self.ensure_part_available(learner_id, part)

        current = await self._load_part_progress(learner_id, part)
        merged = acknowledge_document(
            current,
            now=self.clock(),
            duration=part.duration_seconds,
            client_timestamp=client_timestamp,
        )
        return await self._store_part_progress(current, merged)

    async def _load_part_progress(self, learner_id: UUID, part: Part) -> PartProgress:
        stored = await self.repository.get_part_progress(
            learner_id, part.course_id, part.id
        )
        return stored or new_part_progress(
            learner_id, part.course_id, part.module_id, part.id
        )

    async def _store_part_progress(
        self, current: PartProgress, merged: PartProgress
    ) -> PartProgress:
        if not progress_changed(current, merged):
            logger.debug(
                "part_progress_unchanged",
                learner_id=str(merged.learner_id),
                part_id=str(merged.part_id),
            )
            return merged

        await self.repository.save_part_progress(merged)
        logger.info(
            "part_progress_merged",
            learner_id=str(merged.learner_id),
            part_id=str(merged.part_id),
            furthest_position=merged.furthest_position,
            percent_watched=str(merged.percent_watched),
            completed=merged.completed,
        )
        if merged.completed and not current.completed:
            logger.info(
                "part_completed",
                learner_id=str(merged.learner_id),
                part_id=str(merged.part_id),
            )

        await self.refresh_after_change(merged.learner_id, merged.course_id)
        return merged

    # ==========================================================================
    # Gating
    # ==========================================================================

    async def ensure_part_available(self, learner_id: UUID, part: Part) -> None:
        """Raise unless the learner may work on ``part`` now.

        Raises:
            NotEnrolledError: If the learner is not enrolled
            PartLockedError: If the part is not yet available
        """
        await self.require_enrollment(learner_id, part.course_id)

        structure = await self.catalog.load_course_structure(part.course_id)
        state = await self._evaluate_course(learner_id, structure)

        evaluation = state.evaluations.get(part.module_id)
        part_state = evaluation.part_state(part.id) if evaluation else None
        if part_state is None or not part_state.available:
            logger.info(
                "part_locked",
                learner_id=str(learner_id),
                part_id=str(part.id),
                module_id=str(part.module_id),
            )
            raise PartLockedError

    async def evaluate_module(
        self, learner_id: UUID, course_id: UUID, module_id: UUID
    ) -> tuple[ModuleProgress, ModuleEvaluation] | None:
        """Current gate view of one module (read-only).

        Returns:
            (module record as it would be stored, part-level evaluation),
            or None if the module is not part of the course
        """
        structure = await self.catalog.load_course_structure(course_id)
        if structure.module(module_id) is None:
            return None
        state = await self._evaluate_course(learner_id, structure)
        return state.modules[module_id], state.evaluations[module_id]

    async def _quiz_results(
        self, learner_id: UUID, structure: CourseStructure
    ) -> tuple[set[UUID], set[UUID], dict[UUID, int], dict[UUID, Decimal]]:
        """Passed parts, attempted parts, seconds spent and best passing score."""
        passed: set[UUID] = set()
        attempted: set[UUID] = set()
        seconds: dict[UUID, int] = {}
        best: dict[UUID, Decimal] = {}

        for part in structure.all_parts():
            if not part.is_quiz:
                continue
            quiz = structure.quiz_for(part.id)
            if quiz is None:
                continue

            attempts: list[QuizAttempt] = await self.attempts.list_attempts(
                learner_id, quiz.id
            )
            if attempts:
                attempted.add(part.id)
            seconds[part.id] = sum(
                a.time_spent_seconds(quiz.time_limit_seconds) for a in attempts
            )
            passing = [
                a.percent_score
                for a in attempts
                if a.passed and not a.is_open and a.percent_score is not None
            ]
            if passing:
                passed.add(part.id)
                best[part.id] = max(passing)

        return passed, attempted, seconds, best

    async def _evaluate_course(
        self, learner_id: UUID, structure: CourseStructure
    ) -> CourseState:
        """Evaluate every module in order and merge onto stored records."""
        course_id = structure.course.id
        state = CourseState(
            structure=structure,
            part_progress=await self.repository.list_part_progress(learner_id, course_id),
            stored_modules=await self.repository.list_module_progress(
                learner_id, course_id
            ),
        )
        passed, attempted, seconds, best = await self._quiz_results(
            learner_id, structure
        )
        state.best_passing_scores = best

        now = self.clock()
        previous: ModuleProgress | None = None
        for module in structure.modules:
            stored = state.stored_modules.get(module.id) or ModuleProgress(
                learner_id=learner_id,
                course_id=course_id,
                module_id=module.id,
            )
            unlocked = self._is_unlocked(stored, previous)

            evaluation = evaluate_module(
                module,
                structure.parts_of(module.id),
                unlocked,
                state.part_progress,
                passed_quiz_parts=passed,
                quiz_seconds_by_part=seconds,
                attempted_quiz_parts=attempted,
            )
            applied, changed = apply_evaluation(stored, evaluation, now)
            if module.id not in state.stored_modules:
                changed = True

            state.evaluations[module.id] = evaluation
            state.modules[module.id] = applied
            if changed:
                state.changed_modules.append(module.id)
            if applied.is_completed and not stored.is_completed:
                state.completed_modules.append(module.id)

            previous = applied

        return state

    def _is_unlocked(self, stored: ModuleProgress, previous: ModuleProgress | None) -> bool:
        if stored.status != ModuleStatus.LOCKED.value:
            return True
        if previous is None or not self.sequential_modules:
            return True
        return previous.is_completed

    # ==========================================================================
    # Recompute
    # ==========================================================================

    async def refresh_after_change(self, learner_id: UUID, course_id: UUID) -> Enrollment | None:
        """Re-evaluate modules and the enrollment after a part or quiz change."""
        structure = await self.catalog.load_course_structure(course_id)

        async with self.locks.hold("course", learner_id, course_id):
            enrollment = await self.repository.get_enrollment(learner_id, course_id)
            if enrollment is None:
                logger.warning(
                    "recompute_without_enrollment",
                    learner_id=str(learner_id),
                    course_id=str(course_id),
                )
                return None
            return await self._recompute(learner_id, structure, enrollment)

    async def recompute_enrollment(self, learner_id: UUID, course_id: UUID) -> Enrollment:
        """Recompute a learner's course state.

        Raises:
            NotEnrolledError: If the learner is not enrolled
        """
        enrollment = await self.refresh_after_change(learner_id, course_id)
        if enrollment is None:
            raise NotEnrolledError
        return enrollment

    async def _recompute(
        self,
        learner_id: UUID,
        structure: CourseStructure,
        enrollment: Enrollment,
    ) -> Enrollment:
        """Persist module changes and the recomputed enrollment. Holds the course lock."""
        state = await self._evaluate_course(learner_id, structure)
        course_id = structure.course.id

        for module_id in state.changed_modules:
            await self.repository.save_module_progress(state.modules[module_id])

        for module_id in state.completed_modules:
            logger.info(
                "module_completed",
                learner_id=str(learner_id),
                course_id=str(course_id),
                module_id=str(module_id),
            )
            self._emit(
                LearningSignal(
                    signal_type=SignalType.MODULE_COMPLETED,
                    learner_id=learner_id,
                    course_id=course_id,
                    module_id=module_id,
                    occurred_at=self.clock(),
                )
            )

        update = recompute_enrollment(
            enrollment,
            structure,
            state.modules,
            state.best_passing_scores,
            self.clock(),
        )
        if update.changed:
            await self.repository.save_enrollment(update.enrollment)

        if update.newly_completed:
            logger.info(
                "course_completed",
                learner_id=str(learner_id),
                course_id=str(course_id),
            )
            self._emit(
                LearningSignal(
                    signal_type=SignalType.COURSE_COMPLETED,
                    learner_id=learner_id,
                    course_id=course_id,
                    final_score=update.enrollment.final_score,
                    occurred_at=self.clock(),
                )
            )

        if update.newly_certified:
            logger.info(
                "course_certified",
                learner_id=str(learner_id),
                course_id=str(course_id),
                final_score=str(update.enrollment.final_score),
            )
            self._emit(
                LearningSignal(
                    signal_type=SignalType.COURSE_CERTIFIED,
                    learner_id=learner_id,
                    course_id=course_id,
                    final_score=update.enrollment.final_score,
                    occurred_at=update.enrollment.certified_at or self.clock(),
                )
            )

        return update.enrollment

    def _emit(self, signal: LearningSignal) -> None:
        if self.signals is not None:
            self.signals.emit(signal)

    # ==========================================================================
    # Read Snapshots
    # ==========================================================================

    async def get_course_progress(
        self, learner_id: UUID, course_id: UUID
    ) -> tuple[Enrollment, CourseState]:
        """Enrollment plus evaluated module and part state (read-only).

        Raises:
            CourseNotFoundError: If the course does not exist
            NotEnrolledError: If the learner is not enrolled
        """
        structure = await self.catalog.load_course_structure(course_id)
        enrollment = await self.require_enrollment(learner_id, course_id)
        state = await self._evaluate_course(learner_id, structure)
        return enrollment, state
