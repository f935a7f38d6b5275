"""Module gate.

Pure evaluation of one module for one learner:
- Part availability: the first part is available once the module is
  unlocked, every later part once the part before it is completed
- Module percentage over mandatory parts
- Module status, applied forward-only onto the stored record
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from src.catalog.models import Module, Part, PartType

from .models import MODULE_STATUS_ORDER, ModuleProgress, ModuleStatus, PartProgress


_TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class PartState:
    """Gate view of one part."""

    part: Part
    available: bool
    completed: bool
    started: bool
    seconds_spent: int = 0


@dataclass
class ModuleEvaluation:
    """Freshly computed state of a module, before forward-only merging."""

    module_id: UUID
    unlocked: bool
    status: ModuleStatus
    percent_complete: Decimal
    parts_completed: int
    parts_total: int
    minutes_spent: Decimal
    parts: list[PartState] = field(default_factory=list)

    def part_state(self, part_id: UUID) -> PartState | None:
        return next((s for s in self.parts if s.part.id == part_id), None)


def part_seconds_spent(
    part: Part, progress: PartProgress | None, quiz_seconds: int = 0
) -> int:
    """Time credited for a part.

    Videos: furthest position capped at the duration. Documents: estimated
    reading time once acknowledged. Quizzes: time of finalized attempts.
    """
    if part.part_type == PartType.QUIZ:
        return quiz_seconds
    if progress is None:
        return 0
    if part.part_type == PartType.DOCUMENT:
        if not progress.completed:
            return 0
        return int(part.duration_seconds or progress.duration or 0)

    duration = part.duration_seconds or progress.duration
    position = progress.furthest_position
    if duration:
        position = min(position, float(duration))
    return int(position)


def is_part_completed(
    part: Part, progress: PartProgress | None, quiz_passed: bool = False
) -> bool:
    """Quizzes complete with a passing attempt, other parts with their flag."""
    if part.part_type == PartType.QUIZ:
        return quiz_passed
    return progress is not None and progress.completed


def evaluate_module(
    module: Module,
    parts: list[Part],
    unlocked: bool,
    progress_by_part: dict[UUID, PartProgress],
    passed_quiz_parts: set[UUID] | frozenset[UUID] = frozenset(),
    quiz_seconds_by_part: dict[UUID, int] | None = None,
    attempted_quiz_parts: set[UUID] | frozenset[UUID] = frozenset(),
) -> ModuleEvaluation:
    """Compute availability, percentage and status of a module.

    Args:
        module: Module being evaluated
        parts: Its parts in position order
        unlocked: Whether the module itself is reachable
        progress_by_part: Stored part progress of the learner
        passed_quiz_parts: Quiz parts with a passing attempt
        quiz_seconds_by_part: Time of finalized attempts per quiz part
        attempted_quiz_parts: Quiz parts with at least one attempt
    """
    quiz_seconds_by_part = quiz_seconds_by_part or {}

    states: list[PartState] = []
    previous_completed = True
    for part in parts:
        progress = progress_by_part.get(part.id)
        completed = is_part_completed(part, progress, part.id in passed_quiz_parts)
        started = completed or (
            part.id in attempted_quiz_parts
            if part.is_quiz
            else progress is not None and progress.has_progress
        )
        states.append(
            PartState(
                part=part,
                available=unlocked and previous_completed,
                completed=completed,
                started=started,
                seconds_spent=part_seconds_spent(
                    part, progress, quiz_seconds_by_part.get(part.id, 0)
                ),
            )
        )
        previous_completed = completed

    mandatory = [s for s in states if s.part.mandatory]
    parts_total = len(mandatory)
    parts_completed = sum(1 for s in mandatory if s.completed)

    if parts_total:
        percent = (Decimal(parts_completed) / Decimal(parts_total) * 100).quantize(
            _TWO_PLACES, rounding=ROUND_HALF_UP
        )
    else:
        percent = Decimal(100)

    if not unlocked:
        status = ModuleStatus.LOCKED
    elif parts_completed == parts_total:
        status = ModuleStatus.COMPLETED
    elif any(s.started for s in states):
        status = ModuleStatus.IN_PROGRESS
    else:
        status = ModuleStatus.AVAILABLE

    minutes = (Decimal(sum(s.seconds_spent for s in states)) / 60).quantize(
        _TWO_PLACES, rounding=ROUND_HALF_UP
    )

    return ModuleEvaluation(
        module_id=module.id,
        unlocked=unlocked,
        status=status,
        percent_complete=percent if unlocked else Decimal(0),
        parts_completed=parts_completed,
        parts_total=parts_total,
        minutes_spent=minutes,
        parts=states,
    )


def advance_status(current: ModuleStatus | str, computed: ModuleStatus) -> ModuleStatus:
    """The later of two statuses in locked → available → in_progress → completed."""
    current = ModuleStatus(current)
    if MODULE_STATUS_ORDER.index(computed) > MODULE_STATUS_ORDER.index(current):
        return computed
    return current


def apply_evaluation(
    stored: ModuleProgress,
    evaluation: ModuleEvaluation,
    now: datetime,
) -> tuple[ModuleProgress, bool]:
    """Merge an evaluation onto the stored record, forward-only.

    Returns:
        (new record, whether it differs from the stored one)
    """
    merged = copy.copy(stored)
    merged.status = advance_status(stored.status, evaluation.status).value
    merged.percent_complete = max(stored.percent_complete, evaluation.percent_complete)
    merged.parts_completed = max(stored.parts_completed, evaluation.parts_completed)
    merged.parts_total = evaluation.parts_total
    merged.minutes_spent = max(stored.minutes_spent, evaluation.minutes_spent)

    if merged.status in (ModuleStatus.IN_PROGRESS.value, ModuleStatus.COMPLETED.value):
        merged.started_at = merged.started_at or now
    if merged.status == ModuleStatus.COMPLETED.value and merged.completed_at is None:
        merged.completed_at = now

    changed = (
        merged.status != stored.status
        or merged.percent_complete != stored.percent_complete
        or merged.parts_completed != stored.parts_completed
        or merged.parts_total != stored.parts_total
        or merged.minutes_spent != stored.minutes_spent
    )
    if changed:
        merged.updated_at = now
    return merged, changed
