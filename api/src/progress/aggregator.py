"""Enrollment aggregation.

Course-level state is recomputed from the module records after every change
rather than patched incrementally, so a missed update can never leave the
enrollment drifting from its modules.
"""

import copy
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from src.catalog.models import CourseStructure

from .models import (
    ENROLLMENT_STATUS_ORDER,
    Enrollment,
    EnrollmentStatus,
    ModuleProgress,
    ModuleStatus,
)


_TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class EnrollmentUpdate:
    """Result of one recompute."""

    enrollment: Enrollment
    changed: bool
    newly_completed: bool
    newly_certified: bool


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def module_weights(structure: CourseStructure) -> dict[UUID, Decimal]:
    """Weight of each module in the course percentage.

    Equal weights, or the summed part durations when the course asks for
    duration weighting (falling back to equal weights if no part has one).
    """
    equal = {module.id: Decimal(1) for module in structure.modules}
    if not structure.course.weight_modules_by_duration:
        return equal

    weights = {
        module.id: Decimal(
            sum(part.duration_seconds or 0 for part in structure.parts_of(module.id))
        )
        for module in structure.modules
    }
    if sum(weights.values()) <= 0:
        return equal
    return weights


def compute_course_percent(
    structure: CourseStructure, module_progress: dict[UUID, ModuleProgress]
) -> Decimal:
    """Weighted mean of module percentages; modules never touched count as 0."""
    weights = module_weights(structure)
    total_weight = sum(weights.values())
    if total_weight <= 0:
        return Decimal(0)

    weighted = sum(
        (
            weights[module.id]
            * (
                module_progress[module.id].percent_complete
                if module.id in module_progress
                else Decimal(0)
            )
            for module in structure.modules
        ),
        Decimal(0),
    )
    return _quantize(weighted / total_weight)


def compute_final_score(
    structure: CourseStructure, best_passing_scores: dict[UUID, Decimal]
) -> Decimal | None:
    """Mean best passing score over the mandatory quiz parts.

    Returns None when the course has no mandatory quiz, or when some
    mandatory quiz has no passing attempt yet.
    """
    quiz_parts = [p for p in structure.all_parts() if p.is_quiz and p.mandatory]
    if not quiz_parts:
        return None

    scores = [best_passing_scores.get(part.id) for part in quiz_parts]
    if any(score is None for score in scores):
        return None
    return _quantize(sum(scores, Decimal(0)) / len(scores))


def has_mandatory_quiz(structure: CourseStructure) -> bool:
    return any(p.is_quiz and p.mandatory for p in structure.all_parts())


def recompute_enrollment(
    enrollment: Enrollment,
    structure: CourseStructure,
    module_progress: dict[UUID, ModuleProgress],
    best_passing_scores: dict[UUID, Decimal],
    now: datetime,
) -> EnrollmentUpdate:
    """Recompute percentage, time, status and certification of an enrollment.

    Status and percentage only move forward. Certification is decided once
    the course is completed and, once granted, ``certified_at`` and
    ``final_score`` never change again.
    """
    updated = copy.copy(enrollment)

    modules = [module_progress.get(m.id) for m in structure.modules]
    all_completed = bool(modules) and all(m is not None and m.is_completed for m in modules)
    any_progress = any(
        m is not None
        and m.status in (ModuleStatus.IN_PROGRESS.value, ModuleStatus.COMPLETED.value)
        for m in modules
    )

    if all_completed:
        computed = EnrollmentStatus.COMPLETED
    elif any_progress:
        computed = EnrollmentStatus.IN_PROGRESS
    else:
        computed = EnrollmentStatus.NOT_STARTED

    current = EnrollmentStatus(enrollment.status)
    if ENROLLMENT_STATUS_ORDER.index(computed) > ENROLLMENT_STATUS_ORDER.index(current):
        updated.status = computed.value

    updated.percent_complete = max(
        enrollment.percent_complete, compute_course_percent(structure, module_progress)
    )
    updated.total_minutes_spent = max(
        enrollment.total_minutes_spent,
        _quantize(
            sum((m.minutes_spent for m in modules if m is not None), Decimal(0))
        ),
    )

    if updated.status != EnrollmentStatus.NOT_STARTED.value:
        updated.started_at = updated.started_at or now

    newly_completed = False
    if updated.is_completed and enrollment.completed_at is None:
        updated.completed_at = now
        newly_completed = True

    newly_certified = False
    if updated.is_completed and not enrollment.certified:
        final_score = compute_final_score(structure, best_passing_scores)
        updated.final_score = final_score
        if final_score is None:
            eligible = not has_mandatory_quiz(structure)
        else:
            eligible = final_score >= structure.course.certification_threshold
        if eligible:
            updated.certified = True
            updated.certified_at = now
            newly_certified = True

    changed = (
        updated.status != enrollment.status
        or updated.percent_complete != enrollment.percent_complete
        or updated.total_minutes_spent != enrollment.total_minutes_spent
        or updated.certified != enrollment.certified
        or updated.final_score != enrollment.final_score
        or updated.completed_at != enrollment.completed_at
    )
    if changed:
        updated.updated_at = now

    return EnrollmentUpdate(
        enrollment=updated,
        changed=changed,
        newly_completed=newly_completed,
        newly_certified=newly_certified,
    )
