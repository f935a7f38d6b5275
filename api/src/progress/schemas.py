"""Pydantic schemas for learner progress.

Request and response models for:
- Course enrollment
- Part progress
- Module and course progress snapshots
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.catalog.models import PartType

from .gate import ModuleEvaluation, PartState
from .models import (
    Enrollment,
    EnrollmentStatus,
    ModuleProgress,
    ModuleStatus,
    PartProgress,
)


# ==============================================================================
# Part Progress Schemas
# ==============================================================================


class PartProgressResponse(BaseModel):
    """Part progress response."""

    model_config = ConfigDict(from_attributes=True)

    part_id: UUID
    module_id: UUID
    course_id: UUID
    furthest_position: float = Field(description="Resume position")
    duration: float | None = None
    percent_watched: Decimal = Field(description="0-100 percentage")
    completed: bool
    completed_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: PartProgress) -> "PartProgressResponse":
        """Create response from entity."""
        return cls(
            part_id=entity.part_id,
            module_id=entity.module_id,
            course_id=entity.course_id,
            furthest_position=entity.furthest_position,
            duration=entity.duration,
            percent_watched=entity.percent_watched,
            completed=entity.completed,
            completed_at=entity.completed_at,
            updated_at=entity.updated_at,
        )


class PartStateSummary(BaseModel):
    """Compact part state for module listings."""

    part_id: UUID
    position: int
    part_type: PartType
    title: str
    mandatory: bool
    available: bool
    completed: bool
    percent_watched: Decimal = Decimal(0)
    furthest_position: float = 0.0

    @classmethod
    def from_state(
        cls, state: PartState, progress: PartProgress | None
    ) -> "PartStateSummary":
        part = state.part
        return cls(
            part_id=part.id,
            position=part.position,
            part_type=part.part_type,
            title=part.title,
            mandatory=part.mandatory,
            available=state.available,
            completed=state.completed,
            percent_watched=(
                progress.percent_watched
                if progress
                else Decimal(100 if state.completed else 0)
            ),
            furthest_position=progress.furthest_position if progress else 0.0,
        )


# ==============================================================================
# Module Progress Schemas
# ==============================================================================


class ModuleProgressResponse(BaseModel):
    """Module progress with its parts."""

    module_id: UUID
    course_id: UUID
    position: int
    title: str
    status: ModuleStatus
    percent_complete: Decimal
    parts_completed: int
    parts_total: int
    minutes_spent: Decimal
    started_at: datetime | None = None
    completed_at: datetime | None = None
    parts: list[PartStateSummary] = []

    @classmethod
    def from_entity(
        cls,
        entity: ModuleProgress,
        evaluation: ModuleEvaluation,
        position: int,
        title: str,
        part_progress: dict[UUID, PartProgress],
    ) -> "ModuleProgressResponse":
        """Create response from the module record and its evaluation."""
        return cls(
            module_id=entity.module_id,
            course_id=entity.course_id,
            position=position,
            title=title,
            status=ModuleStatus(entity.status),
            percent_complete=entity.percent_complete,
            parts_completed=entity.parts_completed,
            parts_total=entity.parts_total,
            minutes_spent=entity.minutes_spent,
            started_at=entity.started_at,
            completed_at=entity.completed_at,
            parts=[
                PartStateSummary.from_state(s, part_progress.get(s.part.id))
                for s in evaluation.parts
            ],
        )


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class EnrollRequest(BaseModel):
    """Request to enroll a learner in a course."""

    learner_id: UUID = Field(..., description="Learner UUID")
    course_id: UUID = Field(..., description="Course UUID to enroll in")


class EnrollmentResponse(BaseModel):
    """Enrollment response."""

    model_config = ConfigDict(from_attributes=True)

    course_id: UUID
    learner_id: UUID
    status: EnrollmentStatus
    percent_complete: Decimal
    total_minutes_spent: Decimal
    certified: bool
    certified_at: datetime | None = None
    final_score: Decimal | None = None
    enrolled_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentResponse":
        """Create response from entity."""
        return cls(
            course_id=entity.course_id,
            learner_id=entity.learner_id,
            status=EnrollmentStatus(entity.status),
            percent_complete=entity.percent_complete,
            total_minutes_spent=entity.total_minutes_spent,
            certified=entity.certified,
            certified_at=entity.certified_at,
            final_score=entity.final_score,
            enrolled_at=entity.enrolled_at,
            started_at=entity.started_at,
            completed_at=entity.completed_at,
        )


class EnrollmentListResponse(BaseModel):
    """List of learner enrollments."""

    items: list[EnrollmentResponse]
    total: int


class CourseProgressResponse(BaseModel):
    """Complete course progress with all modules and parts."""

    course_id: UUID
    enrollment: EnrollmentResponse
    modules: list[ModuleProgressResponse] = []
