"""Database models for learner progress.

Cassandra table definitions for:
- Part progress: Furthest position and completion per learner and part
- Module progress: Gate status and aggregates per module
- Enrollments: Course-level progress and certification
- Lookup tables: For learner-based queries

Architecture: Dual-write pattern for efficient queries by both
course_id and learner_id perspectives.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from src.core.clock import ensure_utc_aware, utc_now


class ModuleStatus(str, Enum):
    """Module gate status. Only moves forward."""

    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class EnrollmentStatus(str, Enum):
    """Course enrollment status. Only moves forward."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


MODULE_STATUS_ORDER = list(ModuleStatus)
ENROLLMENT_STATUS_ORDER = list(EnrollmentStatus)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Progresso por parte
# Partition key: (learner_id, course_id) to load a whole course at once
PART_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.part_progress (
    learner_id UUID,
    course_id UUID,
    part_id UUID,
    module_id UUID,
    furthest_position DOUBLE,
    duration DOUBLE,
    percent_watched DECIMAL,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    started_at TIMESTAMP,
    updated_at TIMESTAMP,
    last_client_timestamp TIMESTAMP,
    PRIMARY KEY ((learner_id, course_id), part_id)
)
"""

MODULE_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_progress (
    learner_id UUID,
    course_id UUID,
    module_id UUID,
    status TEXT,
    percent_complete DECIMAL,
    parts_completed INT,
    parts_total INT,
    minutes_spent DECIMAL,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((learner_id, course_id), module_id)
)
"""

# Inscricoes - particionado por course_id
ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    course_id UUID,
    learner_id UUID,
    status TEXT,
    percent_complete DECIMAL,
    total_minutes_spent DECIMAL,
    certified BOOLEAN,
    certified_at TIMESTAMP,
    final_score DECIMAL,
    enrolled_at TIMESTAMP,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (course_id, learner_id)
)
"""

# Lookup: cursos por aluno
ENROLLMENTS_BY_LEARNER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_learner (
    learner_id UUID,
    course_id UUID,
    status TEXT,
    percent_complete DECIMAL,
    certified BOOLEAN,
    enrolled_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (learner_id, course_id)
)
"""

PROGRESS_TABLES_CQL = [
    PART_PROGRESS_TABLE_CQL,
    MODULE_PROGRESS_TABLE_CQL,
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_LEARNER_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class PartProgress:
    """Progress of one learner on one video or document part.

    Attributes:
        learner_id: Learner UUID
        course_id: Course UUID (for partition key)
        module_id: Module UUID
        part_id: Part UUID
        furthest_position: High-water mark (seconds or pages)
        duration: Authoritative content length used for the percentage
        percent_watched: High-water mark percentage (0-100)
        completed: Sticky completion flag
        completed_at: First time the part was completed
        started_at: First event timestamp (server time)
        updated_at: Last change (server time)
        last_client_timestamp: Latest client-reported time, informational only
    """

    def __init__(
        self,
        learner_id: UUID,
        course_id: UUID,
        module_id: UUID,
        part_id: UUID,
        furthest_position: float = 0.0,
        duration: float | None = None,
        percent_watched: Decimal = Decimal(0),
        completed: bool = False,
        completed_at: datetime | None = None,
        started_at: datetime | None = None,
        updated_at: datetime | None = None,
        last_client_timestamp: datetime | None = None,
    ):
        self.learner_id = learner_id
        self.course_id = course_id
        self.module_id = module_id
        self.part_id = part_id
        self.furthest_position = furthest_position
        self.duration = duration
        self.percent_watched = percent_watched
        self.completed = completed
        self.completed_at = ensure_utc_aware(completed_at)
        self.started_at = ensure_utc_aware(started_at)
        self.updated_at = ensure_utc_aware(updated_at)
        self.last_client_timestamp = ensure_utc_aware(last_client_timestamp)

    @property
    def has_progress(self) -> bool:
        return self.completed or self.furthest_position > 0

    @classmethod
    def from_row(cls, row: Any) -> "PartProgress":
        """Create PartProgress instance from Cassandra row."""
        return cls(
            learner_id=row.learner_id,
            course_id=row.course_id,
            module_id=row.module_id,
            part_id=row.part_id,
            furthest_position=row.furthest_position or 0.0,
            duration=row.duration,
            percent_watched=row.percent_watched or Decimal(0),
            completed=bool(row.completed),
            completed_at=row.completed_at,
            started_at=row.started_at,
            updated_at=row.updated_at,
            last_client_timestamp=row.last_client_timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "learner_id": self.learner_id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "part_id": self.part_id,
            "furthest_position": self.furthest_position,
            "duration": self.duration,
            "percent_watched": self.percent_watched,
            "completed": self.completed,
            "completed_at": self.completed_at,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
            "last_client_timestamp": self.last_client_timestamp,
        }

    def __repr__(self) -> str:
        return (
            f"<PartProgress learner={self.learner_id} part={self.part_id} "
            f"{self.percent_watched}% completed={self.completed}>"
        )


class ModuleProgress:
    """Gate state of one module for one learner.

    Attributes:
        learner_id: Learner UUID
        course_id: Course UUID
        module_id: Module UUID
        status: locked, available, in_progress or completed
        percent_complete: Completed mandatory parts over mandatory parts
        parts_completed: Number of completed mandatory parts
        parts_total: Number of mandatory parts
        minutes_spent: Time spent on the module's parts
        started_at: First time the module had progress
        completed_at: Time the module was completed
        updated_at: Last change
    """

    def __init__(
        self,
        learner_id: UUID,
        course_id: UUID,
        module_id: UUID,
        status: str = ModuleStatus.LOCKED.value,
        percent_complete: Decimal = Decimal(0),
        parts_completed: int = 0,
        parts_total: int = 0,
        minutes_spent: Decimal = Decimal(0),
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.learner_id = learner_id
        self.course_id = course_id
        self.module_id = module_id
        self.status = status
        self.percent_complete = percent_complete
        self.parts_completed = parts_completed
        self.parts_total = parts_total
        self.minutes_spent = minutes_spent
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.updated_at = ensure_utc_aware(updated_at)

    @property
    def is_completed(self) -> bool:
        """Check if module is completed."""
        return self.status == ModuleStatus.COMPLETED.value

    @classmethod
    def from_row(cls, row: Any) -> "ModuleProgress":
        """Create ModuleProgress instance from Cassandra row."""
        return cls(
            learner_id=row.learner_id,
            course_id=row.course_id,
            module_id=row.module_id,
            status=row.status or ModuleStatus.LOCKED.value,
            percent_complete=row.percent_complete or Decimal(0),
            parts_completed=row.parts_completed or 0,
            parts_total=row.parts_total or 0,
            minutes_spent=row.minutes_spent or Decimal(0),
            started_at=row.started_at,
            completed_at=row.completed_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "learner_id": self.learner_id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "status": self.status,
            "percent_complete": self.percent_complete,
            "parts_completed": self.parts_completed,
            "parts_total": self.parts_total,
            "minutes_spent": self.minutes_spent,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<ModuleProgress learner={self.learner_id} module={self.module_id} "
            f"{self.status} {self.parts_completed}/{self.parts_total}>"
        )


class Enrollment:
    """Course enrollment with aggregate progress and certification.

    Attributes:
        course_id: Course UUID
        learner_id: Learner UUID
        status: not_started, in_progress or completed
        percent_complete: Mean of module percentages (0-100)
        total_minutes_spent: Sum of module minutes
        certified: Certification verdict, never revoked
        certified_at: Time of certification
        final_score: Mean best passing quiz score (None without quizzes)
        enrolled_at: Sign-up timestamp
        started_at: First progress timestamp
        completed_at: Completion timestamp
        updated_at: Last change
    """

    def __init__(
        self,
        course_id: UUID,
        learner_id: UUID,
        status: str = EnrollmentStatus.NOT_STARTED.value,
        percent_complete: Decimal = Decimal(0),
        total_minutes_spent: Decimal = Decimal(0),
        certified: bool = False,
        certified_at: datetime | None = None,
        final_score: Decimal | None = None,
        enrolled_at: datetime | None = None,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.course_id = course_id
        self.learner_id = learner_id
        self.status = status
        self.percent_complete = percent_complete
        self.total_minutes_spent = total_minutes_spent
        self.certified = certified
        self.certified_at = ensure_utc_aware(certified_at)
        self.final_score = final_score
        self.enrolled_at = ensure_utc_aware(enrolled_at) or utc_now()
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.updated_at = ensure_utc_aware(updated_at)

    @property
    def is_completed(self) -> bool:
        """Check if course is completed."""
        return self.status == EnrollmentStatus.COMPLETED.value

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        return cls(
            course_id=row.course_id,
            learner_id=row.learner_id,
            status=row.status or EnrollmentStatus.NOT_STARTED.value,
            percent_complete=row.percent_complete or Decimal(0),
            total_minutes_spent=row.total_minutes_spent or Decimal(0),
            certified=bool(row.certified),
            certified_at=row.certified_at,
            final_score=row.final_score,
            enrolled_at=row.enrolled_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "course_id": self.course_id,
            "learner_id": self.learner_id,
            "status": self.status,
            "percent_complete": self.percent_complete,
            "total_minutes_spent": self.total_minutes_spent,
            "certified": self.certified,
            "certified_at": self.certified_at,
            "final_score": self.final_score,
            "enrolled_at": self.enrolled_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<Enrollment learner={self.learner_id} course={self.course_id} "
            f"{self.status} {self.percent_complete}% certified={self.certified}>"
        )
