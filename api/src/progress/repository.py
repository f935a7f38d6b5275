# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Progress persistence (part progress, module progress, enrollments)."""

from typing import TYPE_CHECKING
from uuid import UUID

from .models import Enrollment, ModuleProgress, PartProgress


if TYPE_CHECKING:
    from cassandra.cluster import Session


class ProgressRepository:
    """Cassandra storage for learner progress."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Part Progress
        self._get_part_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.part_progress
            WHERE learner_id = ? AND course_id = ? AND part_id = ?
        """)

        self._get_course_part_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.part_progress
            WHERE learner_id = ? AND course_id = ?
        """)

        self._upsert_part_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.part_progress
            (learner_id, course_id, part_id, module_id, furthest_position,
             duration, percent_watched, completed, completed_at, started_at,
             updated_at, last_client_timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Module Progress
        self._get_course_module_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.module_progress
            WHERE learner_id = ? AND course_id = ?
        """)

        self._upsert_module_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.module_progress
            (learner_id, course_id, module_id, status, percent_complete,
             parts_completed, parts_total, minutes_spent, started_at,
             completed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Enrollments
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE course_id = ? AND learner_id = ?
        """)

        self._upsert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (course_id, learner_id, status, percent_complete, total_minutes_spent,
             certified, certified_at, final_score, enrolled_at, started_at,
             completed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Enrollments by learner (lookup)
        self._get_learner_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments_by_learner
            WHERE learner_id = ?
        """)

        self._upsert_enrollment_by_learner = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_learner
            (learner_id, course_id, status, percent_complete, certified,
             enrolled_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Part Progress
    # ==========================================================================

    async def get_part_progress(
        self, learner_id: UUID, course_id: UUID, part_id: UUID
    ) -> PartProgress | None:
        result = await self.session.aexecute(
            self._get_part_progress, [learner_id, course_id, part_id]
        )
        row = result.one()
        return PartProgress.from_row(row) if row else None

    async def list_part_progress(
        self, learner_id: UUID, course_id: UUID
    ) -> dict[UUID, PartProgress]:
        """Part progress of a learner across a course, keyed by part."""
        rows = await self.session.aexecute(
            self._get_course_part_progress, [learner_id, course_id]
        )
        return {row.part_id: PartProgress.from_row(row) for row in rows}

    async def save_part_progress(self, progress: PartProgress) -> None:
        await self.session.aexecute(
            self._upsert_part_progress,
            [
                progress.learner_id,
                progress.course_id,
                progress.part_id,
                progress.module_id,
                progress.furthest_position,
                progress.duration,
                progress.percent_watched,
                progress.completed,
                progress.completed_at,
                progress.started_at,
                progress.updated_at,
                progress.last_client_timestamp,
            ],
        )

    # ==========================================================================
    # Module Progress
    # ==========================================================================

    async def list_module_progress(
        self, learner_id: UUID, course_id: UUID
    ) -> dict[UUID, ModuleProgress]:
        """Module records of a learner across a course, keyed by module."""
        rows = await self.session.aexecute(
            self._get_course_module_progress, [learner_id, course_id]
        )
        return {row.module_id: ModuleProgress.from_row(row) for row in rows}

    async def save_module_progress(self, progress: ModuleProgress) -> None:
        await self.session.aexecute(
            self._upsert_module_progress,
            [
                progress.learner_id,
                progress.course_id,
                progress.module_id,
                progress.status,
                progress.percent_complete,
                progress.parts_completed,
                progress.parts_total,
                progress.minutes_spent,
                progress.started_at,
                progress.completed_at,
                progress.updated_at,
            ],
        )

    # ==========================================================================
    # Enrollments
    # ==========================================================================

    async def get_enrollment(self, learner_id: UUID, course_id: UUID) -> Enrollment | None:
        """Get enrollment by learner and course."""
        result = await self.session.aexecute(self._get_enrollment, [course_id, learner_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def list_learner_course_ids(self, learner_id: UUID) -> list[UUID]:
        """Courses a learner is enrolled in."""
        rows = await self.session.aexecute(self._get_learner_enrollments, [learner_id])
        return [row.course_id for row in rows]

    async def save_enrollment(self, enrollment: Enrollment) -> None:
        """Update enrollment in both tables (dual-write)."""
        await self.session.aexecute(
            self._upsert_enrollment,
            [
                enrollment.course_id,
                enrollment.learner_id,
                enrollment.status,
                enrollment.percent_complete,
                enrollment.total_minutes_spent,
                enrollment.certified,
                enrollment.certified_at,
                enrollment.final_score,
                enrollment.enrolled_at,
                enrollment.started_at,
                enrollment.completed_at,
                enrollment.updated_at,
            ],
        )

        await self.session.aexecute(
            self._upsert_enrollment_by_learner,
            [
                enrollment.learner_id,
                enrollment.course_id,
                enrollment.status,
                enrollment.percent_complete,
                enrollment.certified,
                enrollment.enrolled_at,
                enrollment.updated_at,
            ],
        )
