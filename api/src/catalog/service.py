# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Catalog read service.

Read-only access to course content for the progression engine:
- Single lookups (course, part, quiz)
- Ordered listings (modules of a course, parts of a module, quiz questions)
- Course structure snapshots used by the module gate and the aggregator
"""

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.catalog.models import (
    Course,
    CourseStructure,
    Module,
    Part,
    PartType,
    Question,
    Quiz,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CatalogError(Exception):
    """Base catalog error."""

    def __init__(self, message: str, code: str = "catalog_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CourseNotFoundError(CatalogError):
    """Course not found."""

    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


# ==============================================================================
# Catalog Service
# ==============================================================================


class CatalogService:
    """Service reading course structure from Cassandra."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        default_pass_threshold: Decimal = Decimal(70),
        default_max_attempts: int = 3,
    ):
        """Initialize with Cassandra session and quiz policy defaults."""
        self.session = session
        self.keyspace = keyspace
        self.default_pass_threshold = default_pass_threshold
        self.default_max_attempts = default_max_attempts
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_course = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.courses WHERE id = ?
        """)

        self._list_modules = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_modules WHERE course_id = ?
        """)

        self._get_part = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.parts WHERE id = ?
        """)

        self._list_parts = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.module_parts WHERE module_id = ?
        """)

        self._get_quiz = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quizzes WHERE id = ?
        """)

        self._get_quiz_by_part = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quizzes WHERE part_id = ?
        """)

        self._list_questions = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_questions WHERE quiz_id = ?
        """)

    def _quiz_from_row(self, row) -> Quiz:
        return Quiz.from_row(
            row,
            default_pass_threshold=self.default_pass_threshold,
            default_max_attempts=self.default_max_attempts,
        )

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def get_course(self, course_id: UUID) -> Course | None:
        """Get course by ID."""
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        return Course.from_row(row) if row else None

    async def get_part(self, part_id: UUID) -> Part | None:
        """Get part by ID."""
        result = await self.session.aexecute(self._get_part, [part_id])
        row = result.one()
        return Part.from_row(row) if row else None

    async def get_quiz(self, quiz_id: UUID) -> Quiz | None:
        """Get quiz by ID."""
        result = await self.session.aexecute(self._get_quiz, [quiz_id])
        row = result.one()
        return self._quiz_from_row(row) if row else None

    async def get_quiz_by_part(self, part_id: UUID) -> Quiz | None:
        """Get the quiz attached to a quiz part."""
        result = await self.session.aexecute(self._get_quiz_by_part, [part_id])
        row = result.one()
        return self._quiz_from_row(row) if row else None

    # ==========================================================================
    # Listings
    # ==========================================================================

    async def list_modules(self, course_id: UUID) -> list[Module]:
        """Modules of a course ordered by position."""
        rows = await self.session.aexecute(self._list_modules, [course_id])
        return sorted((Module.from_row(row) for row in rows), key=lambda m: m.position)

    async def list_parts(self, module_id: UUID) -> list[Part]:
        """Parts of a module ordered by position."""
        rows = await self.session.aexecute(self._list_parts, [module_id])
        return sorted((Part.from_row(row) for row in rows), key=lambda p: p.position)

    async def list_questions(self, quiz_id: UUID) -> list[Question]:
        """Questions of a quiz ordered by position."""
        rows = await self.session.aexecute(self._list_questions, [quiz_id])
        return sorted(
            (Question.from_row(row) for row in rows), key=lambda q: q.position
        )

    async def load_course_structure(self, course_id: UUID) -> CourseStructure:
        """Load the ordered structure of a course.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        course = await self.get_course(course_id)
        if course is None:
            raise CourseNotFoundError

        modules = await self.list_modules(course_id)
        parts_by_module: dict[UUID, list[Part]] = {}
        quizzes_by_part: dict[UUID, Quiz] = {}

        for module in modules:
            parts = await self.list_parts(module.id)
            parts_by_module[module.id] = parts
            for part in parts:
                if part.part_type == PartType.QUIZ:
                    quiz = await self.get_quiz_by_part(part.id)
                    if quiz is not None:
                        quizzes_by_part[part.id] = quiz
                    else:
                        logger.warning(
                            "quiz_part_without_quiz",
                            course_id=str(course_id),
                            part_id=str(part.id),
                        )

        return CourseStructure(
            course=course,
            modules=modules,
            parts_by_module=parts_by_module,
            quizzes_by_part=quizzes_by_part,
        )
