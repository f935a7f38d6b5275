"""Database models for the course catalog.

Cassandra table definitions for the content structure the progression engine
reads:
- Courses, with the certification threshold
- Modules, ordered within a course
- Parts (video, document, quiz), ordered within a module
- Quizzes and their questions

Content is authored elsewhere; this engine only reads these tables.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class PartType(str, Enum):
    """Kind of content a part holds."""

    VIDEO = "video"
    DOCUMENT = "document"
    QUIZ = "quiz"


class QuestionType(str, Enum):
    """Quiz question type."""

    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    TRUE_FALSE = "true_false"
    FREE_TEXT = "free_text"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    certification_threshold DECIMAL,
    weight_modules_by_duration BOOLEAN
)
"""

# Modules ordered by position inside their course
MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_modules (
    course_id UUID,
    position INT,
    id UUID,
    title TEXT,
    PRIMARY KEY (course_id, position)
) WITH CLUSTERING ORDER BY (position ASC)
"""

PART_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.parts (
    id UUID PRIMARY KEY,
    module_id UUID,
    course_id UUID,
    position INT,
    part_type TEXT,
    title TEXT,
    duration_seconds INT,
    completion_threshold DECIMAL,
    mandatory BOOLEAN
)
"""

# Same rows clustered by module for ordered listing
MODULE_PARTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_parts (
    module_id UUID,
    position INT,
    id UUID,
    course_id UUID,
    part_type TEXT,
    title TEXT,
    duration_seconds INT,
    completion_threshold DECIMAL,
    mandatory BOOLEAN,
    PRIMARY KEY (module_id, position)
) WITH CLUSTERING ORDER BY (position ASC)
"""

QUIZ_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quizzes (
    id UUID PRIMARY KEY,
    part_id UUID,
    title TEXT,
    pass_threshold_percent DECIMAL,
    max_attempts INT,
    time_limit_seconds INT,
    shuffle_questions BOOLEAN,
    show_results_immediately BOOLEAN
)
"""

QUIZ_PART_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS quizzes_part_idx ON {keyspace}.quizzes (part_id)
"""

# Choices are stored as a JSON array: [{"id", "text", "is_correct"}]
QUESTION_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_questions (
    quiz_id UUID,
    position INT,
    id UUID,
    question_type TEXT,
    prompt TEXT,
    points INT,
    choices TEXT,
    correct_boolean BOOLEAN,
    explanation TEXT,
    PRIMARY KEY (quiz_id, position)
) WITH CLUSTERING ORDER BY (position ASC)
"""

CATALOG_TABLES_CQL = [
    COURSE_TABLE_CQL,
    MODULE_TABLE_CQL,
    PART_TABLE_CQL,
    MODULE_PARTS_TABLE_CQL,
    QUIZ_TABLE_CQL,
    QUIZ_PART_INDEX_CQL,
    QUESTION_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class Course:
    """Course with its certification policy."""

    id: UUID
    title: str = ""
    certification_threshold: Decimal = Decimal(0)
    weight_modules_by_duration: bool = False

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            certification_threshold=row.certification_threshold or Decimal(0),
            weight_modules_by_duration=bool(row.weight_modules_by_duration),
        )


@dataclass(frozen=True)
class Module:
    """Ordered group of parts inside a course (position is 1-based)."""

    id: UUID
    course_id: UUID
    position: int
    title: str = ""

    @classmethod
    def from_row(cls, row: Any) -> "Module":
        """Create Module from Cassandra row."""
        return cls(
            id=row.id,
            course_id=row.course_id,
            position=row.position,
            title=row.title or "",
        )


@dataclass(frozen=True)
class Part:
    """Smallest content unit: one video, one document or one quiz.

    ``duration_seconds`` is the video length for videos and the estimated
    reading time for documents. ``completion_threshold`` overrides the
    configured default for this video only.
    """

    id: UUID
    module_id: UUID
    course_id: UUID
    position: int
    part_type: PartType
    title: str = ""
    duration_seconds: int | None = None
    completion_threshold: Decimal | None = None
    mandatory: bool = True

    @property
    def is_quiz(self) -> bool:
        return self.part_type == PartType.QUIZ

    @classmethod
    def from_row(cls, row: Any) -> "Part":
        """Create Part from Cassandra row (``parts`` or ``module_parts``)."""
        return cls(
            id=row.id,
            module_id=row.module_id,
            course_id=row.course_id,
            position=row.position,
            part_type=PartType(row.part_type),
            title=row.title or "",
            duration_seconds=row.duration_seconds,
            completion_threshold=row.completion_threshold,
            mandatory=row.mandatory if row.mandatory is not None else True,
        )


@dataclass(frozen=True)
class Quiz:
    """Quiz settings attached to a quiz part. ``None`` time limit = untimed."""

    id: UUID
    part_id: UUID
    title: str = ""
    pass_threshold_percent: Decimal = Decimal(70)
    max_attempts: int = 3
    time_limit_seconds: int | None = None
    shuffle_questions: bool = False
    show_results_immediately: bool = True

    @property
    def is_timed(self) -> bool:
        return self.time_limit_seconds is not None and self.time_limit_seconds > 0

    @classmethod
    def from_row(
        cls,
        row: Any,
        default_pass_threshold: Decimal = Decimal(70),
        default_max_attempts: int = 3,
    ) -> "Quiz":
        """Create Quiz from Cassandra row, filling unset policy with defaults."""
        return cls(
            id=row.id,
            part_id=row.part_id,
            title=row.title or "",
            pass_threshold_percent=(
                row.pass_threshold_percent
                if row.pass_threshold_percent is not None
                else default_pass_threshold
            ),
            max_attempts=row.max_attempts or default_max_attempts,
            time_limit_seconds=row.time_limit_seconds,
            shuffle_questions=bool(row.shuffle_questions),
            show_results_immediately=(
                row.show_results_immediately
                if row.show_results_immediately is not None
                else True
            ),
        )


@dataclass(frozen=True)
class Choice:
    """Answer option of a choice question."""

    id: UUID
    text: str = ""
    is_correct: bool = False


@dataclass(frozen=True)
class Question:
    """Quiz question.

    Choice questions carry their options; true/false questions carry
    ``correct_boolean``; free-text questions carry neither.
    """

    id: UUID
    quiz_id: UUID
    position: int
    question_type: QuestionType
    prompt: str = ""
    points: int = 1
    choices: tuple[Choice, ...] = field(default_factory=tuple)
    correct_boolean: bool | None = None
    explanation: str | None = None

    @property
    def correct_choice_ids(self) -> frozenset[UUID]:
        return frozenset(choice.id for choice in self.choices if choice.is_correct)

    @property
    def choice_ids(self) -> frozenset[UUID]:
        return frozenset(choice.id for choice in self.choices)

    @classmethod
    def from_row(cls, row: Any) -> "Question":
        """Create Question from Cassandra row."""
        raw_choices = json.loads(row.choices) if row.choices else []
        return cls(
            id=row.id,
            quiz_id=row.quiz_id,
            position=row.position,
            question_type=QuestionType(row.question_type),
            prompt=row.prompt or "",
            points=row.points if row.points is not None else 1,
            choices=tuple(
                Choice(
                    id=UUID(str(c["id"])),
                    text=c.get("text", ""),
                    is_correct=bool(c.get("is_correct", False)),
                )
                for c in raw_choices
            ),
            correct_boolean=row.correct_boolean,
            explanation=row.explanation,
        )


@dataclass
class CourseStructure:
    """Ordered snapshot of one course: modules, their parts and quizzes."""

    course: Course
    modules: list[Module]
    parts_by_module: dict[UUID, list[Part]]
    quizzes_by_part: dict[UUID, Quiz] = field(default_factory=dict)

    def parts_of(self, module_id: UUID) -> list[Part]:
        """Parts of a module in position order."""
        return self.parts_by_module.get(module_id, [])

    def all_parts(self) -> list[Part]:
        """Every part of the course, module by module."""
        return [part for module in self.modules for part in self.parts_of(module.id)]

    def module(self, module_id: UUID) -> Module | None:
        return next((m for m in self.modules if m.id == module_id), None)

    def part(self, part_id: UUID) -> Part | None:
        return next((p for p in self.all_parts() if p.id == part_id), None)

    def quiz_for(self, part_id: UUID) -> Quiz | None:
        return self.quizzes_by_part.get(part_id)
