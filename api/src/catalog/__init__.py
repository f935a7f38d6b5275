"""Course catalog (read-only for the progression engine).

Provides:
- Course, module, part, quiz and question entities
- Course structure snapshots for gating and aggregation
"""

from .models import (
    CATALOG_TABLES_CQL,
    Choice,
    Course,
    CourseStructure,
    Module,
    Part,
    PartType,
    Question,
    QuestionType,
    Quiz,
)


__all__ = [
    "CATALOG_TABLES_CQL",
    "Choice",
    "Course",
    "CourseStructure",
    "Module",
    "Part",
    "PartType",
    "Question",
    "QuestionType",
    "Quiz",
]
