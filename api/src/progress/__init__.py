"""Learner progress module.

Provides:
- Monotonic part progress (video position, document acknowledgement)
- Sequential gating of parts and modules
- Course-level aggregation and certification
- Course enrollment management
"""

from .models import (
    PROGRESS_TABLES_CQL,
    Enrollment,
    EnrollmentStatus,
    ModuleProgress,
    ModuleStatus,
    PartProgress,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "Enrollment",
    "EnrollmentStatus",
    "ModuleProgress",
    "ModuleStatus",
    "PartProgress",
]
