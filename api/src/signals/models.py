"""Outbound learning signals.

Signals tell external collaborators (notification dispatch, reporting read
models) that a learner finished a module, finished a course or got certified.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from src.core.clock import utc_now


class SignalType(str, Enum):
    """Kinds of outbound signals."""

    MODULE_COMPLETED = "module_completed"
    COURSE_COMPLETED = "course_completed"
    COURSE_CERTIFIED = "course_certified"


@dataclass(frozen=True)
class LearningSignal:
    """One outbound signal."""

    signal_type: SignalType
    learner_id: UUID
    course_id: UUID
    module_id: UUID | None = None
    final_score: Decimal | None = None
    occurred_at: datetime = field(default_factory=utc_now)
    signal_id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form used on the wire."""
        return {
            "signal_id": str(self.signal_id),
            "signal_type": self.signal_type.value,
            "learner_id": str(self.learner_id),
            "course_id": str(self.course_id),
            "module_id": str(self.module_id) if self.module_id else None,
            "final_score": str(self.final_score) if self.final_score is not None else None,
            "occurred_at": self.occurred_at.isoformat(),
        }
