"""Pydantic schemas for inbound learning events.

Request and response models for:
- Progress events (video position, document acknowledgement)
- Quiz events (start, answer, submit)
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from src.assessment.schemas import AttemptResponse
from src.progress.schemas import PartProgressResponse


# ==============================================================================
# Progress Events
# ==============================================================================


class ProgressEventIn(BaseModel):
    """Position report for a video or document part.

    ``duration`` is only used when the catalog does not know the part's
    length. ``timestamp`` is the client clock and is informational only.
    """

    learner_id: UUID = Field(..., description="Learner UUID")
    part_id: UUID = Field(..., description="Part UUID")
    position: float | None = Field(
        default=None,
        ge=0,
        allow_inf_nan=False,
        description="Current position (seconds or pages)",
    )
    duration: float | None = Field(
        default=None,
        gt=0,
        allow_inf_nan=False,
        description="Content length reported by the client",
    )
    acknowledged: bool = Field(
        default=False, description="Document read acknowledgement"
    )
    timestamp: datetime | None = Field(default=None, description="Client time")

    @model_validator(mode="after")
    def check_position(self) -> "ProgressEventIn":
        if self.position is None and not self.acknowledged:
            raise ValueError("position is required unless acknowledged is true")
        return self


class ProgressEventResult(BaseModel):
    """Progress of the part after the event was applied."""

    accepted: bool = True
    progress: PartProgressResponse


# ==============================================================================
# Quiz Events
# ==============================================================================


class QuizAction(str, Enum):
    """Quiz event action."""

    START = "start"
    ANSWER = "answer"
    SUBMIT = "submit"


class QuizEventIn(BaseModel):
    """Quiz start, answer or submit."""

    learner_id: UUID = Field(..., description="Learner UUID")
    quiz_id: UUID = Field(..., description="Quiz UUID")
    action: QuizAction
    attempt_id: UUID | None = Field(default=None, description="Required for answer/submit")
    question_id: UUID | None = Field(default=None, description="Required for answer")
    answer: Any = Field(
        default=None,
        description="Choice id, list of choice ids, boolean or text",
    )
    timestamp: datetime | None = Field(default=None, description="Client time")

    @model_validator(mode="after")
    def check_action_fields(self) -> "QuizEventIn":
        if self.action in (QuizAction.ANSWER, QuizAction.SUBMIT) and self.attempt_id is None:
            raise ValueError(f"attempt_id is required for {self.action.value}")
        if self.action == QuizAction.ANSWER:
            if self.question_id is None:
                raise ValueError("question_id is required for answer")
            if self.answer is None:
                raise ValueError("answer is required for answer")
        return self


class QuizEventResult(BaseModel):
    """Attempt after the event was applied."""

    accepted: bool = True
    action: QuizAction
    attempt: AttemptResponse
