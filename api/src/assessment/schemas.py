"""Pydantic schemas for quiz attempts.

Response models for:
- Attempt state and results
- Question delivery (never includes correct answers)
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.catalog.models import Question, QuestionType, Quiz

from .models import AttemptState, QuizAttempt


# ==============================================================================
# Attempt Schemas
# ==============================================================================


class QuestionResultResponse(BaseModel):
    """Grading of one question."""

    question_id: UUID
    is_correct: bool | None = Field(description="None while awaiting review")
    points_awarded: int
    points_possible: int
    requires_review: bool = False


class AttemptResponse(BaseModel):
    """Quiz attempt as seen by the learner.

    Scores stay hidden when the quiz does not show results immediately.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    learner_id: UUID
    quiz_id: UUID
    part_id: UUID
    attempt_number: int
    state: AttemptState
    answered: int = Field(description="Number of questions answered")
    started_at: datetime
    deadline_at: datetime | None = None
    finished_at: datetime | None = None
    raw_score: Decimal | None = None
    max_score: Decimal | None = None
    percent_score: Decimal | None = None
    passed: bool | None = None
    pending_review: int = 0
    results_visible: bool = True
    details: list[QuestionResultResponse] = []

    @classmethod
    def from_entity(cls, entity: QuizAttempt, quiz: Quiz | None = None) -> "AttemptResponse":
        """Create response from entity."""
        visible = not entity.is_open and (quiz is None or quiz.show_results_immediately)
        return cls(
            id=entity.id,
            learner_id=entity.learner_id,
            quiz_id=entity.quiz_id,
            part_id=entity.part_id,
            attempt_number=entity.attempt_number,
            state=AttemptState(entity.state),
            answered=len(entity.responses),
            started_at=entity.started_at,
            deadline_at=entity.deadline_at,
            finished_at=entity.finished_at,
            raw_score=entity.raw_score if visible else None,
            max_score=entity.max_score if visible else None,
            percent_score=entity.percent_score if visible else None,
            passed=entity.passed if visible else None,
            pending_review=entity.pending_review,
            results_visible=visible,
            details=(
                [QuestionResultResponse(**detail) for detail in entity.details]
                if visible
                else []
            ),
        )


class AttemptListResponse(BaseModel):
    """Attempts of a learner on one quiz."""

    quiz_id: UUID
    max_attempts: int
    attempts_used: int
    items: list[AttemptResponse]


# ==============================================================================
# Delivery Schemas
# ==============================================================================


class ChoiceDelivery(BaseModel):
    """Answer option without its correctness flag."""

    id: UUID
    text: str


class QuestionDelivery(BaseModel):
    """Question as delivered to the learner."""

    id: UUID
    question_type: QuestionType
    prompt: str
    points: int
    choices: list[ChoiceDelivery] = []
    answer: Any = Field(default=None, description="Answer recorded so far")

    @classmethod
    def from_question(cls, question: Question, answer: Any = None) -> "QuestionDelivery":
        return cls(
            id=question.id,
            question_type=question.question_type,
            prompt=question.prompt,
            points=question.points,
            choices=[ChoiceDelivery(id=c.id, text=c.text) for c in question.choices],
            answer=answer,
        )


class AttemptDeliveryResponse(BaseModel):
    """Questions of an attempt in delivery order."""

    attempt_id: UUID
    quiz_id: UUID
    title: str
    state: AttemptState
    deadline_at: datetime | None = None
    time_limit_seconds: int | None = None
    questions: list[QuestionDelivery]
