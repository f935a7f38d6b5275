"""Quiz attempt read endpoints.

Provides routes for:
- Listing a learner's attempts on a quiz
- Reading one attempt
- Question delivery for an attempt

Starting, answering and submitting go through the event endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, Query

from .dependencies import AttemptManagerDep, handle_assessment_error
from .schemas import (
    AttemptDeliveryResponse,
    AttemptListResponse,
    AttemptResponse,
    QuestionDelivery,
)
from .service import AssessmentError


quizzes_router = APIRouter(prefix="/v1/quizzes", tags=["assessment"])
attempts_router = APIRouter(prefix="/v1/attempts", tags=["assessment"])


@quizzes_router.get(
    "/{quiz_id}/attempts",
    response_model=AttemptListResponse,
    summary="List attempts on a quiz",
)
async def list_attempts(
    quiz_id: UUID,
    manager: AttemptManagerDep,
    learner_id: UUID = Query(..., description="Learner UUID"),
) -> AttemptListResponse:
    """Attempts of a learner on a quiz, oldest first."""
    try:
        quiz = await manager.get_quiz(quiz_id)
        attempts = await manager.list_attempts(learner_id, quiz_id)
    except AssessmentError as e:
        raise handle_assessment_error(e) from e

    return AttemptListResponse(
        quiz_id=quiz_id,
        max_attempts=quiz.max_attempts,
        attempts_used=sum(1 for a in attempts if not a.is_open),
        items=[AttemptResponse.from_entity(a, quiz) for a in attempts],
    )


@attempts_router.get(
    "/{attempt_id}",
    response_model=AttemptResponse,
    summary="Get attempt",
)
async def get_attempt(
    attempt_id: UUID,
    manager: AttemptManagerDep,
    learner_id: UUID = Query(..., description="Learner UUID"),
) -> AttemptResponse:
    try:
        attempt = await manager.get_attempt(learner_id, attempt_id)
        quiz = await manager.get_quiz(attempt.quiz_id)
    except AssessmentError as e:
        raise handle_assessment_error(e) from e
    return AttemptResponse.from_entity(attempt, quiz)


@attempts_router.get(
    "/{attempt_id}/questions",
    response_model=AttemptDeliveryResponse,
    summary="Get attempt questions",
)
async def get_attempt_questions(
    attempt_id: UUID,
    manager: AttemptManagerDep,
    learner_id: UUID = Query(..., description="Learner UUID"),
) -> AttemptDeliveryResponse:
    """Questions in delivery order, without correct answers."""
    try:
        attempt, quiz, questions = await manager.get_delivery(learner_id, attempt_id)
    except AssessmentError as e:
        raise handle_assessment_error(e) from e

    return AttemptDeliveryResponse(
        attempt_id=attempt.id,
        quiz_id=quiz.id,
        title=quiz.title,
        state=attempt.state,
        deadline_at=attempt.deadline_at,
        time_limit_seconds=quiz.time_limit_seconds,
        questions=[
            QuestionDelivery.from_question(q, attempt.responses.get(str(q.id)))
            for q in questions
        ],
    )
