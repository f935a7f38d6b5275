"""Learning event endpoints.

Provides routes for:
- Progress events (video position, document acknowledgement)
- Quiz events (start, answer, submit)
"""

from fastapi import APIRouter

from src.assessment.dependencies import handle_assessment_error
from src.assessment.schemas import AttemptResponse
from src.assessment.service import AssessmentError
from src.catalog.service import CatalogError
from src.progress.dependencies import handle_progress_error
from src.progress.schemas import PartProgressResponse
from src.progress.service import ProgressError

from .dependencies import EventIngestorDep, handle_event_error
from .schemas import ProgressEventIn, ProgressEventResult, QuizEventIn, QuizEventResult
from .service import EventValidationError


router = APIRouter(prefix="/v1/events", tags=["events"])


@router.post(
    "/progress",
    response_model=ProgressEventResult,
    summary="Report part progress",
)
async def post_progress_event(
    event: ProgressEventIn,
    ingestor: EventIngestorDep,
) -> ProgressEventResult:
    """Apply a position report or document acknowledgement.

    Safe to retry: replaying an event never changes the result.
    """
    try:
        progress = await ingestor.ingest_progress(event)
    except EventValidationError as e:
        raise handle_event_error(e) from e
    except (ProgressError, CatalogError) as e:
        raise handle_progress_error(e) from e

    return ProgressEventResult(progress=PartProgressResponse.from_entity(progress))


@router.post(
    "/quiz",
    response_model=QuizEventResult,
    summary="Start, answer or submit a quiz",
)
async def post_quiz_event(
    event: QuizEventIn,
    ingestor: EventIngestorDep,
) -> QuizEventResult:
    """Apply a quiz action. Submitting a closed attempt returns it unchanged."""
    try:
        attempt = await ingestor.ingest_quiz(event)
        quiz = await ingestor.attempts.get_quiz(attempt.quiz_id)
    except EventValidationError as e:
        raise handle_event_error(e) from e
    except AssessmentError as e:
        raise handle_assessment_error(e) from e
    except (ProgressError, CatalogError) as e:
        raise handle_progress_error(e) from e

    return QuizEventResult(
        action=event.action,
        attempt=AttemptResponse.from_entity(attempt, quiz),
    )
