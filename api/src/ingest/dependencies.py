"""FastAPI dependencies for event ingestion.

Provides dependency injection for:
- Event ingestor
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import EventIngestor, EventValidationError


async def get_event_ingestor(request: Request) -> EventIngestor:
    """Get event ingestor from app state."""
    app_state = request.app.state
    if not hasattr(app_state, "event_ingestor") or not app_state.event_ingestor:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event ingestion unavailable",
        )
    return app_state.event_ingestor


# Type alias for dependency injection
EventIngestorDep = Annotated[EventIngestor, Depends(get_event_ingestor)]


def handle_event_error(error: EventValidationError) -> HTTPException:
    """Convert event validation errors to HTTP exceptions.

    Unknown ids are 404, everything else is 422.
    """
    status_map = {
        "unknown_part": status.HTTP_404_NOT_FOUND,
        "unknown_quiz": status.HTTP_404_NOT_FOUND,
        "unknown_attempt": status.HTTP_404_NOT_FOUND,
        "unknown_question": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "not_enrolled": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "invalid_answer": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "wrong_part_type": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "invalid_event": status.HTTP_422_UNPROCESSABLE_ENTITY,
    }

    status_code = status_map.get(error.code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message},
    )
