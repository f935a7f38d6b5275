"""FastAPI dependencies for quiz attempts.

Provides dependency injection for:
- Attempt manager
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import AssessmentError, AttemptManager


async def get_attempt_manager(request: Request) -> AttemptManager:
    """Get attempt manager from app state.

    Args:
        request: FastAPI request

    Returns:
        AttemptManager instance
    """
    app_state = request.app.state
    if not hasattr(app_state, "attempt_manager") or not app_state.attempt_manager:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assessment service unavailable",
        )
    return app_state.attempt_manager


# Type alias for dependency injection
AttemptManagerDep = Annotated[AttemptManager, Depends(get_attempt_manager)]


def handle_assessment_error(error: AssessmentError) -> HTTPException:
    """Convert assessment errors to HTTP exceptions.

    Args:
        error: Assessment error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "attempts_exhausted": status.HTTP_409_CONFLICT,
        "attempt_in_progress": status.HTTP_409_CONFLICT,
        "attempt_closed": status.HTTP_409_CONFLICT,
        "attempt_not_found": status.HTTP_404_NOT_FOUND,
        "quiz_not_found": status.HTTP_404_NOT_FOUND,
        "question_not_found": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "invalid_answer": status.HTTP_422_UNPROCESSABLE_ENTITY,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message},
    )
