"""Request middleware for context management and logging.

Every request gets a request id (taken from ``X-Request-ID`` or generated)
and, when the caller identifies one, a learner id. Both land in the logging
context so every line emitted while handling the event carries them.
"""

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.context import (
    clear_context,
    set_correlation_id,
    set_learner_id,
    set_request_id,
)


logger = structlog.get_logger(__name__)


REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"
# Forwarded by the authenticating gateway
LEARNER_ID_HEADER = "X-Learner-ID"


def learner_hint(request: Request) -> str | None:
    """Learner id from the gateway header, falling back to the query string."""
    return request.headers.get(LEARNER_ID_HEADER) or request.query_params.get(
        "learner_id"
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request context for logging and log each request with timing."""

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = tuple(exclude_paths or ["/health"])

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start_time = time.perf_counter()

        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        correlation_id = request.headers.get(CORRELATION_ID_HEADER)
        if correlation_id:
            set_correlation_id(correlation_id)

        learner_id = learner_hint(request)
        if learner_id:
            set_learner_id(learner_id)

        should_log = self.log_requests and not request.url.path.startswith(
            self.exclude_paths
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                duration_ms=_elapsed_ms(start_time),
            )
            raise
        finally:
            clear_context()

        if should_log:
            if response.status_code >= 500:
                log_method = logger.error
            elif response.status_code >= 400:
                log_method = logger.warning
            else:
                log_method = logger.info
            log_method(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=_elapsed_ms(start_time),
                request_id=request_id,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        if correlation_id:
            response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)


__all__ = ["RequestContextMiddleware", "learner_hint"]
