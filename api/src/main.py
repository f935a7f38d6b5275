"""Learnpath API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.assessment.repository import AttemptRepository
from src.assessment.router import attempts_router, quizzes_router
from src.assessment.service import AttemptManager
from src.assessment.sweeper import AttemptSweeper
from src.catalog.service import CatalogService
from src.config import get_settings
from src.core.context import get_request_id
from src.core.locks import KeyedLock
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.health import router as health_router
from src.ingest.router import router as events_router
from src.ingest.service import EventIngestor
from src.progress.repository import ProgressRepository
from src.progress.router import enrollments_router
from src.progress.service import ProgressService
from src.signals.emitter import SignalEmitter


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


# Application state for background workers owned by the lifespan
class AppState:
    """Application state container."""

    cassandra_session: Any = None
    signal_emitter: SignalEmitter | None = None
    attempt_sweeper: AttemptSweeper | None = None


app_state = AppState()


def is_storage_error(exc: Exception) -> bool:
    """Whether ``exc`` is a transient storage or broker failure."""
    if isinstance(exc, ConnectionError | TimeoutError):
        return True
    module = type(exc).__module__ or ""
    return module.startswith(("cassandra", "redis"))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize Redis (non-critical - signals stay in-process without it)
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - signals are not published",
        )
    app.state.redis = redis_client

    app_state.signal_emitter = SignalEmitter(
        redis=redis_client,
        channel_prefix=settings.signals_channel,
        queue_size=settings.signals_queue_size,
    )
    app.state.signal_emitter = app_state.signal_emitter
    await app_state.signal_emitter.start()

    # Initialize Cassandra (async)
    try:
        from src.core.database import init_async_cassandra

        app_state.cassandra_session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        session = app_state.cassandra_session
        keyspace = settings.cassandra_keyspace
        locks = KeyedLock()

        catalog = CatalogService(
            session=session,
            keyspace=keyspace,
            default_pass_threshold=settings.quiz_default_pass_threshold,
            default_max_attempts=settings.quiz_default_max_attempts,
        )
        attempt_repository = AttemptRepository(session=session, keyspace=keyspace)

        progress_service = ProgressService(
            repository=ProgressRepository(session=session, keyspace=keyspace),
            catalog=catalog,
            attempts=attempt_repository,
            locks=locks,
            signals=app_state.signal_emitter,
            completion_threshold=settings.progress_completion_threshold,
            sequential_modules=settings.progress_sequential_modules,
        )
        app.state.progress_service = progress_service
        logger.info("progress_service_initialized")

        attempt_manager = AttemptManager(
            attempts=attempt_repository,
            catalog=catalog,
            progress=progress_service,
            locks=locks,
            untimed_expiry=timedelta(days=settings.quiz_untimed_attempt_expiry_days),
        )
        app.state.attempt_manager = attempt_manager
        logger.info("attempt_manager_initialized")

        app.state.event_ingestor = EventIngestor(
            catalog=catalog,
            progress=progress_service,
            attempts=attempt_manager,
            locks=locks,
        )
        logger.info("event_ingestor_initialized")

        app_state.attempt_sweeper = AttemptSweeper(
            attempt_manager, interval=settings.quiz_sweep_interval_seconds
        )
        await app_state.attempt_sweeper.start()
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    if app_state.attempt_sweeper:
        await app_state.attempt_sweeper.stop()
    await app_state.signal_emitter.stop()
    await shutdown_redis()
    if app_state.cassandra_session is not None:
        from src.core.database import shutdown_async_cassandra

        await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # SECURITY: Always set debug=False to prevent Starlette's ServerErrorMiddleware
    # from exposing stack traces in responses.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Learning progression and assessment engine - API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions; service errors carry a ``code`` in detail."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=request.url.path,
            method=request.method,
        )

        if isinstance(exc.detail, dict):
            code = exc.detail.get("code")
            message = exc.detail.get("message", "")
        else:
            code = None
            message = str(exc.detail)

        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR and (
            exc.status_code != status.HTTP_503_SERVICE_UNAVAILABLE
        ):
            message = "Internal server error"

        content: dict[str, Any] = {
            "error": True,
            "message": message,
            "status_code": exc.status_code,
            "request_id": request_id,
        }
        if code:
            content["code"] = code
        return ORJSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle malformed requests; these details are safe to expose."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "code": "invalid_event",
                "message": "Validation error",
                "status_code": 422,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        Storage failures become a retryable 503; anything else a generic 500.
        Stack traces are logged, never returned.
        """
        request_id = _get_request_id_safe(request)

        if is_storage_error(exc):
            logger.exception(
                "storage_unavailable",
                error_type=type(exc).__name__,
                error_message=str(exc),
                path=request.url.path,
                method=request.method,
            )
            return ORJSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "error": True,
                    "code": "storage_unavailable",
                    "message": "Storage temporarily unavailable. Please retry.",
                    "retryable": True,
                    "status_code": 503,
                    "request_id": request_id,
                },
            )

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(events_router)
    app.include_router(enrollments_router)
    app.include_router(quizzes_router)
    app.include_router(attempts_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Learnpath API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
