# Core infrastructure
from src.core.clock import Clock, ensure_utc_aware, utc_now
from src.core.context import (
    RequestContext,
    clear_context,
    get_context,
    get_correlation_id,
    get_learner_id,
    get_request_id,
    get_resource_key,
    set_correlation_id,
    set_learner_id,
    set_request_id,
)
from src.core.locks import KeyedLock
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware


__all__ = [
    "Clock",
    "KeyedLock",
    "RequestContext",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "ensure_utc_aware",
    "get_context",
    "get_correlation_id",
    "get_learner_id",
    "get_logger",
    "get_request_id",
    "get_resource_key",
    "set_correlation_id",
    "set_learner_id",
    "set_request_id",
    "utc_now",
]
