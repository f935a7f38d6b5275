"""Request context management using contextvars.

Each request (or background job) carries a request ID and, once known, the
learner it acts for and the resource key it is serialized on. Anything in the
call stack can read these values without passing them explicitly, and the
logging processors attach them to every log entry.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
learner_id_var: ContextVar[str | None] = ContextVar("learner_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
resource_key_var: ContextVar[str | None] = ContextVar("resource_key", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_learner_id() -> str | None:
    """Get the learner the current request acts for."""
    return learner_id_var.get()


def set_learner_id(learner_id: str | UUID | None) -> None:
    """Set the learner ID for the current context."""
    learner_id_var.set(str(learner_id) if learner_id is not None else None)


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def get_resource_key() -> str | None:
    """Get the resource key the current operation is serialized on."""
    return resource_key_var.get()


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    learner_id = get_learner_id()
    if learner_id:
        context["learner_id"] = learner_id

    correlation_id = get_correlation_id()
    if correlation_id:
        context["correlation_id"] = correlation_id

    resource_key = get_resource_key()
    if resource_key:
        context["resource_key"] = resource_key

    return context


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request to prevent context leakage.
    """
    request_id_var.set("")
    learner_id_var.set(None)
    correlation_id_var.set(None)
    resource_key_var.set(None)


class RequestContext:
    """Context manager for a request or background job scope.

    Usage:
        with RequestContext(learner_id=learner_id):
            log.info("attempt_expired")  # includes request_id, learner_id
    """

    def __init__(
        self,
        request_id: str | None = None,
        learner_id: str | UUID | None = None,
        correlation_id: str | None = None,
    ) -> None:
        self.request_id = request_id
        self.learner_id = learner_id
        self.correlation_id = correlation_id
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> "RequestContext":
        """Enter context and set variables."""
        self._tokens.append(
            (request_id_var, request_id_var.set(self.request_id or generate_request_id()))
        )
        if self.learner_id is not None:
            self._tokens.append(
                (learner_id_var, learner_id_var.set(str(self.learner_id)))
            )
        if self.correlation_id is not None:
            self._tokens.append(
                (correlation_id_var, correlation_id_var.set(self.correlation_id))
            )
        return self

    def __exit__(self, *_: object) -> None:
        """Exit context and restore previous values."""
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
