"""Inbound learning events: validation, serialization and dispatch."""

from .schemas import ProgressEventIn, QuizAction, QuizEventIn
from .service import EventIngestor, EventValidationError


__all__ = [
    "EventIngestor",
    "EventValidationError",
    "ProgressEventIn",
    "QuizAction",
    "QuizEventIn",
]
