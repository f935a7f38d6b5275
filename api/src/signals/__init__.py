"""Outbound learning signals (module completed, course completed, certified)."""

from .emitter import SignalEmitter, SignalHandler
from .models import LearningSignal, SignalType


__all__ = [
    "LearningSignal",
    "SignalEmitter",
    "SignalHandler",
    "SignalType",
]
