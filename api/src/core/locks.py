"""Per-resource serialization.

A ``KeyedLock`` hands out one ``asyncio.Lock`` per key, so work on the same
(learner, resource) pair runs one operation at a time while work on other
keys proceeds concurrently. ``asyncio.Lock`` wakes waiters in FIFO order,
which keeps operations on a key in arrival order.

Entries are reference counted and dropped once nobody holds or waits on them,
so the registry only grows with the number of keys in flight.
"""

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

import structlog

from src.core.context import resource_key_var


logger = structlog.get_logger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


def format_key(key: tuple[Hashable, ...]) -> str:
    """Render a lock key for logs, e.g. ``part:<learner>:<part>``."""
    return ":".join(str(part) for part in key)


class KeyedLock:
    """Registry of FIFO locks keyed by resource."""

    def __init__(self) -> None:
        self._entries: dict[tuple[Hashable, ...], _Entry] = {}

    @asynccontextmanager
    async def hold(self, *key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        Not reentrant: acquiring the same key twice from one task deadlocks.
        Callers that need several keys acquire them in a fixed order
        (resource, then course).
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1

        token = resource_key_var.set(format_key(key))
        try:
            async with entry.lock:
                yield
        finally:
            resource_key_var.reset(token)
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    def locked(self, *key: Hashable) -> bool:
        """Whether ``key`` is currently held."""
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
