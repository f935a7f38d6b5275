"""Background sweep closing overdue quiz attempts.

Deadlines are also enforced lazily whenever an attempt is touched; the sweep
makes sure attempts nobody touches again still get closed and scored.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from src.core.context import RequestContext


if TYPE_CHECKING:
    from .service import AttemptManager


logger = structlog.get_logger(__name__)


class AttemptSweeper:
    """Periodically runs ``AttemptManager.expire_overdue``."""

    def __init__(self, manager: AttemptManager, interval: float = 30.0) -> None:
        self.manager = manager
        self.interval = interval

        self._running = False
        self._worker_task: asyncio.Task | None = None
        self._sweeps = 0
        self._expired_total = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background worker."""
        if self._running:
            logger.warning("attempt_sweeper_already_running")
            return

        self._running = True
        self._worker_task = asyncio.create_task(
            self._worker_loop(),
            name="attempt_sweeper",
        )
        logger.info("attempt_sweeper_started", interval=self.interval)

    async def stop(self) -> None:
        """Stop the background worker."""
        if not self._running:
            return

        self._running = False

        if self._worker_task:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass

        logger.info(
            "attempt_sweeper_stopped",
            sweeps=self._sweeps,
            expired_total=self._expired_total,
        )

    async def sweep_once(self) -> int:
        """Run one sweep; failures are logged, never raised."""
        with RequestContext():
            try:
                expired = await self.manager.expire_overdue()
            except Exception:
                logger.exception("attempt_sweep_error")
                return 0

        self._sweeps += 1
        self._expired_total += expired
        return expired

    async def _worker_loop(self) -> None:
        while self._running:
            await self.sweep_once()
            await asyncio.sleep(self.interval)
