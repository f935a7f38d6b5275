"""Fire-and-forget signal emitter with background delivery.

Key features:
- Non-blocking emission (asyncio.Queue.put_nowait())
- Graceful degradation (drop + log on queue full, run without Redis)
- Delivery to Redis pub/sub and to in-process handlers
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import orjson
import structlog

from src.core.redis import signal_broadcast_channel, signal_learner_channel

from .models import LearningSignal


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


SignalHandler = Callable[[LearningSignal], Awaitable[None]]


class SignalEmitter:
    """Non-blocking signal emitter with background worker.

    Signals are queued by the progress service and delivered by a worker
    task, so publishing never delays event processing.
    """

    def __init__(
        self,
        redis: Redis | None = None,
        channel_prefix: str = "learning:signals",
        queue_size: int = 10000,
        shutdown_timeout: float = 5.0,
    ) -> None:
        """Initialize signal emitter.

        Args:
            redis: Optional Redis client for pub/sub delivery
            channel_prefix: Prefix of the broadcast and per-learner channels
            queue_size: Maximum queue size (signals dropped when full)
            shutdown_timeout: Seconds stop() waits for queued signals
        """
        self.redis = redis
        self.channel_prefix = channel_prefix
        self.queue_size = queue_size
        self.shutdown_timeout = shutdown_timeout

        self._queue: asyncio.Queue[LearningSignal] = asyncio.Queue(maxsize=queue_size)
        self._handlers: list[SignalHandler] = []
        self._running = False
        self._worker_task: asyncio.Task | None = None

        # Counters for monitoring
        self._signals_emitted = 0
        self._signals_dropped = 0
        self._signals_delivered = 0

    def subscribe(self, handler: SignalHandler) -> None:
        """Register an in-process handler called for every signal."""
        self._handlers.append(handler)

    @property
    def stats(self) -> dict[str, int]:
        return {
            "emitted": self._signals_emitted,
            "dropped": self._signals_dropped,
            "delivered": self._signals_delivered,
            "queued": self._queue.qsize(),
        }

    # ==========================================================================
    # Fire-and-forget emission
    # ==========================================================================

    def emit(self, signal: LearningSignal) -> bool:
        """Queue a signal.

        Returns:
            True if queued, False if dropped
        """
        try:
            self._queue.put_nowait(signal)
            self._signals_emitted += 1
            return True
        except asyncio.QueueFull:
            self._signals_dropped += 1
            logger.warning(
                "signals_queue_full",
                signal_type=signal.signal_type.value,
                learner_id=str(signal.learner_id),
                dropped_total=self._signals_dropped,
            )
            return False

    # ==========================================================================
    # Background Worker
    # ==========================================================================

    async def start(self) -> None:
        """Start the background worker."""
        if self._running:
            logger.warning("signal_emitter_already_running")
            return

        self._running = True
        self._worker_task = asyncio.create_task(
            self._worker_loop(),
            name="signal_worker",
        )
        logger.info(
            "signal_emitter_started",
            queue_size=self.queue_size,
            redis_enabled=self.redis is not None,
        )

    async def stop(self) -> None:
        """Stop the worker and deliver what is still queued."""
        if not self._running:
            return

        self._running = False

        # The worker finishes the signal in hand and empties the queue
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.shutdown_timeout)
        except TimeoutError:
            logger.warning(
                "signal_emitter_stop_timeout",
                queued=self._queue.qsize(),
                timeout=self.shutdown_timeout,
            )

        if self._worker_task:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

        logger.info(
            "signal_emitter_stopped",
            signals_emitted=self._signals_emitted,
            signals_delivered=self._signals_delivered,
            signals_dropped=self._signals_dropped,
        )

    async def drain(self) -> int:
        """Deliver every queued signal now. Returns how many were delivered."""
        delivered = 0
        while not self._queue.empty():
            try:
                signal = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            try:
                await self._deliver(signal)
            finally:
                self._queue.task_done()
            delivered += 1
        return delivered

    async def _worker_loop(self) -> None:
        # Runs until cancelled by stop(), which first waits for the queue to empty
        while True:
            signal = await self._queue.get()
            try:
                await self._deliver(signal)
            except Exception:
                logger.exception("signal_worker_error")
            finally:
                self._queue.task_done()

    async def _deliver(self, signal: LearningSignal) -> None:
        """Publish to Redis and call handlers; failures are logged per target."""
        if self.redis is not None:
            payload = orjson.dumps(signal.to_dict())
            try:
                await self.redis.publish(
                    signal_broadcast_channel(self.channel_prefix), payload
                )
                await self.redis.publish(
                    signal_learner_channel(self.channel_prefix, signal.learner_id),
                    payload,
                )
            except Exception:
                logger.exception(
                    "signal_publish_failed",
                    signal_type=signal.signal_type.value,
                    signal_id=str(signal.signal_id),
                )

        for handler in self._handlers:
            try:
                await handler(signal)
            except Exception:
                logger.exception(
                    "signal_handler_failed",
                    signal_type=signal.signal_type.value,
                    handler=getattr(handler, "__name__", repr(handler)),
                )

        self._signals_delivered += 1
        logger.debug(
            "signal_delivered",
            signal_type=signal.signal_type.value,
            signal_id=str(signal.signal_id),
            learner_id=str(signal.learner_id),
        )
