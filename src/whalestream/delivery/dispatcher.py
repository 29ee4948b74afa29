"""
Alert dispatcher.

A per-stream bounded FIFO between the receive loop and the sink. The receive loop never
awaits delivery: submit() is synchronous and, when the queue is full, the oldest queued
alert is dropped to make room.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from whalestream.contracts import WhaleTransfer
    from whalestream.delivery.sinks.base import AlertSink

logger = logging.getLogger(__name__)


@dataclass
class DispatcherMetrics:
    """Queue counters for one stream."""

    enqueued: int = 0
    delivered: int = 0
    failed: int = 0
    dropped: int = 0


class AlertDispatcher:
    """
    Single-consumer alert queue.

    Delivery failures are logged and counted; they never propagate to the caller.
    """

    def __init__(self, sink: AlertSink, *, maxsize: int = 1000, purpose: str = "whale-monitor") -> None:
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self._sink = sink
        self._purpose = purpose
        self._queue: asyncio.Queue[WhaleTransfer] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task[None] | None = None
        self._metrics = DispatcherMetrics()

    @property
    def sink(self) -> AlertSink:
        return self._sink

    @property
    def metrics(self) -> DispatcherMetrics:
        return self._metrics

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def qsize(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the consumer task (idempotent)."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._consume(), name=f"alert-dispatch:{self._purpose}")

    def submit(self, event: WhaleTransfer) -> None:
        """Enqueue an event; drops the oldest queued event if the queue is full."""
        if self._queue.full():
            with contextlib.suppress(asyncio.QueueEmpty):
                dropped = self._queue.get_nowait()
                self._queue.task_done()
                self._metrics.dropped += 1
                logger.warning(
                    "Alert queue full, dropping oldest alert",
                    extra={"purpose": self._purpose, "reference_id": dropped.reference_id},
                )
        self._queue.put_nowait(event)
        self._metrics.enqueued += 1

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: WhaleTransfer) -> None:
        try:
            result = await self._sink.notify(event)
        except Exception as e:
            self._metrics.failed += 1
            logger.error(
                "Alert delivery raised",
                extra={"purpose": self._purpose, "sink": self._sink.name, "error": str(e)},
            )
            return

        if result.success:
            self._metrics.delivered += 1
        else:
            self._metrics.failed += 1
            logger.warning(
                "Alert delivery failed",
                extra={
                    "purpose": self._purpose,
                    "sink": result.sink_name,
                    "error": result.error,
                    "status": result.status_code,
                },
            )

    async def stop(self, drain_timeout_s: float = 0.0) -> None:
        """
        Stop the consumer.

        Args:
            drain_timeout_s: Time allowed for queued alerts to be delivered first.
                Alerts still queued afterwards are discarded and counted as dropped.
        """
        task = self._task
        if task is None:
            return

        if drain_timeout_s > 0 and not task.done():
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout_s)
            except TimeoutError:
                logger.warning(
                    "Alert queue drain timed out",
                    extra={"purpose": self._purpose, "pending": self._queue.qsize()},
                )

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._task = None

        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            self._metrics.dropped += 1
