"""
Stream registry.

Holds every StreamSupervisor by purpose. Constructed by the runner and passed to
whatever needs it (status server, exporter); there is no module-level instance.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from whalestream.connectors.types import ConnectionState
from whalestream.errors import ConfigError

if TYPE_CHECKING:
    from whalestream.connectors.supervisor import StreamSupervisor
    from whalestream.connectors.types import StreamStatus

logger = logging.getLogger(__name__)

DEFAULT_STOP_GRACE_S = 30.0


class StreamRegistry:
    """Purpose -> StreamSupervisor map with fleet-wide start/stop."""

    def __init__(self) -> None:
        self._supervisors: dict[str, StreamSupervisor] = {}

    def register(self, supervisor: StreamSupervisor) -> None:
        """Add a supervisor. Purposes must be unique."""
        if supervisor.purpose in self._supervisors:
            raise ConfigError(f"duplicate stream purpose: {supervisor.purpose!r}")
        self._supervisors[supervisor.purpose] = supervisor

    def get(self, purpose: str) -> StreamSupervisor | None:
        return self._supervisors.get(purpose)

    @property
    def supervisors(self) -> list[StreamSupervisor]:
        return list(self._supervisors.values())

    def __len__(self) -> int:
        return len(self._supervisors)

    def __contains__(self, purpose: object) -> bool:
        return purpose in self._supervisors

    def statuses(self) -> list[StreamStatus]:
        return [s.status() for s in self._supervisors.values()]

    def all_connected(self) -> bool:
        """True when at least one stream exists and every stream is CONNECTED."""
        statuses = self.statuses()
        return bool(statuses) and all(
            s.connection_state == ConnectionState.CONNECTED for s in statuses
        )

    async def start_all(self) -> None:
        """Start every stream concurrently; failures are retried by each supervisor."""
        await asyncio.gather(*(s.start() for s in self._supervisors.values()))

    async def stop_all(self, grace_s: float = DEFAULT_STOP_GRACE_S) -> list[str]:
        """
        Stop every stream concurrently.

        Args:
            grace_s: Time allowed for all supervisors to stop.

        Returns:
            Purposes that did not stop within the grace period and were abandoned.
        """
        if not self._supervisors:
            return []

        tasks = {
            asyncio.create_task(s.stop(), name=f"stop:{purpose}"): purpose
            for purpose, s in self._supervisors.items()
        }
        done, pending = await asyncio.wait(tasks, timeout=grace_s)

        for task in done:
            exc = task.exception()
            if exc is not None:
                logger.error(
                    "Error stopping stream",
                    extra={"purpose": tasks[task], "error": str(exc)},
                )

        abandoned = sorted(tasks[task] for task in pending)
        for task in pending:
            task.cancel()
        if abandoned:
            logger.warning(
                "Streams did not stop within grace period, abandoning",
                extra={"purposes": abandoned, "grace_s": grace_s},
            )
        return abandoned
