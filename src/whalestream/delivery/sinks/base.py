"""
Base alert sink.

Every alert destination implements AlertSink; the dispatcher only knows this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from whalestream.contracts import WhaleTransfer

SinkType = Literal["telegram", "discord", "webhook", "log", "router"]


@dataclass
class DeliveryResult:
    """Result of a delivery attempt."""

    success: bool
    sink_name: str
    error: str | None = None
    status_code: int | None = None
    retry_after_s: float | None = None  # For rate limit responses


class AlertSink(ABC):
    """Abstract base class for alert sinks."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this sink (never contains secrets)."""
        ...

    @property
    @abstractmethod
    def sink_type(self) -> SinkType:
        """Type of this sink."""
        ...

    @abstractmethod
    async def notify(self, event: WhaleTransfer) -> DeliveryResult:
        """
        Deliver one whale transfer.

        Args:
            event: Accepted transfer event.

        Returns:
            DeliveryResult indicating success or failure
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any resources held by this sink."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
