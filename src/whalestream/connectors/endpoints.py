"""
Endpoint pool for a single logical stream.

All configured endpoints are treated as equivalent servers of the same feed.
Rotation is deterministic round-robin; endpoints configured as unhealthy are
skipped unless every endpoint is unhealthy. N rotations of an N-endpoint pool
come back to the starting endpoint only when every endpoint is healthy (or every
one is unhealthy); with [A, B(unhealthy), C] the cycle is A, C, A, C.
"""

from __future__ import annotations

from dataclasses import dataclass

from whalestream.errors import ConfigError


@dataclass(frozen=True)
class Endpoint:
    """
    A feed endpoint.

    Attributes:
        address: WebSocket URL (e.g., "wss://s1.ripple.com").
        healthy: Opaque health flag, fixed at configuration time.
    """

    address: str
    healthy: bool = True

    def __str__(self) -> str:
        return self.address


class EndpointPool:
    """Ordered list of equivalent endpoints with a rotation cursor."""

    def __init__(self, endpoints: list[Endpoint]) -> None:
        if not endpoints:
            raise ConfigError("EndpointPool requires at least one endpoint")
        self._endpoints: tuple[Endpoint, ...] = tuple(endpoints)
        self._cursor = 0
        if not self._endpoints[0].healthy and self._any_healthy():
            self.rotate()

    def _any_healthy(self) -> bool:
        return any(e.healthy for e in self._endpoints)

    def current(self) -> Endpoint:
        """Endpoint the next connection attempt should use."""
        return self._endpoints[self._cursor]

    def rotate(self) -> Endpoint:
        """
        Advance the cursor circularly and return the new current endpoint.

        Unhealthy endpoints are skipped; if none is healthy, plain round-robin
        applies so a pool never runs out of endpoints. Skipping shortens the cycle,
        so size() rotations return to the start only in a uniformly healthy pool.
        """
        size = len(self._endpoints)
        skip_unhealthy = self._any_healthy()
        for _ in range(size):
            self._cursor = (self._cursor + 1) % size
            if not skip_unhealthy or self._endpoints[self._cursor].healthy:
                break
        return self._endpoints[self._cursor]

    def size(self) -> int:
        """Number of configured endpoints."""
        return len(self._endpoints)

    def __len__(self) -> int:
        return len(self._endpoints)

    @property
    def endpoints(self) -> tuple[Endpoint, ...]:
        return self._endpoints

    def __repr__(self) -> str:
        return f"EndpointPool(size={len(self._endpoints)}, current={self.current().address!r})"
