"""Stream connectors: endpoint pool, backoff, circuit breaker and stream types.

The supervisor, registry and transport live in their own modules and are imported
directly (they depend on the classifier and delivery packages).
"""

from whalestream.connectors.backoff import (
    BackoffConfig,
    BreakerMetrics,
    CircuitBreaker,
    CircuitState,
    compute_backoff_delay,
)
from whalestream.connectors.endpoints import Endpoint, EndpointPool
from whalestream.connectors.types import (
    ConnectionState,
    RawFrame,
    StreamConfig,
    StreamStatus,
    SupervisorMetrics,
)

__all__ = [
    "BackoffConfig",
    "BreakerMetrics",
    "CircuitBreaker",
    "CircuitState",
    "ConnectionState",
    "Endpoint",
    "EndpointPool",
    "RawFrame",
    "StreamConfig",
    "StreamStatus",
    "SupervisorMetrics",
    "compute_backoff_delay",
]
