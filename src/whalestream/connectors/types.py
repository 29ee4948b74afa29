"""
Types and configuration for stream connectors.

One StreamConfig describes one logical stream ("purpose"), e.g. "whale-monitor".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from whalestream.connectors.endpoints import Endpoint
from whalestream.connectors.xrpl import DEFAULT_XRPL_SERVERS, transactions_subscribe_message
from whalestream.errors import ConfigError

# Close code sent on a deliberate stop(); anything else is abnormal
CLEAN_CLOSE_CODE = 1000
ABNORMAL_CLOSE_CODE = 4000


class ConnectionState(str, Enum):
    """Lifecycle state of one logical stream."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTING = "DISCONNECTING"
    FAILED = "FAILED"


def _to_decimal(name: str, value: Any) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if not result.is_finite():
        raise ConfigError(f"{name} must be finite, got {value!r}")
    return result


@dataclass
class StreamConfig:
    """
    Configuration for one supervised stream.

    Attributes:
        purpose: Stream name, unique within a registry.
        endpoints: Equivalent feed servers (addresses or Endpoint objects).
        min_threshold: Smallest amount (canonical unit, inclusive) worth an alert.
        max_threshold: Largest amount (inclusive) worth an alert.
        heartbeat_interval_ms: Ping interval; 2x this without liveness is a failure.
        connect_timeout_ms: Bound on connect and subscribe handshake.
        backoff_base_ms: Backoff delay for attempt 0.
        backoff_max_ms: Backoff ceiling before jitter.
        backoff_jitter_factor: Jitter upper bound as a fraction of the delay.
        circuit_failure_threshold: Consecutive failures that open the breaker.
        circuit_reset_after_ms: Cool-down before the breaker lets a trial through.
        dedup_capacity: Number of recent reference ids remembered for dedup.
        alert_queue_size: Bound of the per-stream alert queue (drop-oldest).
        require_success: Only accept transactions whose engine_result is tesSUCCESS.
        suspicious_identical_run: Run of identical non-zero digits treated as noise.
        suspicious_nines_zeros_run: Run of 9s or 0s treated as noise.
        subscribe_message: Handshake sent right after the socket opens.
    """

    purpose: str = "whale-monitor"
    endpoints: list[Any] = field(default_factory=lambda: list(DEFAULT_XRPL_SERVERS))
    min_threshold: Decimal | int | float | str = Decimal("100000")
    max_threshold: Decimal | int | float | str = Decimal("50000000")
    heartbeat_interval_ms: int = 30000
    connect_timeout_ms: int = 20000
    backoff_base_ms: int = 1000
    backoff_max_ms: int = 300000
    backoff_jitter_factor: float = 0.2
    circuit_failure_threshold: int = 5
    circuit_reset_after_ms: int = 60000
    dedup_capacity: int = 10000
    alert_queue_size: int = 1000
    require_success: bool = True
    suspicious_identical_run: int = 7
    suspicious_nines_zeros_run: int = 8
    subscribe_message: dict[str, Any] = field(default_factory=transactions_subscribe_message)

    def __post_init__(self) -> None:
        if not self.purpose:
            raise ConfigError("purpose must be a non-empty string")
        if not self.endpoints:
            raise ConfigError(f"[{self.purpose}] endpoint list must not be empty")

        normalized: list[Endpoint] = []
        for entry in self.endpoints:
            endpoint = entry if isinstance(entry, Endpoint) else _endpoint_from_raw(entry)
            if not endpoint.address.startswith(("ws://", "wss://")):
                raise ConfigError(
                    f"[{self.purpose}] endpoint must be a ws:// or wss:// URL, "
                    f"got {endpoint.address!r}"
                )
            normalized.append(endpoint)
        self.endpoints = normalized

        self.min_threshold = _to_decimal("min_threshold", self.min_threshold)
        self.max_threshold = _to_decimal("max_threshold", self.max_threshold)
        if self.min_threshold < 0:
            raise ConfigError(f"min_threshold must be >= 0, got {self.min_threshold}")
        if self.max_threshold < self.min_threshold:
            raise ConfigError(
                f"max_threshold ({self.max_threshold}) must be >= "
                f"min_threshold ({self.min_threshold})"
            )

        for name in (
            "heartbeat_interval_ms",
            "connect_timeout_ms",
            "backoff_base_ms",
            "circuit_reset_after_ms",
        ):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0, got {getattr(self, name)}")
        if self.backoff_max_ms < self.backoff_base_ms:
            raise ConfigError(
                f"backoff_max_ms ({self.backoff_max_ms}) must be >= "
                f"backoff_base_ms ({self.backoff_base_ms})"
            )
        if not 0.0 <= self.backoff_jitter_factor <= 1.0:
            raise ConfigError(
                f"backoff_jitter_factor must be in [0, 1], got {self.backoff_jitter_factor}"
            )
        if self.circuit_failure_threshold < 1:
            raise ConfigError(
                f"circuit_failure_threshold must be >= 1, got {self.circuit_failure_threshold}"
            )
        if self.dedup_capacity < 1:
            raise ConfigError(f"dedup_capacity must be >= 1, got {self.dedup_capacity}")
        if self.alert_queue_size < 1:
            raise ConfigError(f"alert_queue_size must be >= 1, got {self.alert_queue_size}")
        if self.suspicious_identical_run < 2 or self.suspicious_nines_zeros_run < 2:
            raise ConfigError("suspicious digit runs must be >= 2")

    @property
    def addresses(self) -> list[str]:
        return [e.address for e in self.endpoints]


def _endpoint_from_raw(entry: Any) -> Endpoint:
    if isinstance(entry, str):
        return Endpoint(address=entry)
    if isinstance(entry, dict) and isinstance(entry.get("address"), str):
        return Endpoint(address=entry["address"], healthy=bool(entry.get("healthy", True)))
    raise ConfigError(f"invalid endpoint entry: {entry!r}")


@dataclass
class RawFrame:
    """
    Raw text frame received from the wire.

    Attributes:
        data: Frame payload as received (not yet parsed).
        recv_ts: Local receive timestamp (ms).
        purpose: Stream that received this frame.
    """

    data: str | bytes
    recv_ts: int
    purpose: str


@dataclass
class SupervisorMetrics:
    """Counters for one supervised stream."""

    purpose: str
    frames_received: int = 0
    last_frame_ts: int = 0
    connects: int = 0
    connect_failures: int = 0
    disconnects: int = 0
    reconnect_attempts: int = 0
    heartbeat_timeouts: int = 0
    breaker_rejections: int = 0


@dataclass(frozen=True)
class StreamStatus:
    """
    Read-only snapshot of one stream for health reporting.

    Attributes:
        purpose: Stream name.
        connection_state: Current ConnectionState value.
        circuit_breaker_state: Current CircuitState value.
        reconnect_attempts: Current ReconnectAttempt counter.
        last_event_ts: Timestamp (ms) of the last accepted event, 0 if none.
        endpoint: Address the stream uses (or will use next).
        frames_received: Total frames received.
        events_emitted: Total events handed to the alert queue.
        circuit_breaker: Breaker detail (failure count, cool-down, transition counters).
    """

    purpose: str
    connection_state: ConnectionState
    circuit_breaker_state: str
    reconnect_attempts: int
    last_event_ts: int
    endpoint: str
    frames_received: int = 0
    events_emitted: int = 0
    circuit_breaker: dict[str, str | int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "purpose": self.purpose,
            "connection_state": self.connection_state.value,
            "circuit_breaker_state": self.circuit_breaker_state,
            "reconnect_attempts": self.reconnect_attempts,
            "last_event_ts": self.last_event_ts,
            "endpoint": self.endpoint,
            "frames_received": self.frames_received,
            "events_emitted": self.events_emitted,
            "circuit_breaker": dict(self.circuit_breaker),
        }
