"""
Prometheus metrics exporter for whalestream.

Exports low-cardinality metrics only: the single label is the stream purpose.
No endpoint, account or transaction labels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

from whalestream.classifier import RejectReason
from whalestream.connectors.backoff import CircuitState
from whalestream.connectors.types import ConnectionState

if TYPE_CHECKING:
    from whalestream.connectors.registry import StreamRegistry
    from whalestream.connectors.supervisor import StreamSupervisor

# Labels that would cause cardinality explosion
FORBIDDEN_LABELS = frozenset(
    {
        "endpoint",
        "account",
        "source",
        "destination",
        "reference_id",
        "hash",
        "ip",
        "token",
    }
)

# Numeric encodings for state gauges
CONNECTION_STATE_VALUES: dict[ConnectionState, int] = {
    ConnectionState.IDLE: 0,
    ConnectionState.CONNECTING: 1,
    ConnectionState.CONNECTED: 2,
    ConnectionState.DISCONNECTING: 3,
    ConnectionState.FAILED: 4,
}
BREAKER_STATE_VALUES: dict[CircuitState, int] = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class MetricsExporter:
    """
    Syncs supervisor, classifier, breaker and dispatcher counters into Prometheus.

    Component counters are plain ints; update() increments Prometheus counters by the
    delta since the previous update, so it can run on every scrape.

    Usage:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(stream_registry)
        # generate_latest(registry) -> bytes for /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._frames = Counter(
            "whalestream_frames_received",
            "Frames received from the feed",
            ["purpose"],
            registry=self._registry,
        )
        self._events = Counter(
            "whalestream_events_emitted",
            "Whale transfers accepted by the classifier",
            ["purpose"],
            registry=self._registry,
        )
        self._parse_errors = Counter(
            "whalestream_parse_errors",
            "Frames dropped because they could not be parsed",
            ["purpose"],
            registry=self._registry,
        )
        self._rejections = Counter(
            "whalestream_rejections",
            "Transactions rejected by the classifier",
            ["purpose", "reason"],
            registry=self._registry,
        )
        self._alerts_delivered = Counter(
            "whalestream_alerts_delivered",
            "Alerts delivered by the sink",
            ["purpose"],
            registry=self._registry,
        )
        self._alerts_failed = Counter(
            "whalestream_alerts_failed",
            "Alerts the sink failed to deliver",
            ["purpose"],
            registry=self._registry,
        )
        self._alerts_dropped = Counter(
            "whalestream_alerts_dropped",
            "Alerts dropped from a full or stopped queue",
            ["purpose"],
            registry=self._registry,
        )
        self._reconnect_attempts = Counter(
            "whalestream_reconnect_attempts",
            "Reconnect attempts after connection failures",
            ["purpose"],
            registry=self._registry,
        )
        self._heartbeat_timeouts = Counter(
            "whalestream_heartbeat_timeouts",
            "Connections declared dead after missed heartbeats",
            ["purpose"],
            registry=self._registry,
        )
        self._breaker_opens = Counter(
            "whalestream_breaker_opens",
            "Circuit breaker transitions to OPEN",
            ["purpose"],
            registry=self._registry,
        )
        self._connection_state = Gauge(
            "whalestream_connection_state",
            "Connection state (0=IDLE 1=CONNECTING 2=CONNECTED 3=DISCONNECTING 4=FAILED)",
            ["purpose"],
            registry=self._registry,
        )
        self._breaker_state = Gauge(
            "whalestream_breaker_state",
            "Circuit breaker state (0=CLOSED 1=HALF_OPEN 2=OPEN)",
            ["purpose"],
            registry=self._registry,
        )
        self._alert_queue_depth = Gauge(
            "whalestream_alert_queue_depth",
            "Alerts waiting in the dispatcher queue",
            ["purpose"],
            registry=self._registry,
        )
        self._last_event_ts = Gauge(
            "whalestream_last_event_timestamp_ms",
            "Wall-clock time of the last accepted event (ms)",
            ["purpose"],
            registry=self._registry,
        )

        # Last seen values for counter increments (counters are monotonic)
        self._last_seen: dict[tuple[str, str], int] = {}

    @property
    def registry(self) -> CollectorRegistry:
        """Get the Prometheus CollectorRegistry."""
        return self._registry

    def _inc(self, counter: Counter, key: str, purpose: str, current: int, **labels: str) -> None:
        seen_key = (key, purpose)
        delta = current - self._last_seen.get(seen_key, 0)
        if delta > 0:
            counter.labels(purpose=purpose, **labels).inc(delta)
        self._last_seen[seen_key] = current

    def update(self, streams: StreamRegistry) -> None:
        """Sync metrics for every registered stream."""
        for supervisor in streams.supervisors:
            self.update_supervisor(supervisor)

    def update_supervisor(self, supervisor: StreamSupervisor) -> None:
        purpose = supervisor.purpose
        status = supervisor.status()
        sm = supervisor.metrics
        cm = supervisor.classifier.metrics
        dm = supervisor.dispatcher.metrics
        bm = supervisor.breaker.metrics

        self._inc(self._frames, "frames", purpose, sm.frames_received)
        self._inc(self._events, "events", purpose, cm.accepted)
        self._inc(self._parse_errors, "parse_errors", purpose, cm.parse_errors)
        for reason in RejectReason:
            self._inc(
                self._rejections,
                f"reject:{reason.value}",
                purpose,
                cm.rejected.get(reason.value, 0),
                reason=reason.value,
            )
        self._inc(self._alerts_delivered, "delivered", purpose, dm.delivered)
        self._inc(self._alerts_failed, "failed", purpose, dm.failed)
        self._inc(self._alerts_dropped, "dropped", purpose, dm.dropped)
        self._inc(self._reconnect_attempts, "reconnects", purpose, sm.reconnect_attempts)
        self._inc(self._heartbeat_timeouts, "heartbeat_timeouts", purpose, sm.heartbeat_timeouts)
        self._inc(self._breaker_opens, "breaker_opens", purpose, bm.transitions_to_open)

        self._connection_state.labels(purpose=purpose).set(
            CONNECTION_STATE_VALUES[status.connection_state]
        )
        self._breaker_state.labels(purpose=purpose).set(
            BREAKER_STATE_VALUES[CircuitState(status.circuit_breaker_state)]
        )
        self._alert_queue_depth.labels(purpose=purpose).set(supervisor.dispatcher.qsize())
        self._last_event_ts.labels(purpose=purpose).set(status.last_event_ts)
