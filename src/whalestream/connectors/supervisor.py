"""
Stream supervisor.

Owns the connection lifecycle of one logical stream:
- Connect to the current endpoint, subscribe, then receive and heartbeat
- On any transient failure: breaker.record_failure(), rotate endpoint,
  back off, reconnect. No lifetime retry cap; only stop() is terminal
- A connection counts as a success (counter reset, breaker closed) only once it
  survives its first heartbeat interval
- Circuit breaker suppresses attempts after repeated failures
- Accepted events are handed to a bounded AlertDispatcher, never awaited inline

State machine:
    IDLE -> CONNECTING -> CONNECTED -> DISCONNECTING -> IDLE   (stop)
    CONNECTING | CONNECTED -> FAILED -> IDLE -> CONNECTING     (retry)
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
import time
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

from whalestream.classifier import TransferClassifier
from whalestream.connectors.backoff import BackoffConfig, CircuitBreaker, compute_backoff_delay
from whalestream.connectors.endpoints import EndpointPool
from whalestream.connectors.transport import (
    AiohttpTransport,
    MessageKind,
    Transport,
    TransportFactory,
)
from whalestream.connectors.types import (
    ABNORMAL_CLOSE_CODE,
    CLEAN_CLOSE_CODE,
    ConnectionState,
    RawFrame,
    StreamConfig,
    StreamStatus,
    SupervisorMetrics,
)
from whalestream.delivery.dispatcher import AlertDispatcher
from whalestream.delivery.sinks.log import LogSink

if TYPE_CHECKING:
    from whalestream.delivery.sinks.base import AlertSink

logger = logging.getLogger(__name__)

# Liveness is lost after this many heartbeat intervals without an inbound frame or pong
HEARTBEAT_MISS_FACTOR = 2


class StreamSupervisor:
    """
    Supervises one purpose's WebSocket stream.

    All coroutine methods must run on one event loop. status() may be called from
    any thread.
    """

    def __init__(
        self,
        config: StreamConfig,
        classifier: TransferClassifier | None = None,
        sink: AlertSink | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        time_fn: Callable[[], int] | None = None,
        rng: random.Random | None = None,
        on_state_change: Callable[[str, ConnectionState], None] | None = None,
        drain_timeout_s: float = 0.0,
    ) -> None:
        """
        Initialize the supervisor.

        Args:
            config: Stream configuration.
            classifier: Frame classifier (built from config if omitted).
            sink: Alert destination (logs alerts if omitted).
            transport_factory: Creates one Transport per connection attempt.
            time_fn: Millisecond wall clock for the breaker and timestamps.
            rng: Seeded Random for deterministic backoff jitter.
            on_state_change: Optional callback for state changes.
            drain_timeout_s: Time stop() allows queued alerts to be delivered.
        """
        self._config = config
        self._classifier = classifier or TransferClassifier.from_stream_config(config)
        self._sink = sink or LogSink()
        self._transport_factory: TransportFactory = transport_factory or AiohttpTransport
        self._time_fn = time_fn
        self._rng = rng
        self._on_state_change = on_state_change
        self._drain_timeout_s = drain_timeout_s

        self._pool = EndpointPool(list(config.endpoints))
        self._breaker = CircuitBreaker(
            failure_threshold=config.circuit_failure_threshold,
            reset_after_ms=config.circuit_reset_after_ms,
            _time_fn=time_fn,
        )
        self._backoff = BackoffConfig(
            base_delay_ms=config.backoff_base_ms,
            max_delay_ms=config.backoff_max_ms,
            jitter_factor=config.backoff_jitter_factor,
        )
        self._dispatcher = AlertDispatcher(
            self._sink,
            maxsize=config.alert_queue_size,
            purpose=config.purpose,
        )

        # Guards state, counters and the transport reference for status() readers
        self._lock = threading.Lock()
        self._state = ConnectionState.IDLE
        self._reconnect_attempts = 0
        self._last_event_ts = 0
        self._events_emitted = 0
        self._metrics = SupervisorMetrics(purpose=config.purpose)

        self._transport: Transport | None = None
        self._last_liveness = 0.0
        self._stopping = False

        self._connect_task: asyncio.Task[None] | None = None
        self._retry_task: asyncio.Task[None] | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def purpose(self) -> str:
        return self._config.purpose

    @property
    def config(self) -> StreamConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def reconnect_attempts(self) -> int:
        with self._lock:
            return self._reconnect_attempts

    @property
    def metrics(self) -> SupervisorMetrics:
        return self._metrics

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def pool(self) -> EndpointPool:
        return self._pool

    @property
    def classifier(self) -> TransferClassifier:
        return self._classifier

    @property
    def dispatcher(self) -> AlertDispatcher:
        return self._dispatcher

    @property
    def retry_pending(self) -> bool:
        return self._retry_task is not None and not self._retry_task.done()

    def status(self) -> StreamStatus:
        """Atomic snapshot for health reporting."""
        with self._lock:
            return StreamStatus(
                purpose=self._config.purpose,
                connection_state=self._state,
                circuit_breaker_state=self._breaker.state.value,
                reconnect_attempts=self._reconnect_attempts,
                last_event_ts=self._last_event_ts,
                endpoint=self._pool.current().address,
                frames_received=self._metrics.frames_received,
                events_emitted=self._events_emitted,
                circuit_breaker=self._breaker.get_status(),
            )

    def _now_ms(self) -> int:
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.time() * 1000)

    def _set_state(self, state: ConnectionState) -> None:
        """Update connection state and notify callback."""
        with self._lock:
            if self._state == state:
                return
            old_state = self._state
            self._state = state
        logger.debug(
            "Stream state changed",
            extra={
                "purpose": self._config.purpose,
                "old_state": old_state.value,
                "new_state": state.value,
            },
        )
        if self._on_state_change:
            self._on_state_change(self._config.purpose, state)

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task[None]:
        task: asyncio.Task[None] = asyncio.create_task(coro, name=f"{name}:{self._config.purpose}")
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    def _next_delay_ms(self) -> int:
        with self._lock:
            attempts = self._reconnect_attempts
        return compute_backoff_delay(self._backoff, attempts, rng=self._rng)

    # --- lifecycle -------------------------------------------------------

    async def start(self) -> None:
        """
        Start the stream.

        No-op unless IDLE with nothing pending. Returns after the first attempt has
        either connected, failed (retry scheduled) or been suppressed by the breaker.
        """
        with self._lock:
            if self._state != ConnectionState.IDLE:
                return
        if self.retry_pending or (self._connect_task is not None and not self._connect_task.done()):
            return

        self._stopping = False
        self._dispatcher.start()
        logger.info(
            "Starting stream",
            extra={"purpose": self._config.purpose, "endpoints": len(self._pool)},
        )
        await self._run_attempt()

    async def _run_attempt(self) -> None:
        if self._stopping:
            return

        if not self._breaker.allow():
            with self._lock:
                self._metrics.breaker_rejections += 1
            delay_ms = self._next_delay_ms()
            logger.warning(
                "Circuit breaker open, connection attempt suppressed",
                extra={
                    "purpose": self._config.purpose,
                    "remaining_open_ms": self._breaker.remaining_open_ms(),
                    "delay_ms": delay_ms,
                },
            )
            self._schedule_retry(delay_ms)
            return

        self._connect_task = self._spawn(self._connect(), "connect")
        try:
            await self._connect_task
        except asyncio.CancelledError:
            if not self._stopping:
                raise
        finally:
            self._connect_task = None

    async def _connect(self) -> None:
        endpoint = self._pool.current()
        transport = self._transport_factory()
        with self._lock:
            self._transport = transport
        self._set_state(ConnectionState.CONNECTING)

        timeout_s = self._config.connect_timeout_ms / 1000
        logger.info(
            "Connecting to stream",
            extra={"purpose": self._config.purpose, "endpoint": endpoint.address},
        )

        try:
            await asyncio.wait_for(transport.connect(endpoint.address), timeout=timeout_s)
            await asyncio.wait_for(
                transport.send_json(self._config.subscribe_message),
                timeout=timeout_s,
            )
        except Exception as e:
            await self._on_connect_failed(transport, endpoint.address, e)
            return

        if self._stopping:
            return

        with self._lock:
            self._metrics.connects += 1
        self._last_liveness = asyncio.get_running_loop().time()
        self._set_state(ConnectionState.CONNECTED)

        self._receive_task = self._spawn(self._receive_loop(transport), "receive")
        self._heartbeat_task = self._spawn(self._heartbeat_loop(transport), "heartbeat")

        logger.info(
            "Stream connected",
            extra={"purpose": self._config.purpose, "endpoint": endpoint.address},
        )

    async def _on_connect_failed(self, transport: Transport, address: str, error: Exception) -> None:
        with self._lock:
            if self._transport is transport:
                self._transport = None
        await self._close_transport(transport, ABNORMAL_CLOSE_CODE)
        if self._stopping:
            return

        self._breaker.record_failure()
        with self._lock:
            self._reconnect_attempts += 1
            attempts = self._reconnect_attempts
            self._metrics.connect_failures += 1
            self._metrics.reconnect_attempts += 1
        next_endpoint = self._pool.rotate()
        self._set_state(ConnectionState.FAILED)

        delay_ms = self._next_delay_ms()
        logger.warning(
            "Connection attempt failed",
            extra={
                "purpose": self._config.purpose,
                "endpoint": address,
                "error": str(error) or type(error).__name__,
                "attempt": attempts,
                "next_endpoint": next_endpoint.address,
                "delay_ms": delay_ms,
                "breaker_state": self._breaker.state.value,
            },
        )
        self._schedule_retry(delay_ms)

    def _schedule_retry(self, delay_ms: int) -> None:
        if self._stopping:
            return
        self._retry_task = self._spawn(self._retry_after(delay_ms), "retry")

    async def _retry_after(self, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        if self._stopping:
            return
        if self._retry_task is asyncio.current_task():
            self._retry_task = None
        with self._lock:
            failed = self._state == ConnectionState.FAILED
        if failed:
            self._set_state(ConnectionState.IDLE)
        await self._run_attempt()

    # --- connected phase ---------------------------------------------------

    async def _receive_loop(self, transport: Transport) -> None:
        """Feed inbound frames to the classifier in arrival order."""
        loop = asyncio.get_running_loop()
        reason = "closed"
        try:
            while True:
                msg = await transport.receive()
                self._last_liveness = loop.time()

                if msg.kind == MessageKind.TEXT:
                    if msg.data is not None:
                        self._handle_frame(msg.data)
                elif msg.kind in (MessageKind.PING, MessageKind.PONG):
                    continue
                elif msg.kind == MessageKind.CLOSED:
                    reason = f"closed by peer (code={msg.close_code})"
                    break
                else:
                    reason = f"socket error: {msg.error}"
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = f"receive error: {e}"

        await self._handle_connection_lost(transport, reason)

    def _handle_frame(self, data: str | bytes) -> None:
        now_ms = self._now_ms()
        with self._lock:
            self._metrics.frames_received += 1
            self._metrics.last_frame_ts = now_ms

        # A frame can never take the connection down
        try:
            event = self._classifier.classify(RawFrame(data=data, recv_ts=now_ms, purpose=self._config.purpose))
        except Exception as e:
            self._classifier.metrics.parse_errors += 1
            logger.warning(
                "Classifier failed on frame",
                extra={"purpose": self._config.purpose, "error": str(e) or type(e).__name__},
            )
            return
        if event is None:
            return

        self._dispatcher.submit(event)
        with self._lock:
            self._last_event_ts = now_ms
            self._events_emitted += 1
        logger.info(
            "Whale transfer detected",
            extra={
                "purpose": self._config.purpose,
                "reference_id": event.reference_id,
                "amount": str(event.amount),
                "currency": event.currency_unit,
            },
        )

    async def _heartbeat_loop(self, transport: Transport) -> None:
        """Ping every interval; lost liveness or a stuck ping is a connection failure."""
        loop = asyncio.get_running_loop()
        interval_s = self._config.heartbeat_interval_ms / 1000
        stable = False
        try:
            while True:
                await asyncio.sleep(interval_s)

                stale_s = loop.time() - self._last_liveness
                if stale_s >= interval_s * HEARTBEAT_MISS_FACTOR:
                    with self._lock:
                        self._metrics.heartbeat_timeouts += 1
                    logger.warning(
                        "Heartbeat timeout, connection stale",
                        extra={"purpose": self._config.purpose, "stale_ms": int(stale_s * 1000)},
                    )
                    reason = "heartbeat timeout"
                    break

                try:
                    await asyncio.wait_for(transport.ping(), timeout=interval_s)
                except Exception as e:
                    logger.warning(
                        "Ping failed",
                        extra={"purpose": self._config.purpose, "error": str(e) or type(e).__name__},
                    )
                    reason = "ping failed"
                    break

                if not stable:
                    stable = True
                    self._mark_stable(transport)
        except asyncio.CancelledError:
            raise

        await self._handle_connection_lost(transport, reason)

    def _mark_stable(self, transport: Transport) -> None:
        """First heartbeat interval survived: the connection counts as a success."""
        with self._lock:
            if self._transport is not transport or self._state != ConnectionState.CONNECTED:
                return
            self._reconnect_attempts = 0
        self._breaker.record_success()
        logger.debug("Stream connection stable", extra={"purpose": self._config.purpose})

    async def _handle_connection_lost(self, transport: Transport, reason: str) -> None:
        with self._lock:
            if (
                self._stopping
                or self._transport is not transport
                or self._state != ConnectionState.CONNECTED
            ):
                return
            self._transport = None
        self._set_state(ConnectionState.FAILED)

        # Stop the sibling loop; the caller is one of the two
        current = asyncio.current_task()
        for task in (self._receive_task, self._heartbeat_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._receive_task = None
        self._heartbeat_task = None

        await self._close_transport(transport, ABNORMAL_CLOSE_CODE)
        if self._stopping:
            return

        self._breaker.record_failure()
        with self._lock:
            self._reconnect_attempts += 1
            attempts = self._reconnect_attempts
            self._metrics.disconnects += 1
            self._metrics.reconnect_attempts += 1
        next_endpoint = self._pool.rotate()

        delay_ms = self._next_delay_ms()
        logger.warning(
            "Stream connection lost, reconnecting",
            extra={
                "purpose": self._config.purpose,
                "reason": reason,
                "attempt": attempts,
                "next_endpoint": next_endpoint.address,
                "delay_ms": delay_ms,
            },
        )
        self._schedule_retry(delay_ms)

    async def _close_transport(self, transport: Transport, code: int) -> None:
        try:
            await transport.close(code)
        except Exception as e:
            logger.debug(
                "Error closing transport",
                extra={"purpose": self._config.purpose, "error": str(e)},
            )

    # --- shutdown ----------------------------------------------------------

    async def stop(self) -> None:
        """
        Stop the stream from any state.

        Cancels the in-flight connect, pending retry, receive and heartbeat tasks,
        closes the socket cleanly and stops the alert dispatcher. Idempotent.
        """
        self._stopping = True
        with self._lock:
            has_transport = self._transport is not None
        if has_transport:
            self._set_state(ConnectionState.DISCONNECTING)

        current = asyncio.current_task()
        pending = {
            task
            for task in (
                self._connect_task,
                self._retry_task,
                self._receive_task,
                self._heartbeat_task,
                *self._background_tasks,
            )
            if task is not None and task is not current and not task.done()
        }
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._connect_task = None
        self._retry_task = None
        self._receive_task = None
        self._heartbeat_task = None

        with self._lock:
            transport = self._transport
            self._transport = None
        if transport is not None:
            await self._close_transport(transport, CLEAN_CLOSE_CODE)

        await self._dispatcher.stop(self._drain_timeout_s)

        with self._lock:
            was_idle = self._state == ConnectionState.IDLE
        self._set_state(ConnectionState.IDLE)
        if not was_idle or has_transport or pending:
            logger.info("Stream stopped", extra={"purpose": self._config.purpose})
