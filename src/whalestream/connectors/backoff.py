"""
Backoff policy and circuit breaker for stream reconnects.

- Exponential backoff with jitter and a ceiling, keyed only by attempt number
- Per-stream circuit breaker that suppresses connection attempts after repeated
  failures until a cool-down elapses
- Optional seeded RNG / injected clock for deterministic tests
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking attempts
    HALF_OPEN = "HALF_OPEN"  # One trial attempt allowed


@dataclass
class BackoffConfig:
    """Configuration for exponential backoff.

    Attributes:
        base_delay_ms: Delay for attempt 0.
        max_delay_ms: Ceiling applied before jitter.
        multiplier: Growth factor per attempt.
        jitter_factor: Jitter is uniform in [0, delay * jitter_factor].
    """

    base_delay_ms: int = 1000
    max_delay_ms: int = 300000
    multiplier: float = 2.0
    jitter_factor: float = 0.2


def compute_backoff_delay(
    config: BackoffConfig,
    attempt: int,
    *,
    rng: random.Random | None = None,
) -> int:
    """
    Compute the delay before the next connection attempt.

    delay(0) = base_delay_ms. For attempt >= 1 the delay is
    min(base_delay_ms * multiplier**attempt, max_delay_ms) plus uniform jitter in
    [0, delay * jitter_factor]. The function keeps no state, so the same attempt
    number and RNG seed always produce the same delay.

    Args:
        config: Backoff configuration.
        attempt: Reconnect attempt counter (0 after a successful connection).
        rng: Optional seeded Random instance for deterministic jitter.

    Returns:
        Delay in milliseconds.
    """
    if attempt <= 0:
        return config.base_delay_ms

    # Exponent is clamped so huge attempt counts cannot overflow the float
    exponent = min(attempt, 64)
    delay = min(config.base_delay_ms * (config.multiplier**exponent), config.max_delay_ms)

    if config.jitter_factor > 0:
        jitter_max = delay * config.jitter_factor
        jitter = rng.uniform(0.0, jitter_max) if rng is not None else random.uniform(0.0, jitter_max)
        delay += jitter

    return int(delay)


@dataclass
class BreakerMetrics:
    """Transition counters for observability."""

    transitions_to_open: int = 0
    transitions_to_half_open: int = 0
    transitions_to_closed: int = 0
    rejected: int = 0
    last_open_duration_ms: int = 0


@dataclass
class CircuitBreaker:
    """
    Per-stream circuit breaker.

    States:
    - CLOSED: attempts pass; consecutive failures are counted
    - OPEN: attempts blocked until opened_at_ms + reset_after_ms
    - HALF_OPEN: exactly one trial attempt passes; its outcome decides the next state

    The breaker only advises: it never raises, and the caller decides what counts
    as a failure.
    """

    failure_threshold: int = 5
    reset_after_ms: int = 60000

    state: CircuitState = field(default=CircuitState.CLOSED)
    failure_count: int = field(default=0)
    opened_at_ms: int = field(default=0)
    half_open_trial_taken: bool = field(default=False)
    metrics: BreakerMetrics = field(default_factory=BreakerMetrics)

    # Optional time provider (ms) for deterministic testing
    _time_fn: Callable[[], int] | None = field(default=None)

    def _now_ms(self) -> int:
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.time() * 1000)

    def allow(self) -> bool:
        """
        Check whether a new connection attempt may proceed.

        Returns:
            True if the attempt should proceed, False if blocked.
        """
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            now_ms = self._now_ms()
            if now_ms < self.opened_at_ms + self.reset_after_ms:
                self.metrics.rejected += 1
                return False
            self.state = CircuitState.HALF_OPEN
            self.metrics.transitions_to_half_open += 1
            self.metrics.last_open_duration_ms = now_ms - self.opened_at_ms
            self.half_open_trial_taken = True
            return True

        # HALF_OPEN: the single trial is already out
        if not self.half_open_trial_taken:
            self.half_open_trial_taken = True
            return True
        self.metrics.rejected += 1
        return False

    def record_success(self) -> None:
        """Record a successful attempt."""
        if self.state != CircuitState.CLOSED:
            self.state = CircuitState.CLOSED
            self.metrics.transitions_to_closed += 1
        self.failure_count = 0
        self.half_open_trial_taken = False

    def record_failure(self) -> None:
        """Record a failed attempt."""
        now_ms = self._now_ms()

        if self.state == CircuitState.HALF_OPEN:
            # Trial failed, back to OPEN with a fresh cool-down
            self._open(now_ms)
            return

        self.failure_count += 1
        if self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._open(now_ms)

    def _open(self, now_ms: int) -> None:
        self.state = CircuitState.OPEN
        self.opened_at_ms = now_ms
        self.half_open_trial_taken = False
        self.metrics.transitions_to_open += 1

    def remaining_open_ms(self) -> int:
        """Milliseconds until an OPEN breaker admits a trial (0 otherwise)."""
        if self.state != CircuitState.OPEN:
            return 0
        return max(0, self.opened_at_ms + self.reset_after_ms - self._now_ms())

    def get_status(self) -> dict[str, str | int]:
        """Get current circuit breaker status for observability."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "opened_at_ms": self.opened_at_ms,
            "reset_after_ms": self.reset_after_ms,
            "remaining_open_ms": self.remaining_open_ms(),
            "transitions_to_open": self.metrics.transitions_to_open,
            "transitions_to_half_open": self.metrics.transitions_to_half_open,
            "transitions_to_closed": self.metrics.transitions_to_closed,
            "rejected": self.metrics.rejected,
            "last_open_duration_ms": self.metrics.last_open_duration_ms,
        }
