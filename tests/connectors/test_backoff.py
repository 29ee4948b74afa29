"""
Tests for reconnect backoff and the per-stream circuit breaker.

- Backoff is exponential from the base delay, capped, with bounded jitter
- Breaker opens after the failure threshold, admits exactly one trial after the
  cool-down, and returns to CLOSED or OPEN on the trial's outcome
"""

from __future__ import annotations

import random

from whalestream.connectors import (
    BackoffConfig,
    CircuitBreaker,
    CircuitState,
    compute_backoff_delay,
)


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start_ms: int = 1_000_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class TestBackoffConfig:
    """Tests for BackoffConfig."""

    def test_default_values(self) -> None:
        config = BackoffConfig()
        assert config.base_delay_ms == 1000
        assert config.max_delay_ms == 300000
        assert config.multiplier == 2.0
        assert config.jitter_factor == 0.2


class TestComputeBackoffDelay:
    """Tests for compute_backoff_delay."""

    def test_attempt_zero_is_base_delay(self) -> None:
        config = BackoffConfig(base_delay_ms=1000, jitter_factor=0.5)
        assert compute_backoff_delay(config, 0) == 1000

    def test_exponential_increase_without_jitter(self) -> None:
        config = BackoffConfig(base_delay_ms=1000, max_delay_ms=300000, jitter_factor=0.0)
        delays = [compute_backoff_delay(config, attempt) for attempt in range(1, 6)]
        assert delays == [2000, 4000, 8000, 16000, 32000]

    def test_monotonic_until_cap(self) -> None:
        """With jitter 0, delay never decreases and stops at the cap."""
        config = BackoffConfig(base_delay_ms=1000, max_delay_ms=300000, jitter_factor=0.0)
        delays = [compute_backoff_delay(config, attempt) for attempt in range(0, 20)]
        assert all(a <= b for a, b in zip(delays, delays[1:], strict=False))
        assert delays[-1] == 300000
        assert max(delays) == 300000

    def test_huge_attempt_does_not_overflow(self) -> None:
        config = BackoffConfig(base_delay_ms=1000, max_delay_ms=300000, jitter_factor=0.0)
        assert compute_backoff_delay(config, 10_000) == 300000

    def test_jitter_within_bounds(self) -> None:
        config = BackoffConfig(base_delay_ms=1000, max_delay_ms=300000, jitter_factor=0.2)
        for _ in range(200):
            delay = compute_backoff_delay(config, 3)
            assert 8000 <= delay <= 9600

    def test_jitter_applies_on_top_of_cap(self) -> None:
        config = BackoffConfig(base_delay_ms=1000, max_delay_ms=5000, jitter_factor=0.2)
        for _ in range(100):
            delay = compute_backoff_delay(config, 30)
            assert 5000 <= delay <= 6000

    def test_seeded_rng_is_deterministic(self) -> None:
        config = BackoffConfig(jitter_factor=0.2)
        first = [compute_backoff_delay(config, a, rng=random.Random(42)) for a in range(1, 8)]
        second = [compute_backoff_delay(config, a, rng=random.Random(42)) for a in range(1, 8)]
        assert first == second


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def test_initial_state_closed(self) -> None:
        cb = CircuitBreaker()
        assert cb.state == CircuitState.CLOSED
        assert cb.allow() is True

    def test_opens_after_threshold_failures(self) -> None:
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=5, reset_after_ms=60000, _time_fn=clock)

        for _ in range(4):
            cb.record_failure()
            assert cb.state == CircuitState.CLOSED

        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.opened_at_ms == clock.now_ms
        assert cb.metrics.transitions_to_open == 1

    def test_open_blocks_until_reset_after(self) -> None:
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=5, reset_after_ms=60000, _time_fn=clock)
        for _ in range(5):
            cb.record_failure()

        assert cb.allow() is False
        clock.advance(59_999)
        assert cb.allow() is False
        assert cb.metrics.rejected == 2

        clock.advance(1)
        assert cb.allow() is True
        assert cb.state == CircuitState.HALF_OPEN

    def test_half_open_admits_exactly_one_trial(self) -> None:
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, reset_after_ms=1000, _time_fn=clock)
        cb.record_failure()
        clock.advance(1000)

        results = [cb.allow() for _ in range(5)]
        assert results == [True, False, False, False, False]

    def test_half_open_success_closes_circuit(self) -> None:
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=2, reset_after_ms=1000, _time_fn=clock)
        cb.record_failure()
        cb.record_failure()
        clock.advance(1000)
        assert cb.allow() is True

        cb.record_success()
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0
        assert cb.allow() is True
        assert cb.metrics.transitions_to_closed == 1

    def test_half_open_failure_reopens_with_fresh_cooldown(self) -> None:
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, reset_after_ms=1000, _time_fn=clock)
        cb.record_failure()
        clock.advance(1500)
        assert cb.allow() is True

        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.opened_at_ms == clock.now_ms
        clock.advance(999)
        assert cb.allow() is False
        clock.advance(1)
        assert cb.allow() is True

    def test_success_resets_failure_count(self) -> None:
        cb = CircuitBreaker(failure_threshold=3)
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        assert cb.failure_count == 0

        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED

    def test_last_open_duration_recorded(self) -> None:
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, reset_after_ms=1000, _time_fn=clock)
        cb.record_failure()
        clock.advance(2500)
        cb.allow()
        assert cb.metrics.last_open_duration_ms == 2500

    def test_remaining_open_ms(self) -> None:
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, reset_after_ms=1000, _time_fn=clock)
        assert cb.remaining_open_ms() == 0
        cb.record_failure()
        clock.advance(400)
        assert cb.remaining_open_ms() == 600

    def test_get_status(self) -> None:
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, reset_after_ms=5000, _time_fn=clock)
        cb.record_failure()
        clock.advance(5000)
        assert cb.allow() is True
        cb.record_success()

        status = cb.get_status()
        assert status["state"] == "CLOSED"
        assert status["failure_count"] == 0
        assert status["reset_after_ms"] == 5000
        assert status["remaining_open_ms"] == 0
        assert status["transitions_to_open"] == 1
        assert status["transitions_to_half_open"] == 1
        assert status["transitions_to_closed"] == 1
        assert status["last_open_duration_ms"] == 5000

    def test_get_status_while_open(self) -> None:
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, reset_after_ms=1000, _time_fn=clock)
        cb.record_failure()
        clock.advance(250)
        assert cb.allow() is False

        status = cb.get_status()
        assert status["state"] == "OPEN"
        assert status["remaining_open_ms"] == 750
        assert status["rejected"] == 1
