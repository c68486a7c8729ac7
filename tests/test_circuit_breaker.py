from __future__ import annotations

from conftest import FakeClock
from drivechat.llm.circuit_breaker import BreakerState, CircuitBreaker


def test_closed_breaker_allows_requests() -> None:
    breaker = CircuitBreaker("gemini", clock=FakeClock())

    assert breaker.state is BreakerState.CLOSED
    assert breaker.allow_request()
    assert breaker.open_until is None


def test_non_tripping_failure_keeps_breaker_closed() -> None:
    breaker = CircuitBreaker("gemini", clock=FakeClock())

    assert breaker.record_failure(trip=False) is False
    assert breaker.state is BreakerState.CLOSED


def test_trip_opens_until_deadline_then_half_opens() -> None:
    clock = FakeClock(1000.0)
    breaker = CircuitBreaker("gemini", cooldown_seconds=60.0, clock=clock)

    assert breaker.record_failure(trip=True) is True
    assert breaker.state is BreakerState.OPEN
    assert breaker.open_until == 1060.0
    assert not breaker.allow_request()

    clock.advance(59.9)
    assert breaker.state is BreakerState.OPEN

    clock.advance(0.1)
    assert breaker.state is BreakerState.HALF_OPEN


def test_half_open_allows_a_single_trial() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("gemini", cooldown_seconds=10.0, clock=clock)
    breaker.trip()
    clock.advance(10.0)

    assert breaker.allow_request()
    assert not breaker.allow_request()


def test_successful_trial_closes_the_breaker() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("gemini", cooldown_seconds=10.0, clock=clock)
    breaker.trip()
    clock.advance(10.0)
    breaker.allow_request()

    breaker.record_success()

    assert breaker.state is BreakerState.CLOSED
    assert breaker.open_until is None
    assert breaker.allow_request()


def test_failed_trial_reopens_for_a_new_cooldown() -> None:
    clock = FakeClock(0.0)
    breaker = CircuitBreaker("gemini", cooldown_seconds=10.0, clock=clock)
    breaker.trip()
    clock.advance(10.0)
    breaker.allow_request()

    assert breaker.record_failure(trip=False) is True
    assert breaker.state is BreakerState.OPEN
    assert breaker.open_until == 20.0


def test_trip_accepts_custom_cooldown_and_snapshot_reports_remaining() -> None:
    clock = FakeClock(0.0)
    breaker = CircuitBreaker("openai", cooldown_seconds=60.0, clock=clock)

    breaker.trip(30.0)
    clock.advance(5.0)

    assert breaker.snapshot() == {"state": "open", "available": False, "retry_in_seconds": 25.0}


def test_released_trial_lets_the_next_request_through() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("gemini", cooldown_seconds=10.0, clock=clock)
    breaker.trip()
    clock.advance(10.0)
    assert breaker.allow_request()

    breaker.release_trial()

    assert breaker.state is BreakerState.HALF_OPEN
    assert breaker.allow_request()
