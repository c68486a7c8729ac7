"""Time-bounded availability gate for chat providers."""
from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Three-state circuit breaker with an explicit ``open_until`` deadline.

    The deadline is compared against ``clock()`` whenever the state is read,
    so no timer is needed to re-enable a provider. Once the deadline passes the
    breaker is half-open and lets exactly one trial call through: a success
    closes it, a failure opens it again for another cooldown.
    """

    def __init__(self, name: str, *, cooldown_seconds: float = 60.0, clock: Clock = time.monotonic) -> None:
        self.name = name
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._state = BreakerState.CLOSED
        self._open_until: Optional[float] = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._current_state()

    @property
    def open_until(self) -> Optional[float]:
        with self._lock:
            return self._open_until

    def allow_request(self) -> bool:
        """Return ``True`` when a call may be attempted right now."""

        with self._lock:
            state = self._current_state()
            if state is BreakerState.CLOSED:
                return True
            if state is BreakerState.OPEN:
                return False
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state is not BreakerState.CLOSED:
                LOGGER.info("Circuit for provider %s closed", self.name)
            self._state = BreakerState.CLOSED
            self._open_until = None
            self._trial_in_flight = False

    def record_failure(self, *, trip: bool = False, cooldown_seconds: Optional[float] = None) -> bool:
        """Register a failed call and return whether the breaker is now open.

        A failure during the half-open trial always re-opens the breaker;
        otherwise only failures flagged with ``trip`` open it.
        """

        with self._lock:
            state = self._current_state()
            self._trial_in_flight = False
            if trip or state is BreakerState.HALF_OPEN:
                self._open(cooldown_seconds)
                return True
            return state is BreakerState.OPEN

    def release_trial(self) -> None:
        """Free the half-open trial slot without judging the provider."""

        with self._lock:
            self._trial_in_flight = False

    def trip(self, cooldown_seconds: Optional[float] = None) -> None:
        with self._lock:
            self._trial_in_flight = False
            self._open(cooldown_seconds)

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            state = self._current_state()
            remaining = 0.0
            if state is BreakerState.OPEN and self._open_until is not None:
                remaining = max(self._open_until - self._clock(), 0.0)
            return {
                "state": state.value,
                "available": state is not BreakerState.OPEN,
                "retry_in_seconds": round(remaining, 1),
            }

    def _open(self, cooldown_seconds: Optional[float]) -> None:
        cooldown = self.cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        self._state = BreakerState.OPEN
        self._open_until = self._clock() + cooldown
        LOGGER.warning("Marked provider %s unavailable for %.0fs", self.name, cooldown)

    def _current_state(self) -> BreakerState:
        if (
            self._state is BreakerState.OPEN
            and self._open_until is not None
            and self._clock() >= self._open_until
        ):
            self._state = BreakerState.HALF_OPEN
            LOGGER.info("Circuit for provider %s half-open after cooldown", self.name)
        return self._state
