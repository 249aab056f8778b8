"""
Circuit breakers - stop dispatching to a target after repeated failures.

Each target (a provider name) gets one ``CircuitBreaker``. Its state is an
immutable ``CircuitBreakerState`` record that is swapped, never mutated, so
readers can take a snapshot without holding the lock. Writers serialise on a
per-breaker lock; the registry lock only guards breaker creation, so
unrelated targets never contend.

State machine:
    CLOSED --failures reach threshold--> OPEN
    OPEN --open_duration elapsed--> HALF_OPEN
    HALF_OPEN --success--> CLOSED (counters reset)
    HALF_OPEN --failure--> OPEN (timer restarts)
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable

from evoflow.core.enums import CircuitState
from evoflow.core.errors import ConfigurationError
from evoflow.core.utils import now_utc

logger = logging.getLogger(__name__)


@dataclass
class CircuitBreakerOptions:
    """
    Breaker thresholds.

    Attributes:
        failure_threshold: Consecutive failures that open the circuit
        open_duration_seconds: Time the circuit stays open before a trial
    """

    failure_threshold: int = 5
    open_duration_seconds: float = 30.0

    def validate(self) -> None:
        """Raise ``ConfigurationError`` if any threshold is out of range."""
        errors = []
        if self.failure_threshold < 1:
            errors.append("failure_threshold must be >= 1")
        if self.open_duration_seconds <= 0:
            errors.append("open_duration_seconds must be > 0")
        if errors:
            raise ConfigurationError("Invalid circuit breaker options", errors)


@dataclass(frozen=True)
class CircuitBreakerState:
    """Immutable snapshot of one breaker."""

    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    opened_at: float | None = None  # breaker clock reading
    opened_at_utc: datetime | None = None
    last_failure_time: datetime | None = None
    trial_in_flight: bool = False


class CircuitBreaker:
    """
    Per-target circuit breaker.

    Example:
        ```python
        breaker = CircuitBreaker("ollama", CircuitBreakerOptions(failure_threshold=3))

        if breaker.is_request_allowed():
            try:
                response = await provider.complete(request)
                breaker.record_success()
            except Exception:
                breaker.record_failure()
                raise
        ```
    """

    def __init__(
        self,
        name: str,
        options: CircuitBreakerOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.options = options or CircuitBreakerOptions()
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitBreakerState()

    @property
    def snapshot(self) -> CircuitBreakerState:
        """Current state record, with any due OPEN -> HALF_OPEN move applied."""
        with self._lock:
            return self._advance()

    @property
    def state(self) -> CircuitState:
        return self.snapshot.state

    @property
    def consecutive_failures(self) -> int:
        return self._state.consecutive_failures

    def _advance(self) -> CircuitBreakerState:
        # Caller holds the lock.
        current = self._state
        if (
            current.state == CircuitState.OPEN
            and current.opened_at is not None
            and self._clock() - current.opened_at >= self.options.open_duration_seconds
        ):
            current = replace(current, state=CircuitState.HALF_OPEN, trial_in_flight=False)
            self._state = current
            logger.info("Circuit breaker for %s is half-open", self.name)
        return current

    def can_attempt(self) -> bool:
        """
        Check whether a request would currently be let through.

        Unlike ``is_request_allowed`` this does not reserve the half-open
        trial slot, so it is safe for filtering candidates.
        """
        with self._lock:
            current = self._advance()
            if current.state == CircuitState.CLOSED:
                return True
            if current.state == CircuitState.HALF_OPEN:
                return not current.trial_in_flight
            return False

    def is_request_allowed(self) -> bool:
        """
        Decide whether a request may be dispatched now.

        In HALF_OPEN exactly one caller gets ``True`` until the trial's
        outcome is recorded.

        Returns:
            True if the caller may dispatch
        """
        with self._lock:
            current = self._advance()
            if current.state == CircuitState.CLOSED:
                return True
            if current.state == CircuitState.HALF_OPEN and not current.trial_in_flight:
                self._state = replace(current, trial_in_flight=True)
                return True
            return False

    def record_success(self) -> None:
        """Record a successful dispatch."""
        with self._lock:
            current = self._advance()
            if current.state == CircuitState.HALF_OPEN:
                self._state = CircuitBreakerState()
                logger.info("Circuit breaker for %s closed after successful trial", self.name)
            elif current.state == CircuitState.CLOSED and current.consecutive_failures:
                self._state = replace(current, consecutive_failures=0)

    def record_failure(self, error: BaseException | None = None) -> None:
        """Record a failed dispatch."""
        with self._lock:
            current = self._advance()
            failures = current.consecutive_failures + 1
            now = now_utc()

            if current.state == CircuitState.HALF_OPEN:
                self._state = replace(
                    current,
                    state=CircuitState.OPEN,
                    consecutive_failures=failures,
                    opened_at=self._clock(),
                    opened_at_utc=now,
                    last_failure_time=now,
                    trial_in_flight=False,
                )
                logger.warning("Circuit breaker for %s re-opened: trial request failed", self.name)
            elif current.state == CircuitState.CLOSED and failures >= self.options.failure_threshold:
                self._state = replace(
                    current,
                    state=CircuitState.OPEN,
                    consecutive_failures=failures,
                    opened_at=self._clock(),
                    opened_at_utc=now,
                    last_failure_time=now,
                )
                logger.warning(
                    "Circuit breaker for %s opened after %d consecutive failures%s",
                    self.name,
                    failures,
                    f" (last error: {error})" if error else "",
                )
            else:
                # OPEN stays OPEN without restarting its timer
                self._state = replace(
                    current,
                    consecutive_failures=failures,
                    last_failure_time=now,
                )

    def release_trial(self) -> None:
        """Give back a reserved half-open trial whose dispatch never completed."""
        with self._lock:
            if self._state.trial_in_flight:
                self._state = replace(self._state, trial_in_flight=False)

    def reset(self) -> None:
        """Manually reset the circuit to closed state."""
        with self._lock:
            self._state = CircuitBreakerState()

    def get_stats(self) -> dict[str, Any]:
        """Get circuit breaker statistics as dict."""
        current = self.snapshot
        return {
            "provider_name": self.name,
            "state": current.state.value,
            "consecutive_failures": current.consecutive_failures,
            "last_failure_time": current.last_failure_time,
            "opened_at": current.opened_at_utc,
        }


class CircuitBreakerRegistry:
    """
    One breaker per target name, created on first use.

    Example:
        ```python
        registry = CircuitBreakerRegistry(CircuitBreakerOptions(failure_threshold=3))
        breaker = registry.get_or_create_breaker("azure")
        registry.get_all_stats()
        ```
    """

    def __init__(
        self,
        options: CircuitBreakerOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.options = options or CircuitBreakerOptions()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_or_create_breaker(self, name: str) -> CircuitBreaker:
        """Get the breaker for ``name``, creating it if needed."""
        breaker = self._breakers.get(name)
        if breaker is not None:
            return breaker
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, self.options, clock=self._clock)
                self._breakers[name] = breaker
            return breaker

    def get(self, name: str) -> CircuitBreaker | None:
        """Get an existing breaker without creating one."""
        return self._breakers.get(name)

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        """Statistics for every known breaker."""
        return {name: breaker.get_stats() for name, breaker in list(self._breakers.items())}

    def reset_all(self) -> None:
        """Reset every breaker to closed."""
        for breaker in list(self._breakers.values()):
            breaker.reset()

    def __contains__(self, name: str) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
