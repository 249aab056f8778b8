"""
Tests for the resilience primitives: backoff, classification, circuit breakers.
"""

import asyncio
import random
import threading
import time

import pytest

from evoflow.core.enums import (
    BackoffStrategy,
    BrowserErrorType,
    CircuitState,
    ErrorKind,
    RecoveryActionType,
)
from evoflow.core.errors import (
    BrowserNotInitializedError,
    ConfigurationError,
    ElementNotFoundError,
    UnsupportedToolError,
)
from evoflow.resilience import (
    BackoffPolicy,
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitBreakerRegistry,
    ErrorClassifier,
    classify_error,
    describe_error,
    is_transient,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# BackoffPolicy Tests
# =============================================================================


class TestBackoffPolicy:
    """Tests for BackoffPolicy."""

    def test_default_policy(self):
        """Test default policy values."""
        policy = BackoffPolicy()
        assert policy.max_retries == 3
        assert policy.max_attempts == 4
        assert policy.strategy == BackoffStrategy.EXPONENTIAL
        assert policy.jitter == 0.25

    def test_exponential_base_delay_doubles(self):
        """Test un-jittered exponential delays."""
        policy = BackoffPolicy(initial_delay=0.5, max_delay=10.0)
        assert policy.base_delay(1) == 0.5
        assert policy.base_delay(2) == 1.0
        assert policy.base_delay(3) == 2.0
        assert policy.base_delay(4) == 4.0

    def test_exponential_capped_at_max_delay(self):
        """Test that the cap applies before jitter."""
        policy = BackoffPolicy(initial_delay=1.0, max_delay=5.0)
        assert policy.base_delay(3) == 4.0
        assert policy.base_delay(4) == 5.0
        assert policy.base_delay(10) == 5.0

    def test_exponential_delays_within_jitter_band(self):
        """Test every exponential delay lies in [0.75, 1.25] x capped base."""
        policy = BackoffPolicy(max_retries=8, initial_delay=0.5, max_delay=10.0, rng=random.Random(7))
        for retry in range(1, 9):
            expected = min(10.0, 0.5 * 2 ** (retry - 1))
            for _ in range(50):
                delay = policy.get_delay(retry)
                assert 0.75 * expected <= delay <= 1.25 * expected

    def test_fixed_delays_within_jitter_band(self):
        """Test fixed mode uses the initial delay for every retry."""
        policy = BackoffPolicy(
            initial_delay=2.0,
            max_delay=30.0,
            strategy=BackoffStrategy.FIXED,
            rng=random.Random(3),
        )
        for retry in range(1, 6):
            assert policy.base_delay(retry) == 2.0
            assert 1.5 <= policy.get_delay(retry) <= 2.5

    def test_seeded_rng_is_deterministic(self):
        """Test that the jitter draw is reproducible with a seed."""
        a = BackoffPolicy(rng=random.Random(42))
        b = BackoffPolicy(rng=random.Random(42))
        assert [a.get_delay(k) for k in range(1, 5)] == [b.get_delay(k) for k in range(1, 5)]

    def test_delay_bounds(self):
        """Test the reported jitter band."""
        policy = BackoffPolicy(initial_delay=1.0, max_delay=10.0)
        assert policy.delay_bounds(2) == (1.5, 2.5)

    def test_retry_is_one_based(self):
        """Test that retry 0 is rejected."""
        with pytest.raises(ValueError):
            BackoffPolicy().base_delay(0)

    def test_negative_retries_rejected(self):
        """Test validation of max_retries."""
        with pytest.raises(ValueError):
            BackoffPolicy(max_retries=-1)

    def test_from_milliseconds(self):
        """Test building from millisecond options."""
        policy = BackoffPolicy.from_milliseconds(2, 500, 10000, use_exponential_backoff=False)
        assert policy.max_retries == 2
        assert policy.initial_delay == 0.5
        assert policy.max_delay == 10.0
        assert policy.strategy == BackoffStrategy.FIXED

    def test_no_retry(self):
        """Test no-retry policy."""
        assert BackoffPolicy.no_retry().max_attempts == 1


# =============================================================================
# Error Classification Tests
# =============================================================================


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.parametrize(
        "error",
        [
            TimeoutError("too slow"),
            asyncio.TimeoutError(),
            ConnectionError("reset by peer"),
            ElementNotFoundError("#submit"),
            RuntimeError("Timeout 30000ms exceeded."),
            RuntimeError("Element is not attached to the DOM"),
            RuntimeError("Element is not visible"),
            Exception("StaleElementReferenceException: gone"),
        ],
    )
    def test_transient(self, error):
        """Test errors that should be retried."""
        assert classify_error(error) is ErrorKind.TRANSIENT
        assert is_transient(error)

    @pytest.mark.parametrize(
        "error",
        [
            ValueError("bad url"),
            TypeError("wrong type"),
            KeyError("missing"),
            NotImplementedError(),
            PermissionError("denied"),
            BrowserNotInitializedError(),
            UnsupportedToolError("submit_form"),
            RuntimeError("something odd happened"),
        ],
    )
    def test_terminal(self, error):
        """Test errors that should not be retried."""
        assert classify_error(error) is ErrorKind.TERMINAL

    def test_explicit_terminal_wins_over_message(self):
        """Test that a terminal subclass is terminal even with a timeout message."""
        error = BrowserNotInitializedError("Timeout waiting for browser init")
        assert classify_error(error) is ErrorKind.TERMINAL

    def test_describe_error(self):
        """Test retry reason formatting."""
        assert describe_error(TimeoutError("slow")) == "TimeoutError: slow"


class TestErrorClassifier:
    """Tests for ErrorClassifier."""

    def test_navigation_timeout(self):
        """Test timeout during navigation."""
        result = ErrorClassifier().classify(TimeoutError("Timeout while navigating to https://x"))
        assert result.error_type == BrowserErrorType.NAVIGATION_TIMEOUT
        assert result.confidence == 0.95
        assert result.suggested_actions[0] == RecoveryActionType.NAVIGATION_RETRY

    def test_selector_timeout_is_timing_issue(self):
        """Test timeout waiting for a selector."""
        result = ErrorClassifier().classify(TimeoutError("waiting for selector '#a'"))
        assert result.error_type == BrowserErrorType.TIMING_ISSUE

    def test_selector_not_found(self):
        """Test selector-missing message."""
        result = ErrorClassifier().classify(RuntimeError("selector '#go' not found"))
        assert result.error_type == BrowserErrorType.SELECTOR_NOT_FOUND
        assert RecoveryActionType.ALTERNATIVE_SELECTOR in result.suggested_actions
        assert result.is_recoverable

    def test_network_error(self):
        """Test network failures."""
        result = ErrorClassifier().classify(RuntimeError("net::ERR_CONNECTION_REFUSED"))
        assert result.error_type == BrowserErrorType.NETWORK_ERROR
        assert ErrorClassifier.is_transient(result.error_type)

    def test_page_crash(self):
        """Test crashed page."""
        result = ErrorClassifier().classify(RuntimeError("Target page has crashed"))
        assert result.error_type == BrowserErrorType.PAGE_CRASH
        assert not ErrorClassifier.is_transient(result.error_type)

    def test_unknown(self):
        """Test unclassifiable errors."""
        result = ErrorClassifier().classify(RuntimeError("weird"))
        assert result.error_type == BrowserErrorType.UNKNOWN
        assert result.suggested_actions == (RecoveryActionType.NONE,)
        assert not result.is_recoverable

    def test_context_includes_cause(self):
        """Test that the chained cause is recorded."""
        try:
            try:
                raise ConnectionError("socket closed")
            except ConnectionError as inner:
                raise RuntimeError("navigation failed") from inner
        except RuntimeError as outer:
            result = ErrorClassifier().classify(outer, selector="#a", page_url=None)

        assert result.context["inner_exception_type"] == "ConnectionError"
        assert result.context["selector"] == "#a"
        assert "page_url" not in result.context


# =============================================================================
# CircuitBreaker Tests
# =============================================================================


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def make(self, threshold=3, duration=5.0):
        clock = FakeClock()
        breaker = CircuitBreaker(
            "provider",
            CircuitBreakerOptions(failure_threshold=threshold, open_duration_seconds=duration),
            clock=clock,
        )
        return breaker, clock

    def test_starts_closed(self):
        """Test that circuit starts closed."""
        breaker, _ = self.make()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0
        assert breaker.is_request_allowed()

    def test_opens_exactly_at_threshold(self):
        """Test that circuit opens on the threshold-th consecutive failure."""
        breaker, _ = self.make(threshold=3)
        breaker.record_failure()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.is_request_allowed()

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.is_request_allowed()
        assert not breaker.can_attempt()

    def test_success_resets_failure_count(self):
        """Test that success in closed state resets consecutive failures."""
        breaker, _ = self.make(threshold=3)
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        assert breaker.consecutive_failures == 0
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

    def test_stays_open_until_duration_elapses(self):
        """Test that open never leaves before open duration."""
        breaker, clock = self.make(threshold=1, duration=5.0)
        breaker.record_failure()

        clock.advance(4.5)
        assert breaker.state == CircuitState.OPEN
        assert not breaker.is_request_allowed()

        clock.advance(0.5)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_half_open_allows_single_trial(self):
        """Test that exactly one request passes while half-open."""
        breaker, clock = self.make(threshold=1, duration=5.0)
        breaker.record_failure()
        clock.advance(6)

        assert breaker.can_attempt()
        assert breaker.is_request_allowed()
        assert not breaker.is_request_allowed()
        assert not breaker.can_attempt()

    def test_half_open_success_closes(self):
        """Test that a trial success closes and resets counters."""
        breaker, clock = self.make(threshold=2, duration=5.0)
        breaker.record_failure()
        breaker.record_failure()
        clock.advance(5)
        assert breaker.is_request_allowed()

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0
        assert breaker.snapshot.opened_at is None

    def test_half_open_failure_reopens_and_restarts_timer(self):
        """Test that a trial failure reopens with a fresh timer."""
        breaker, clock = self.make(threshold=1, duration=5.0)
        breaker.record_failure()
        first_opened = breaker.snapshot.opened_at
        clock.advance(5)
        assert breaker.is_request_allowed()

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert breaker.snapshot.opened_at == first_opened + 5

        clock.advance(4)
        assert breaker.state == CircuitState.OPEN
        clock.advance(1)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_failure_while_open_keeps_timer(self):
        """Test that late failures do not extend the open period."""
        breaker, clock = self.make(threshold=1, duration=5.0)
        breaker.record_failure()
        clock.advance(3)
        breaker.record_failure()
        clock.advance(2)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_release_trial(self):
        """Test giving back an unused half-open trial."""
        breaker, clock = self.make(threshold=1)
        breaker.record_failure()
        clock.advance(10)
        assert breaker.is_request_allowed()
        breaker.release_trial()
        assert breaker.is_request_allowed()

    def test_reset(self):
        """Test manual reset."""
        breaker, _ = self.make(threshold=1)
        breaker.record_failure()
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0

    def test_snapshot_is_immutable(self):
        """Test that state records are replaced, not mutated."""
        breaker, _ = self.make(threshold=3)
        before = breaker.snapshot
        breaker.record_failure()
        assert before.consecutive_failures == 0
        assert breaker.snapshot.consecutive_failures == 1
        assert breaker.snapshot is not before

    def test_get_stats(self):
        """Test stats dictionary."""
        breaker, _ = self.make(threshold=1)
        breaker.record_failure(RuntimeError("boom"))
        stats = breaker.get_stats()
        assert stats["provider_name"] == "provider"
        assert stats["state"] == "open"
        assert stats["consecutive_failures"] == 1
        assert stats["opened_at"] is not None
        assert stats["last_failure_time"] is not None

    def test_real_clock_transition(self):
        """Test half-open transition with the default clock."""
        breaker = CircuitBreaker(
            "real", CircuitBreakerOptions(failure_threshold=1, open_duration_seconds=0.1)
        )
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        time.sleep(0.15)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_concurrent_half_open_trial_is_exclusive(self):
        """Test that racing threads get only one half-open trial."""
        breaker, clock = self.make(threshold=1)
        breaker.record_failure()
        clock.advance(10)

        allowed = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            allowed.append(breaker.is_request_allowed())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert allowed.count(True) == 1


class TestCircuitBreakerOptions:
    """Tests for CircuitBreakerOptions."""

    def test_defaults(self):
        """Test default thresholds."""
        options = CircuitBreakerOptions()
        assert options.failure_threshold == 5
        assert options.open_duration_seconds == 30.0
        options.validate()

    def test_invalid(self):
        """Test that every violation is reported."""
        with pytest.raises(ConfigurationError) as exc_info:
            CircuitBreakerOptions(failure_threshold=0, open_duration_seconds=0).validate()
        assert len(exc_info.value.errors) == 2


class TestCircuitBreakerRegistry:
    """Tests for CircuitBreakerRegistry."""

    def test_get_or_create_returns_same_breaker(self):
        """Test one breaker per name."""
        registry = CircuitBreakerRegistry()
        assert registry.get_or_create_breaker("a") is registry.get_or_create_breaker("a")
        assert registry.get_or_create_breaker("a") is not registry.get_or_create_breaker("b")
        assert len(registry) == 2
        assert "a" in registry

    def test_get_without_create(self):
        """Test lookup of unknown breaker."""
        assert CircuitBreakerRegistry().get("missing") is None

    def test_breakers_share_options(self):
        """Test registry options propagate."""
        registry = CircuitBreakerRegistry(CircuitBreakerOptions(failure_threshold=1))
        breaker = registry.get_or_create_breaker("a")
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

    def test_breakers_are_independent(self):
        """Test that failures on one target do not affect another."""
        registry = CircuitBreakerRegistry(CircuitBreakerOptions(failure_threshold=1))
        registry.get_or_create_breaker("a").record_failure()
        assert registry.get_or_create_breaker("b").state == CircuitState.CLOSED

    def test_get_all_stats_and_reset_all(self):
        """Test aggregate stats and reset."""
        registry = CircuitBreakerRegistry(CircuitBreakerOptions(failure_threshold=1))
        registry.get_or_create_breaker("a").record_failure()
        registry.get_or_create_breaker("b")

        stats = registry.get_all_stats()
        assert stats["a"]["state"] == "open"
        assert stats["b"]["state"] == "closed"

        registry.reset_all()
        assert registry.get_all_stats()["a"]["state"] == "closed"
