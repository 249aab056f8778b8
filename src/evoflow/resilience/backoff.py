"""
Backoff policy - delay computation between retry attempts.

Exponential mode doubles the initial delay per retry up to a cap; fixed
mode waits the initial delay every time. Both scale the result by a jitter
factor drawn from ``[1 - jitter, 1 + jitter]`` so concurrent callers do not
retry in lockstep.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from evoflow.core.enums import BackoffStrategy


@dataclass
class BackoffPolicy:
    """
    Retry budget and delay schedule for one dispatch.

    Attributes:
        max_retries: Retries allowed after the first attempt (0 = no retry)
        initial_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for the un-jittered delay, in seconds
        strategy: Exponential or fixed backoff
        jitter: Half-width of the jitter band (0.25 gives [0.75, 1.25])
        rng: Random source for jitter; pass ``random.Random(seed)`` in tests

    Example:
        ```python
        policy = BackoffPolicy(max_retries=3, initial_delay=0.5, max_delay=10.0)
        policy.get_delay(1)  # ~0.5s
        policy.get_delay(3)  # ~2.0s

        # Deterministic jitter
        policy = BackoffPolicy(rng=random.Random(42))
        ```
    """

    max_retries: int = 3
    initial_delay: float = 0.5  # seconds
    max_delay: float = 10.0  # seconds
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    jitter: float = 0.25
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first one."""
        return self.max_retries + 1

    def base_delay(self, retry: int) -> float:
        """
        Un-jittered delay before retry ``retry``.

        Args:
            retry: Retry number, 1-based

        Returns:
            Delay in seconds before jitter is applied
        """
        if retry < 1:
            raise ValueError("retry is 1-based")
        if self.strategy == BackoffStrategy.EXPONENTIAL:
            delay = self.initial_delay * (2 ** (retry - 1))
        else:
            delay = self.initial_delay
        return min(self.max_delay, delay)

    def get_delay(self, retry: int) -> float:
        """
        Calculate the jittered delay before retry ``retry``.

        Args:
            retry: Retry number, 1-based

        Returns:
            Delay in seconds
        """
        factor = self.rng.uniform(1 - self.jitter, 1 + self.jitter)
        return self.base_delay(retry) * factor

    def delay_bounds(self, retry: int) -> tuple[float, float]:
        """Smallest and largest delay ``get_delay(retry)`` can return."""
        base = self.base_delay(retry)
        return base * (1 - self.jitter), base * (1 + self.jitter)

    @classmethod
    def from_milliseconds(
        cls,
        max_retries: int,
        initial_delay_ms: int,
        max_delay_ms: int,
        use_exponential_backoff: bool = True,
        rng: random.Random | None = None,
    ) -> BackoffPolicy:
        """Build a policy from the millisecond-based option surface."""
        return cls(
            max_retries=max_retries,
            initial_delay=initial_delay_ms / 1000,
            max_delay=max_delay_ms / 1000,
            strategy=(
                BackoffStrategy.EXPONENTIAL if use_exponential_backoff else BackoffStrategy.FIXED
            ),
            rng=rng or random.Random(),
        )

    @classmethod
    def no_retry(cls) -> BackoffPolicy:
        """Create a policy with no retry (fail fast)."""
        return cls(max_retries=0)
