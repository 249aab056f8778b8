"""
CircuitBreakerProvider - a provider that guards a primary backend with a
breaker and hands requests to a fallback backend while the circuit is open.
"""

from __future__ import annotations

import asyncio
import logging

from evoflow.core.errors import CircuitOpenError
from evoflow.llm.models import LLMRequest, LLMResponse, ProviderCapabilities
from evoflow.llm.provider import Provider
from evoflow.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerOptions

logger = logging.getLogger(__name__)


class CircuitBreakerProvider(Provider):
    """
    Primary/fallback provider pair gated by one circuit breaker.

    The breaker tracks the primary only. While it is open, requests go
    straight to the fallback; without a fallback they fail with
    ``CircuitOpenError``.

    Example:
        ```python
        provider = CircuitBreakerProvider(
            azure,
            fallback=ollama,
            options=CircuitBreakerOptions(failure_threshold=3, open_duration_seconds=60),
        )
        response = await provider.complete(request)
        ```
    """

    def __init__(
        self,
        primary: Provider,
        fallback: Provider | None = None,
        options: CircuitBreakerOptions | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.breaker = breaker or CircuitBreaker(primary.name, options)
        self.name = f"{primary.name}+breaker"
        self._last_used: Provider = primary

    async def complete(self, request: LLMRequest) -> LLMResponse:
        if self.breaker.is_request_allowed():
            try:
                response = await self.primary.complete(request)
            except asyncio.CancelledError:
                self.breaker.release_trial()
                raise
            except Exception as e:
                self.breaker.record_failure(e)
                if self.fallback is None:
                    raise
                logger.warning(
                    "Primary provider %s failed (%s), using fallback %s",
                    self.primary.name, e, self.fallback.name,
                )
            else:
                self.breaker.record_success()
                self._last_used = self.primary
                return response
        elif self.fallback is None:
            raise CircuitOpenError(self.primary.name)
        else:
            logger.warning(
                "Circuit open for %s, using fallback %s", self.primary.name, self.fallback.name
            )

        response = await self.fallback.complete(request)
        self._last_used = self.fallback
        return response

    def get_capabilities(self) -> ProviderCapabilities:
        return self.primary.get_capabilities()

    def get_model_name(self) -> str:
        return self._last_used.get_model_name()
