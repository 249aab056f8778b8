"""
ProviderRouter - complete LLM requests against the best healthy provider.

For each request the router asks its routing strategy to pick among the
providers whose circuit breaker currently allows traffic, dispatches with
per-attempt timeout and transient-error retries, and falls back to the next
best provider when one is exhausted. Every dispatch outcome feeds the
provider's breaker.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Sequence

from evoflow.core.enums import ComplexityLevel, ErrorKind, TaskType
from evoflow.core.errors import AllProvidersFailedError, ConfigurationError
from evoflow.core.utils import elapsed_ms
from evoflow.llm.models import LLMRequest, LLMResponse, ProviderCapabilities
from evoflow.llm.provider import Provider
from evoflow.llm.routing.context import RoutingContext
from evoflow.llm.routing.routes import RouteInfo, RoutingOptions
from evoflow.llm.routing.strategies import (
    RoutingStrategy,
    TaskBasedRoutingStrategy,
    create_strategy,
)
from evoflow.resilience.backoff import BackoffPolicy
from evoflow.resilience.circuit_breaker import CircuitBreakerOptions, CircuitBreakerRegistry
from evoflow.resilience.classifier import classify_error, describe_error

logger = logging.getLogger(__name__)


@dataclass
class RouterOptions:
    """
    Dispatch settings for ``ProviderRouter``.

    Attributes:
        enable_fallback: Try another provider when one fails
        request_timeout_seconds: Timeout for a single provider call
        max_retries: Retries of transient failures on the same provider
        initial_retry_delay_ms: Delay before the first retry
        max_retry_delay_ms: Cap on the un-jittered delay
        use_exponential_backoff: Double the delay per retry; else constant
    """

    enable_fallback: bool = True
    request_timeout_seconds: float = 60.0
    max_retries: int = 3
    initial_retry_delay_ms: int = 500
    max_retry_delay_ms: int = 10000
    use_exponential_backoff: bool = True

    def validate(self) -> None:
        errors = []
        if self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be > 0")
        if self.max_retries < 0:
            errors.append("max_retries must be >= 0")
        if self.initial_retry_delay_ms < 0:
            errors.append("initial_retry_delay_ms must be >= 0")
        if self.max_retry_delay_ms < self.initial_retry_delay_ms:
            errors.append("max_retry_delay_ms must be >= initial_retry_delay_ms")
        if errors:
            raise ConfigurationError("Invalid router options", errors)

    def to_backoff_policy(self, rng: random.Random | None = None) -> BackoffPolicy:
        return BackoffPolicy.from_milliseconds(
            max_retries=self.max_retries,
            initial_delay_ms=self.initial_retry_delay_ms,
            max_delay_ms=self.max_retry_delay_ms,
            use_exponential_backoff=self.use_exponential_backoff,
            rng=rng,
        )


@dataclass
class RoutedCompletion:
    """Result of a routed LLM completion."""

    success: bool
    response: LLMResponse | None = None
    provider_name: str | None = None
    model: str | None = None
    error: BaseException | None = None
    attempts: int = 0  # real dispatches across all providers
    attempted_providers: list[str] = field(default_factory=list)
    used_fallback: bool = False
    total_time_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def content(self) -> str | None:
        return self.response.content if self.response else None


@dataclass
class _Trail:
    attempted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    retry_reasons: list[str] = field(default_factory=list)
    retry_delays: list[float] = field(default_factory=list)
    dispatches: int = 0
    last_error: BaseException | None = None

    def metadata(self) -> dict[str, Any]:
        return {
            "attempted_providers": list(self.attempted),
            "skipped_providers": list(self.skipped),
            "retry_reasons": list(self.retry_reasons),
            "retry_delays": list(self.retry_delays),
        }


# Keyword -> task type, first match wins
_TASK_KEYWORDS: tuple[tuple[tuple[str, ...], TaskType], ...] = (
    (("plan", "steps", "workflow"), TaskType.PLANNING),
    (("code", "implement", "function"), TaskType.CODE_GENERATION),
    (("heal", "fix", "recover"), TaskType.HEALING),
    (("extract", "scrape"), TaskType.EXTRACTION),
)


def infer_task_type(text: str, tool_count: int = 0) -> TaskType:
    """Guess the task type of a prompt from its wording."""
    lowered = text.lower()
    for keywords, task_type in _TASK_KEYWORDS:
        if any(k in lowered for k in keywords):
            return task_type
    if tool_count > 0:
        return TaskType.PLANNING
    return TaskType.GENERAL


def estimate_complexity(text: str, tool_count: int = 0) -> ComplexityLevel:
    """Estimate complexity from prompt length and number of tools offered."""
    words = len(text.split())
    if words > 500 or tool_count > 10:
        return ComplexityLevel.EXPERT
    if words > 200 or tool_count > 5:
        return ComplexityLevel.HIGH
    if words > 50 or tool_count > 2:
        return ComplexityLevel.MEDIUM
    return ComplexityLevel.LOW


def _strategy_from(routing_options: RoutingOptions | None) -> RoutingStrategy:
    if routing_options is None:
        return TaskBasedRoutingStrategy()
    return create_strategy(routing_options.strategy)


def _breakers_from(routing_options: RoutingOptions | None) -> CircuitBreakerRegistry:
    if routing_options is None:
        return CircuitBreakerRegistry()
    return CircuitBreakerRegistry(
        CircuitBreakerOptions(
            failure_threshold=routing_options.circuit_breaker_failure_threshold,
            open_duration_seconds=routing_options.circuit_breaker_open_duration_seconds,
        )
    )


def infer_routing_context(request: LLMRequest, allow_fallback: bool = True) -> RoutingContext:
    """Build a routing context from the request itself."""
    text = request.last_content
    tool_count = len(request.functions)
    return RoutingContext(
        task_type=infer_task_type(text, tool_count),
        complexity=estimate_complexity(text, tool_count),
        requires_streaming=request.stream,
        requires_function_calling=tool_count > 0,
        preferred_model=request.model,
        allow_fallback=allow_fallback,
    )


class ProviderRouter:
    """
    Route LLM requests across providers with breakers and fallback.

    Example:
        ```python
        router = ProviderRouter(
            [azure_provider, ollama_provider],
            strategy=CostOptimizedRoutingStrategy(),
            breakers=CircuitBreakerRegistry(CircuitBreakerOptions(failure_threshold=3)),
        )

        result = await router.complete(LLMRequest.from_prompt("Plan the login test"))
        if result.success:
            print(result.provider_name, result.content)
        else:
            print("no provider could serve the request:", result.error)
        ```
    """

    def __init__(
        self,
        providers: Sequence[Provider],
        strategy: RoutingStrategy | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        options: RouterOptions | None = None,
        routing_options: RoutingOptions | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        """
        Initialize the router.

        Args:
            providers: Candidate backends; names must be unique
            strategy: Scoring strategy; defaults to the one named by
                ``routing_options``, else task-based
            breakers: Breaker registry shared with other routers, if any;
                built from ``routing_options`` thresholds when omitted
            options: Dispatch settings
            routing_options: Route table for ``route``/``complete_with_route``
            backoff: Explicit backoff policy; built from ``options`` when omitted

        Raises:
            ValueError: If no providers are given, names collide or the
                configured strategy name is unknown
            ConfigurationError: If the strategy cannot handle ``routing_options``
        """
        if not providers:
            raise ValueError("At least one provider must be configured")
        names = [p.name for p in providers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Provider names must be unique: {', '.join(duplicates)}")

        self._providers = list(providers)
        self.strategy = strategy or _strategy_from(routing_options)
        self.breakers = breakers or _breakers_from(routing_options)
        self.options = options or RouterOptions()
        self.routing_options = routing_options
        self.backoff = backoff or self.options.to_backoff_policy()
        self._last_provider: Provider | None = None

        if routing_options is not None and not self.strategy.can_handle(routing_options):
            raise ConfigurationError(
                f"Routing configuration is not valid for the {self.strategy.name} strategy"
            )
        logger.info(
            "Initialized routing with %d providers using %s strategy",
            len(self._providers),
            self.strategy.name,
        )

    @property
    def providers(self) -> list[Provider]:
        return list(self._providers)

    @property
    def _route_fallback_enabled(self) -> bool:
        if not self.options.enable_fallback:
            return False
        return self.routing_options is None or self.routing_options.enable_provider_fallback

    def get_provider(self, name: str) -> Provider | None:
        """Look up a provider by name (case-insensitive)."""
        wanted = name.lower()
        for provider in self._providers:
            if provider.name.lower() == wanted:
                return provider
        return None

    def available_providers(self, exclude: Sequence[str] = ()) -> list[Provider]:
        """Providers whose breaker would let a request through."""
        return [
            p
            for p in self._providers
            if p.name not in exclude and self.breakers.get_or_create_breaker(p.name).can_attempt()
        ]

    def select_provider(self, context: RoutingContext) -> Provider | None:
        """
        Choose a provider for ``context`` without dispatching.

        Providers with an open circuit are excluded as if they scored 0.
        """
        return self.strategy.select_provider(context, self.available_providers())

    def route(self, task_type: TaskType, context: RoutingContext | None = None) -> RouteInfo:
        """
        Pick a configured route for a task type.

        Raises:
            ConfigurationError: If the router has no route table
        """
        if self.routing_options is None:
            raise ConfigurationError("No routing options configured")
        return self.strategy.select_route(task_type, self.routing_options, context)

    async def complete(
        self,
        request: LLMRequest,
        context: RoutingContext | None = None,
    ) -> RoutedCompletion:
        """
        Complete a request with the best available provider.

        Args:
            request: The completion request
            context: Routing input; inferred from ``request`` when omitted

        Returns:
            RoutedCompletion; "no provider available" is a failed result

        Raises:
            asyncio.CancelledError: If the calling task is cancelled
        """
        start = time.perf_counter()
        context = context or infer_routing_context(request, self.options.enable_fallback)
        fallback_allowed = self.options.enable_fallback and context.allow_fallback
        trail = _Trail()

        while True:
            provider = self.strategy.select_provider(
                context, self.available_providers(exclude=trail.attempted)
            )
            if provider is None:
                break
            if trail.attempted:
                logger.warning("Falling back to provider %s", provider.name)
            trail.attempted.append(provider.name)

            response = await self._dispatch(provider, request, trail)
            if response is not None:
                return self._succeeded(
                    provider, response, trail, start, used_fallback=len(trail.attempted) > 1
                )
            if not fallback_allowed:
                break

        return self._failed(trail, start)

    async def complete_with_route(self, request: LLMRequest, route: RouteInfo) -> RoutedCompletion:
        """
        Complete a request on a route's primary provider, then its fallback.

        The fallback is used when the primary fails or its circuit is open,
        provided both ``enable_fallback`` and the route table's
        ``enable_provider_fallback`` are set.
        """
        start = time.perf_counter()
        trail = _Trail()
        targets = [route.primary_provider]
        if route.has_fallback and self._route_fallback_enabled:
            targets.append(route.fallback_provider)

        for index, name in enumerate(targets):
            provider = self.get_provider(name)
            if provider is None:
                logger.warning("Route provider %s is not registered with the router", name)
                continue
            if index > 0:
                logger.warning(
                    "Primary %s unavailable, falling back to %s", route.primary_provider, name
                )
            trail.attempted.append(provider.name)
            response = await self._dispatch(provider, request, trail)
            if response is not None:
                completion = self._succeeded(
                    provider, response, trail, start, used_fallback=index > 0
                )
                completion.metadata["route"] = str(route)
                return completion

        completion = self._failed(trail, start)
        completion.metadata["route"] = str(route)
        return completion

    async def complete_or_raise(
        self,
        request: LLMRequest,
        context: RoutingContext | None = None,
    ) -> LLMResponse:
        """
        Like ``complete`` but return the response or raise.

        Raises:
            AllProvidersFailedError: With the last provider error as ``__cause__``
        """
        result = await self.complete(request, context)
        if result.success and result.response is not None:
            return result.response
        error = result.error
        if isinstance(error, AllProvidersFailedError):
            raise error from error.last_error
        raise AllProvidersFailedError(result.attempted_providers, error) from error

    async def _dispatch(
        self,
        provider: Provider,
        request: LLMRequest,
        trail: _Trail,
    ) -> LLMResponse | None:
        breaker = self.breakers.get_or_create_breaker(provider.name)
        policy = self.backoff

        for attempt in range(1, policy.max_attempts + 1):
            if not breaker.is_request_allowed():
                logger.warning("Circuit breaker is open for %s, skipping", provider.name)
                trail.skipped.append(provider.name)
                return None

            trail.dispatches += 1
            logger.debug(
                "Dispatching to %s (attempt %d/%d)", provider.name, attempt, policy.max_attempts
            )
            try:
                response = await self._call_with_timeout(provider, request)
            except asyncio.CancelledError:
                breaker.release_trial()
                raise
            except Exception as e:
                breaker.record_failure(e)
                trail.last_error = e
                logger.error("Request to %s failed: %s", provider.name, describe_error(e))
            else:
                breaker.record_success()
                return response

            if classify_error(trail.last_error) is ErrorKind.TERMINAL:
                return None
            if attempt > policy.max_retries:
                return None

            delay = policy.get_delay(attempt)
            trail.retry_reasons.append(f"{provider.name}: {describe_error(trail.last_error)}")
            trail.retry_delays.append(delay)
            logger.warning("Retrying %s in %.2fs", provider.name, delay)
            await asyncio.sleep(delay)
        return None

    async def _call_with_timeout(self, provider: Provider, request: LLMRequest) -> LLMResponse:
        timeout = self.options.request_timeout_seconds
        try:
            return await asyncio.wait_for(provider.complete(request), timeout=timeout)
        except asyncio.TimeoutError as e:
            if str(e):
                raise
            raise TimeoutError(f"Request to {provider.name} timed out after {timeout}s") from None

    def _succeeded(
        self,
        provider: Provider,
        response: LLMResponse,
        trail: _Trail,
        start: float,
        used_fallback: bool,
    ) -> RoutedCompletion:
        self._last_provider = provider
        logger.info(
            "Request completed with %s (%d input / %d output tokens)",
            provider.name,
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        return RoutedCompletion(
            success=True,
            response=response,
            provider_name=provider.name,
            model=provider.get_model_name(),
            attempts=trail.dispatches,
            attempted_providers=list(trail.attempted),
            used_fallback=used_fallback,
            total_time_ms=elapsed_ms(start),
            metadata={**trail.metadata(), "served_by": provider.name},
        )

    def _failed(self, trail: _Trail, start: float) -> RoutedCompletion:
        error = AllProvidersFailedError(trail.attempted, trail.last_error)
        if trail.attempted:
            logger.error("%s", error)
        else:
            logger.warning("No provider available for this request")
        return RoutedCompletion(
            success=False,
            error=error,
            attempts=trail.dispatches,
            attempted_providers=list(trail.attempted),
            used_fallback=len(trail.attempted) > 1,
            total_time_ms=elapsed_ms(start),
            metadata=trail.metadata(),
        )

    def get_model_name(self) -> str:
        """Model of the provider that served the last request, else the first provider's."""
        provider = self._last_provider or self._providers[0]
        return provider.get_model_name()

    def get_capabilities(self) -> ProviderCapabilities:
        """Combined capabilities of all providers."""
        return ProviderCapabilities.combine([p.get_capabilities() for p in self._providers])

    def get_circuit_stats(self) -> dict[str, dict[str, Any]]:
        """Breaker statistics for every provider the router knows."""
        return {p.name: self.breakers.get_or_create_breaker(p.name).get_stats() for p in self._providers}
