"""
Routing strategies - score providers for a request and pick routes.

A strategy is a pure function of ``(context, provider)``: it never calls
the provider and keeps no state between requests, so the router can swap
strategies at configuration time. Two views are supported:

- provider scoring (``score_provider`` / ``select_provider``) over live
  ``Provider`` objects;
- route selection (``select_route`` / ``can_handle``) over the configured
  ``RoutingOptions`` route table.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from evoflow.core.enums import ComplexityLevel, RequestPriority, TaskType
from evoflow.llm.provider import Provider
from evoflow.llm.routing.context import RoutingContext
from evoflow.llm.routing.routes import RouteConfiguration, RouteInfo, RoutingOptions

logger = logging.getLogger(__name__)


def _identity(provider: Provider) -> tuple[str, str]:
    return provider.name.lower(), provider.get_model_name().lower()


class RoutingStrategy(ABC):
    """Base class for routing strategies."""

    name: str = "Base"
    description: str = ""

    def meets_requirements(self, context: RoutingContext, provider: Provider) -> bool:
        """Hard capability gate shared by every strategy."""
        capabilities = provider.get_capabilities()
        if context.requires_streaming and not capabilities.supports_streaming:
            return False
        if context.requires_function_calling and not capabilities.supports_function_calling:
            return False
        return True

    @abstractmethod
    def score_provider(self, context: RoutingContext, provider: Provider) -> float:
        """
        Score how well a provider suits a request.

        Returns:
            Score in [0, 1]; 0 means the provider cannot serve the request
        """

    def select_provider(
        self,
        context: RoutingContext,
        available_providers: Sequence[Provider],
    ) -> Provider | None:
        """
        Pick the best provider for a request.

        Providers scoring 0 are discarded. Ties keep the input order, except
        that a provider serving ``context.preferred_model`` wins a tie.

        Returns:
            Highest-scoring provider, or None if none qualifies
        """
        preferred = (context.preferred_model or "").lower()
        scored = []
        for provider in available_providers:
            score = self.score_provider(context, provider)
            logger.debug("%s scored %s at %.3f", self.name, provider.name, score)
            if score > 0:
                is_preferred = bool(preferred) and provider.get_model_name().lower() == preferred
                scored.append((score, is_preferred, provider))

        if not scored:
            logger.warning(
                "No provider qualifies for %s request (streaming=%s, function_calling=%s)",
                context.task_type.value,
                context.requires_streaming,
                context.requires_function_calling,
            )
            return None

        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return scored[0][2]

    @abstractmethod
    def select_route(
        self,
        task_type: TaskType,
        options: RoutingOptions,
        context: RoutingContext | None = None,
    ) -> RouteInfo:
        """Choose a configured route for a task type."""

    @abstractmethod
    def can_handle(self, options: RoutingOptions) -> bool:
        """Check whether a route table is usable with this strategy."""


class TaskBasedRoutingStrategy(RoutingStrategy):
    """
    Route by what the request does.

    Provider score is the mean of three sub-scores: task-type affinity of
    the provider/model, whether its context window covers the complexity,
    and whether it is reliable enough for the priority.
    """

    name = "TaskBased"
    description = "Routes requests based on detected or specified task type"

    def score_provider(self, context: RoutingContext, provider: Provider) -> float:
        if not self.meets_requirements(context, provider):
            return 0.0
        capabilities = provider.get_capabilities()
        score = (
            self._score_task_type(context.task_type, provider)
            + self._score_complexity(context.complexity, capabilities.max_context_tokens)
            + self._score_priority(context.priority, provider)
        )
        return min(1.0, max(0.0, score / 3.0))

    @staticmethod
    def _score_task_type(task_type: TaskType, provider: Provider) -> float:
        provider_name, model = _identity(provider)
        azure = "azure" in provider_name

        if task_type == TaskType.PLANNING:
            if azure or "gpt-5" in model:
                return 1.0
            if "gpt-4" in model:
                return 0.9
        elif task_type == TaskType.CODE_GENERATION:
            if "qwen" in model:
                return 1.0
            if "codellama" in model:
                return 0.9
            if "deepseek" in model:
                return 0.95
        elif task_type == TaskType.REASONING:
            if azure or "gpt" in model:
                return 1.0
            if "qwen2.5:32b" in model:
                return 0.9
        elif task_type == TaskType.HEALING:
            if azure:
                return 0.95
            if "qwen" in model:
                return 0.85
        elif task_type == TaskType.EXTRACTION:
            if "llama" in model:
                return 0.8
            if "mistral" in model:
                return 0.85
        elif task_type == TaskType.UNDERSTANDING:
            return 0.7
        elif task_type == TaskType.GENERAL:
            return 0.6
        return 0.5

    @staticmethod
    def _score_complexity(complexity: ComplexityLevel, max_context_tokens: int) -> float:
        if complexity == ComplexityLevel.LOW:
            return 0.5
        if complexity == ComplexityLevel.MEDIUM:
            return 0.8 if max_context_tokens >= 8192 else 0.6
        if complexity == ComplexityLevel.HIGH:
            if max_context_tokens >= 16384:
                return 1.0
            if max_context_tokens >= 8192:
                return 0.7
            return 0.5
        if complexity == ComplexityLevel.EXPERT:
            if max_context_tokens >= 32768:
                return 1.0
            if max_context_tokens >= 16384:
                return 0.8
            return 0.4
        return 0.5

    @staticmethod
    def _score_priority(priority: RequestPriority, provider: Provider) -> float:
        provider_name, _ = _identity(provider)
        if priority == RequestPriority.CRITICAL:
            return 1.0 if "azure" in provider_name else 0.6
        if priority == RequestPriority.HIGH:
            return 0.9 if "azure" in provider_name else 0.7
        if priority == RequestPriority.LOW:
            return 1.0 if "ollama" in provider_name else 0.6
        return 0.8

    def select_route(
        self,
        task_type: TaskType,
        options: RoutingOptions,
        context: RoutingContext | None = None,
    ) -> RouteInfo:
        route = options.get_route(task_type)
        if route is None:
            logger.info("No specific route configured for %s, using default route", task_type.value)
            return RouteInfo.create_default(options.default_route, task_type, self.name)
        if not route.enabled:
            logger.info("Route for %s is disabled, using default route", task_type.value)
            return RouteInfo.create_default(options.default_route, task_type, self.name)

        info = RouteInfo.from_configuration(
            route,
            task_type,
            self.name,
            confidence=1.0,
            reason=f"Task type '{task_type.value}' matched to configured route",
        )
        logger.info("Routed %s to %s/%s", task_type.value, info.primary_provider, info.primary_model)
        return info

    def can_handle(self, options: RoutingOptions) -> bool:
        if options.default_route is None:
            logger.error("TaskBased routing requires a default route")
            return False
        for name, route in options.routes.items():
            if route is None:
                return False
            valid, errors = route.validate()
            if not valid:
                logger.error("Route for task type %s is invalid: %s", name, "; ".join(errors))
                return False
        return True


class CostOptimizedRoutingStrategy(RoutingStrategy):
    """
    Route to the cheapest option that is good enough.

    Free/local providers are strongly preferred for low and medium
    complexity; premium providers are reserved for hard or critical work.
    """

    name = "CostOptimized"
    description = "Routes requests to the cheapest provider that meets quality requirements"

    # Route names that can stand in for a requested task type
    ALTERNATIVES: dict[TaskType, tuple[str, ...]] = {
        TaskType.INTENT_DETECTION: (TaskType.ANALYSIS.value,),
        TaskType.ANALYSIS: (TaskType.PLANNING.value,),
    }

    def score_provider(self, context: RoutingContext, provider: Provider) -> float:
        if not self.meets_requirements(context, provider):
            return 0.0
        provider_name, _ = _identity(provider)
        is_ollama = "ollama" in provider_name
        is_azure = "azure" in provider_name

        score = 0.9 if is_ollama or "local" in provider_name else 0.3
        if context.complexity in (ComplexityLevel.LOW, ComplexityLevel.MEDIUM):
            if is_ollama:
                score += 0.5
        elif is_azure:
            score += 0.7
        if context.priority == RequestPriority.CRITICAL and is_azure:
            score += 0.5
        return min(1.0, max(0.0, score))

    @staticmethod
    def minimum_quality(task_type: TaskType, context: RoutingContext) -> float:
        """Quality floor a route must declare to serve this request."""
        quality = 0.9 if task_type.requires_high_quality() else 0.7
        if context.priority.is_elevated():
            quality = max(quality, 0.8)
        elif context.minimize_cost:
            quality = max(quality - 0.1, 0.5)
        return quality

    def _applicable_routes(
        self,
        task_type: TaskType,
        options: RoutingOptions,
        min_quality: float,
    ) -> dict[str, RouteConfiguration]:
        def usable(route: RouteConfiguration) -> bool:
            return (
                route.enabled
                and route.minimum_quality >= min_quality
                and route.cost_per_1k_tokens is not None
            )

        applicable: dict[str, RouteConfiguration] = {}
        own = options.get_route(task_type)
        if own is not None and usable(own):
            applicable[task_type.value] = own
        if usable(options.default_route):
            applicable["Default"] = options.default_route

        alternatives = (TaskType.GENERAL.value,) + self.ALTERNATIVES.get(task_type, ())
        for name, route in options.routes.items():
            if name in applicable or name == task_type.value:
                continue
            if name in alternatives and usable(route):
                applicable[name] = route
        return applicable

    def select_route(
        self,
        task_type: TaskType,
        options: RoutingOptions,
        context: RoutingContext | None = None,
    ) -> RouteInfo:
        context = context or RoutingContext(task_type=task_type)
        min_quality = self.minimum_quality(task_type, context)
        applicable = self._applicable_routes(task_type, options, min_quality)

        if not applicable:
            logger.warning(
                "No cost-optimized route for %s with quality >= %.2f, using default",
                task_type.value,
                min_quality,
            )
            return RouteInfo.create_default(options.default_route, task_type, self.name)

        # min() keeps the first of equal-cost routes: task route, then default
        _, cheapest = min(applicable.items(), key=lambda item: item[1].cost_per_1k_tokens)
        tokens = context.token_estimate
        estimated = tokens / 1000 * (cheapest.cost_per_1k_tokens or 0.0)
        logger.info(
            "Cost-optimized routing selected %s/%s for %s ($%.4f/1K tokens, ~$%.4f for %d tokens)",
            cheapest.primary_provider,
            cheapest.primary_model,
            task_type.value,
            cheapest.cost_per_1k_tokens,
            estimated,
            tokens,
        )
        return RouteInfo.from_configuration(
            cheapest,
            task_type,
            self.name,
            confidence=1.0,
            reason=f"Cheapest route meeting quality threshold {min_quality:.0%}",
        )

    def can_handle(self, options: RoutingOptions) -> bool:
        if options.default_route is None or options.default_route.cost_per_1k_tokens is None:
            logger.error("CostOptimized routing requires cost_per_1k_tokens on the default route")
            return False
        missing = [name for name, route in options.routes.items() if route.cost_per_1k_tokens is None]
        if missing:
            logger.error(
                "CostOptimized routing requires cost_per_1k_tokens on all routes. Missing: %s",
                ", ".join(missing),
            )
            return False
        return True


STRATEGIES: dict[str, type[RoutingStrategy]] = {
    TaskBasedRoutingStrategy.name: TaskBasedRoutingStrategy,
    CostOptimizedRoutingStrategy.name: CostOptimizedRoutingStrategy,
}


def create_strategy(name: str) -> RoutingStrategy:
    """
    Instantiate a strategy by its configured name.

    Raises:
        ValueError: If the name is unknown
    """
    normalized = name.replace("_", "").replace("-", "").lower()
    for key, cls in STRATEGIES.items():
        if key.lower() == normalized:
            return cls()
    raise ValueError(f"Unknown routing strategy {name!r}. Valid: {', '.join(STRATEGIES)}")
