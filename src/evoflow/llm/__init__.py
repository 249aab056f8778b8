"""
LLM provider routing: request model, provider contract, strategies, router.
"""

from evoflow.llm.breaker_provider import CircuitBreakerProvider
from evoflow.llm.mock import MockProvider
from evoflow.llm.models import (
    LLMRequest,
    LLMResponse,
    Message,
    ProviderCapabilities,
    TokenUsage,
)
from evoflow.llm.provider import Provider
from evoflow.llm.router import (
    ProviderRouter,
    RoutedCompletion,
    RouterOptions,
    estimate_complexity,
    infer_routing_context,
    infer_task_type,
)
from evoflow.llm.routing import (
    CostOptimizedRoutingStrategy,
    RouteConfiguration,
    RouteInfo,
    RoutingContext,
    RoutingOptions,
    RoutingStrategy,
    TaskBasedRoutingStrategy,
    create_strategy,
)

__all__ = [
    # Models
    "LLMRequest",
    "LLMResponse",
    "Message",
    "ProviderCapabilities",
    "TokenUsage",
    # Providers
    "Provider",
    "MockProvider",
    "CircuitBreakerProvider",
    # Routing
    "RoutingContext",
    "RouteConfiguration",
    "RouteInfo",
    "RoutingOptions",
    "RoutingStrategy",
    "TaskBasedRoutingStrategy",
    "CostOptimizedRoutingStrategy",
    "create_strategy",
    # Router
    "ProviderRouter",
    "RoutedCompletion",
    "RouterOptions",
    "estimate_complexity",
    "infer_routing_context",
    "infer_task_type",
]
