"""
Provider routing: request context, route table, and scoring strategies.
"""

from evoflow.llm.routing.context import RoutingContext
from evoflow.llm.routing.routes import (
    VALID_STRATEGIES,
    RouteConfiguration,
    RouteInfo,
    RoutingOptions,
)
from evoflow.llm.routing.strategies import (
    STRATEGIES,
    CostOptimizedRoutingStrategy,
    RoutingStrategy,
    TaskBasedRoutingStrategy,
    create_strategy,
)

__all__ = [
    "RoutingContext",
    "RouteConfiguration",
    "RouteInfo",
    "RoutingOptions",
    "VALID_STRATEGIES",
    "STRATEGIES",
    "RoutingStrategy",
    "TaskBasedRoutingStrategy",
    "CostOptimizedRoutingStrategy",
    "create_strategy",
]
