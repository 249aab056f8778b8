"""
RoutingContext - what the router knows about a request before choosing a provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from evoflow.core.enums import ComplexityLevel, RequestPriority, TaskType


@dataclass(frozen=True)
class RoutingContext:
    """
    Immutable per-request routing input.

    Attributes:
        task_type: Kind of work the request performs
        complexity: Estimated difficulty
        requires_streaming: Provider must support streaming
        requires_function_calling: Provider must support function calling
        priority: Business priority
        max_latency_ms: Latency budget, if any
        preferred_model: Model the caller would like, if any
        allow_fallback: Whether the router may try another provider
        minimize_cost: Tolerate lower quality for cheaper routes
        estimated_token_count: Expected token volume, if known
        metadata: Free-form diagnostics
    """

    task_type: TaskType = TaskType.GENERAL
    complexity: ComplexityLevel = ComplexityLevel.MEDIUM
    requires_streaming: bool = False
    requires_function_calling: bool = False
    priority: RequestPriority = RequestPriority.NORMAL
    max_latency_ms: int | None = None
    preferred_model: str | None = None
    allow_fallback: bool = True
    minimize_cost: bool = False
    estimated_token_count: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def token_estimate(self) -> int:
        """Estimated tokens, falling back to the task type's typical volume."""
        if self.estimated_token_count is not None:
            return self.estimated_token_count
        return self.task_type.typical_token_count
