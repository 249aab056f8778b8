"""
Route configuration - static task-type -> provider/model mapping.

``RouteConfiguration`` is what operators write in config; ``RouteInfo`` is
the immutable decision a strategy produces from it for one request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from evoflow.core.enums import TaskType
from evoflow.core.errors import ConfigurationError

VALID_STRATEGIES = ("TaskBased", "CostOptimized")


@dataclass
class RouteConfiguration:
    """
    One configured route.

    Attributes:
        primary_provider: Provider name to try first
        primary_model: Model on the primary provider
        fallback_provider: Provider to use when the primary fails
        fallback_model: Model on the fallback provider
        max_latency_ms: Latency budget (>= 100 when set)
        cost_per_1k_tokens: Price used by cost-optimized routing
        priority: Tie-breaker among routes (-100..100)
        enabled: Disabled routes are ignored
        minimum_quality: Quality this route delivers (0..1)
        tags: Free-form labels
    """

    primary_provider: str
    primary_model: str
    fallback_provider: str | None = None
    fallback_model: str | None = None
    max_latency_ms: int | None = None
    cost_per_1k_tokens: float | None = None
    priority: int = 0
    enabled: bool = True
    minimum_quality: float = 0.7
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> tuple[bool, list[str]]:
        """
        Check the route for structural problems.

        Returns:
            ``(is_valid, errors)``
        """
        errors: list[str] = []
        if not (self.primary_provider or "").strip():
            errors.append("primary_provider is required")
        if not (self.primary_model or "").strip():
            errors.append("primary_model is required")

        has_fb_provider = bool((self.fallback_provider or "").strip())
        has_fb_model = bool((self.fallback_model or "").strip())
        if has_fb_provider and not has_fb_model:
            errors.append("fallback_model is required when fallback_provider is specified")
        if has_fb_model and not has_fb_provider:
            errors.append("fallback_provider is required when fallback_model is specified")
        if (
            has_fb_provider
            and has_fb_model
            and self.primary_provider.lower() == self.fallback_provider.lower()
            and self.primary_model.lower() == self.fallback_model.lower()
        ):
            errors.append("fallback provider/model must be different from primary provider/model")

        if self.max_latency_ms is not None and self.max_latency_ms < 100:
            errors.append("max_latency_ms must be at least 100ms if specified")
        if self.cost_per_1k_tokens is not None and self.cost_per_1k_tokens < 0:
            errors.append("cost_per_1k_tokens cannot be negative")
        if not 0.0 <= self.minimum_quality <= 1.0:
            errors.append("minimum_quality must be between 0 and 1")
        return not errors, errors

    @property
    def has_fallback(self) -> bool:
        return bool(self.fallback_provider and self.fallback_model)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RouteConfiguration:
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in known})

    def __str__(self) -> str:
        cost = f" (${self.cost_per_1k_tokens:.4f}/1K tokens)" if self.cost_per_1k_tokens is not None else ""
        latency = f" [Max: {self.max_latency_ms}ms]" if self.max_latency_ms is not None else ""
        fallback = (
            f" -> Fallback: {self.fallback_provider}/{self.fallback_model}"
            if self.has_fallback
            else ""
        )
        status = "Enabled" if self.enabled else "Disabled"
        return f"{self.primary_provider}/{self.primary_model}{cost}{latency}{fallback} [{status}]"


@dataclass(frozen=True)
class RouteInfo:
    """A routing decision for one request."""

    primary_provider: str
    primary_model: str
    strategy: str
    task_type: TaskType
    confidence: float = 1.0
    reason: str = ""
    fallback_provider: str | None = None
    fallback_model: str | None = None
    estimated_cost_per_1k_tokens: float | None = None
    max_latency_ms: int | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be between 0 and 1")

    @property
    def has_fallback(self) -> bool:
        return bool(self.fallback_provider and self.fallback_model)

    @classmethod
    def from_configuration(
        cls,
        config: RouteConfiguration,
        task_type: TaskType,
        strategy: str,
        confidence: float = 1.0,
        reason: str = "",
    ) -> RouteInfo:
        """Build a decision from a configured route."""
        return cls(
            primary_provider=config.primary_provider,
            primary_model=config.primary_model,
            fallback_provider=config.fallback_provider,
            fallback_model=config.fallback_model,
            strategy=strategy,
            task_type=task_type,
            confidence=confidence,
            reason=reason or f"Configured route for {task_type.value}",
            estimated_cost_per_1k_tokens=config.cost_per_1k_tokens,
            max_latency_ms=config.max_latency_ms,
        )

    @classmethod
    def create_default(
        cls,
        default_route: RouteConfiguration,
        task_type: TaskType,
        strategy: str,
    ) -> RouteInfo:
        """Decision that falls back to the default route."""
        return cls.from_configuration(
            default_route,
            task_type,
            strategy,
            confidence=0.5,
            reason=f"No specific route configured for '{task_type.value}', using default",
        )

    def __str__(self) -> str:
        fallback = (
            f" (fallback: {self.fallback_provider}/{self.fallback_model})"
            if self.has_fallback
            else ""
        )
        return (
            f"{self.primary_provider}/{self.primary_model}{fallback} "
            f"via {self.strategy} for {self.task_type.value} "
            f"[confidence {self.confidence:.0%}]: {self.reason}"
        )


def _default_route() -> RouteConfiguration:
    return RouteConfiguration(primary_provider="azure_openai", primary_model="gpt-4")


@dataclass
class RoutingOptions:
    """
    Route table and routing-level settings.

    Attributes:
        strategy: ``"TaskBased"`` or ``"CostOptimized"``
        enable_provider_fallback: Use route fallbacks when the primary fails
        circuit_breaker_failure_threshold: Failures before a provider's circuit opens
        circuit_breaker_open_duration_seconds: Cool-down before a trial request
        routes: Per-task-type routes keyed by ``TaskType.value``
        default_route: Route used when no task-specific route applies
    """

    strategy: str = "TaskBased"
    enable_provider_fallback: bool = True
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_open_duration_seconds: float = 30.0
    routes: dict[str, RouteConfiguration] = field(default_factory=dict)
    default_route: RouteConfiguration = field(default_factory=_default_route)

    def get_route(self, task_type: TaskType) -> RouteConfiguration | None:
        return self.routes.get(task_type.value)

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If the strategy, thresholds or any route is invalid
        """
        errors: list[str] = []
        if self.strategy not in VALID_STRATEGIES:
            errors.append(
                f"strategy must be one of {', '.join(VALID_STRATEGIES)} (got {self.strategy!r})"
            )
        if self.circuit_breaker_failure_threshold < 1:
            errors.append("circuit_breaker_failure_threshold must be >= 1")
        if self.circuit_breaker_open_duration_seconds <= 0:
            errors.append("circuit_breaker_open_duration_seconds must be > 0")

        _, route_errors = self.default_route.validate()
        errors.extend(f"default_route: {e}" for e in route_errors)
        for name, route in self.routes.items():
            try:
                TaskType.parse(name)
            except ValueError:
                errors.append(f"routes.{name}: unknown task type")
            _, route_errors = route.validate()
            errors.extend(f"routes.{name}: {e}" for e in route_errors)

        if errors:
            raise ConfigurationError("Invalid routing options", errors)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoutingOptions:
        """Build options from a parsed ``[routing]`` config section."""
        routes = {
            _route_key(name): _as_route(route)
            for name, route in (data.get("routes") or {}).items()
        }
        kwargs: dict[str, Any] = {
            k: v
            for k, v in data.items()
            if k in cls.__dataclass_fields__ and k not in ("routes", "default_route")
        }
        if data.get("default_route"):
            kwargs["default_route"] = _as_route(data["default_route"])
        return cls(routes=routes, **kwargs)


def _route_key(name: str) -> str:
    # Normalise known task-type spellings; keep unknown ones so validate() reports them
    try:
        return TaskType.parse(name).value
    except ValueError:
        return name


def _as_route(value: RouteConfiguration | dict[str, Any]) -> RouteConfiguration:
    if isinstance(value, RouteConfiguration):
        return value
    return RouteConfiguration.from_dict(value)
