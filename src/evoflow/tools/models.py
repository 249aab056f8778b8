"""
Tool call data model.

A ``ToolCall`` names one browser action; a ``ToolDefinition`` describes
what the registry accepts for that name; a ``ToolExecutionResult`` records
what happened when the executor ran it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from evoflow.core.utils import generate_id


@dataclass(frozen=True)
class ToolCall:
    """
    One requested browser action.

    Attributes:
        tool_name: Registry name of the tool
        parameters: Arguments, in the order given
        reasoning: Why the caller wants this action (diagnostics only)
        correlation_id: Groups results of one higher-level operation

    Example:
        ```python
        call = ToolCall(
            "click",
            {"selector": "#submit"},
            reasoning="Submit the login form",
            correlation_id="login-flow-1",
        )
        ```
    """

    tool_name: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    reasoning: str = ""
    correlation_id: str = field(default_factory=lambda: generate_id("corr", 12))

    def __post_init__(self) -> None:
        # Freeze a private copy so later edits to the caller's dict don't leak in
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    def get(self, name: str, default: Any = None) -> Any:
        """Get a parameter value."""
        return self.parameters.get(name, default)

    def __repr__(self) -> str:
        return (
            f"ToolCall(tool_name={self.tool_name!r}, parameters={dict(self.parameters)!r}, "
            f"correlation_id={self.correlation_id!r})"
        )


@dataclass(frozen=True)
class ParameterDef:
    """Schema for one tool parameter."""

    type: str = "string"
    required: bool = False
    description: str = ""
    default: Any = None


@dataclass(frozen=True)
class ToolDefinition:
    """Registry entry describing one tool."""

    name: str
    description: str
    parameters: Mapping[str, ParameterDef] = field(default_factory=dict)

    @property
    def required_parameters(self) -> list[str]:
        """Names of parameters that every call must supply."""
        return [name for name, spec in self.parameters.items() if spec.required]

    def missing_parameters(self, call: ToolCall) -> list[str]:
        """Required parameters absent from ``call``."""
        return [name for name in self.required_parameters if name not in call.parameters]

    def get_default(self, name: str) -> Any:
        spec = self.parameters.get(name)
        return spec.default if spec else None

    def to_schema(self) -> dict[str, Any]:
        """Describe the tool as a JSON-schema style function definition."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {
                    name: {"type": spec.type, "description": spec.description}
                    for name, spec in self.parameters.items()
                },
                "required": self.required_parameters,
            },
        }


@dataclass(frozen=True)
class ToolExecutionResult:
    """
    Outcome of one ``ToolExecutor.execute_tool`` call.

    ``metadata`` carries the diagnostics trail: ``correlation_id``,
    ``retry_reasons`` and ``retry_delays`` when retries happened, and
    ``fallback_*`` keys when a fallback chain was involved.
    """

    success: bool
    tool_name: str
    result: Any = None
    error: BaseException | None = None
    attempt_count: int = 1
    execution_duration_ms: float = 0.0
    was_retried: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def correlation_id(self) -> str | None:
        return self.metadata.get("correlation_id")

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None

    @classmethod
    def succeeded(
        cls,
        tool_name: str,
        result: Any,
        attempt_count: int,
        duration_ms: float,
        metadata: dict[str, Any] | None = None,
    ) -> ToolExecutionResult:
        """Build a success result."""
        return cls(
            success=True,
            tool_name=tool_name,
            result=result,
            attempt_count=attempt_count,
            execution_duration_ms=duration_ms,
            was_retried=attempt_count > 1,
            metadata=dict(metadata or {}),
        )

    @classmethod
    def failed(
        cls,
        tool_name: str,
        error: BaseException,
        attempt_count: int,
        duration_ms: float,
        metadata: dict[str, Any] | None = None,
    ) -> ToolExecutionResult:
        """Build a failure result; records the error's type and message."""
        data = dict(metadata or {})
        data.setdefault("error_type", type(error).__name__)
        data.setdefault("error_message", str(error))
        return cls(
            success=False,
            tool_name=tool_name,
            error=error,
            attempt_count=attempt_count,
            execution_duration_ms=duration_ms,
            was_retried=attempt_count > 1,
            metadata=data,
        )
