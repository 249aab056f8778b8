"""
Exception hierarchy for EvoFlow.

Validation errors and collaborator failures are raised here and converted
into structured results by the executor and router. Only cancellation
(``asyncio.CancelledError``) is allowed to escape those engines.
"""

from __future__ import annotations

from typing import Sequence


class EvoflowError(Exception):
    """Base class for all EvoFlow errors."""


class ConfigurationError(EvoflowError, ValueError):
    """Raised when options fail validation."""

    def __init__(self, message: str, errors: Sequence[str] | None = None) -> None:
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: " + "; ".join(self.errors)
        super().__init__(message)


class ToolValidationError(EvoflowError, ValueError):
    """A tool call was rejected before dispatch."""

    validation_error: str = "invalid_tool_call"

    def __init__(self, message: str, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class ToolNotFoundError(ToolValidationError):
    """The requested tool is not in the registry."""

    validation_error = "tool_not_found"

    def __init__(self, tool_name: str, available: Sequence[str]) -> None:
        self.available = list(available)
        super().__init__(
            f"Tool '{tool_name}' not found in registry. "
            f"Available tools: {', '.join(self.available)}",
            tool_name,
        )


class MissingParametersError(ToolValidationError):
    """Required tool parameters are absent from the call."""

    validation_error = "missing_required_parameters"

    def __init__(self, tool_name: str, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            f"Missing required parameters for tool '{tool_name}': {', '.join(self.missing)}",
            tool_name,
        )


class TransientError(EvoflowError):
    """A failure that is likely to succeed if retried."""


class TerminalError(EvoflowError):
    """A failure that will recur on retry."""


class ElementNotFoundError(TransientError):
    """The target element did not appear (yet)."""

    def __init__(self, selector: str, message: str | None = None) -> None:
        self.selector = selector
        super().__init__(message or f"Element not found: {selector}")


class BrowserNotInitializedError(TerminalError):
    """The browser agent was used before ``initialize()``."""

    def __init__(self, message: str = "Browser is not initialized. Call initialize() first.") -> None:
        super().__init__(message)


class UnsupportedToolError(TerminalError):
    """A tool is registered but has no dispatch handler."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' is not supported by the executor yet")


class CircuitOpenError(TransientError):
    """A breaker-gated target rejected the request."""

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(f"Circuit breaker is open for '{target}'")


class AllProvidersFailedError(EvoflowError):
    """Every candidate provider failed to serve a request."""

    def __init__(self, attempted: Sequence[str], last_error: BaseException | None = None) -> None:
        self.attempted = list(attempted)
        self.last_error = last_error
        if self.attempted:
            message = (
                f"All {len(self.attempted)} provider(s) failed. "
                f"Attempted: {', '.join(self.attempted)}"
            )
        else:
            message = "No provider available for this request"
        super().__init__(message)
