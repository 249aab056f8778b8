"""Core types shared by the executor and the router."""

from evoflow.core.enums import (
    BackoffStrategy,
    BrowserErrorType,
    CircuitState,
    ComplexityLevel,
    ErrorKind,
    RecoveryActionType,
    RequestPriority,
    TaskType,
)
from evoflow.core.errors import (
    AllProvidersFailedError,
    BrowserNotInitializedError,
    CircuitOpenError,
    ConfigurationError,
    ElementNotFoundError,
    EvoflowError,
    MissingParametersError,
    TerminalError,
    ToolNotFoundError,
    ToolValidationError,
    TransientError,
    UnsupportedToolError,
)
from evoflow.core.utils import elapsed_ms, generate_id, now_utc

__all__ = [
    # Enums
    "BackoffStrategy",
    "BrowserErrorType",
    "CircuitState",
    "ComplexityLevel",
    "ErrorKind",
    "RecoveryActionType",
    "RequestPriority",
    "TaskType",
    # Errors
    "AllProvidersFailedError",
    "BrowserNotInitializedError",
    "CircuitOpenError",
    "ConfigurationError",
    "ElementNotFoundError",
    "EvoflowError",
    "MissingParametersError",
    "TerminalError",
    "ToolNotFoundError",
    "ToolValidationError",
    "TransientError",
    "UnsupportedToolError",
    # Utils
    "elapsed_ms",
    "generate_id",
    "now_utc",
]
