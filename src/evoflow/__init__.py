"""
EvoFlow - resilient execution and routing core
==============================================

Two engines built on one failure-handling design:

- ``ToolExecutor`` runs browser tool calls with retry, exponential backoff
  with jitter, primary/fallback chains and a bounded, correlation-keyed
  execution history.
- ``ProviderRouter`` picks the best LLM provider for each request with a
  pluggable scoring strategy, skips providers whose circuit breaker is
  open, and falls back automatically.

Quick Start:
    ```python
    from evoflow import ToolExecutor, ToolCall

    executor = ToolExecutor(browser)
    result = await executor.execute_tool(ToolCall("navigate", {"url": "https://example.com"}))
    ```

    ```python
    from evoflow import ProviderRouter, LLMRequest, CostOptimizedRoutingStrategy

    router = ProviderRouter([azure, ollama], strategy=CostOptimizedRoutingStrategy())
    result = await router.complete(LLMRequest.from_prompt("Summarise this page"))
    ```
"""

from evoflow.core import (
    AllProvidersFailedError,
    BackoffStrategy,
    BrowserErrorType,
    BrowserNotInitializedError,
    CircuitOpenError,
    CircuitState,
    ComplexityLevel,
    ConfigurationError,
    ElementNotFoundError,
    ErrorKind,
    EvoflowError,
    MissingParametersError,
    RecoveryActionType,
    RequestPriority,
    TaskType,
    TerminalError,
    ToolNotFoundError,
    ToolValidationError,
    TransientError,
    UnsupportedToolError,
)
from evoflow.llm import (
    CircuitBreakerProvider,
    CostOptimizedRoutingStrategy,
    LLMRequest,
    LLMResponse,
    Message,
    MockProvider,
    Provider,
    ProviderCapabilities,
    ProviderRouter,
    RouteConfiguration,
    RoutedCompletion,
    RouteInfo,
    RouterOptions,
    RoutingContext,
    RoutingOptions,
    RoutingStrategy,
    TaskBasedRoutingStrategy,
    TokenUsage,
    create_strategy,
)
from evoflow.resilience import (
    BackoffPolicy,
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitBreakerRegistry,
    CircuitBreakerState,
    ErrorClassification,
    ErrorClassifier,
    classify_error,
)
from evoflow.tools import (
    BrowserAgent,
    ExecutionHistory,
    PageState,
    ParameterDef,
    ToolCall,
    ToolDefinition,
    ToolExecutionResult,
    ToolExecutor,
    ToolExecutorOptions,
    ToolRegistry,
    create_browser_tool_registry,
)

__version__ = "0.1.0"

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
    # Resilience
    "BackoffPolicy",
    "CircuitBreaker",
    "CircuitBreakerOptions",
    "CircuitBreakerRegistry",
    "CircuitBreakerState",
    "ErrorClassification",
    "ErrorClassifier",
    "classify_error",
    # Tools
    "BrowserAgent",
    "ExecutionHistory",
    "PageState",
    "ParameterDef",
    "ToolCall",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolExecutor",
    "ToolExecutorOptions",
    "ToolRegistry",
    "create_browser_tool_registry",
    # LLM routing
    "CircuitBreakerProvider",
    "CostOptimizedRoutingStrategy",
    "LLMRequest",
    "LLMResponse",
    "Message",
    "MockProvider",
    "Provider",
    "ProviderCapabilities",
    "ProviderRouter",
    "RouteConfiguration",
    "RoutedCompletion",
    "RouteInfo",
    "RouterOptions",
    "RoutingContext",
    "RoutingOptions",
    "RoutingStrategy",
    "TaskBasedRoutingStrategy",
    "TokenUsage",
    "create_strategy",
]
