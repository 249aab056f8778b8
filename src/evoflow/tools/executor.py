"""
ToolExecutor - run browser tool calls with retry, backoff and fallback.

Every call goes through the same path: validate against the registry,
dispatch to the ``BrowserAgent`` under a per-attempt timeout, classify any
failure as transient or terminal, back off and retry transient failures
while the budget lasts. The outcome is always a ``ToolExecutionResult``
carrying the full retry trail in ``metadata``; only cancellation escapes
as an exception.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Sequence

from evoflow.core.enums import ErrorKind
from evoflow.core.errors import (
    ConfigurationError,
    MissingParametersError,
    TerminalError,
    ToolNotFoundError,
    ToolValidationError,
    UnsupportedToolError,
)
from evoflow.core.utils import elapsed_ms
from evoflow.resilience.backoff import BackoffPolicy
from evoflow.resilience.classifier import classify_error, describe_error
from evoflow.tools.browser import BrowserAgent
from evoflow.tools.history import ExecutionHistory
from evoflow.tools.models import ToolCall, ToolDefinition, ToolExecutionResult
from evoflow.tools.registry import ToolRegistry, create_browser_tool_registry

logger = logging.getLogger(__name__)

ToolHandler = Callable[[ToolCall, ToolDefinition], Awaitable[Any]]

# Registered for planning prompts but not wired to the driver
UNSUPPORTED_TOOLS = frozenset({
    "extract_table",
    "wait_for_url_change",
    "select_option",
    "submit_form",
    "verify_element_exists",
})

MAX_TOTAL_EXECUTION_MS = 10 * 60 * 1000


@dataclass
class ToolExecutorOptions:
    """
    Retry, timeout and history settings for ``ToolExecutor``.

    Attributes:
        max_retries: Retries after the first attempt (0-10)
        initial_retry_delay_ms: Delay before the first retry (100-5000)
        max_retry_delay_ms: Cap on the un-jittered delay (1000-60000)
        use_exponential_backoff: Double the delay per retry; else constant
        max_concurrent_tools: Dispatches allowed in flight at once (1-10)
        timeout_per_tool_ms: Timeout for a single attempt (5000-300000)
        enable_detailed_logging: Emit per-attempt debug records
        max_history_size: Results retained across all correlation ids (10-1000)
    """

    max_retries: int = 3
    initial_retry_delay_ms: int = 500
    max_retry_delay_ms: int = 10000
    use_exponential_backoff: bool = True
    max_concurrent_tools: int = 1
    timeout_per_tool_ms: int = 30000
    enable_detailed_logging: bool = True
    max_history_size: int = 100

    def validate(self) -> None:
        """
        Check every option against its allowed range.

        Raises:
            ConfigurationError: Listing each violated rule
        """
        errors = []
        if not 0 <= self.max_retries <= 10:
            errors.append("max_retries must be between 0 and 10")
        if not 100 <= self.initial_retry_delay_ms <= 5000:
            errors.append("initial_retry_delay_ms must be between 100 and 5000")
        if not 1000 <= self.max_retry_delay_ms <= 60000:
            errors.append("max_retry_delay_ms must be between 1000 and 60000")
        if self.max_retry_delay_ms < self.initial_retry_delay_ms:
            errors.append("max_retry_delay_ms must be >= initial_retry_delay_ms")
        if not 1 <= self.max_concurrent_tools <= 10:
            errors.append("max_concurrent_tools must be between 1 and 10")
        if not 5000 <= self.timeout_per_tool_ms <= 300000:
            errors.append("timeout_per_tool_ms must be between 5000 and 300000")
        if not 10 <= self.max_history_size <= 1000:
            errors.append("max_history_size must be between 10 and 1000")
        if self.worst_case_execution_ms() > MAX_TOTAL_EXECUTION_MS:
            errors.append(
                "worst-case execution time "
                f"({self.worst_case_execution_ms() / 1000:.0f}s) exceeds 10 minutes"
            )
        if errors:
            raise ConfigurationError("Invalid tool executor options", errors)

    def worst_case_execution_ms(self) -> int:
        """Upper bound for one call: every attempt times out, every delay is max."""
        attempts = self.max_retries + 1
        return attempts * self.timeout_per_tool_ms + self.max_retries * self.max_retry_delay_ms

    def to_backoff_policy(self, rng: random.Random | None = None) -> BackoffPolicy:
        return BackoffPolicy.from_milliseconds(
            max_retries=self.max_retries,
            initial_delay_ms=self.initial_retry_delay_ms,
            max_delay_ms=self.max_retry_delay_ms,
            use_exponential_backoff=self.use_exponential_backoff,
            rng=rng,
        )


class ToolExecutor:
    """
    Resilient executor for browser tool calls.

    Example:
        ```python
        executor = ToolExecutor(browser, options=ToolExecutorOptions(max_retries=2))

        result = await executor.execute_tool(
            ToolCall("click", {"selector": "#login"}, correlation_id="run-42")
        )
        if not result.success:
            print(result.metadata["retry_reasons"])

        # Ordered steps, stop at the first failure
        results = await executor.execute_sequence([nav_call, type_call, click_call])

        # Try alternates when the primary selector is gone
        result = await executor.execute_with_fallback(
            ToolCall("click", {"selector": "#login"}),
            [ToolCall("click", {"selector": "button[type=submit]"})],
        )
        ```
    """

    def __init__(
        self,
        browser: BrowserAgent,
        registry: ToolRegistry | None = None,
        options: ToolExecutorOptions | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        """
        Initialize the executor.

        Args:
            browser: Driver that performs the actions
            registry: Accepted tools (defaults to the standard browser tools)
            options: Retry/timeout/history settings
            backoff: Explicit backoff policy; built from ``options`` when omitted
        """
        self.browser = browser
        self.registry = registry or create_browser_tool_registry()
        self.options = options or ToolExecutorOptions()
        self.backoff = backoff or self.options.to_backoff_policy()
        self._history = ExecutionHistory(self.options.max_history_size)
        self._semaphore = asyncio.Semaphore(max(1, self.options.max_concurrent_tools))
        self._handlers: dict[str, ToolHandler] = {
            "navigate": self._navigate,
            "click": self._click,
            "type": self._type,
            "clear_input": self._clear_input,
            "get_text": self._get_text,
            "extract_text": self._get_text,
            "take_screenshot": self._take_screenshot,
            "wait_for_element": self._wait_for_element,
            "get_page_state": self._get_page_state,
            "get_page_html": self._get_page_html,
        }

    @property
    def timeout(self) -> float:
        """Per-attempt timeout in seconds."""
        return self.options.timeout_per_tool_ms / 1000

    def register_handler(self, tool_name: str, handler: ToolHandler) -> ToolExecutor:
        """
        Wire a custom tool to a coroutine.

        The tool must also be registered in ``registry`` to pass validation.

        Returns:
            Self for method chaining
        """
        self._handlers[tool_name] = handler
        return self

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check(self, call: ToolCall) -> ToolDefinition:
        if not self.registry.tool_exists(call.tool_name):
            raise ToolNotFoundError(call.tool_name, self.registry.get_tool_names())
        definition = self.registry.get_tool(call.tool_name)
        missing = definition.missing_parameters(call)
        if missing:
            raise MissingParametersError(call.tool_name, missing)
        return definition

    def validate_tool_call(self, call: ToolCall) -> bool:
        """
        Check that a call would pass validation, without dispatching it.

        Returns:
            True if the tool exists and every required parameter is present
        """
        try:
            self._check(call)
        except ToolValidationError as e:
            logger.debug("Tool call validation failed: %s", e)
            return False
        return True

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_tool(self, call: ToolCall) -> ToolExecutionResult:
        """
        Execute one tool call with retries.

        Args:
            call: The action to perform

        Returns:
            ToolExecutionResult; failures are returned, not raised

        Raises:
            asyncio.CancelledError: If the calling task is cancelled
        """
        start = time.perf_counter()
        base_metadata: dict[str, Any] = {"correlation_id": call.correlation_id}

        try:
            definition = self._check(call)
        except ToolValidationError as e:
            logger.warning("Rejected tool call %s: %s", call.tool_name, e)
            result = ToolExecutionResult.failed(
                call.tool_name,
                e,
                attempt_count=1,
                duration_ms=elapsed_ms(start),
                metadata={**base_metadata, "validation_error": e.validation_error},
            )
            self._history.append(result)
            return result

        policy = self.backoff
        retry_reasons: list[str] = []
        retry_delays: list[float] = []
        last_error: BaseException | None = None
        error_kind = ErrorKind.TERMINAL
        attempt = 0

        for attempt in range(1, policy.max_attempts + 1):
            if self.options.enable_detailed_logging:
                logger.debug(
                    "Executing %s (attempt %d/%d, correlation %s)",
                    call.tool_name, attempt, policy.max_attempts, call.correlation_id,
                )
            try:
                value = await self._dispatch_with_timeout(call, definition)
            except Exception as e:
                last_error = e
            else:
                metadata = {
                    **base_metadata,
                    "reasoning": call.reasoning,
                    "attempt_count": attempt,
                    "retry_reasons": retry_reasons,
                    "retry_delays": retry_delays,
                }
                if retry_reasons:
                    logger.info(
                        "Tool %s succeeded after %d attempts", call.tool_name, attempt
                    )
                result = ToolExecutionResult.succeeded(
                    call.tool_name, value, attempt, elapsed_ms(start), metadata
                )
                self._history.append(result)
                return result

            error_kind = classify_error(last_error)
            if error_kind is ErrorKind.TERMINAL:
                logger.error(
                    "Tool %s failed with terminal error: %s",
                    call.tool_name, describe_error(last_error),
                )
                break
            if attempt > policy.max_retries:
                break

            delay = policy.get_delay(attempt)
            retry_reasons.append(describe_error(last_error))
            retry_delays.append(delay)
            logger.warning(
                "Tool %s failed with transient error (attempt %d/%d), retrying in %.2fs: %s",
                call.tool_name, attempt, policy.max_attempts, delay, last_error,
            )
            await asyncio.sleep(delay)

        if error_kind is ErrorKind.TRANSIENT:
            logger.error(
                "Tool %s failed after %d attempts: %s", call.tool_name, attempt, last_error
            )
        result = ToolExecutionResult.failed(
            call.tool_name,
            last_error,
            attempt_count=attempt,
            duration_ms=elapsed_ms(start),
            metadata={
                **base_metadata,
                "reasoning": call.reasoning,
                "attempt_count": attempt,
                "error_kind": error_kind.value,
                "retry_reasons": retry_reasons,
                "retry_delays": retry_delays,
            },
        )
        self._history.append(result)
        return result

    async def execute_sequence(self, calls: Sequence[ToolCall]) -> list[ToolExecutionResult]:
        """
        Execute calls strictly in order, stopping at the first failure.

        Args:
            calls: Ordered tool calls

        Returns:
            Results up to and including the first failure

        Raises:
            ValueError: If ``calls`` is empty or contains None
        """
        if not calls:
            raise ValueError("calls must contain at least one tool call")
        if any(call is None for call in calls):
            raise ValueError("calls must not contain None")

        results: list[ToolExecutionResult] = []
        for index, call in enumerate(calls):
            result = await self.execute_tool(call)
            results.append(result)
            if not result.success:
                logger.warning(
                    "Sequence stopped at step %d/%d (%s)",
                    index + 1, len(calls), call.tool_name,
                )
                break
        return results

    async def execute_with_fallback(
        self,
        primary: ToolCall,
        fallbacks: Sequence[ToolCall] | None = None,
    ) -> ToolExecutionResult:
        """
        Execute ``primary``, then each fallback in order until one succeeds.

        Each call gets its own full retry budget.

        Returns:
            The primary result if it succeeded or there are no fallbacks;
            the first successful fallback with ``fallback_used``,
            ``fallback_index``, ``primary_tool`` and ``primary_error`` set;
            otherwise the last fallback's failure with
            ``all_fallbacks_failed`` set.
        """
        primary_result = await self.execute_tool(primary)
        if primary_result.success or not fallbacks:
            return primary_result

        last_result = primary_result
        for index, fallback in enumerate(fallbacks):
            logger.warning(
                "Primary tool %s failed, trying fallback %d/%d: %s",
                primary.tool_name, index + 1, len(fallbacks), fallback.tool_name,
            )
            last_result = await self.execute_tool(fallback)
            if last_result.success:
                return replace(
                    last_result,
                    metadata={
                        **last_result.metadata,
                        "fallback_used": True,
                        "fallback_index": index,
                        "primary_tool": primary.tool_name,
                        "primary_error": primary_result.error_message,
                    },
                )

        logger.error(
            "Primary tool %s and all %d fallback(s) failed",
            primary.tool_name, len(fallbacks),
        )
        return replace(
            last_result,
            metadata={
                **last_result.metadata,
                "fallback_attempted": True,
                "fallback_count": len(fallbacks),
                "all_fallbacks_failed": True,
                "primary_tool": primary.tool_name,
                "primary_error": primary_result.error_message,
            },
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_execution_history(self, correlation_id: str) -> list[ToolExecutionResult]:
        """
        Results recorded for a correlation id, in execution order.

        Raises:
            ValueError: If ``correlation_id`` is empty or blank
        """
        if not correlation_id or not correlation_id.strip():
            raise ValueError("correlation_id must be a non-empty string")
        return self._history.get(correlation_id)

    def clear_history(self) -> None:
        self._history.clear()

    @property
    def history_size(self) -> int:
        return len(self._history)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _dispatch_with_timeout(self, call: ToolCall, definition: ToolDefinition) -> Any:
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    self._dispatch(call, definition), timeout=self.timeout
                )
            except asyncio.TimeoutError as e:
                if str(e):
                    raise
                raise TimeoutError(
                    f"Tool '{call.tool_name}' timed out after {self.timeout}s"
                ) from None

    async def _dispatch(self, call: ToolCall, definition: ToolDefinition) -> Any:
        handler = self._handlers.get(call.tool_name)
        if handler is not None:
            return await handler(call, definition)
        if call.tool_name in UNSUPPORTED_TOOLS:
            raise UnsupportedToolError(call.tool_name)
        raise TerminalError(f"Unknown tool: {call.tool_name}")

    @staticmethod
    def _arg(call: ToolCall, definition: ToolDefinition, name: str) -> Any:
        if name in call.parameters:
            return call.parameters[name]
        return definition.get_default(name)

    async def _navigate(self, call: ToolCall, definition: ToolDefinition) -> dict[str, Any]:
        url = self._arg(call, definition, "url")
        await self.browser.navigate(url)
        return {"url": url}

    async def _click(self, call: ToolCall, definition: ToolDefinition) -> dict[str, Any]:
        selector = self._arg(call, definition, "selector")
        max_retries = self._arg(call, definition, "max_retries")
        await self.browser.click(selector, 3 if max_retries is None else int(max_retries))
        return {"selector": selector}

    async def _type(self, call: ToolCall, definition: ToolDefinition) -> dict[str, Any]:
        selector = self._arg(call, definition, "selector")
        text = self._arg(call, definition, "text")
        await self.browser.type(selector, text)
        return {"selector": selector, "text": text}

    async def _clear_input(self, call: ToolCall, definition: ToolDefinition) -> dict[str, Any]:
        selector = self._arg(call, definition, "selector")
        await self.browser.type(selector, "")
        return {"selector": selector}

    async def _get_text(self, call: ToolCall, definition: ToolDefinition) -> str:
        return await self.browser.get_text(self._arg(call, definition, "selector"))

    async def _take_screenshot(self, call: ToolCall, definition: ToolDefinition) -> bytes | str:
        return await self.browser.take_screenshot()

    async def _wait_for_element(self, call: ToolCall, definition: ToolDefinition) -> dict[str, Any]:
        selector = self._arg(call, definition, "selector")
        timeout_ms = self._arg(call, definition, "timeout_ms")
        await self.browser.wait_for_element(
            selector, 30000 if timeout_ms is None else int(timeout_ms)
        )
        return {"selector": selector}

    async def _get_page_state(self, call: ToolCall, definition: ToolDefinition) -> Any:
        return await self.browser.get_page_state()

    async def _get_page_html(self, call: ToolCall, definition: ToolDefinition) -> str:
        return await self.browser.get_page_html()
