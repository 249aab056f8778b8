"""
Tests for ToolExecutor - retry, timeout, sequence, fallback and history.
"""

import asyncio
import random

import pytest

from evoflow.core.errors import (
    BrowserNotInitializedError,
    ConfigurationError,
    ElementNotFoundError,
    MissingParametersError,
    ToolNotFoundError,
    UnsupportedToolError,
)
from evoflow.resilience import BackoffPolicy
from evoflow.tools import (
    BrowserAgent,
    PageState,
    ParameterDef,
    ToolCall,
    ToolDefinition,
    ToolExecutor,
    ToolExecutorOptions,
)


class ScriptedBrowser(BrowserAgent):
    """
    Browser double whose methods replay scripted outcomes.

    ``script`` maps a method name to a list of outcomes consumed in order;
    an exception instance is raised, anything else is returned. Once a
    list is exhausted the method succeeds.
    """

    def __init__(self, script=None, delay=0.0):
        self.script = {name: list(outcomes) for name, outcomes in (script or {}).items()}
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _run(self, method, *args, default=None):
        self.calls.append((method, args))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            outcomes = self.script.get(method)
            if outcomes:
                outcome = outcomes.pop(0)
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
            return default
        finally:
            self.in_flight -= 1

    def count(self, method):
        return sum(1 for name, _ in self.calls if name == method)

    async def initialize(self):
        await self._run("initialize")

    async def navigate(self, url):
        await self._run("navigate", url)

    async def click(self, selector, max_retries=3):
        await self._run("click", selector, max_retries)

    async def type(self, selector, text):
        await self._run("type", selector, text)

    async def get_text(self, selector):
        return await self._run("get_text", selector, default="text")

    async def take_screenshot(self):
        return await self._run("take_screenshot", default=b"png")

    async def wait_for_element(self, selector, timeout_ms=30000):
        await self._run("wait_for_element", selector, timeout_ms)

    async def get_page_state(self):
        return await self._run("get_page_state", default=PageState(url="https://example.com"))

    async def get_page_html(self):
        return await self._run("get_page_html", default="<html></html>")


def make_executor(browser, max_retries=3, initial_delay=0.001, max_delay=0.005, **options):
    """Executor with millisecond-scale backoff so retry tests stay fast."""
    policy = BackoffPolicy(
        max_retries=max_retries,
        initial_delay=initial_delay,
        max_delay=max_delay,
        rng=random.Random(1),
    )
    return ToolExecutor(
        browser,
        options=ToolExecutorOptions(max_retries=max_retries, **options),
        backoff=policy,
    )


def click(selector="#submit", correlation_id="corr-1", **params):
    return ToolCall("click", {"selector": selector, **params}, "test click", correlation_id)


# =============================================================================
# execute_tool Tests
# =============================================================================


class TestExecuteTool:
    """Tests for ToolExecutor.execute_tool."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        """Test that a successful call is not retried."""
        browser = ScriptedBrowser()
        executor = make_executor(browser)

        result = await executor.execute_tool(click())

        assert result.success
        assert result.result == {"selector": "#submit"}
        assert result.attempt_count == 1
        assert not result.was_retried
        assert result.error is None
        assert result.metadata["correlation_id"] == "corr-1"
        assert result.metadata["reasoning"] == "test click"
        assert result.metadata["retry_reasons"] == []
        assert result.metadata["retry_delays"] == []
        assert result.execution_duration_ms >= 0

    @pytest.mark.asyncio
    async def test_transient_then_success(self):
        """Test retry after transient failures."""
        browser = ScriptedBrowser({
            "click": [ElementNotFoundError("#submit"), TimeoutError("slow page")],
        })
        executor = make_executor(browser, max_retries=3)

        result = await executor.execute_tool(click())

        assert result.success
        assert result.attempt_count == 3
        assert result.was_retried
        assert result.metadata["retry_reasons"] == [
            "ElementNotFoundError: Element not found: #submit",
            "TimeoutError: slow page",
        ]
        delays = result.metadata["retry_delays"]
        assert len(delays) == 2
        for retry, delay in enumerate(delays, start=1):
            low, high = executor.backoff.delay_bounds(retry)
            assert low <= delay <= high

    @pytest.mark.asyncio
    async def test_transient_exhausts_budget(self):
        """Test that attempts equal max_retries + 1 for persistent transient failures."""
        browser = ScriptedBrowser({"click": [ElementNotFoundError("#x")] * 10})
        executor = make_executor(browser, max_retries=2)

        result = await executor.execute_tool(click("#x"))

        assert not result.success
        assert result.attempt_count == 3
        assert browser.count("click") == 3
        assert isinstance(result.error, ElementNotFoundError)
        assert result.metadata["error_kind"] == "transient"
        assert len(result.metadata["retry_reasons"]) == 2
        assert len(result.metadata["retry_delays"]) == 2
        assert result.metadata["error_type"] == "ElementNotFoundError"

    @pytest.mark.asyncio
    async def test_terminal_error_not_retried(self):
        """Test that terminal errors stop after one attempt."""
        browser = ScriptedBrowser({"navigate": [BrowserNotInitializedError()]})
        executor = make_executor(browser, max_retries=3)

        result = await executor.execute_tool(
            ToolCall("navigate", {"url": "https://example.com"}, correlation_id="c")
        )

        assert not result.success
        assert result.attempt_count == 1
        assert browser.count("navigate") == 1
        assert result.metadata["error_kind"] == "terminal"
        assert result.metadata["retry_reasons"] == []

    @pytest.mark.asyncio
    async def test_terminal_after_transient(self):
        """Test that a terminal error mid-retry ends the loop."""
        browser = ScriptedBrowser({"click": [TimeoutError("slow"), ValueError("bad selector")]})
        executor = make_executor(browser, max_retries=5)

        result = await executor.execute_tool(click())

        assert result.attempt_count == 2
        assert isinstance(result.error, ValueError)
        assert len(result.metadata["retry_reasons"]) == 1

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        """Test that max_retries=0 means exactly one attempt."""
        browser = ScriptedBrowser({"click": [TimeoutError("slow")]})
        executor = make_executor(browser, max_retries=0)

        result = await executor.execute_tool(click())

        assert not result.success
        assert result.attempt_count == 1
        assert not result.was_retried

    @pytest.mark.asyncio
    async def test_per_attempt_timeout(self):
        """Test that a hung dispatch times out and is retried."""
        browser = ScriptedBrowser(delay=1.0)
        executor = make_executor(browser, max_retries=1, timeout_per_tool_ms=50)

        result = await executor.execute_tool(click())

        assert not result.success
        assert result.attempt_count == 2
        assert isinstance(result.error, TimeoutError)
        assert "timed out" in str(result.error)
        assert result.metadata["retry_reasons"][0].startswith("TimeoutError")

    @pytest.mark.asyncio
    async def test_unknown_tool_rejected(self):
        """Test validation of unregistered tools."""
        browser = ScriptedBrowser()
        executor = make_executor(browser)

        result = await executor.execute_tool(ToolCall("fly", {}, correlation_id="v"))

        assert not result.success
        assert result.attempt_count == 1
        assert isinstance(result.error, ToolNotFoundError)
        assert "not found in registry" in result.error_message
        assert "navigate" in result.error_message
        assert result.metadata["validation_error"] == "tool_not_found"
        assert browser.calls == []

    @pytest.mark.asyncio
    async def test_missing_parameters_rejected(self):
        """Test validation of required parameters."""
        browser = ScriptedBrowser()
        executor = make_executor(browser)

        result = await executor.execute_tool(ToolCall("type", {"text": "hi"}))

        assert not result.success
        assert isinstance(result.error, MissingParametersError)
        assert result.error.missing == ["selector"]
        assert result.metadata["validation_error"] == "missing_required_parameters"
        assert browser.calls == []

    @pytest.mark.asyncio
    async def test_unsupported_tool(self):
        """Test registered tools without a handler fail terminally."""
        browser = ScriptedBrowser()
        executor = make_executor(browser)

        result = await executor.execute_tool(ToolCall("submit_form", {"selector": "form"}))

        assert not result.success
        assert result.attempt_count == 1
        assert isinstance(result.error, UnsupportedToolError)

    @pytest.mark.asyncio
    async def test_parameter_defaults_applied(self):
        """Test optional parameters fall back to registry defaults."""
        browser = ScriptedBrowser()
        executor = make_executor(browser)

        await executor.execute_tool(click())
        await executor.execute_tool(click(max_retries=7))
        await executor.execute_tool(ToolCall("wait_for_element", {"selector": "#a"}))

        assert browser.calls[0] == ("click", ("#submit", 3))
        assert browser.calls[1] == ("click", ("#submit", 7))
        assert browser.calls[2] == ("wait_for_element", ("#a", 30000))

    @pytest.mark.asyncio
    async def test_query_tools_return_browser_values(self):
        """Test tools that read from the page."""
        browser = ScriptedBrowser({"get_text": ["Welcome"]})
        executor = make_executor(browser)

        text = await executor.execute_tool(ToolCall("extract_text", {"selector": "h1"}))
        html = await executor.execute_tool(ToolCall("get_page_html"))
        state = await executor.execute_tool(ToolCall("get_page_state"))

        assert text.result == "Welcome"
        assert html.result == "<html></html>"
        assert state.result.url == "https://example.com"

    @pytest.mark.asyncio
    async def test_clear_input_types_empty_string(self):
        """Test clear_input dispatch."""
        browser = ScriptedBrowser()
        executor = make_executor(browser)

        await executor.execute_tool(ToolCall("clear_input", {"selector": "#q"}))

        assert browser.calls == [("type", ("#q", ""))]

    @pytest.mark.asyncio
    async def test_custom_handler(self):
        """Test wiring a custom tool."""
        browser = ScriptedBrowser()
        executor = make_executor(browser)
        executor.registry.register(
            ToolDefinition("scroll", "Scroll the page", {"dy": ParameterDef("int", True)})
        )

        async def scroll(call, definition):
            return call.get("dy") * 2

        executor.register_handler("scroll", scroll)
        result = await executor.execute_tool(ToolCall("scroll", {"dy": 21}))

        assert result.success
        assert result.result == 42

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        """Test that cancelling the caller cancels the dispatch."""
        browser = ScriptedBrowser(delay=5.0)
        executor = make_executor(browser)

        task = asyncio.create_task(executor.execute_tool(click()))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert executor.history_size == 0

    @pytest.mark.asyncio
    async def test_cancellation_during_backoff(self):
        """Test that cancelling during a backoff wait aborts the call."""
        browser = ScriptedBrowser({"click": [TimeoutError("slow")] * 5})
        executor = make_executor(browser, max_retries=3, initial_delay=5.0, max_delay=5.0)

        task = asyncio.create_task(executor.execute_tool(click()))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert browser.count("click") == 1

    @pytest.mark.asyncio
    async def test_concurrency_limit(self):
        """Test that max_concurrent_tools bounds in-flight dispatches."""
        browser = ScriptedBrowser(delay=0.02)
        executor = make_executor(browser, max_concurrent_tools=1)

        results = await asyncio.gather(*(executor.execute_tool(click(f"#b{i}")) for i in range(4)))

        assert all(r.success for r in results)
        assert browser.max_in_flight == 1


class TestValidateToolCall:
    """Tests for ToolExecutor.validate_tool_call."""

    def test_valid(self):
        """Test a well-formed call."""
        executor = make_executor(ScriptedBrowser())
        assert executor.validate_tool_call(click())

    def test_unknown_tool(self):
        """Test an unregistered tool."""
        executor = make_executor(ScriptedBrowser())
        assert not executor.validate_tool_call(ToolCall("fly", {}))

    def test_missing_parameter(self):
        """Test a call without a required parameter."""
        executor = make_executor(ScriptedBrowser())
        assert not executor.validate_tool_call(ToolCall("navigate", {}))

    def test_no_dispatch(self):
        """Test that validation never touches the browser."""
        browser = ScriptedBrowser()
        make_executor(browser).validate_tool_call(click())
        assert browser.calls == []


# =============================================================================
# execute_sequence Tests
# =============================================================================


class TestExecuteSequence:
    """Tests for ToolExecutor.execute_sequence."""

    @pytest.mark.asyncio
    async def test_all_succeed(self):
        """Test that every call runs in order."""
        browser = ScriptedBrowser()
        executor = make_executor(browser)
        calls = [
            ToolCall("navigate", {"url": "https://example.com/login"}),
            ToolCall("type", {"selector": "#user", "text": "ada"}),
            click("#login"),
        ]

        results = await executor.execute_sequence(calls)

        assert [r.tool_name for r in results] == ["navigate", "type", "click"]
        assert all(r.success for r in results)
        assert [name for name, _ in browser.calls] == ["navigate", "type", "click"]

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self):
        """Test short-circuit on failure."""
        browser = ScriptedBrowser({"type": [ValueError("input is disabled")]})
        executor = make_executor(browser)
        calls = [
            ToolCall("navigate", {"url": "https://example.com"}),
            ToolCall("type", {"selector": "#user", "text": "ada"}),
            click("#login"),
        ]

        results = await executor.execute_sequence(calls)

        assert len(results) == 2
        assert results[0].success
        assert not results[1].success
        assert browser.count("click") == 0

    @pytest.mark.asyncio
    async def test_validation_failure_stops_sequence(self):
        """Test that a rejected call also ends the sequence."""
        executor = make_executor(ScriptedBrowser())

        results = await executor.execute_sequence([ToolCall("navigate", {}), click()])

        assert len(results) == 1
        assert results[0].metadata["validation_error"] == "missing_required_parameters"

    @pytest.mark.asyncio
    async def test_empty_sequence_rejected(self):
        """Test that an empty list is invalid."""
        executor = make_executor(ScriptedBrowser())
        with pytest.raises(ValueError):
            await executor.execute_sequence([])

    @pytest.mark.asyncio
    async def test_none_element_rejected(self):
        """Test that None entries are invalid."""
        executor = make_executor(ScriptedBrowser())
        with pytest.raises(ValueError):
            await executor.execute_sequence([click(), None])


# =============================================================================
# execute_with_fallback Tests
# =============================================================================


class TestExecuteWithFallback:
    """Tests for ToolExecutor.execute_with_fallback."""

    @pytest.mark.asyncio
    async def test_primary_success_skips_fallbacks(self):
        """Test that fallbacks are not run when the primary succeeds."""
        browser = ScriptedBrowser()
        executor = make_executor(browser)

        result = await executor.execute_with_fallback(click("#a"), [click("#b")])

        assert result.success
        assert "fallback_used" not in result.metadata
        assert browser.count("click") == 1

    @pytest.mark.asyncio
    async def test_first_fallback_succeeds(self):
        """Test that later fallbacks are not run once one succeeds."""
        browser = ScriptedBrowser({"click": [ValueError("gone")]})
        executor = make_executor(browser)

        result = await executor.execute_with_fallback(click("#a"), [click("#b"), click("#c")])

        assert result.success
        assert result.metadata["fallback_used"] is True
        assert result.metadata["fallback_index"] == 0
        assert [args[0] for _, args in browser.calls] == ["#a", "#b"]

    @pytest.mark.asyncio
    async def test_second_fallback_succeeds(self):
        """Test fallback metadata when a later fallback succeeds."""
        browser = ScriptedBrowser({
            "click": [ValueError("primary broken"), ValueError("first fallback broken")],
        })
        executor = make_executor(browser)

        result = await executor.execute_with_fallback(
            click("#a"), [click("#b"), click("#c")]
        )

        assert result.success
        assert result.result == {"selector": "#c"}
        assert result.metadata["fallback_used"] is True
        assert result.metadata["fallback_index"] == 1
        assert result.metadata["primary_tool"] == "click"
        assert result.metadata["primary_error"] == "primary broken"

    @pytest.mark.asyncio
    async def test_each_call_gets_full_retry_budget(self):
        """Test that the fallback retries independently of the primary."""
        browser = ScriptedBrowser({"click": [TimeoutError("t")] * 3})
        executor = make_executor(browser, max_retries=1)

        result = await executor.execute_with_fallback(click("#a"), [click("#b")])

        assert result.success
        assert result.attempt_count == 2
        assert browser.count("click") == 4

    @pytest.mark.asyncio
    async def test_all_fail_returns_last_fallback(self):
        """Test the all-failed result."""
        browser = ScriptedBrowser({
            "click": [ValueError("a"), ValueError("b"), ValueError("c")],
        })
        executor = make_executor(browser)

        result = await executor.execute_with_fallback(
            click("#a"), [click("#b"), click("#c")]
        )

        assert not result.success
        assert result.error_message == "c"
        assert result.metadata["all_fallbacks_failed"] is True
        assert result.metadata["fallback_attempted"] is True
        assert result.metadata["fallback_count"] == 2
        assert result.metadata["primary_error"] == "a"

    @pytest.mark.asyncio
    async def test_no_fallbacks_returns_primary(self):
        """Test that an empty fallback list returns the primary failure as-is."""
        browser = ScriptedBrowser({"click": [ValueError("broken")]})
        executor = make_executor(browser)

        result = await executor.execute_with_fallback(click("#a"), [])

        assert not result.success
        assert "all_fallbacks_failed" not in result.metadata


# =============================================================================
# History Tests
# =============================================================================


class TestExecutionHistoryLookup:
    """Tests for ToolExecutor.get_execution_history."""

    @pytest.mark.asyncio
    async def test_results_grouped_by_correlation_id(self):
        """Test lookup order and grouping."""
        executor = make_executor(ScriptedBrowser())

        await executor.execute_tool(click("#1", correlation_id="flow-a"))
        await executor.execute_tool(click("#2", correlation_id="flow-b"))
        await executor.execute_tool(click("#3", correlation_id="flow-a"))

        history = executor.get_execution_history("flow-a")
        assert [r.result["selector"] for r in history] == ["#1", "#3"]
        assert executor.get_execution_history("unknown") == []

    @pytest.mark.asyncio
    async def test_validation_failures_recorded(self):
        """Test that rejected calls are part of the history."""
        executor = make_executor(ScriptedBrowser())

        await executor.execute_tool(ToolCall("fly", {}, correlation_id="flow"))

        assert len(executor.get_execution_history("flow")) == 1

    @pytest.mark.asyncio
    async def test_history_bounded(self):
        """Test global FIFO eviction."""
        executor = make_executor(ScriptedBrowser(), max_history_size=10)

        await executor.execute_tool(click(correlation_id="old"))
        for _ in range(10):
            await executor.execute_tool(click(correlation_id="new"))

        assert executor.history_size == 10
        assert executor.get_execution_history("old") == []
        assert len(executor.get_execution_history("new")) == 10

    @pytest.mark.parametrize("bad", ["", "   "])
    def test_blank_correlation_id_rejected(self, bad):
        """Test argument validation."""
        executor = make_executor(ScriptedBrowser())
        with pytest.raises(ValueError):
            executor.get_execution_history(bad)

    @pytest.mark.asyncio
    async def test_clear_history(self):
        """Test clearing."""
        executor = make_executor(ScriptedBrowser())
        await executor.execute_tool(click())
        executor.clear_history()
        assert executor.history_size == 0


# =============================================================================
# ToolExecutorOptions Tests
# =============================================================================


class TestToolExecutorOptions:
    """Tests for ToolExecutorOptions."""

    def test_defaults_are_valid(self):
        """Test default configuration."""
        options = ToolExecutorOptions()
        options.validate()
        assert options.max_retries == 3
        assert options.timeout_per_tool_ms == 30000

    def test_out_of_range(self):
        """Test range validation."""
        with pytest.raises(ConfigurationError) as exc_info:
            ToolExecutorOptions(max_retries=11, max_concurrent_tools=0).validate()
        assert any("max_retries" in e for e in exc_info.value.errors)
        assert any("max_concurrent_tools" in e for e in exc_info.value.errors)

    def test_max_delay_below_initial(self):
        """Test delay ordering."""
        with pytest.raises(ConfigurationError):
            ToolExecutorOptions(initial_retry_delay_ms=5000, max_retry_delay_ms=1000).validate()

    def test_worst_case_limit(self):
        """Test that a ten-minute worst case is rejected."""
        options = ToolExecutorOptions(max_retries=10, timeout_per_tool_ms=60000)
        assert options.worst_case_execution_ms() > 10 * 60 * 1000
        with pytest.raises(ConfigurationError, match="exceeds 10 minutes"):
            options.validate()

    def test_to_backoff_policy(self):
        """Test conversion to seconds."""
        policy = ToolExecutorOptions(
            max_retries=2, initial_retry_delay_ms=250, max_retry_delay_ms=4000
        ).to_backoff_policy()
        assert policy.max_retries == 2
        assert policy.initial_delay == 0.25
        assert policy.max_delay == 4.0
