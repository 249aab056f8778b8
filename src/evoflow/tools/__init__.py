"""
Browser tool execution: call/definition model, registry, executor, history.
"""

from evoflow.tools.browser import BrowserAgent, PageState
from evoflow.tools.executor import ToolExecutor, ToolExecutorOptions
from evoflow.tools.history import ExecutionHistory
from evoflow.tools.models import ParameterDef, ToolCall, ToolDefinition, ToolExecutionResult
from evoflow.tools.registry import BROWSER_TOOLS, ToolRegistry, create_browser_tool_registry

__all__ = [
    "BROWSER_TOOLS",
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
]
