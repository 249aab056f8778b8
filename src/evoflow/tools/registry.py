"""
ToolRegistry - name-indexed catalogue of browser tool definitions.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from evoflow.core.errors import ToolNotFoundError
from evoflow.tools.models import ParameterDef, ToolDefinition


class ToolRegistry:
    """
    Registry of tool definitions the executor will accept.

    A ``ToolCall`` whose name is not registered here is rejected before
    dispatch.

    Example:
        ```python
        registry = ToolRegistry()
        registry.register(ToolDefinition(
            "navigate",
            "Open a URL",
            {"url": ParameterDef("string", required=True)},
        ))

        registry.tool_exists("navigate")  # True
        registry.get_tool("navigate").required_parameters  # ["url"]
        ```
    """

    def __init__(self, tools: Iterable[ToolDefinition] | None = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        if tools:
            self.register_many(tools)

    def register(self, definition: ToolDefinition) -> ToolRegistry:
        """
        Register a tool definition, replacing any with the same name.

        Returns:
            Self for method chaining
        """
        self._tools[definition.name] = definition
        return self

    def register_many(self, definitions: Iterable[ToolDefinition]) -> ToolRegistry:
        """Register several definitions."""
        for definition in definitions:
            self.register(definition)
        return self

    def unregister(self, name: str) -> bool:
        """
        Unregister a tool by name.

        Returns:
            True if tool was removed, False if not found
        """
        return self._tools.pop(name, None) is not None

    def tool_exists(self, name: str) -> bool:
        return name in self._tools

    def get_tool(self, name: str) -> ToolDefinition:
        """
        Get a tool definition by name.

        Raises:
            ToolNotFoundError: If no tool has that name
        """
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name, self.get_tool_names()) from None

    def get(self, name: str) -> ToolDefinition | None:
        """Get a tool definition, or None if not found."""
        return self._tools.get(name)

    def get_tool_names(self) -> list[str]:
        """Registered tool names in registration order."""
        return list(self._tools)

    def get_tool_descriptions(self) -> str:
        """
        Get formatted descriptions of all tools for LLM prompts.

        Returns:
            One ``- name(arg: type, ...): description`` line per tool
        """
        lines = []
        for name, definition in self._tools.items():
            args = ", ".join(
                f"{arg}: {spec.type}" + ("" if spec.required else "?")
                for arg, spec in definition.parameters.items()
            )
            lines.append(f"- {name}({args}): {definition.description}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)


def _params(**specs: ParameterDef) -> dict[str, ParameterDef]:
    return dict(specs)


BROWSER_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        "navigate",
        "Navigate the browser to a URL and wait for the page to load",
        _params(
            url=ParameterDef("string", True, "Absolute URL to open"),
            wait_until=ParameterDef("string", False, "Load state to wait for", "load"),
        ),
    ),
    ToolDefinition(
        "click",
        "Click an element matching a CSS selector",
        _params(
            selector=ParameterDef("string", True, "CSS selector of the element"),
            button=ParameterDef("string", False, "Mouse button", "left"),
            click_count=ParameterDef("int", False, "Number of clicks", 1),
            force=ParameterDef("boolean", False, "Skip actionability checks", False),
            max_retries=ParameterDef("int", False, "Driver-level click retries", 3),
        ),
    ),
    ToolDefinition(
        "type",
        "Type text into an input element",
        _params(
            selector=ParameterDef("string", True, "CSS selector of the input"),
            text=ParameterDef("string", True, "Text to type"),
            delay_ms=ParameterDef("int", False, "Delay between keystrokes", 0),
            clear_first=ParameterDef("boolean", False, "Clear the input before typing", True),
        ),
    ),
    ToolDefinition(
        "clear_input",
        "Clear the value of an input element",
        _params(selector=ParameterDef("string", True, "CSS selector of the input")),
    ),
    ToolDefinition(
        "extract_text",
        "Read the text content of an element",
        _params(
            selector=ParameterDef("string", True, "CSS selector of the element"),
            all_matches=ParameterDef("boolean", False, "Return text of every match", False),
            include_hidden=ParameterDef("boolean", False, "Include hidden elements", False),
        ),
    ),
    ToolDefinition(
        "get_text",
        "Read the text content of an element",
        _params(selector=ParameterDef("string", True, "CSS selector of the element")),
    ),
    ToolDefinition(
        "extract_table",
        "Extract a table into rows of cells",
        _params(selector=ParameterDef("string", True, "CSS selector of the table")),
    ),
    ToolDefinition("get_page_state", "Capture URL, title and interactive elements of the page"),
    ToolDefinition("get_page_html", "Return the full HTML of the current page"),
    ToolDefinition(
        "take_screenshot",
        "Capture a screenshot of the current page",
        _params(full_page=ParameterDef("boolean", False, "Capture the full scroll height", True)),
    ),
    ToolDefinition(
        "wait_for_element",
        "Wait until an element reaches a state",
        _params(
            selector=ParameterDef("string", True, "CSS selector of the element"),
            state=ParameterDef("string", False, "visible, hidden, attached or detached", "visible"),
            timeout_ms=ParameterDef("int", False, "Maximum wait in milliseconds", 30000),
        ),
    ),
    ToolDefinition(
        "wait_for_url_change",
        "Wait until the page URL changes",
        _params(
            expected_url=ParameterDef("string", False, "URL pattern to wait for"),
            timeout_ms=ParameterDef("int", False, "Maximum wait in milliseconds", 30000),
        ),
    ),
    ToolDefinition(
        "select_option",
        "Select an option in a <select> element",
        _params(
            selector=ParameterDef("string", True, "CSS selector of the select element"),
            value=ParameterDef("string", True, "Option value to select"),
        ),
    ),
    ToolDefinition(
        "submit_form",
        "Submit a form",
        _params(selector=ParameterDef("string", True, "CSS selector of the form")),
    ),
    ToolDefinition(
        "verify_element_exists",
        "Check that an element is present on the page",
        _params(selector=ParameterDef("string", True, "CSS selector of the element")),
    ),
)


def create_browser_tool_registry() -> ToolRegistry:
    """Create a registry pre-loaded with the standard browser tools."""
    return ToolRegistry(BROWSER_TOOLS)
