"""
BrowserAgent - the collaborator contract the tool executor drives.

Concrete drivers (Playwright, Selenium, a remote grid) implement this ABC.
Implementations raise ``TransientError`` subclasses (or timeouts) for
conditions worth retrying and ``TerminalError`` subclasses for broken
preconditions such as an uninitialised browser.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class PageState:
    """Snapshot of the current page."""

    url: str
    title: str = ""
    load_state: str = "load"
    interactive_elements: list[dict[str, Any]] = field(default_factory=list)
    visible_text: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "load_state": self.load_state,
            "interactive_elements": list(self.interactive_elements),
            "visible_text": self.visible_text,
        }


class BrowserAgent(ABC):
    """Abstract browser driver."""

    @abstractmethod
    async def initialize(self) -> None:
        """Start the browser session."""

    @abstractmethod
    async def navigate(self, url: str) -> None: ...

    @abstractmethod
    async def click(self, selector: str, max_retries: int = 3) -> None: ...

    @abstractmethod
    async def type(self, selector: str, text: str) -> None: ...

    @abstractmethod
    async def get_text(self, selector: str) -> str: ...

    @abstractmethod
    async def take_screenshot(self) -> bytes | str:
        """Capture the page; drivers return PNG bytes or a base64 string."""

    @abstractmethod
    async def wait_for_element(self, selector: str, timeout_ms: int = 30000) -> None: ...

    @abstractmethod
    async def get_page_state(self) -> PageState: ...

    @abstractmethod
    async def get_page_html(self) -> str: ...

    async def close(self) -> None:
        """Release driver resources. Optional."""

    async def __aenter__(self) -> BrowserAgent:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
