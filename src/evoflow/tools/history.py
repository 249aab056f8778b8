"""
Bounded execution history keyed by correlation id.

Results are kept in insertion order across the whole store. When the store
grows past ``max_size`` the oldest result is evicted, whichever correlation
id it belongs to.
"""

from __future__ import annotations

import threading
from collections import deque

from evoflow.tools.models import ToolExecutionResult


class ExecutionHistory:
    """
    FIFO-bounded store of tool execution results.

    Example:
        ```python
        history = ExecutionHistory(max_size=100)
        history.append(result)
        history.get("login-flow-1")  # results for that id, oldest first
        ```
    """

    def __init__(self, max_size: int = 100) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self.max_size = max_size
        self._order: deque[tuple[str, ToolExecutionResult]] = deque()
        self._by_id: dict[str, deque[ToolExecutionResult]] = {}
        self._lock = threading.Lock()

    def append(self, result: ToolExecutionResult) -> None:
        """Record a result under its ``metadata['correlation_id']``."""
        correlation_id = result.correlation_id or ""
        with self._lock:
            self._order.append((correlation_id, result))
            self._by_id.setdefault(correlation_id, deque()).append(result)
            while len(self._order) > self.max_size:
                old_id, _ = self._order.popleft()
                # The globally oldest entry is also the oldest for its id
                bucket = self._by_id[old_id]
                bucket.popleft()
                if not bucket:
                    del self._by_id[old_id]

    def get(self, correlation_id: str) -> list[ToolExecutionResult]:
        """Results recorded for ``correlation_id``, oldest first."""
        with self._lock:
            return list(self._by_id.get(correlation_id, ()))

    def correlation_ids(self) -> list[str]:
        with self._lock:
            return list(self._by_id)

    def clear(self) -> None:
        with self._lock:
            self._order.clear()
            self._by_id.clear()

    def __len__(self) -> int:
        return len(self._order)
