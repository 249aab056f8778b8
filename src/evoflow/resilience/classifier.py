"""
Error classification - decide once, at the boundary, whether a failure is
worth retrying.

``classify_error`` gives the coarse ``ErrorKind`` the retry loops branch on.
``ErrorClassifier`` gives a finer browser-failure category together with
suggested recovery actions, for callers that want to heal rather than retry.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from evoflow.core.enums import BrowserErrorType, ErrorKind, RecoveryActionType
from evoflow.core.errors import TerminalError, TransientError

logger = logging.getLogger(__name__)

# Messages raised by browser drivers for conditions that clear up on their own
TRANSIENT_MARKERS: tuple[str, ...] = (
    "timeout",
    "element is not attached",
    "element is not visible",
    "elementnotinteractableexception",
    "staleelementreferenceexception",
    "element not found",
)

TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
)

TERMINAL_TYPES: tuple[type[BaseException], ...] = (
    ValueError,
    TypeError,
    KeyError,
    NotImplementedError,
    PermissionError,
)


def classify_error(error: BaseException) -> ErrorKind:
    """
    Map a raised error to ``TRANSIENT`` or ``TERMINAL``.

    Explicit ``TransientError``/``TerminalError`` subclasses decide first,
    then well-known builtin types, then the driver's message markers.
    Anything unrecognised is terminal.

    Args:
        error: The exception raised by a collaborator

    Returns:
        The error kind
    """
    if isinstance(error, TransientError):
        return ErrorKind.TRANSIENT
    if isinstance(error, TerminalError):
        return ErrorKind.TERMINAL
    if isinstance(error, TRANSIENT_TYPES):
        return ErrorKind.TRANSIENT
    if isinstance(error, TERMINAL_TYPES):
        return ErrorKind.TERMINAL

    message = str(error).lower()
    if any(marker in message for marker in TRANSIENT_MARKERS):
        return ErrorKind.TRANSIENT
    return ErrorKind.TERMINAL


def is_transient(error: BaseException) -> bool:
    """Shorthand for ``classify_error(error) is ErrorKind.TRANSIENT``."""
    return classify_error(error) is ErrorKind.TRANSIENT


def describe_error(error: BaseException) -> str:
    """Format an error as ``"TypeName: message"`` for retry diagnostics."""
    return f"{type(error).__name__}: {error}"


_ACTION_MAP: dict[BrowserErrorType, tuple[RecoveryActionType, ...]] = {
    BrowserErrorType.TRANSIENT: (RecoveryActionType.WAIT_AND_RETRY,),
    BrowserErrorType.SELECTOR_NOT_FOUND: (
        RecoveryActionType.ALTERNATIVE_SELECTOR,
        RecoveryActionType.WAIT_FOR_STABILITY,
        RecoveryActionType.PAGE_REFRESH,
    ),
    BrowserErrorType.NAVIGATION_TIMEOUT: (
        RecoveryActionType.NAVIGATION_RETRY,
        RecoveryActionType.WAIT_AND_RETRY,
    ),
    BrowserErrorType.TIMING_ISSUE: (
        RecoveryActionType.WAIT_FOR_STABILITY,
        RecoveryActionType.WAIT_AND_RETRY,
    ),
    BrowserErrorType.ELEMENT_NOT_INTERACTABLE: (
        RecoveryActionType.WAIT_FOR_STABILITY,
        RecoveryActionType.ALTERNATIVE_SELECTOR,
    ),
    BrowserErrorType.NETWORK_ERROR: (
        RecoveryActionType.WAIT_AND_RETRY,
        RecoveryActionType.NAVIGATION_RETRY,
    ),
    BrowserErrorType.PAGE_CRASH: (
        RecoveryActionType.RESTART_CONTEXT,
        RecoveryActionType.NAVIGATION_RETRY,
    ),
    BrowserErrorType.JAVASCRIPT_ERROR: (
        RecoveryActionType.PAGE_REFRESH,
        RecoveryActionType.WAIT_AND_RETRY,
    ),
    BrowserErrorType.PERMISSION_DENIED: (
        RecoveryActionType.CLEAR_COOKIES,
        RecoveryActionType.PAGE_REFRESH,
    ),
}


@dataclass(frozen=True)
class ErrorClassification:
    """Result of classifying a browser failure."""

    error_type: BrowserErrorType
    confidence: float
    message: str
    suggested_actions: tuple[RecoveryActionType, ...] = ()
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def is_recoverable(self) -> bool:
        """Whether a recovery action is worth attempting."""
        return self.error_type != BrowserErrorType.UNKNOWN and self.confidence >= 0.7


class ErrorClassifier:
    """
    Categorise browser automation failures by type name and message.

    Example:
        ```python
        classifier = ErrorClassifier()
        result = classifier.classify(TimeoutError("Timeout 30000ms exceeded navigating to /"))
        result.error_type  # BrowserErrorType.NAVIGATION_TIMEOUT
        result.suggested_actions[0]  # RecoveryActionType.NAVIGATION_RETRY
        ```
    """

    def classify(self, error: BaseException, **context: Any) -> ErrorClassification:
        """
        Classify an error.

        Args:
            error: The failure to classify
            **context: Extra diagnostic fields (page_url, action, selector...)

        Returns:
            ErrorClassification with type, confidence and suggested actions
        """
        error_type, confidence = self._classify(error)
        details: dict[str, Any] = {"exception_type": type(error).__name__}
        cause = error.__cause__ or error.__context__
        if cause is not None:
            details["inner_exception_type"] = type(cause).__name__
            details["inner_exception_message"] = str(cause)
        details.update({k: v for k, v in context.items() if v is not None})

        logger.debug("Classified error as %s (confidence %.2f)", error_type.value, confidence)
        return ErrorClassification(
            error_type=error_type,
            confidence=confidence,
            message=str(error),
            suggested_actions=self.get_suggested_actions(error_type),
            context=details,
        )

    def _classify(self, error: BaseException) -> tuple[BrowserErrorType, float]:
        message = str(error).lower()
        type_name = type(error).__name__.lower()

        if "timeout" in type_name or isinstance(error, TimeoutError):
            if "navigat" in message:
                return BrowserErrorType.NAVIGATION_TIMEOUT, 0.95
            if "selector" in message:
                return BrowserErrorType.TIMING_ISSUE, 0.85
            return BrowserErrorType.TRANSIENT, 0.75

        if "selector" in message and ("not found" in message or "cannot find" in message):
            return BrowserErrorType.SELECTOR_NOT_FOUND, 0.9
        if any(m in message for m in ("not visible", "not interactable", "obscured")):
            return BrowserErrorType.ELEMENT_NOT_INTERACTABLE, 0.9
        if any(m in message for m in ("network", "connection", "net::err")):
            return BrowserErrorType.NETWORK_ERROR, 0.85
        if any(m in message for m in ("crash", "closed", "disconnected")):
            return BrowserErrorType.PAGE_CRASH, 0.9
        if any(m in message for m in ("javascript", "evaluation failed", "js error")):
            return BrowserErrorType.JAVASCRIPT_ERROR, 0.85
        if any(m in message for m in ("permission", "denied", "forbidden")):
            return BrowserErrorType.PERMISSION_DENIED, 0.9
        if any(code in message for code in ("404", "500", "503")):
            return BrowserErrorType.NETWORK_ERROR, 0.8
        if "stale" in message and "element" in message:
            return BrowserErrorType.SELECTOR_NOT_FOUND, 0.85

        logger.warning(
            "Unable to classify error with high confidence: %s - %s",
            type(error).__name__,
            error,
        )
        return BrowserErrorType.UNKNOWN, 0.5

    @staticmethod
    def is_transient(error_type: BrowserErrorType) -> bool:
        """Check if a browser error type clears up on its own."""
        return error_type in (
            BrowserErrorType.TRANSIENT,
            BrowserErrorType.NETWORK_ERROR,
            BrowserErrorType.TIMING_ISSUE,
        )

    @staticmethod
    def get_suggested_actions(error_type: BrowserErrorType) -> tuple[RecoveryActionType, ...]:
        """Recovery actions for an error type, most promising first."""
        return _ACTION_MAP.get(error_type, (RecoveryActionType.NONE,))
