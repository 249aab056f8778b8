"""
Enums for EvoFlow - error kinds, circuit states, and routing vocabularies.
"""

from enum import Enum


class ErrorKind(Enum):
    """Outcome class of a failed dispatch."""

    TRANSIENT = "transient"
    TERMINAL = "terminal"


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation, requests pass through
    OPEN = "open"  # Failing, requests are blocked
    HALF_OPEN = "half_open"  # One trial request decides


class BackoffStrategy(Enum):
    """Delay strategies between retry attempts."""

    FIXED = "fixed"  # Constant initial delay
    EXPONENTIAL = "exponential"  # Doubling delay, capped


class TaskType(Enum):
    """Kinds of work an LLM request performs."""

    GENERAL = "General"
    PLANNING = "Planning"
    CODE_GENERATION = "CodeGeneration"
    ANALYSIS = "Analysis"
    INTENT_DETECTION = "IntentDetection"
    VALIDATION = "Validation"
    SUMMARIZATION = "Summarization"
    TRANSLATION = "Translation"
    CLASSIFICATION = "Classification"
    LONG_FORM_GENERATION = "LongFormGeneration"
    UNDERSTANDING = "Understanding"
    EXTRACTION = "Extraction"
    HEALING = "Healing"
    REASONING = "Reasoning"

    @property
    def description(self) -> str:
        """Human-readable description of the task type."""
        return _TASK_DESCRIPTIONS.get(self, "Unknown task type")

    def requires_high_quality(self) -> bool:
        """Check if this task type needs a high-quality model."""
        return self in (
            TaskType.PLANNING,
            TaskType.ANALYSIS,
            TaskType.INTENT_DETECTION,
            TaskType.LONG_FORM_GENERATION,
        )

    def benefits_from_code_models(self) -> bool:
        """Check if code-specialised models suit this task type."""
        return self == TaskType.CODE_GENERATION

    def prioritizes_speed(self) -> bool:
        """Check if latency matters more than depth for this task type."""
        return self in (TaskType.VALIDATION, TaskType.CLASSIFICATION)

    @property
    def typical_token_count(self) -> int:
        """Typical token volume of a request of this type."""
        return _TYPICAL_TOKENS.get(self, 1500)

    @classmethod
    def parse(cls, value: "str | TaskType") -> "TaskType":
        """Parse a task type from its value or member name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        key = str(value).replace("_", "").replace("-", "").lower()
        for member in cls:
            if member.value.lower() == key or member.name.replace("_", "").lower() == key:
                return member
        raise ValueError(f"Unknown task type: {value!r}")


_TASK_DESCRIPTIONS = {
    TaskType.GENERAL: "General purpose task",
    TaskType.PLANNING: "Planning and strategy",
    TaskType.CODE_GENERATION: "Code generation",
    TaskType.ANALYSIS: "Analysis and interpretation",
    TaskType.INTENT_DETECTION: "Intent detection",
    TaskType.VALIDATION: "Validation and verification",
    TaskType.SUMMARIZATION: "Summarization",
    TaskType.TRANSLATION: "Translation",
    TaskType.CLASSIFICATION: "Classification",
    TaskType.LONG_FORM_GENERATION: "Long-form content generation",
    TaskType.UNDERSTANDING: "Page and content understanding",
    TaskType.EXTRACTION: "Data extraction",
    TaskType.HEALING: "Selector and step healing",
    TaskType.REASONING: "Multi-step reasoning",
}

_TYPICAL_TOKENS = {
    TaskType.VALIDATION: 500,
    TaskType.CLASSIFICATION: 500,
    TaskType.SUMMARIZATION: 1000,
    TaskType.INTENT_DETECTION: 1000,
    TaskType.CODE_GENERATION: 2000,
    TaskType.ANALYSIS: 2000,
    TaskType.PLANNING: 3000,
    TaskType.TRANSLATION: 2000,
    TaskType.LONG_FORM_GENERATION: 5000,
    TaskType.GENERAL: 1500,
}


class ComplexityLevel(Enum):
    """Estimated difficulty of a request."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXPERT = "expert"


class RequestPriority(Enum):
    """Business priority of a request."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    def is_elevated(self) -> bool:
        """Check if the request should prefer reliable providers."""
        return self in (RequestPriority.HIGH, RequestPriority.CRITICAL)


class BrowserErrorType(Enum):
    """Fine-grained categories of browser automation failures."""

    UNKNOWN = "unknown"
    TRANSIENT = "transient"
    SELECTOR_NOT_FOUND = "selector_not_found"
    NAVIGATION_TIMEOUT = "navigation_timeout"
    JAVASCRIPT_ERROR = "javascript_error"
    PERMISSION_DENIED = "permission_denied"
    NETWORK_ERROR = "network_error"
    PAGE_CRASH = "page_crash"
    ELEMENT_NOT_INTERACTABLE = "element_not_interactable"
    TIMING_ISSUE = "timing_issue"


class RecoveryActionType(Enum):
    """Recovery actions suggested for a classified browser failure."""

    NONE = "none"
    WAIT_AND_RETRY = "wait_and_retry"
    ALTERNATIVE_SELECTOR = "alternative_selector"
    WAIT_FOR_STABILITY = "wait_for_stability"
    PAGE_REFRESH = "page_refresh"
    NAVIGATION_RETRY = "navigation_retry"
    RESTART_CONTEXT = "restart_context"
    CLEAR_COOKIES = "clear_cookies"
