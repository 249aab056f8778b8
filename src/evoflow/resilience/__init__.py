"""
Resilience primitives: backoff, error classification, circuit breakers.
"""

from evoflow.resilience.backoff import BackoffPolicy
from evoflow.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitBreakerRegistry,
    CircuitBreakerState,
)
from evoflow.resilience.classifier import (
    ErrorClassification,
    ErrorClassifier,
    classify_error,
    describe_error,
    is_transient,
)

__all__ = [
    "BackoffPolicy",
    "CircuitBreaker",
    "CircuitBreakerOptions",
    "CircuitBreakerRegistry",
    "CircuitBreakerState",
    "ErrorClassification",
    "ErrorClassifier",
    "classify_error",
    "describe_error",
    "is_transient",
]
