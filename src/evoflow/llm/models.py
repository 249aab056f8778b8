"""
LLM request/response model shared by providers and the router.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from evoflow.core.utils import generate_id


@dataclass(frozen=True)
class Message:
    """One chat message."""

    role: str
    content: str = ""

    @classmethod
    def system(cls, content: str) -> Message:
        return cls("system", content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls("user", content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls("assistant", content)


@dataclass
class LLMRequest:
    """
    A completion request.

    Attributes:
        messages: Conversation so far, oldest first
        model: Preferred model name; providers may ignore it
        max_tokens: Completion budget
        temperature: Sampling temperature
        functions: Function/tool schemas the model may call
        stream: Whether the caller wants a streamed response
    """

    messages: list[Message] = field(default_factory=list)
    model: str | None = None
    max_tokens: int = 2000
    temperature: float = 0.7
    functions: list[dict[str, Any]] = field(default_factory=list)
    stream: bool = False

    @property
    def last_content(self) -> str:
        """Content of the final message, or empty string."""
        return self.messages[-1].content if self.messages else ""

    @classmethod
    def from_prompt(cls, prompt: str, **kwargs: Any) -> LLMRequest:
        return cls(messages=[Message.user(prompt)], **kwargs)


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting for one completion."""

    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost_usd: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class LLMResponse:
    """A completion returned by a provider."""

    content: str
    model: str = ""
    id: str = field(default_factory=lambda: generate_id("resp", 12))
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str = "stop"
    function_calls: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ProviderCapabilities:
    """Static feature descriptor of a provider."""

    supports_streaming: bool = False
    supports_function_calling: bool = False
    supports_vision: bool = False
    supports_embeddings: bool = False
    max_context_tokens: int = 4096
    max_output_tokens: int = 2048

    @classmethod
    def combine(cls, capabilities: list[ProviderCapabilities]) -> ProviderCapabilities:
        """Union of features, maximum of limits."""
        if not capabilities:
            return cls()
        return cls(
            supports_streaming=any(c.supports_streaming for c in capabilities),
            supports_function_calling=any(c.supports_function_calling for c in capabilities),
            supports_vision=any(c.supports_vision for c in capabilities),
            supports_embeddings=any(c.supports_embeddings for c in capabilities),
            max_context_tokens=max(c.max_context_tokens for c in capabilities),
            max_output_tokens=max(c.max_output_tokens for c in capabilities),
        )
