"""Mock provider for testing.

Provides a scripted ``Provider`` that returns or raises predefined outcomes
without any network calls.

Usage:
    from evoflow.llm.mock import MockProvider

    # Fails twice with a timeout, then answers
    provider = MockProvider(
        name="ollama",
        outcomes=[TimeoutError("slow"), TimeoutError("slow"), "Hello!"],
    )
    response = await provider.complete(LLMRequest.from_prompt("Hi"))
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Union

from evoflow.llm.models import LLMRequest, LLMResponse, ProviderCapabilities, TokenUsage
from evoflow.llm.provider import Provider

Outcome = Union[str, BaseException]


@dataclass
class MockProvider(Provider):
    """Scripted provider.

    Outcomes are consumed in order; once exhausted the last one repeats.
    A string outcome becomes the response content, an exception is raised.

    Attributes:
        name: Provider name seen by strategies and breakers.
        model: Model name reported by ``get_model_name``.
        outcomes: Sequence of responses or exceptions.
        capabilities: Reported capabilities.
        delay: Seconds to wait before each outcome.
        requests: Every request received, in order.
    """

    name: str = "mock"
    model: str = "mock-model"
    outcomes: list[Outcome] = field(default_factory=lambda: ["Mock response"])
    capabilities: ProviderCapabilities = field(
        default_factory=lambda: ProviderCapabilities(
            supports_streaming=True,
            supports_function_calling=True,
            max_context_tokens=8192,
        )
    )
    delay: float = 0.0
    requests: list[LLMRequest] = field(default_factory=list, init=False, repr=False)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def _next_outcome(self) -> Outcome:
        if not self.outcomes:
            return "Mock response"
        index = min(len(self.requests) - 1, len(self.outcomes) - 1)
        return self.outcomes[index]

    async def complete(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self._next_outcome()
        if isinstance(outcome, BaseException):
            raise outcome
        return LLMResponse(
            content=outcome,
            model=self.model,
            usage=TokenUsage(
                input_tokens=sum(len(m.content.split()) for m in request.messages),
                output_tokens=len(outcome.split()),
            ),
        )

    def get_capabilities(self) -> ProviderCapabilities:
        return self.capabilities

    def get_model_name(self) -> str:
        return self.model

    def reset(self) -> None:
        """Forget received requests so the script starts over."""
        self.requests.clear()


__all__ = ["MockProvider"]
