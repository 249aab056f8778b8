"""
Provider - the contract every LLM backend implements for the router.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from evoflow.llm.models import LLMRequest, LLMResponse, ProviderCapabilities


class Provider(ABC):
    """
    Abstract LLM backend.

    ``name`` identifies the backend to routing strategies and circuit
    breakers (``"azure_openai"``, ``"ollama-local"``); it should be stable
    and unique within one router.

    Example:
        class OllamaProvider(Provider):
            name = "ollama"

            async def complete(self, request):
                ...

            def get_capabilities(self):
                return ProviderCapabilities(max_context_tokens=32768)

            def get_model_name(self):
                return "qwen2.5:32b"
    """

    name: str = "provider"

    @abstractmethod
    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Run one completion. Raises on failure."""

    @abstractmethod
    def get_capabilities(self) -> ProviderCapabilities: ...

    @abstractmethod
    def get_model_name(self) -> str: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, model={self.get_model_name()!r})"
