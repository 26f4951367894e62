"""Abstract base class for chat language-model providers.

A provider instance is bound to one ``(model, temperature, max_tokens)``
configuration, which is what the answer composer caches per bot.  Messages
are role-tagged dicts (``{"role": "system" | "user" | "assistant",
"content": str}``) in conversation order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

ChatMessage = dict[str, str]


# Concrete implementations: OpenAILLMProvider, OllamaLLMProvider
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for chat-completion services."""

    @abstractmethod
    async def complete(self, messages: list[ChatMessage]) -> str:
        """Return the model's full reply to *messages*.

        Raises
        ------
        src.utils.errors.LLMError
            If the API call fails or returns no content.
        """

    @abstractmethod
    def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        """Yield the reply to *messages* as incremental text tokens.

        Tokens arrive in model order; empty deltas are skipped.  Closing the
        iterator early (``aclose()``) closes the underlying HTTP stream.

        Raises
        ------
        src.utils.errors.LLMError
            If the stream cannot be opened or breaks mid-way.
        """

    @property
    @abstractmethod
    def model(self) -> str:
        """Name of the model this instance calls."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""

    async def aclose(self) -> None:
        """Release the HTTP resources held by this instance.

        Called when the instance is evicted from the client cache or at
        shutdown.  The default holds nothing to release.
        """
