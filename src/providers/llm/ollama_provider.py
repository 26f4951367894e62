"""Ollama LLM provider adapter.

Wraps a local Ollama server via its OpenAI-compatible API endpoint, using
the ``openai`` client library pointed at the Ollama base URL.  Lets a bot
answer questions fully offline, at the cost of weaker local models.

Setup: install Ollama (https://ollama.ai), ``ollama pull llama3.1`` and set
OLLAMA_BASE_URL=http://localhost:11434
"""

from __future__ import annotations

from collections.abc import AsyncIterator

# httpx is only used by is_available() to check that Ollama is running.
import httpx
import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ChatMessage, ILLMProvider
from src.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class OllamaLLMProvider(ILLMProvider):
    """LLM provider backed by a local Ollama server.

    Ollama exposes an OpenAI-compatible ``/v1`` API, so this adapter reuses
    ``openai.AsyncOpenAI`` with a different base URL.
    """

    def __init__(
        self,
        settings: Settings,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            # Ollama ignores the key but the SDK requires a non-empty one.
            api_key="ollama",
        )
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def model(self) -> str:
        return self._model

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(self, messages: list[ChatMessage]) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except openai.APIError as exc:
            raise LLMError(
                message=f"Ollama API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if content is None:
            raise LLMError(
                message="Ollama returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info("ollama_completion", model=self._model)
        return content

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                stream=True,
            )
        except openai.APIError as exc:
            raise LLMError(
                message=f"Ollama stream could not be opened: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        try:
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.APIError as exc:
            raise LLMError(
                message=f"Ollama stream interrupted: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            await response.close()

    async def aclose(self) -> None:
        await self._client.close()

    def get_provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server answers on ``/api/tags``."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
