"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
When a custom ``openai_base_url`` is configured (e.g. TogetherAI, Anyscale,
Fireworks), the client points at that URL instead of the default OpenAI
endpoint, so this single adapter covers every OpenAI-compatible chat API.

One instance is bound to one ``(model, temperature, max_tokens)`` triple.
Bots with the same triple share an instance through
:class:`~src.services.llm_client_cache.LLMClientCache`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ChatMessage, ILLMProvider
from src.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    Parameters
    ----------
    settings:
        Application settings (API key and optional base URL).
    model:
        Chat model name, e.g. ``"gpt-3.5-turbo"``.
    temperature:
        Sampling temperature passed on every call.
    max_tokens:
        Upper bound on generated tokens per reply.
    """

    def __init__(
        self,
        settings: Settings,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        # Timeout is set to 25 seconds so a hung call surfaces as an error
        # before a fronting proxy drops the connection.
        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(25.0, connect=5.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._provider_label = (
            "openai-compatible" if settings.openai_base_url else "openai"
        )

    @property
    def model(self) -> str:
        return self._model

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(self, messages: list[ChatMessage]) -> str:
        """Return the full reply to *messages*."""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} timed out after 25s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if content is None:
            raise LLMError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_completion",
            model=self._model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        """Yield reply tokens as they arrive from the API."""
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
                message=f"{self._provider_label} stream could not be opened: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        token_count = 0
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    token_count += 1
                    yield delta
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} stream interrupted: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            await response.close()
            logger.info(
                "openai_stream_closed",
                model=self._model,
                provider=self._provider_label,
                tokens=token_count,
            )

    async def aclose(self) -> None:
        await self._client.close()

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)
