"""Nomic embedding provider adapter (local, via Ollama).

Talks to the OpenAI-compatible ``/v1`` endpoint an Ollama server exposes
and implements :class:`IEmbeddingProvider` with ``nomic-embed-text``
(768 dimensions).  Selected by the wiring when no OpenAI key is set.

nomic-embed-text is trained with task prefixes: stored passages are
embedded as ``search_document: ...`` and questions as
``search_query: ...``.  Mixing the two up measurably hurts retrieval, so
:meth:`embed` (ingestion) and :meth:`embed_single` (questions) apply
different prefixes.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import EmbeddingServiceError

logger = structlog.get_logger(logger_name=__name__)

_REQUEST_LIMIT = 512
DOCUMENT_PREFIX = "search_document: "
QUERY_PREFIX = "search_query: "


class NomicEmbeddingProvider(IEmbeddingProvider):
    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._model = settings.ollama_embedding_model or "nomic-embed-text"
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # required by the SDK, ignored by Ollama
        )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return await self._embed([DOCUMENT_PREFIX + text for text in texts])

    async def embed_single(self, text: str) -> list[float]:
        vectors = await self._embed([QUERY_PREFIX + text])
        return vectors[0]

    def get_dimension(self) -> int:
        return 768

    def get_provider_name(self) -> str:
        return "nomic_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server answers ``/api/tags``."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
        return response.status_code == 200

    async def _embed(self, inputs: list[str]) -> list[list[float]]:
        if not inputs:
            return []

        vectors: list[list[float]] = []
        for start in range(0, len(inputs), _REQUEST_LIMIT):
            request = inputs[start : start + _REQUEST_LIMIT]
            try:
                response = await self._client.embeddings.create(input=request, model=self._model)
            except openai.APIError as exc:
                raise EmbeddingServiceError(
                    message=f"Ollama embedding request failed: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            vectors.extend(item.embedding for item in sorted(response.data, key=lambda item: item.index))
            logger.debug("nomic_embedding_request", model=self._model, inputs=len(request))

        if len(vectors) != len(inputs):
            raise EmbeddingServiceError(
                message=f"Expected {len(inputs)} embeddings, received {len(vectors)}",
                provider_name=self.get_provider_name(),
            )
        return vectors
