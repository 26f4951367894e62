"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into embedding vectors.
Implementations wrap OpenAI ``text-embedding-3-small`` or Nomic
``nomic-embed-text`` (local via Ollama); the ingestion pipeline and the
answer composer only ever see this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider: text-embedding-3-small (requires API key)
#   NomicEmbeddingProvider : nomic-embed-text via Ollama (local)
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Text strings to embed.  Callers control batching (the ingestion
            pipeline sends ~20 texts per call) but implementations must
            still honour any hard per-request limit of their backend.

        Returns
        -------
        list[list[float]]
            One vector per input, in input order.  Each inner list has length
            equal to :meth:`get_dimension`.

        Raises
        ------
        src.utils.errors.EmbeddingServiceError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Embed one string (typically a user question)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must match the dimension of the vectors already stored in the index,
        e.g. ``1536`` for ``text-embedding-3-small``.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable."""
