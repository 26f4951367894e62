"""Abstract base class for vector-store providers.

The vector index is shared by every tenant; isolation is enforced purely
by metadata.  Every write carries ``chatbotId`` in its metadata and every
read passes it in the filter.  Implementations must therefore treat the
filter as a strict exact-match AND over all of its keys.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.rag import QueryMatch, VectorRecord, VectorStats

# Filter values are scalars (exact match) or lists of scalars ("any of").
MetadataFilter = dict[str, Any]


# Concrete implementation: ChromaDBProvider
# Located in: src/providers/vector_store/
class IVectorStoreProvider(ABC):
    """Contract for the vector index used by ingestion and retrieval."""

    @abstractmethod
    async def upsert(self, records: list[VectorRecord]) -> int:
        """Insert or overwrite *records* by id.

        Implementations send records in bounded batches with a small delay
        between batches.  The first failing batch aborts the rest.

        Returns
        -------
        int
            Number of records written.

        Raises
        ------
        src.utils.errors.VectorStoreError
            If any batch fails.  Batches written before the failure stay.
        """

    @abstractmethod
    async def query(
        self,
        vector: list[float],
        filter: MetadataFilter,
        top_k: int,
    ) -> list[QueryMatch]:
        """Return up to *top_k* nearest records matching every *filter* key.

        Results are ordered by similarity, best first.

        Raises
        ------
        src.utils.errors.VectorStoreError
            If the query fails.
        """

    @abstractmethod
    async def delete_by_filter(self, filter: MetadataFilter) -> int:
        """Delete every record matching *filter*; return how many were removed.

        Ids are resolved first (up to a fixed candidate cap) and then
        deleted in batches.  Records written concurrently with the deletion
        may survive it.
        """

    @abstractmethod
    async def stats(self, filter: MetadataFilter | None = None) -> VectorStats:
        """Return the record count matching *filter* and the index dimension."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the index is reachable."""
