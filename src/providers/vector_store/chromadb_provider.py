"""ChromaDB vector store provider adapter.

Wraps `chromadb.PersistentClient` to implement :class:`IVectorStoreProvider`.
Uses cosine distance for similarity search.  Fully local and Python-native,
so no external service is required.

Every bot shares one collection.  Tenant isolation rests entirely on the
``chatbotId`` metadata key: writes always carry it and every read or delete
passes it through :meth:`ChromaDBProvider._translate_filter`, which turns a
flat filter dict into a strict ``$and`` of exact matches.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.  A version mismatch
# between ChromaDB's bundled PostHog client and the installed one raises
# "capture() takes 1 positional argument" errors on every call.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider, MetadataFilter
from src.models.rag import META_TEXT, QueryMatch, VectorRecord, VectorStats
from src.utils.errors import VectorStoreError

logger = structlog.get_logger(logger_name=__name__)


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    botforge always passes pre-computed embeddings, so ChromaDB must not
    download and load its default ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "botforge uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB with local persistence.

    Parameters
    ----------
    embedding_provider:
        Used only to report (and validate) the index dimension.
    persist_directory:
        On-disk location of the ChromaDB database.
    collection_name:
        Collection shared by all bots.
    upsert_batch_size, upsert_batch_delay:
        Records per upsert call and the pause (seconds) between calls.
    delete_candidate_limit, delete_batch_size, delete_batch_delay:
        Cap on ids resolved per filtered delete, ids per delete call and
        the pause between delete calls.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "botforge_vectors",
        upsert_batch_size: int = 100,
        upsert_batch_delay: float = 0.1,
        delete_candidate_limit: int = 10_000,
        delete_batch_size: int = 1000,
        delete_batch_delay: float = 0.1,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._upsert_batch_size = upsert_batch_size
        self._upsert_batch_delay = upsert_batch_delay
        self._delete_candidate_limit = delete_candidate_limit
        self._delete_batch_size = delete_batch_size
        self._delete_batch_delay = delete_batch_delay

        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # Collections created by an older ChromaDB with the default
        # embedding function refuse a different one; reopen without it.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

        self._validate_embedding_dimensions()

    # ------------------------------------------------------------------
    # Startup validation
    # ------------------------------------------------------------------

    def _validate_embedding_dimensions(self) -> None:
        """Fail fast when stored vectors do not match the provider's dimension."""
        try:
            if self._collection.count() == 0:
                return

            sample = self._collection.peek(limit=1)
            embeddings = sample.get("embeddings") if sample else None
            if embeddings is None or len(embeddings) == 0:
                return

            stored_dim = len(embeddings[0])
            expected_dim = self._embedding_provider.get_dimension()
            if stored_dim != expected_dim:
                logger.error(
                    "embedding_dimension_mismatch",
                    stored_dim=stored_dim,
                    expected_dim=expected_dim,
                    provider=self._embedding_provider.get_provider_name(),
                )
                raise VectorStoreError(
                    message=(
                        f"Embedding dimension mismatch: index has {stored_dim}-dim vectors "
                        f"but provider '{self._embedding_provider.get_provider_name()}' "
                        f"produces {expected_dim}-dim vectors."
                    ),
                    provider_name="chromadb",
                )
            logger.info("embedding_dimension_validated", dimension=stored_dim)
        except VectorStoreError:
            raise
        except Exception as exc:
            logger.warning("embedding_dimension_check_skipped", error=str(exc))

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def upsert(self, records: list[VectorRecord]) -> int:
        """Write *records* in batches; the first failing batch aborts the rest."""
        written = 0
        for start in range(0, len(records), self._upsert_batch_size):
            if start > 0 and self._upsert_batch_delay > 0:
                await asyncio.sleep(self._upsert_batch_delay)

            batch = records[start : start + self._upsert_batch_size]
            try:
                self._collection.upsert(
                    ids=[record.id for record in batch],
                    embeddings=[record.values for record in batch],
                    documents=[str(record.metadata.get(META_TEXT, "")) for record in batch],
                    metadatas=[self._clean_metadata(record.metadata) for record in batch],
                )
            except Exception as exc:
                logger.error(
                    "chromadb_upsert_failed",
                    batch_start=start,
                    written=written,
                    error=str(exc),
                )
                raise VectorStoreError(
                    message=f"ChromaDB upsert failed after {written} records: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            written += len(batch)

        logger.info("chromadb_upsert", records=written)
        return written

    async def query(
        self,
        vector: list[float],
        filter: MetadataFilter,
        top_k: int,
    ) -> list[QueryMatch]:
        """Return the *top_k* closest records whose metadata matches *filter*."""
        if top_k <= 0:
            return []
        try:
            result = self._collection.query(
                query_embeddings=[vector],
                n_results=top_k,
                where=self._translate_filter(filter),
                include=["metadatas", "distances"],
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = (result.get("ids") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        matches: list[QueryMatch] = []
        for record_id, metadata, distance in zip(ids, metadatas, distances):
            # Cosine distance -> similarity in [0, 1].
            score = max(0.0, min(1.0, 1.0 - float(distance)))
            matches.append(QueryMatch(id=record_id, score=score, metadata=dict(metadata or {})))

        logger.debug("chromadb_query", top_k=top_k, results=len(matches))
        return matches

    async def delete_by_filter(self, filter: MetadataFilter) -> int:
        """Resolve matching ids, then delete them in batches."""
        where = self._translate_filter(filter)
        try:
            existing = self._collection.get(
                where=where,
                limit=self._delete_candidate_limit,
                include=[],
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB delete lookup failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids: list[str] = list(existing.get("ids") or [])
        if not ids:
            logger.info("chromadb_delete_nothing_matched", filter=filter)
            return 0

        deleted = 0
        for start in range(0, len(ids), self._delete_batch_size):
            if start > 0 and self._delete_batch_delay > 0:
                await asyncio.sleep(self._delete_batch_delay)
            batch = ids[start : start + self._delete_batch_size]
            try:
                self._collection.delete(ids=batch)
            except Exception as exc:
                raise VectorStoreError(
                    message=f"ChromaDB delete failed after {deleted} records: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            deleted += len(batch)

        logger.info("chromadb_delete_by_filter", filter=filter, deleted=deleted)
        return deleted

    async def stats(self, filter: MetadataFilter | None = None) -> VectorStats:
        try:
            if filter:
                matched = self._collection.get(where=self._translate_filter(filter), include=[])
                count = len(matched.get("ids") or [])
            else:
                count = self._collection.count()
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB stats failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return VectorStats(
            vector_count=count,
            dimension=self._embedding_provider.get_dimension(),
        )

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _clean_metadata(metadata: dict[str, Any]) -> dict[str, str | int | float | bool]:
        """Drop ``None`` values and stringify anything ChromaDB cannot store."""
        cleaned: dict[str, str | int | float | bool] = {}
        for key, value in metadata.items():
            if value is None:
                continue
            if isinstance(value, (str, int, float, bool)):
                cleaned[key] = value
            else:
                cleaned[key] = str(value)
        return cleaned

    @staticmethod
    def _translate_filter(filter: MetadataFilter | None) -> dict[str, Any] | None:
        """Translate a flat filter dict to a ChromaDB ``where`` clause.

        - scalar value -> exact match ``{key: value}``
        - list value   -> ``{key: {"$in": [...]}}``
        - several keys -> ``{"$and": [...]}``
        """
        if not filter:
            return None

        clauses: list[dict[str, Any]] = []
        for key, value in filter.items():
            if isinstance(value, (list, tuple, set)):
                clauses.append({key: {"$in": list(value)}})
            else:
                clauses.append({key: value})

        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}
