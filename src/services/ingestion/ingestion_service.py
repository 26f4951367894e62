"""Orchestrator for the training-data ingestion pipeline.

Pipeline stages: **extract -> chunk -> dedupe -> embed -> store**.

The :class:`IngestionService` coordinates its collaborators (content
extractor, chunker, embedding provider, vector store, document store and
website crawler) without any of them knowing about each other.  Each
public ``ingest_*`` method drives one training record through its status
machine:

    SourceDocument:  pending -> processing -> chunking -> embedding -> completed
    WebsiteCrawl:    pending -> crawling   -> embedding -> completed

Embedding and upserting happen in sequential batches.  After every batch
the record's ``processed_chunk_count`` and ``progress`` are persisted, so
readers can watch a run advance.  A run that fails part-way is marked
``error`` / ``failed`` with its counters intact; vectors it already wrote
are kept and can be removed with an explicit delete.

Every run returns an :class:`~src.models.training.IngestionOutcome`
instead of raising, so batch callers can collect per-file failures.  An
unexpected exception after the record is first saved still ends the run
as ``error`` / ``failed`` with kind ``internal``.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, NamedTuple

import structlog

from src.interfaces.document_store import IDocumentStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import (
    META_CHATBOT_ID,
    META_DOCUMENT_ID,
    META_PAGE,
    META_SOURCE,
    META_SOURCE_TYPE,
    META_TEXT,
    META_TITLE,
    META_WEBSITE_CRAWL_ID,
    Chunk,
    ChunkStatus,
    SourceType,
    TextUnit,
    VectorRecord,
)
from src.models.training import (
    TERMINAL_CRAWL_STATUSES,
    TERMINAL_DOCUMENT_STATUSES,
    CrawlErrorKind,
    CrawlStatus,
    DocumentStatus,
    IngestionErr,
    IngestionErrorKind,
    IngestionOk,
    IngestionOutcome,
    IngestionProgress,
    SourceDocument,
    WebsiteCrawl,
    advance,
    progress_percent,
)
from src.services.ingestion.chunker import RecursiveTextChunker
from src.services.ingestion.content_extractor import ContentExtractor, FileSource, WebPageSource
from src.services.ingestion.deduplicator import dedupe
from src.services.ingestion.website_crawler import CrawledPage, WebsiteCrawler
from src.utils.errors import (
    BotForgeError,
    CrawlConnectivityError,
    CrawlError,
    CrawlTimeoutError,
    EmbeddingServiceError,
    EmptyContentError,
    ExtractionError,
    NotFoundError,
    VectorStoreError,
)
from src.utils.hashing import vector_id

logger = structlog.get_logger(logger_name=__name__)

# Called with the running processed-chunk count after every stored batch.
BatchCheckpoint = Callable[[int], Awaitable[None]]
# Builds the vector metadata for one chunk (without chatbotId/text).
MetadataBuilder = Callable[[Chunk], dict[str, Any]]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def normalize_website_url(url: str) -> str:
    """Key under which a website's crawl record is stored (trimmed, lower-cased)."""
    return url.strip().lower()


class BatchFailure(NamedTuple):
    """Why the embed/store loop stopped early."""

    kind: IngestionErrorKind
    message: str


class IngestionService:
    """Drives documents and websites through extraction, embedding and storage.

    Parameters
    ----------
    extractor:
        Converts uploaded files and fetched pages to text units.
    chunker:
        Splits units into overlapping chunks.
    embedding_provider:
        Generates embedding vectors for chunk text.
    vector_store:
        Shared vector index; every record carries the owning ``chatbotId``.
    document_store:
        Persists training records and bot aggregate counters.
    crawler:
        Website crawler used by :meth:`ingest_website`.
    embedding_batch_size:
        Chunks per embed/upsert round (one progress checkpoint each).
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        chunker: RecursiveTextChunker,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        document_store: IDocumentStore,
        crawler: WebsiteCrawler | None = None,
        embedding_batch_size: int = 20,
        default_crawl_depth: int = 1,
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._document_store = document_store
        self._crawler = crawler
        self._embedding_batch_size = max(1, embedding_batch_size)
        self._default_crawl_depth = default_crawl_depth

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest_document(
        self,
        bot_id: str,
        content: str,
        metadata: dict[str, Any],
    ) -> IngestionOutcome:
        """Ingest one uploaded file given as base64 *content*.

        *metadata* carries ``originalName``, ``mimeType`` and ``size`` as
        sent by the upload form.
        """
        await self._require_bot(bot_id)

        original_name = str(metadata.get("originalName") or "untitled")
        mime_type = str(metadata.get("mimeType") or "")
        try:
            payload = base64.b64decode(content, validate=True)
        except (binascii.Error, ValueError):
            payload = None

        document = SourceDocument(
            chatbot_id=bot_id,
            original_name=original_name,
            mime_type=mime_type or "application/octet-stream",
            size=int(metadata.get("size") or (len(payload) if payload else 0)),
        )
        document = await self._document_store.save_document(document)
        logger.info(
            "document_ingestion_started",
            bot_id=bot_id,
            document_id=document.id,
            original_name=original_name,
            mime_type=mime_type,
        )

        if payload is None:
            return await self._fail_document(
                document, "extraction", "Invalid upload: content is not valid base64"
            )
        return await self._run_document(
            document, FileSource(payload=payload, original_name=original_name, mime_type=mime_type)
        )

    async def ingest_text(self, bot_id: str, text: str, name: str = "pasted-text.txt") -> IngestionOutcome:
        """Ingest pasted plain text as a document named *name*."""
        encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
        return await self.ingest_document(
            bot_id,
            encoded,
            {"originalName": name, "mimeType": "text/plain", "size": len(text.encode("utf-8"))},
        )

    async def ingest_documents(
        self,
        bot_id: str,
        files: list[dict[str, Any]],
    ) -> list[IngestionOutcome]:
        """Ingest several files one after another.

        Each entry is ``{"content": <base64>, "metadata": {...}}``.  A failed
        file is recorded on its own document and does not stop the rest.
        """
        await self._require_bot(bot_id)
        outcomes: list[IngestionOutcome] = []
        for entry in files:
            outcome = await self.ingest_document(
                bot_id,
                str(entry.get("content") or ""),
                dict(entry.get("metadata") or {}),
            )
            outcomes.append(outcome)

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        logger.info(
            "document_batch_finished",
            bot_id=bot_id,
            files=len(files),
            succeeded=len(files) - failed,
            failed=failed,
        )
        return outcomes

    async def ingest_website(
        self,
        bot_id: str,
        url: str,
        max_depth: int | None = None,
    ) -> IngestionOutcome:
        """Crawl *url* and ingest every page found."""
        if self._crawler is None:
            raise BotForgeError(message="Website ingestion is not configured")
        await self._require_bot(bot_id)

        depth = self._default_crawl_depth if max_depth is None else max_depth
        normalized = normalize_website_url(url)
        previous = await self._document_store.find_crawl_by_url(bot_id, normalized)
        if previous is not None:
            # A new attempt replaces the old record and every vector tagged with it.
            removed = await self._vector_store.delete_by_filter(
                {META_CHATBOT_ID: bot_id, META_WEBSITE_CRAWL_ID: previous.id}
            )
            await self._document_store.delete_crawl(previous.id)
            logger.info(
                "previous_crawl_replaced",
                bot_id=bot_id,
                crawl_id=previous.id,
                vectors_removed=removed,
            )

        crawl = await self._document_store.save_crawl(
            WebsiteCrawl(chatbot_id=bot_id, url=normalized, max_depth=depth)
        )
        logger.info("website_ingestion_started", bot_id=bot_id, crawl_id=crawl.id, url=normalized)
        return await self._run_website(crawl, url.strip(), depth)

    # ------------------------------------------------------------------
    # Document runs
    # ------------------------------------------------------------------

    async def _run_document(self, document: SourceDocument, source: FileSource) -> IngestionOutcome:
        try:
            return await self._process_document(document, source)
        except Exception as exc:
            logger.error(
                "document_ingestion_crashed",
                bot_id=document.chatbot_id,
                document_id=document.id,
                error=str(exc),
                exc_info=True,
            )
            latest = await self._document_store.get_document(document.id) or document
            return await self._fail_document(latest, "internal", _describe(exc))

    async def _process_document(self, document: SourceDocument, source: FileSource) -> IngestionOutcome:
        document = await self._document_store.save_document(
            advance(document, DocumentStatus.PROCESSING, processing_start_time=_utcnow())
        )

        try:
            units = await self._extractor.extract(source)
        except ExtractionError as exc:
            return await self._fail_document(document, "extraction", exc.message)

        chunks = dedupe(list(self._chunker.split(units)))
        document = await self._document_store.save_document(
            advance(document, DocumentStatus.CHUNKING, chunk_count=len(chunks))
        )
        document = await self._document_store.save_document(
            advance(document, DocumentStatus.EMBEDDING)
        )

        current = document

        async def checkpoint(processed: int) -> None:
            nonlocal current
            current = await self._document_store.save_document(
                current.model_copy(
                    update={
                        "processed_chunk_count": processed,
                        "progress": progress_percent(processed, len(chunks)),
                    }
                )
            )

        def metadata_for(chunk: Chunk) -> dict[str, Any]:
            return {
                META_SOURCE_TYPE: SourceType.DOCUMENT.value,
                META_SOURCE: document.original_name,
                META_DOCUMENT_ID: document.id,
                META_PAGE: chunk.page_index + 1,
            }

        stored, failure = await self._embed_and_store(document.chatbot_id, chunks, metadata_for, checkpoint)
        if failure is not None:
            return await self._fail_document(current, failure.kind, failure.message)

        document = await self._document_store.save_document(
            advance(
                current,
                DocumentStatus.COMPLETED,
                processed_chunk_count=len(chunks),
                progress=100,
                processing_end_time=_utcnow(),
            )
        )
        await self._document_store.recompute_training_summary(document.chatbot_id)
        logger.info(
            "document_ingestion_completed",
            bot_id=document.chatbot_id,
            document_id=document.id,
            chunks=len(chunks),
        )
        return IngestionOk(
            record_id=document.id,
            progress=IngestionProgress(
                chunk_count=document.chunk_count,
                processed_chunk_count=document.processed_chunk_count,
            ),
            chunks=stored,
        )

    async def _fail_document(
        self,
        document: SourceDocument,
        kind: IngestionErrorKind,
        message: str,
    ) -> IngestionErr:
        if document.status not in TERMINAL_DOCUMENT_STATUSES:
            document = await self._document_store.save_document(
                advance(document, DocumentStatus.ERROR, error=message, processing_end_time=_utcnow())
            )
        logger.warning(
            "document_ingestion_failed",
            bot_id=document.chatbot_id,
            document_id=document.id,
            kind=kind,
            error=message,
            processed_chunks=document.processed_chunk_count,
            chunk_count=document.chunk_count,
        )
        return IngestionErr(
            record_id=document.id,
            kind=kind,
            message=message,
            progress=IngestionProgress(
                chunk_count=document.chunk_count,
                processed_chunk_count=document.processed_chunk_count,
            ),
        )

    # ------------------------------------------------------------------
    # Website runs
    # ------------------------------------------------------------------

    async def _run_website(self, crawl: WebsiteCrawl, url: str, depth: int) -> IngestionOutcome:
        try:
            return await self._process_website(crawl, url, depth)
        except Exception as exc:
            logger.error(
                "website_ingestion_crashed",
                bot_id=crawl.chatbot_id,
                crawl_id=crawl.id,
                error=str(exc),
                exc_info=True,
            )
            latest = await self._document_store.get_crawl(crawl.id) or crawl
            return await self._fail_crawl(latest, "internal", _describe(exc), CrawlErrorKind.OTHER)

    async def _process_website(self, crawl: WebsiteCrawl, url: str, depth: int) -> IngestionOutcome:
        crawl = await self._document_store.save_crawl(advance(crawl, CrawlStatus.CRAWLING))

        try:
            pages = await self._crawler.crawl(url, max_depth=depth)  # type: ignore[union-attr]
        except CrawlTimeoutError as exc:
            return await self._fail_crawl(crawl, "crawl_timeout", exc.message, CrawlErrorKind.TIMEOUT)
        except CrawlConnectivityError as exc:
            return await self._fail_crawl(
                crawl, "crawl_connectivity", exc.message, CrawlErrorKind.CONNECTIVITY
            )
        except CrawlError as exc:
            return await self._fail_crawl(crawl, "crawl", exc.message, CrawlErrorKind.OTHER)

        units, kept_pages = await self._extract_pages(pages)
        if not units:
            return await self._fail_crawl(
                crawl,
                "extraction",
                f"No text content could be extracted from {url}",
                CrawlErrorKind.OTHER,
            )

        chunks = dedupe(list(self._chunker.split(units)))
        crawl = await self._document_store.save_crawl(
            advance(
                crawl,
                CrawlStatus.EMBEDDING,
                pages_processed=len(kept_pages),
                chunk_count=len(chunks),
            )
        )

        current = crawl

        async def checkpoint(processed: int) -> None:
            nonlocal current
            current = await self._document_store.save_crawl(
                current.model_copy(
                    update={
                        "processed_chunk_count": processed,
                        "progress": progress_percent(processed, len(chunks)),
                    }
                )
            )

        def metadata_for(chunk: Chunk) -> dict[str, Any]:
            page = kept_pages[chunk.page_index]
            return {
                META_SOURCE_TYPE: SourceType.WEBSITE.value,
                META_SOURCE: page.url,
                META_WEBSITE_CRAWL_ID: crawl.id,
                META_TITLE: page.title,
            }

        stored, failure = await self._embed_and_store(crawl.chatbot_id, chunks, metadata_for, checkpoint)
        if failure is not None:
            return await self._fail_crawl(current, failure.kind, failure.message, CrawlErrorKind.OTHER)

        crawl = await self._document_store.save_crawl(
            advance(
                current,
                CrawlStatus.COMPLETED,
                processed_chunk_count=len(chunks),
                progress=100,
                last_crawled=_utcnow(),
            )
        )
        await self._document_store.recompute_training_summary(crawl.chatbot_id)
        logger.info(
            "website_ingestion_completed",
            bot_id=crawl.chatbot_id,
            crawl_id=crawl.id,
            pages=crawl.pages_processed,
            chunks=len(chunks),
        )
        return IngestionOk(
            record_id=crawl.id,
            progress=IngestionProgress(
                chunk_count=crawl.chunk_count,
                processed_chunk_count=crawl.processed_chunk_count,
                pages_processed=crawl.pages_processed,
            ),
            chunks=stored,
        )

    async def _extract_pages(
        self,
        pages: list[CrawledPage],
    ) -> tuple[list[TextUnit], list[CrawledPage]]:
        """Extract one unit per page, re-indexed so chunks map back to their page."""
        units: list[TextUnit] = []
        kept: list[CrawledPage] = []
        for page in pages:
            try:
                extracted = await self._extractor.extract(
                    WebPageSource(url=page.url, html=page.html, title=page.title)
                )
            except EmptyContentError:
                logger.debug("crawled_page_empty", url=page.url)
                continue
            index = len(kept)
            kept.append(page)
            units.extend(unit.model_copy(update={"page_index": index}) for unit in extracted)
        return units, kept

    async def _fail_crawl(
        self,
        crawl: WebsiteCrawl,
        kind: IngestionErrorKind,
        message: str,
        error_kind: CrawlErrorKind,
    ) -> IngestionErr:
        if crawl.status not in TERMINAL_CRAWL_STATUSES:
            crawl = await self._document_store.save_crawl(
                advance(
                    crawl,
                    CrawlStatus.FAILED,
                    error=message,
                    error_kind=error_kind,
                    last_crawled=_utcnow(),
                )
            )
        logger.warning(
            "website_ingestion_failed",
            bot_id=crawl.chatbot_id,
            crawl_id=crawl.id,
            url=crawl.url,
            kind=kind,
            error=message,
        )
        return IngestionErr(
            record_id=crawl.id,
            kind=kind,
            message=message,
            progress=IngestionProgress(
                chunk_count=crawl.chunk_count,
                processed_chunk_count=crawl.processed_chunk_count,
                pages_processed=crawl.pages_processed,
            ),
        )

    # ------------------------------------------------------------------
    # Shared embed -> store loop
    # ------------------------------------------------------------------

    async def _embed_and_store(
        self,
        bot_id: str,
        chunks: list[Chunk],
        metadata_for: MetadataBuilder,
        checkpoint: BatchCheckpoint,
    ) -> tuple[list[Chunk], BatchFailure | None]:
        """Embed and upsert *chunks* batch by batch, checkpointing after each.

        Returns the chunks stored so far and, when the loop stopped early,
        the failure that stopped it.  Batches stored before a failure stay
        stored.
        """
        stored: list[Chunk] = []
        for start in range(0, len(chunks), self._embedding_batch_size):
            batch = chunks[start : start + self._embedding_batch_size]
            try:
                vectors = await self._embedding_provider.embed([chunk.content for chunk in batch])
            except EmbeddingServiceError as exc:
                logger.warning("embedding_batch_failed", bot_id=bot_id, processed=len(stored), error=str(exc))
                return stored, BatchFailure("embedding", exc.message)

            embedded = [
                chunk.model_copy(
                    update={
                        "embedding": values,
                        "vector_id": vector_id(chunk.content, bot_id),
                        "status": ChunkStatus.EMBEDDED,
                    }
                )
                for chunk, values in zip(batch, vectors)
            ]
            records = [
                VectorRecord(
                    id=chunk.vector_id or "",
                    values=chunk.embedding or [],
                    metadata={
                        **metadata_for(chunk),
                        META_CHATBOT_ID: bot_id,
                        META_TEXT: chunk.content,
                    },
                )
                for chunk in embedded
            ]

            try:
                await self._vector_store.upsert(records)
            except VectorStoreError as exc:
                logger.warning("upsert_batch_failed", bot_id=bot_id, processed=len(stored), error=str(exc))
                return stored, BatchFailure("vector_store", exc.message)

            stored.extend(chunk.model_copy(update={"status": ChunkStatus.STORED}) for chunk in embedded)
            await checkpoint(len(stored))
            logger.debug(
                "ingestion_batch_stored",
                bot_id=bot_id,
                batch_size=len(batch),
                processed=len(stored),
                total=len(chunks),
            )
        return stored, None

    async def _require_bot(self, bot_id: str) -> None:
        if await self._document_store.get_bot(bot_id) is None:
            raise NotFoundError(message=f"Bot '{bot_id}' not found")
