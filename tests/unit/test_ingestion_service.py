"""Unit tests for IngestionService: status machine, batching and failures."""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from src.models.bot import Bot
from src.models.rag import (
    META_CHATBOT_ID,
    META_DOCUMENT_ID,
    META_PAGE,
    META_SOURCE,
    META_SOURCE_TYPE,
    META_TEXT,
    META_WEBSITE_CRAWL_ID,
    ChunkStatus,
)
from src.models.training import CrawlErrorKind, CrawlStatus, DocumentStatus, WebsiteCrawl
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.services.ingestion.chunker import RecursiveTextChunker
from src.services.ingestion.content_extractor import ContentExtractor
from src.services.ingestion.ingestion_service import IngestionService, normalize_website_url
from src.services.ingestion.website_crawler import CrawledPage, WebsiteCrawler
from src.utils.errors import (
    BotForgeError,
    CrawlConnectivityError,
    CrawlTimeoutError,
    EmbeddingServiceError,
    NotFoundError,
    VectorStoreError,
)
from src.utils.hashing import vector_id

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _distinct_text(words: int = 850) -> str:
    """Space-separated unique words, so no two chunks share content."""
    return " ".join(f"w{i:04d}" for i in range(words))


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _service(
    embedding_provider,
    vector_store,
    document_store,
    crawler=None,
    batch_size: int = 20,
) -> IngestionService:
    return IngestionService(
        extractor=ContentExtractor(),
        chunker=RecursiveTextChunker(chunk_size=2048, overlap=400),
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        document_store=document_store,
        crawler=crawler,
        embedding_batch_size=batch_size,
    )


def _saved_statuses(mock_save: AsyncMock) -> list:
    """Collapse the status of every saved record into distinct consecutive steps."""
    statuses: list = []
    for call in mock_save.await_args_list:
        status = call.args[0].status
        if not statuses or statuses[-1] != status:
            statuses.append(status)
    return statuses


def _upserted(mock_vector_store) -> list:
    return [record for call in mock_vector_store.upsert.await_args_list for record in call.args[0]]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestIngestDocument:
    @pytest.mark.asyncio
    async def test_plain_text_document_completes(
        self, mock_embedding_provider, mock_vector_store, mock_document_store, long_plain_text: str
    ) -> None:
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store)

        outcome = await service.ingest_document(
            "bot-a", _b64(long_plain_text), {"originalName": "policy.txt", "mimeType": "text/plain"}
        )

        assert outcome.ok is True
        assert outcome.progress.chunk_count >= 1
        assert outcome.progress.processed_chunk_count == outcome.progress.chunk_count
        assert _saved_statuses(mock_document_store.save_document) == [
            DocumentStatus.PENDING,
            DocumentStatus.PROCESSING,
            DocumentStatus.CHUNKING,
            DocumentStatus.EMBEDDING,
            DocumentStatus.COMPLETED,
        ]
        mock_document_store.recompute_training_summary.assert_awaited_once_with("bot-a")

    @pytest.mark.asyncio
    async def test_5000_characters_become_three_stored_records(
        self, mock_embedding_provider, mock_vector_store, mock_document_store
    ) -> None:
        text = _distinct_text(834)[:5000]
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store)

        outcome = await service.ingest_text("bot-a", text, name="faq.txt")

        assert outcome.ok is True
        assert outcome.progress.chunk_count == 3
        records = _upserted(mock_vector_store)
        assert len(records) == 3
        assert [chunk.status for chunk in outcome.chunks] == [ChunkStatus.STORED] * 3
        assert [chunk.vector_id for chunk in outcome.chunks] == [record.id for record in records]

    @pytest.mark.asyncio
    async def test_vector_records_carry_tenant_and_source_metadata(
        self, mock_embedding_provider, mock_vector_store, mock_document_store, refund_policy_text: str
    ) -> None:
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store)

        outcome = await service.ingest_text("bot-a", refund_policy_text, name="refunds.txt")

        records = _upserted(mock_vector_store)
        assert records
        for record in records:
            assert record.metadata[META_CHATBOT_ID] == "bot-a"
            assert record.metadata[META_SOURCE_TYPE] == "document"
            assert record.metadata[META_SOURCE] == "refunds.txt"
            assert record.metadata[META_DOCUMENT_ID] == outcome.record_id
            assert record.metadata[META_PAGE] == 1
            assert record.id == vector_id(record.metadata[META_TEXT], "bot-a")
            assert record.values == [0.1, 0.2, 0.3, 0.4]

    @pytest.mark.asyncio
    async def test_batches_checkpoint_progress(
        self, mock_embedding_provider, mock_vector_store, mock_document_store
    ) -> None:
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store, batch_size=1)

        outcome = await service.ingest_text("bot-a", _distinct_text(834)[:5000])

        assert mock_vector_store.upsert.await_count == 3
        progress_values = [
            call.args[0].progress
            for call in mock_document_store.save_document.await_args_list
            if call.args[0].status == DocumentStatus.EMBEDDING
        ]
        assert progress_values == sorted(progress_values)
        assert 33 in progress_values and 67 in progress_values
        assert outcome.progress.processed_chunk_count == 3

    @pytest.mark.asyncio
    async def test_embedding_failure_keeps_partial_progress(
        self, mock_embedding_provider, mock_vector_store, mock_document_store
    ) -> None:
        calls = {"count": 0}

        async def _flaky(texts: list[str]) -> list[list[float]]:
            calls["count"] += 1
            if calls["count"] > 1:
                raise EmbeddingServiceError(message="quota exceeded", provider_name="mock")
            return [[0.1, 0.2, 0.3, 0.4] for _ in texts]

        mock_embedding_provider.embed = AsyncMock(side_effect=_flaky)
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store, batch_size=1)

        outcome = await service.ingest_text("bot-a", _distinct_text(834)[:5000])

        assert outcome.ok is False
        assert outcome.kind == "embedding"
        assert outcome.progress.chunk_count == 3
        assert outcome.progress.processed_chunk_count == 1
        assert len(_upserted(mock_vector_store)) == 1
        last_saved = mock_document_store.save_document.await_args_list[-1].args[0]
        assert last_saved.status == DocumentStatus.ERROR
        assert last_saved.error == "quota exceeded"
        mock_document_store.recompute_training_summary.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_vector_store_failure(
        self, mock_embedding_provider, mock_vector_store, mock_document_store, refund_policy_text: str
    ) -> None:
        mock_vector_store.upsert = AsyncMock(
            side_effect=VectorStoreError(message="disk full", provider_name="mock")
        )
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store)

        outcome = await service.ingest_text("bot-a", refund_policy_text)

        assert outcome.ok is False
        assert outcome.kind == "vector_store"
        assert outcome.progress.processed_chunk_count == 0

    @pytest.mark.asyncio
    async def test_unsupported_format_is_extraction_error(
        self, mock_embedding_provider, mock_vector_store, mock_document_store
    ) -> None:
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store)

        outcome = await service.ingest_document(
            "bot-a", _b64("GIF89a"), {"originalName": "logo.gif", "mimeType": "image/gif"}
        )

        assert outcome.ok is False
        assert outcome.kind == "extraction"
        mock_embedding_provider.embed.assert_not_awaited()
        mock_vector_store.upsert.assert_not_awaited()
        assert mock_document_store.save_document.await_args_list[-1].args[0].status == DocumentStatus.ERROR

    @pytest.mark.asyncio
    async def test_invalid_base64_is_extraction_error(
        self, mock_embedding_provider, mock_vector_store, mock_document_store
    ) -> None:
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store)

        outcome = await service.ingest_document(
            "bot-a", "not base64 !!", {"originalName": "a.txt", "mimeType": "text/plain"}
        )

        assert outcome.ok is False
        assert outcome.kind == "extraction"
        assert "base64" in outcome.message

    @pytest.mark.asyncio
    async def test_unexpected_error_marks_document_failed(
        self, mock_embedding_provider, mock_vector_store, mock_document_store
    ) -> None:
        calls = {"count": 0}

        async def _breaks_on_second_batch(texts: list[str]) -> list[list[float]]:
            calls["count"] += 1
            if calls["count"] > 1:
                raise RuntimeError("provider blew up")
            return [[0.1, 0.2, 0.3, 0.4] for _ in texts]

        mock_embedding_provider.embed = AsyncMock(side_effect=_breaks_on_second_batch)
        mock_document_store.get_document = AsyncMock(
            side_effect=lambda _id: mock_document_store.save_document.await_args_list[-1].args[0]
        )
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store, batch_size=1)

        outcome = await service.ingest_text("bot-a", _distinct_text(834)[:5000])

        assert outcome.ok is False
        assert outcome.kind == "internal"
        assert outcome.message == "provider blew up"
        assert outcome.progress.processed_chunk_count == 1
        last_saved = mock_document_store.save_document.await_args_list[-1].args[0]
        assert last_saved.status == DocumentStatus.ERROR
        assert last_saved.processed_chunk_count == 1
        assert last_saved.error == "provider blew up"

    @pytest.mark.asyncio
    async def test_missing_bot(self, mock_embedding_provider, mock_vector_store, mock_document_store) -> None:
        mock_document_store.get_bot = AsyncMock(return_value=None)
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store)

        with pytest.raises(NotFoundError):
            await service.ingest_text("nope", "hello")
        mock_document_store.save_document.assert_not_awaited()


class TestIngestDocuments:
    @pytest.mark.asyncio
    async def test_one_bad_file_does_not_stop_the_batch(
        self, mock_embedding_provider, mock_vector_store, mock_document_store, refund_policy_text: str
    ) -> None:
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store)
        files = [
            {"content": _b64(refund_policy_text), "metadata": {"originalName": "a.txt", "mimeType": "text/plain"}},
            {"content": _b64("binary"), "metadata": {"originalName": "b.exe", "mimeType": "application/x-msdownload"}},
            {"content": _b64("Shipping is free."), "metadata": {"originalName": "c.md", "mimeType": "text/markdown"}},
        ]

        outcomes = await service.ingest_documents("bot-a", files)

        assert [outcome.ok for outcome in outcomes] == [True, False, True]
        assert outcomes[1].kind == "extraction"

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_stop_the_batch(
        self, mock_embedding_provider, mock_vector_store, mock_document_store, refund_policy_text: str
    ) -> None:
        mock_embedding_provider.embed = AsyncMock(side_effect=RuntimeError("provider blew up"))
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store)
        files = [
            {"content": _b64(refund_policy_text), "metadata": {"originalName": "a.txt", "mimeType": "text/plain"}},
            {"content": _b64("Shipping is free."), "metadata": {"originalName": "b.txt", "mimeType": "text/plain"}},
        ]

        outcomes = await service.ingest_documents("bot-a", files)

        assert [outcome.ok for outcome in outcomes] == [False, False]
        assert {outcome.kind for outcome in outcomes} == {"internal"}
        saved = [call.args[0] for call in mock_document_store.save_document.await_args_list]
        for name in ("a.txt", "b.txt"):
            assert [doc.status for doc in saved if doc.original_name == name][-1] == DocumentStatus.ERROR


# ---------------------------------------------------------------------------
# Websites
# ---------------------------------------------------------------------------


def _mock_crawler(pages=None, error: Exception | None = None) -> MagicMock:
    crawler = MagicMock(spec=WebsiteCrawler)
    if error is not None:
        crawler.crawl = AsyncMock(side_effect=error)
    else:
        crawler.crawl = AsyncMock(return_value=pages or [])
    return crawler


_PAGES = [
    CrawledPage(
        url="https://example.com",
        title="Home",
        html="<html><head><title>Home</title></head><body><p>We ship worldwide within five days.</p></body></html>",
    ),
    CrawledPage(
        url="https://example.com/refunds",
        title="Refunds",
        html="<html><body><p>Refunds are accepted within 30 days of purchase.</p></body></html>",
        depth=1,
    ),
]


class TestIngestWebsite:
    @pytest.mark.asyncio
    async def test_pages_are_ingested(
        self, mock_embedding_provider, mock_vector_store, mock_document_store
    ) -> None:
        crawler = _mock_crawler(_PAGES)
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store, crawler)

        outcome = await service.ingest_website("bot-a", "  https://Example.com ", max_depth=1)

        assert outcome.ok is True
        assert outcome.progress.pages_processed == 2
        crawler.crawl.assert_awaited_once_with("https://Example.com", max_depth=1)

        records = _upserted(mock_vector_store)
        assert {record.metadata[META_SOURCE] for record in records} == {
            "https://example.com",
            "https://example.com/refunds",
        }
        for record in records:
            assert record.metadata[META_SOURCE_TYPE] == "website"
            assert record.metadata[META_WEBSITE_CRAWL_ID] == outcome.record_id
            assert record.metadata[META_CHATBOT_ID] == "bot-a"

        first_saved = mock_document_store.save_crawl.await_args_list[0].args[0]
        assert first_saved.url == "https://example.com"
        last_saved = mock_document_store.save_crawl.await_args_list[-1].args[0]
        assert last_saved.status == CrawlStatus.COMPLETED
        assert last_saved.last_crawled is not None
        mock_document_store.recompute_training_summary.assert_awaited_once_with("bot-a")

    @pytest.mark.asyncio
    async def test_recrawl_replaces_previous_record(
        self, mock_embedding_provider, mock_vector_store, mock_document_store
    ) -> None:
        previous = WebsiteCrawl(chatbot_id="bot-a", url="https://example.com", status=CrawlStatus.FAILED)
        mock_document_store.find_crawl_by_url = AsyncMock(return_value=previous)
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store, _mock_crawler(_PAGES))

        await service.ingest_website("bot-a", "https://example.com")

        mock_document_store.delete_crawl.assert_awaited_once_with(previous.id)
        mock_vector_store.delete_by_filter.assert_awaited_once_with(
            {META_CHATBOT_ID: "bot-a", META_WEBSITE_CRAWL_ID: previous.id}
        )
        new_ids = {record.metadata[META_WEBSITE_CRAWL_ID] for record in _upserted(mock_vector_store)}
        assert previous.id not in new_ids

    @pytest.mark.asyncio
    async def test_crawl_timeout(self, mock_embedding_provider, mock_vector_store, mock_document_store) -> None:
        crawler = _mock_crawler(error=CrawlTimeoutError(message="Website crawling timed out after 2 minutes"))
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store, crawler)

        outcome = await service.ingest_website("bot-a", "https://slow.example.com")

        assert outcome.ok is False
        assert outcome.kind == "crawl_timeout"
        assert outcome.message == "Website crawling timed out after 2 minutes"
        mock_vector_store.upsert.assert_not_awaited()
        last_saved = mock_document_store.save_crawl.await_args_list[-1].args[0]
        assert last_saved.status == CrawlStatus.FAILED
        assert last_saved.error_kind == CrawlErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_unreachable_site(self, mock_embedding_provider, mock_vector_store, mock_document_store) -> None:
        crawler = _mock_crawler(error=CrawlConnectivityError(message="Website not found."))
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store, crawler)

        outcome = await service.ingest_website("bot-a", "https://no-such-host.invalid")

        assert outcome.kind == "crawl_connectivity"
        last_saved = mock_document_store.save_crawl.await_args_list[-1].args[0]
        assert last_saved.error_kind == CrawlErrorKind.CONNECTIVITY

    @pytest.mark.asyncio
    async def test_unexpected_crawler_error_marks_crawl_failed(
        self, mock_embedding_provider, mock_vector_store, mock_document_store
    ) -> None:
        crawler = _mock_crawler(error=RuntimeError("parser exploded"))
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store, crawler)

        outcome = await service.ingest_website("bot-a", "https://example.com")

        assert outcome.ok is False
        assert outcome.kind == "internal"
        last_saved = mock_document_store.save_crawl.await_args_list[-1].args[0]
        assert last_saved.status == CrawlStatus.FAILED
        assert last_saved.error_kind == CrawlErrorKind.OTHER
        assert last_saved.error == "parser exploded"

    @pytest.mark.asyncio
    async def test_website_chunks_are_stored(
        self, mock_embedding_provider, mock_vector_store, mock_document_store
    ) -> None:
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store, _mock_crawler(_PAGES))

        outcome = await service.ingest_website("bot-a", "https://example.com")

        assert outcome.chunks
        assert {chunk.status for chunk in outcome.chunks} == {ChunkStatus.STORED}

    @pytest.mark.asyncio
    async def test_no_extractable_pages(self, mock_embedding_provider, mock_vector_store, mock_document_store) -> None:
        pages = [CrawledPage(url="https://example.com", html="<html><body></body></html>")]
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store, _mock_crawler(pages))

        outcome = await service.ingest_website("bot-a", "https://example.com")

        assert outcome.ok is False
        assert outcome.kind == "extraction"

    @pytest.mark.asyncio
    async def test_without_crawler(self, mock_embedding_provider, mock_vector_store, mock_document_store) -> None:
        service = _service(mock_embedding_provider, mock_vector_store, mock_document_store)
        with pytest.raises(BotForgeError):
            await service.ingest_website("bot-a", "https://example.com")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("https://Example.com", "https://example.com"),
        ("  https://example.com/Docs  ", "https://example.com/docs"),
    ],
)
def test_normalize_website_url(raw: str, expected: str) -> None:
    assert normalize_website_url(raw) == expected


# ---------------------------------------------------------------------------
# Against a real document store
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def sqlite_store(tmp_path) -> SQLiteDocumentStore:
    store = SQLiteDocumentStore(db_path=tmp_path / "ingestion.db")
    await store.initialize()
    await store.save_bot(Bot(id="bot-a", name="Support"))
    return store


class TestIngestionWithSQLiteStore:
    @pytest.mark.asyncio
    async def test_bot_total_chunks_rises_by_three(
        self, mock_embedding_provider, mock_vector_store, sqlite_store: SQLiteDocumentStore
    ) -> None:
        service = _service(mock_embedding_provider, mock_vector_store, sqlite_store)
        before = await sqlite_store.get_bot("bot-a")

        outcome = await service.ingest_text("bot-a", _distinct_text(834)[:5000], name="faq.txt")

        assert outcome.ok is True
        bot = await sqlite_store.get_bot("bot-a")
        assert bot.training.total_chunks == before.training.total_chunks + 3
        assert bot.training.total_documents == 1
        document = await sqlite_store.get_document(outcome.record_id)
        assert document.status == DocumentStatus.COMPLETED
        assert document.processed_chunk_count == 3
        assert document.progress == 100

    @pytest.mark.asyncio
    async def test_unexpected_error_keeps_stored_progress(
        self, mock_embedding_provider, mock_vector_store, sqlite_store: SQLiteDocumentStore
    ) -> None:
        calls = {"count": 0}

        async def _breaks_on_second_batch(texts: list[str]) -> list[list[float]]:
            calls["count"] += 1
            if calls["count"] > 1:
                raise RuntimeError("provider blew up")
            return [[0.1, 0.2, 0.3, 0.4] for _ in texts]

        mock_embedding_provider.embed = AsyncMock(side_effect=_breaks_on_second_batch)
        service = _service(mock_embedding_provider, mock_vector_store, sqlite_store, batch_size=1)

        outcome = await service.ingest_text("bot-a", _distinct_text(834)[:5000])

        assert outcome.kind == "internal"
        document = await sqlite_store.get_document(outcome.record_id)
        assert document.status == DocumentStatus.ERROR
        assert document.chunk_count == 3
        assert document.processed_chunk_count == 1
        assert (await sqlite_store.get_bot("bot-a")).training.total_chunks == 0
