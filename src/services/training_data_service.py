"""Management of a bot's stored training data.

Removes documents and websites (records plus their vectors) and reports
what a bot has been trained on.  Vector deletion goes through
``delete_by_filter``, which resolves ids first and then deletes them in
batches, so records written concurrently with a delete may survive it.
Deletes are user-initiated and not expected to overlap with training.
"""

from __future__ import annotations

from urllib.parse import urlsplit

import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.interfaces.document_store import IDocumentStore
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.bot import TrainingSummary
from src.models.rag import (
    META_CHATBOT_ID,
    META_DOCUMENT_ID,
    META_SOURCE,
    META_SOURCE_TYPE,
    META_WEBSITE_CRAWL_ID,
    SourceType,
)
from src.models.training import SourceDocument, WebsiteCrawl
from src.services.ingestion.ingestion_service import normalize_website_url
from src.utils.errors import NotFoundError

logger = structlog.get_logger(logger_name=__name__)


class TrainingOverview(BaseModel):
    """Everything a bot has been trained on, plus its live vector count."""

    model_config = ConfigDict(frozen=True)

    bot_id: str
    summary: TrainingSummary
    documents: list[SourceDocument] = Field(default_factory=list)
    websites: list[WebsiteCrawl] = Field(default_factory=list)
    vector_count: int = Field(default=0, ge=0)


def url_variations(url: str) -> list[str]:
    """Spellings under which a website's pages may have been stored.

    The URL as given, with and without a trailing slash, and its bare
    ``scheme://host/path`` form.
    """
    given = url.strip()
    variations = [given, given.rstrip("/"), given.rstrip("/") + "/"]
    parts = urlsplit(given)
    if parts.scheme and parts.netloc:
        variations.append(f"{parts.scheme}://{parts.netloc}{parts.path}")
    unique: list[str] = []
    for candidate in variations:
        if candidate and candidate not in unique:
            unique.append(candidate)
    return unique


class TrainingDataService:
    """Deletes training data and summarizes it."""

    def __init__(
        self,
        vector_store: IVectorStoreProvider,
        document_store: IDocumentStore,
    ) -> None:
        self._vector_store = vector_store
        self._document_store = document_store

    async def delete_document(self, bot_id: str, document_id: str) -> int:
        """Delete one document's vectors and record; return vectors removed."""
        document = await self._document_store.get_document(document_id)
        if document is None or document.chatbot_id != bot_id:
            raise NotFoundError(message=f"Document '{document_id}' not found")

        removed = await self._vector_store.delete_by_filter(
            {META_CHATBOT_ID: bot_id, META_DOCUMENT_ID: document_id}
        )
        await self._document_store.delete_document(document_id)
        await self._document_store.recompute_training_summary(bot_id)
        logger.info("document_deleted", bot_id=bot_id, document_id=document_id, vectors=removed)
        return removed

    async def delete_website(self, bot_id: str, url: str) -> int:
        """Delete a website's vectors (every stored URL spelling) and its record."""
        crawl = await self._document_store.find_crawl_by_url(bot_id, normalize_website_url(url))

        removed = await self._vector_store.delete_by_filter(
            {
                META_CHATBOT_ID: bot_id,
                META_SOURCE_TYPE: SourceType.WEBSITE.value,
                META_SOURCE: url_variations(url),
            }
        )
        if crawl is not None:
            # Pages below the seed URL carry their own URL as source.
            removed += await self._vector_store.delete_by_filter(
                {META_CHATBOT_ID: bot_id, META_WEBSITE_CRAWL_ID: crawl.id}
            )
            await self._document_store.delete_crawl(crawl.id)
        elif removed == 0:
            raise NotFoundError(message=f"Website '{url}' not found")

        await self._document_store.recompute_training_summary(bot_id)
        logger.info("website_deleted", bot_id=bot_id, url=url, vectors=removed)
        return removed

    async def delete_all(self, bot_id: str) -> int:
        """Delete every vector and training record the bot owns."""
        if await self._document_store.get_bot(bot_id) is None:
            raise NotFoundError(message=f"Bot '{bot_id}' not found")

        removed = await self._vector_store.delete_by_filter({META_CHATBOT_ID: bot_id})
        records = await self._document_store.delete_training_records(bot_id)
        await self._document_store.recompute_training_summary(bot_id)
        logger.info("training_data_deleted", bot_id=bot_id, vectors=removed, records=records)
        return removed

    async def overview(self, bot_id: str) -> TrainingOverview:
        bot = await self._document_store.get_bot(bot_id)
        if bot is None:
            raise NotFoundError(message=f"Bot '{bot_id}' not found")

        stats = await self._vector_store.stats({META_CHATBOT_ID: bot_id})
        return TrainingOverview(
            bot_id=bot_id,
            summary=bot.training,
            documents=await self._document_store.list_documents(bot_id),
            websites=await self._document_store.list_crawls(bot_id),
            vector_count=stats.vector_count,
        )
