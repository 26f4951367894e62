"""Abstract base class for the training-record persistence boundary.

Stores bots, source documents, website crawls and conversation turns.
The core only relies on find-by-id, update, delete-by-id and a handful of
per-bot listings, so any document or relational store can back it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from src.models.bot import Bot, BotSettings, TrainingSummary
from src.models.chat import ConversationTurn
from src.models.training import SourceDocument, WebsiteCrawl


# Concrete implementation: SQLiteDocumentStore
# Located in: src/providers/document_store/
class IDocumentStore(ABC):
    """Contract for persisting bots and their training records."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / indexes if they do not exist."""

    # -- Bots ---------------------------------------------------------------

    @abstractmethod
    async def save_bot(self, bot: Bot) -> Bot:
        """Insert or replace *bot*."""

    @abstractmethod
    async def get_bot(self, bot_id: str) -> Bot | None:
        """Return the bot, or ``None`` if it does not exist."""

    @abstractmethod
    async def update_bot_settings(self, bot_id: str, settings: BotSettings) -> Bot | None:
        """Replace a bot's settings; ``None`` if the bot does not exist."""

    @abstractmethod
    async def recompute_training_summary(self, bot_id: str) -> TrainingSummary:
        """Recompute and store the bot's cached training counters.

        ``total_documents`` counts completed documents, ``total_websites``
        completed crawls, ``total_chunks`` sums their chunk counts.
        ``last_training_date`` is set to now when anything is trained and
        cleared otherwise.
        """

    @abstractmethod
    async def record_message(self, bot_id: str, at: datetime | None = None) -> None:
        """Increment the bot's message counter and set its last-active time."""

    # -- Source documents ---------------------------------------------------

    @abstractmethod
    async def save_document(self, document: SourceDocument) -> SourceDocument:
        """Insert or replace *document*."""

    @abstractmethod
    async def get_document(self, document_id: str) -> SourceDocument | None:
        """Return the document, or ``None``."""

    @abstractmethod
    async def list_documents(self, bot_id: str) -> list[SourceDocument]:
        """Return the bot's documents, oldest first."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete one document record; ``True`` if it existed."""

    # -- Website crawls -----------------------------------------------------

    @abstractmethod
    async def save_crawl(self, crawl: WebsiteCrawl) -> WebsiteCrawl:
        """Insert or replace *crawl*."""

    @abstractmethod
    async def get_crawl(self, crawl_id: str) -> WebsiteCrawl | None:
        """Return the crawl, or ``None``."""

    @abstractmethod
    async def find_crawl_by_url(self, bot_id: str, url: str) -> WebsiteCrawl | None:
        """Return the bot's crawl record for a normalized *url*, if any."""

    @abstractmethod
    async def list_crawls(self, bot_id: str) -> list[WebsiteCrawl]:
        """Return the bot's crawls, oldest first."""

    @abstractmethod
    async def delete_crawl(self, crawl_id: str) -> bool:
        """Delete one crawl record; ``True`` if it existed."""

    # -- Bulk ---------------------------------------------------------------

    @abstractmethod
    async def delete_training_records(self, bot_id: str) -> int:
        """Delete all of a bot's documents and crawls; return how many."""

    # -- Conversation turns -------------------------------------------------

    @abstractmethod
    async def append_turns(self, session_id: str, bot_id: str, turns: list[ConversationTurn]) -> None:
        """Append *turns* to a chat session."""

    @abstractmethod
    async def recent_turns(self, session_id: str, limit: int = 3) -> list[ConversationTurn]:
        """Return the last *limit* turns of a session, oldest first."""
