"""SQLite-backed document store.

Persists bots, source documents, website crawls and conversation turns to
a local SQLite database at ``data/botforge.db``.  Uses ``aiosqlite`` for
async I/O and opens one short-lived connection per operation.

Each record is stored as its Pydantic JSON dump in a ``data`` column, next
to the handful of columns the store filters on (owning bot, status, URL).
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.document_store import IDocumentStore
from src.models.bot import Bot, BotSettings, TrainingSummary
from src.models.chat import ConversationTurn
from src.models.training import (
    CrawlStatus,
    DocumentStatus,
    SourceDocument,
    WebsiteCrawl,
)
from src.utils.errors import NotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/botforge.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS bots (
    id          TEXT PRIMARY KEY,
    data        TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS documents (
    id          TEXT PRIMARY KEY,
    chatbot_id  TEXT NOT NULL,
    status      TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    data        TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS website_crawls (
    id          TEXT PRIMARY KEY,
    chatbot_id  TEXT NOT NULL,
    url         TEXT NOT NULL,
    status      TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    data        TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS conversation_turns (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id  TEXT NOT NULL,
    chatbot_id  TEXT NOT NULL,
    role        TEXT NOT NULL,
    content     TEXT NOT NULL,
    timestamp   TEXT NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_bot ON documents(chatbot_id);",
    "CREATE INDEX IF NOT EXISTS idx_crawls_bot_url ON website_crawls(chatbot_id, url);",
    "CREATE INDEX IF NOT EXISTS idx_turns_session ON conversation_turns(session_id, id);",
]

_UPSERT_BOT_SQL = "INSERT OR REPLACE INTO bots (id, data) VALUES (?, ?);"

_UPSERT_DOCUMENT_SQL = """\
INSERT OR REPLACE INTO documents (id, chatbot_id, status, created_at, data)
VALUES (?, ?, ?, ?, ?);
"""

_UPSERT_CRAWL_SQL = """\
INSERT OR REPLACE INTO website_crawls (id, chatbot_id, url, status, created_at, data)
VALUES (?, ?, ?, ?, ?, ?);
"""

_INSERT_TURN_SQL = """\
INSERT INTO conversation_turns (session_id, chatbot_id, role, content, timestamp)
VALUES (?, ?, ?, ?, ?);
"""

_RECENT_TURNS_SQL = """\
SELECT role, content, timestamp FROM (
    SELECT id, role, content, timestamp
    FROM conversation_turns
    WHERE session_id = ?
    ORDER BY id DESC
    LIMIT ?
) ORDER BY id ASC;
"""


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class SQLiteDocumentStore(IDocumentStore):
    """SQLite-backed persistence for bots and their training records."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Bots
    # ------------------------------------------------------------------

    async def save_bot(self, bot: Bot) -> Bot:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_UPSERT_BOT_SQL, (bot.id, bot.model_dump_json()))
            await db.commit()
        return bot

    async def get_bot(self, bot_id: str) -> Bot | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            return await self._fetch_bot(db, bot_id)

    async def update_bot_settings(self, bot_id: str, settings: BotSettings) -> Bot | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            bot = await self._fetch_bot(db, bot_id)
            if bot is None:
                return None
            updated = bot.model_copy(update={"settings": settings})
            await db.execute(_UPSERT_BOT_SQL, (updated.id, updated.model_dump_json()))
            await db.commit()
        logger.info("bot_settings_updated", bot_id=bot_id, model=settings.model)
        return updated

    async def recompute_training_summary(self, bot_id: str) -> TrainingSummary:
        async with aiosqlite.connect(str(self._db_path)) as db:
            bot = await self._fetch_bot(db, bot_id)
            if bot is None:
                raise NotFoundError(message=f"Bot '{bot_id}' not found", provider_name="sqlite")

            documents = [
                document
                for document in await self._fetch_documents(db, bot_id)
                if document.status == DocumentStatus.COMPLETED
            ]
            crawls = [
                crawl
                for crawl in await self._fetch_crawls(db, bot_id)
                if crawl.status == CrawlStatus.COMPLETED
            ]
            total_chunks = sum(d.chunk_count for d in documents) + sum(c.chunk_count for c in crawls)
            summary = TrainingSummary(
                total_documents=len(documents),
                total_websites=len(crawls),
                total_chunks=total_chunks,
                last_training_date=_utcnow() if documents or crawls else None,
            )
            updated = bot.model_copy(update={"training": summary})
            await db.execute(_UPSERT_BOT_SQL, (updated.id, updated.model_dump_json()))
            await db.commit()

        logger.info(
            "training_summary_recomputed",
            bot_id=bot_id,
            total_documents=summary.total_documents,
            total_websites=summary.total_websites,
            total_chunks=summary.total_chunks,
        )
        return summary

    async def record_message(self, bot_id: str, at: datetime | None = None) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            bot = await self._fetch_bot(db, bot_id)
            if bot is None:
                raise NotFoundError(message=f"Bot '{bot_id}' not found", provider_name="sqlite")
            analytics = bot.analytics.model_copy(
                update={
                    "total_messages": bot.analytics.total_messages + 1,
                    "last_active": at or _utcnow(),
                }
            )
            updated = bot.model_copy(update={"analytics": analytics})
            await db.execute(_UPSERT_BOT_SQL, (updated.id, updated.model_dump_json()))
            await db.commit()

    # ------------------------------------------------------------------
    # Source documents
    # ------------------------------------------------------------------

    async def save_document(self, document: SourceDocument) -> SourceDocument:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_DOCUMENT_SQL,
                (
                    document.id,
                    document.chatbot_id,
                    document.status.value,
                    document.created_at.isoformat(),
                    document.model_dump_json(),
                ),
            )
            await db.commit()
        return document

    async def get_document(self, document_id: str) -> SourceDocument | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("SELECT data FROM documents WHERE id = ?", (document_id,))
            row = await cursor.fetchone()
        return SourceDocument.model_validate_json(row[0]) if row else None

    async def list_documents(self, bot_id: str) -> list[SourceDocument]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            return await self._fetch_documents(db, bot_id)

    async def delete_document(self, document_id: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            await db.commit()
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Website crawls
    # ------------------------------------------------------------------

    async def save_crawl(self, crawl: WebsiteCrawl) -> WebsiteCrawl:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_CRAWL_SQL,
                (
                    crawl.id,
                    crawl.chatbot_id,
                    crawl.url,
                    crawl.status.value,
                    crawl.created_at.isoformat(),
                    crawl.model_dump_json(),
                ),
            )
            await db.commit()
        return crawl

    async def get_crawl(self, crawl_id: str) -> WebsiteCrawl | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("SELECT data FROM website_crawls WHERE id = ?", (crawl_id,))
            row = await cursor.fetchone()
        return WebsiteCrawl.model_validate_json(row[0]) if row else None

    async def find_crawl_by_url(self, bot_id: str, url: str) -> WebsiteCrawl | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT data FROM website_crawls WHERE chatbot_id = ? AND url = ? "
                "ORDER BY created_at DESC LIMIT 1",
                (bot_id, url),
            )
            row = await cursor.fetchone()
        return WebsiteCrawl.model_validate_json(row[0]) if row else None

    async def list_crawls(self, bot_id: str) -> list[WebsiteCrawl]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            return await self._fetch_crawls(db, bot_id)

    async def delete_crawl(self, crawl_id: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("DELETE FROM website_crawls WHERE id = ?", (crawl_id,))
            await db.commit()
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    async def delete_training_records(self, bot_id: str) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            documents = await db.execute("DELETE FROM documents WHERE chatbot_id = ?", (bot_id,))
            crawls = await db.execute("DELETE FROM website_crawls WHERE chatbot_id = ?", (bot_id,))
            await db.commit()
            removed = documents.rowcount + crawls.rowcount
        logger.info("training_records_deleted", bot_id=bot_id, removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Conversation turns
    # ------------------------------------------------------------------

    async def append_turns(
        self,
        session_id: str,
        bot_id: str,
        turns: list[ConversationTurn],
    ) -> None:
        if not turns:
            return
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.executemany(
                _INSERT_TURN_SQL,
                [
                    (session_id, bot_id, turn.role, turn.content, turn.timestamp.isoformat())
                    for turn in turns
                ],
            )
            await db.commit()

    async def recent_turns(self, session_id: str, limit: int = 3) -> list[ConversationTurn]:
        if limit <= 0:
            return []
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_RECENT_TURNS_SQL, (session_id, limit))
            rows = await cursor.fetchall()
        return [
            ConversationTurn(
                role=row["role"],
                content=row["content"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
            )
            for row in rows
        ]

    def get_provider_name(self) -> str:
        return "sqlite_document_store"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    async def _fetch_bot(db: aiosqlite.Connection, bot_id: str) -> Bot | None:
        cursor = await db.execute("SELECT data FROM bots WHERE id = ?", (bot_id,))
        row = await cursor.fetchone()
        return Bot.model_validate_json(row[0]) if row else None

    @staticmethod
    async def _fetch_documents(db: aiosqlite.Connection, bot_id: str) -> list[SourceDocument]:
        cursor = await db.execute(
            "SELECT data FROM documents WHERE chatbot_id = ? ORDER BY created_at ASC",
            (bot_id,),
        )
        rows = await cursor.fetchall()
        return [SourceDocument.model_validate_json(row[0]) for row in rows]

    @staticmethod
    async def _fetch_crawls(db: aiosqlite.Connection, bot_id: str) -> list[WebsiteCrawl]:
        cursor = await db.execute(
            "SELECT data FROM website_crawls WHERE chatbot_id = ? ORDER BY created_at ASC",
            (bot_id,),
        )
        rows = await cursor.fetchall()
        return [WebsiteCrawl.model_validate_json(row[0]) for row in rows]
