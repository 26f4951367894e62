"""botforge domain models: re-exports all public model classes.

The models are organized by domain concern:
    - bot.py      : Bot aggregate, BotSettings, training/analytics counters
    - chat.py     : Conversation turns and composed answers
    - rag.py      : Text units, chunks, vector records and query matches
    - training.py : SourceDocument / WebsiteCrawl records, status machine,
                     ingestion outcomes
"""

from __future__ import annotations

from src.models.bot import Bot, BotAnalytics, BotSettings, TrainingSummary
from src.models.chat import ChatAnswer, ConversationTurn, SourceReference
from src.models.rag import (
    Chunk,
    ChunkStatus,
    QueryMatch,
    SourceType,
    TextUnit,
    VectorRecord,
    VectorStats,
)
from src.models.training import (
    CrawlErrorKind,
    CrawlStatus,
    DocumentStatus,
    IngestionErr,
    IngestionOk,
    IngestionOutcome,
    IngestionProgress,
    SourceDocument,
    WebsiteCrawl,
    advance,
)

__all__ = [
    "Bot",
    "BotAnalytics",
    "BotSettings",
    "ChatAnswer",
    "Chunk",
    "ChunkStatus",
    "ConversationTurn",
    "CrawlErrorKind",
    "CrawlStatus",
    "DocumentStatus",
    "IngestionErr",
    "IngestionOk",
    "IngestionOutcome",
    "IngestionProgress",
    "QueryMatch",
    "SourceDocument",
    "SourceReference",
    "SourceType",
    "TextUnit",
    "VectorRecord",
    "VectorStats",
    "WebsiteCrawl",
    "advance",
]
