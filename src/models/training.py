"""Training-record models and the ingestion status state machine.

A :class:`SourceDocument` tracks one uploaded file (or pasted text) and a
:class:`WebsiteCrawl` tracks one crawl job.  Both move through a small,
forward-only state machine:

    SourceDocument:  pending -> processing -> chunking -> embedding -> completed
    WebsiteCrawl:    pending -> crawling   -> embedding -> completed

and either may jump to its failure state (``error`` / ``failed``) from any
non-terminal state.  Terminal states have no outgoing transitions; a fresh
ingestion attempt creates a new record.

Records are frozen.  :func:`advance` validates a transition and returns the
updated copy, raising :class:`~src.utils.errors.PipelineError` otherwise.

The outcome of an ingestion run is an explicit value rather than an
exception: :class:`IngestionOk` or :class:`IngestionErr`, both carrying the
partial progress that was persisted before the run ended.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

from src.models.rag import Chunk
from src.utils.errors import PipelineError


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Status enums
# ---------------------------------------------------------------------------
class DocumentStatus(str, Enum):  # noqa: UP042
    PENDING = "pending"
    PROCESSING = "processing"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    COMPLETED = "completed"
    ERROR = "error"


class CrawlStatus(str, Enum):  # noqa: UP042
    PENDING = "pending"
    CRAWLING = "crawling"
    EMBEDDING = "embedding"
    COMPLETED = "completed"
    FAILED = "failed"


class CrawlErrorKind(str, Enum):  # noqa: UP042
    """Why a crawl failed, kept so operators can tell slow from unreachable."""

    TIMEOUT = "timeout"
    CONNECTIVITY = "connectivity"
    OTHER = "other"


_DOCUMENT_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING, DocumentStatus.ERROR}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.CHUNKING, DocumentStatus.ERROR}),
    DocumentStatus.CHUNKING: frozenset({DocumentStatus.EMBEDDING, DocumentStatus.ERROR}),
    DocumentStatus.EMBEDDING: frozenset({DocumentStatus.COMPLETED, DocumentStatus.ERROR}),
    DocumentStatus.COMPLETED: frozenset(),
    DocumentStatus.ERROR: frozenset(),
}

_CRAWL_TRANSITIONS: dict[CrawlStatus, frozenset[CrawlStatus]] = {
    CrawlStatus.PENDING: frozenset({CrawlStatus.CRAWLING, CrawlStatus.FAILED}),
    CrawlStatus.CRAWLING: frozenset({CrawlStatus.EMBEDDING, CrawlStatus.FAILED}),
    CrawlStatus.EMBEDDING: frozenset({CrawlStatus.COMPLETED, CrawlStatus.FAILED}),
    CrawlStatus.COMPLETED: frozenset(),
    CrawlStatus.FAILED: frozenset(),
}

TERMINAL_DOCUMENT_STATUSES = frozenset({DocumentStatus.COMPLETED, DocumentStatus.ERROR})
TERMINAL_CRAWL_STATUSES = frozenset({CrawlStatus.COMPLETED, CrawlStatus.FAILED})


# ---------------------------------------------------------------------------
# Training records
# ---------------------------------------------------------------------------
class SourceDocument(BaseModel):
    """One uploaded file or pasted-content submission for a bot."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    chatbot_id: str = Field(description="Owning bot.")
    original_name: str = Field(description="File name as uploaded; used as the vector ``source``.")
    mime_type: str = Field(default="text/plain")
    size: int = Field(default=0, ge=0, description="Payload size in bytes.")
    status: DocumentStatus = Field(default=DocumentStatus.PENDING)
    error: str | None = None
    chunk_count: int = Field(default=0, ge=0)
    processed_chunk_count: int = Field(default=0, ge=0)
    progress: int = Field(default=0, ge=0, le=100, description="Percentage of chunks stored.")
    processing_start_time: datetime | None = None
    processing_end_time: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class WebsiteCrawl(BaseModel):
    """One crawl job for one URL under one bot."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    chatbot_id: str
    url: str = Field(description="Normalized (trimmed, lower-cased) site URL.")
    max_depth: int = Field(default=1, ge=0)
    status: CrawlStatus = Field(default=CrawlStatus.PENDING)
    error: str | None = None
    error_kind: CrawlErrorKind | None = None
    pages_processed: int = Field(default=0, ge=0)
    chunk_count: int = Field(default=0, ge=0)
    processed_chunk_count: int = Field(default=0, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    last_crawled: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)


_RecordT = TypeVar("_RecordT", SourceDocument, WebsiteCrawl)


def advance(record: _RecordT, target: DocumentStatus | CrawlStatus, **updates: object) -> _RecordT:
    """Return *record* moved to *target*, with extra field *updates* applied.

    Raises
    ------
    PipelineError
        If *target* is not reachable from the record's current status.
    """
    table = _DOCUMENT_TRANSITIONS if isinstance(record, SourceDocument) else _CRAWL_TRANSITIONS
    allowed = table.get(record.status, frozenset())  # type: ignore[call-overload]
    if target not in allowed:
        raise PipelineError(
            message=(
                f"{type(record).__name__} {record.id}: cannot move from "
                f"'{record.status.value}' to '{target.value}'"
            )
        )
    return record.model_copy(update={"status": target, **updates})


def progress_percent(processed: int, total: int) -> int:
    """Integer percentage of *processed* over *total* (100 when total is 0)."""
    if total <= 0:
        return 100
    return min(100, round(processed * 100 / total))


# ---------------------------------------------------------------------------
# Ingestion outcomes
# ---------------------------------------------------------------------------
class IngestionProgress(BaseModel):
    """Counters persisted at the last checkpoint of a run."""

    model_config = ConfigDict(frozen=True)

    chunk_count: int = 0
    processed_chunk_count: int = 0
    pages_processed: int = 0


IngestionErrorKind = Literal[
    "extraction",
    "embedding",
    "vector_store",
    "crawl_timeout",
    "crawl_connectivity",
    "crawl",
    "internal",
]


class IngestionOk(BaseModel):
    """A run that stored every chunk."""

    model_config = ConfigDict(frozen=True)

    ok: Literal[True] = True
    record_id: str
    progress: IngestionProgress
    # Each chunk as written, with its vector id and status ``stored``.
    chunks: list[Chunk] = Field(default_factory=list)


class IngestionErr(BaseModel):
    """A run that stopped early; vectors already upserted are kept."""

    model_config = ConfigDict(frozen=True)

    ok: Literal[False] = False
    record_id: str
    kind: IngestionErrorKind
    message: str
    progress: IngestionProgress


IngestionOutcome = Union[IngestionOk, IngestionErr]  # noqa: UP007
