"""RAG data models: extracted text units, chunks, vector records, matches.

Defines Pydantic v2 models for the write path (TextUnit -> Chunk ->
VectorRecord) and the read path (QueryMatch, VectorStats).  All models use
frozen config; a chunk advancing ``pending -> embedded -> stored`` is a new
instance produced by ``model_copy(update={...})``.

Vector metadata is deliberately a flat ``dict`` rather than a nested model:
the vector index only supports flat key/value filters, and the keys
(``chatbotId``, ``sourceType``, ``source``, ``documentId`` /
``websiteCrawlId``, ``text``) are what every filter and delete targets.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Metadata keys shared by the ingestion pipeline, the vector store and the
# answer composer.  Spelled as stored in the index.
META_CHATBOT_ID = "chatbotId"
META_SOURCE_TYPE = "sourceType"
META_SOURCE = "source"
META_DOCUMENT_ID = "documentId"
META_WEBSITE_CRAWL_ID = "websiteCrawlId"
META_TEXT = "text"
META_PAGE = "page"
META_TITLE = "title"


class SourceType(str, Enum):  # noqa: UP042
    """Where a vector record's text originally came from."""

    DOCUMENT = "document"
    WEBSITE = "website"


class ChunkStatus(str, Enum):  # noqa: UP042
    """Per-chunk lifecycle within one ingestion run."""

    PENDING = "pending"
    EMBEDDED = "embedded"
    STORED = "stored"


# ---------------------------------------------------------------------------
# Extraction output
# ---------------------------------------------------------------------------
class TextUnit(BaseModel):
    """One extracted unit of text (a PDF page, a whole text file, a web page).

    Chunks never span two units, so page boundaries survive chunking.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Plain text of the unit.")
    page_index: int = Field(default=0, ge=0, description="0-based page / unit index within the source.")
    source_label: str = Field(default="", description="Original file name or page URL.")


# ---------------------------------------------------------------------------
# Chunk: a bounded slice of a unit, prepared for embedding.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A contiguous slice of one unit's text."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="The chunk's text.")
    page_index: int = Field(default=0, ge=0, description="Index of the originating unit.")
    position: int = Field(default=0, ge=0, description="Monotonic counter across the whole run.")
    length: int = Field(default=0, ge=0, description="Character length of ``content``.")
    offset: int = Field(default=0, ge=0, description="Start offset of ``content`` within its unit.")
    # ~4 characters per token is close enough for budgeting.
    token_estimate: int = Field(default=0, ge=0, description="Approximate token count.")
    embedding: list[float] | None = Field(default=None, description="Embedding vector once computed.")
    vector_id: str | None = Field(default=None, description="Derived vector-store id.")
    status: ChunkStatus = Field(default=ChunkStatus.PENDING)


# ---------------------------------------------------------------------------
# Vector index records
# ---------------------------------------------------------------------------
class VectorRecord(BaseModel):
    """The unit stored in the external vector index."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="sha256(content + namespace) hex digest.")
    values: list[float] = Field(description="Embedding vector.")
    metadata: dict[str, Any] = Field(
        description="Flat metadata; must include chatbotId, sourceType, source and text.",
    )


class QueryMatch(BaseModel):
    """One nearest-neighbour hit returned by a vector query."""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float = Field(description="Similarity in [0, 1], higher is closer.")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        return str(self.metadata.get(META_TEXT, ""))


class VectorStats(BaseModel):
    """Record count (for a filter) and index dimensionality."""

    model_config = ConfigDict(frozen=True)

    vector_count: int = Field(default=0, ge=0)
    dimension: int = Field(default=1536, ge=0)
