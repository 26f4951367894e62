"""Pydantic request/response schemas for the botforge API.

Defines the public contract for bot management, training, training-data
deletion, chat and health endpoints.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# FastAPI validates incoming JSON against the Request models (invalid
# bodies get a 422) and serializes outgoing objects through the Response
# models (response_model=...).  Both also feed the OpenAPI docs at /docs.
#
# Training payloads keep the upload form's camelCase keys
# (originalName, mimeType, maxDepth) through field aliases.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from src.models.bot import BotAnalytics, BotSettings, TrainingSummary
from src.models.chat import SourceReference
from src.models.training import SourceDocument, WebsiteCrawl

# ---------------------------------------------------------------------------
# Bots
# ---------------------------------------------------------------------------


class CreateBotRequest(BaseModel):
    """Create a bot; omitted settings take their defaults."""

    name: str = Field(..., min_length=1, max_length=200)
    settings: BotSettings | None = None


class UpdateBotSettingsRequest(BaseModel):
    """Partial settings update; unset fields keep their current value."""

    model: str | None = Field(default=None, min_length=1)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    system_message: str | None = None
    prompt_template: str | None = None


class BotResponse(BaseModel):
    id: str
    name: str
    settings: BotSettings
    training: TrainingSummary
    analytics: BotAnalytics
    created_at: datetime


# ---------------------------------------------------------------------------
# Training
# ---------------------------------------------------------------------------


class FileMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_name: str = Field(..., alias="originalName", min_length=1)
    mime_type: str = Field(default="", alias="mimeType")
    size: int = Field(default=0, ge=0)


class TrainingFile(BaseModel):
    """One uploaded file: base64 payload plus its upload metadata."""

    content: str = Field(..., description="Base64-encoded file bytes.")
    metadata: FileMetadata


class TrainDocumentsRequest(BaseModel):
    files: list[TrainingFile] = Field(..., min_length=1)


class TrainTextRequest(BaseModel):
    text: str = Field(..., min_length=1)
    name: str = Field(default="pasted-text.txt", min_length=1)


class TrainWebsiteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., min_length=1)
    max_depth: int | None = Field(default=None, alias="maxDepth", ge=0, le=5)


class IngestionResultResponse(BaseModel):
    """Outcome of one ingestion run."""

    ok: bool
    record_id: str
    chunk_count: int = 0
    processed_chunk_count: int = 0
    pages_processed: int = 0
    error_kind: str | None = None
    error: str | None = None


class TrainDocumentsResponse(BaseModel):
    results: list[IngestionResultResponse]
    succeeded: int
    failed: int


class TrainingSummaryResponse(BaseModel):
    bot_id: str
    summary: TrainingSummary
    documents: list[SourceDocument]
    websites: list[WebsiteCrawl]
    vector_count: int


class DeleteWebsiteRequest(BaseModel):
    url: str = Field(..., min_length=1)


class DeleteResponse(BaseModel):
    deleted_vectors: int


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    """A user question, optionally continuing a chat session."""

    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(..., min_length=1, max_length=4000)
    session_id: str | None = Field(default=None, alias="sessionId")


class ChatResponse(BaseModel):
    answer: str
    sources: list[SourceReference] = Field(default_factory=list)
    session_id: str
    short_circuit: Literal["not_trained", "no_matches"] | None = None


# ---------------------------------------------------------------------------
# Health / errors
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
