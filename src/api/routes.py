"""FastAPI API routes for botforge.

Provides REST endpoints for bot management, training (documents, pasted
text, websites), training-data inspection and deletion, chat (batch and
streaming) and health checks.  Service dependencies are resolved from
``app.state`` via FastAPI's ``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                         Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/bots                                     POST    Create a bot
# /api/v1/bots/{bot_id}                            GET     Bot with counters
# /api/v1/bots/{bot_id}/settings                   PATCH   Update model/prompt settings
# /api/v1/bots/{bot_id}/training                   GET     Documents, websites, vector count
# /api/v1/bots/{bot_id}/training                   DELETE  Delete all training data
# /api/v1/bots/{bot_id}/training/documents         POST    Upload base64 files (batch)
# /api/v1/bots/{bot_id}/training/documents/{id}    DELETE  Delete one document
# /api/v1/bots/{bot_id}/training/text              POST    Train on pasted text
# /api/v1/bots/{bot_id}/training/website           POST    Crawl and train on a website
# /api/v1/bots/{bot_id}/training/website?url=...   DELETE  Delete a website
# /api/v1/bots/{bot_id}/chat                       POST    Ask a question
# /api/v1/bots/{bot_id}/chat/stream                POST    Ask, streaming plain-text tokens
# /api/v1/health                                   GET     Health check + provider status
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from src.api.middleware import UNAVAILABLE_DETAIL
from src.api.schemas import (
    BotResponse,
    ChatRequest,
    ChatResponse,
    CreateBotRequest,
    DeleteResponse,
    HealthResponse,
    IngestionResultResponse,
    TrainDocumentsRequest,
    TrainDocumentsResponse,
    TrainingSummaryResponse,
    TrainTextRequest,
    TrainWebsiteRequest,
    UpdateBotSettingsRequest,
)
from src.interfaces.document_store import IDocumentStore
from src.models.bot import Bot, BotSettings
from src.models.chat import ConversationTurn
from src.models.training import IngestionOutcome
from src.services.answer_composer import AnswerComposer
from src.services.ingestion.ingestion_service import IngestionService
from src.services.training_data_service import TrainingDataService
from src.utils.errors import BotForgeError, NotFoundError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependency helpers: read services from app.state (populated in main.py)
# ---------------------------------------------------------------------------


def _get_document_store(request: Request) -> IDocumentStore:
    """Return the document store from application state."""
    return request.app.state.document_store


def _get_ingestion_service(request: Request) -> IngestionService:
    """Return the ingestion service from application state."""
    return request.app.state.ingestion_service


def _get_answer_composer(request: Request) -> AnswerComposer:
    """Return the answer composer from application state."""
    return request.app.state.answer_composer


def _get_training_data_service(request: Request) -> TrainingDataService:
    """Return the training-data service from application state."""
    return request.app.state.training_data_service


DocumentStoreDep = Annotated[IDocumentStore, Depends(_get_document_store)]
IngestionDep = Annotated[IngestionService, Depends(_get_ingestion_service)]
ComposerDep = Annotated[AnswerComposer, Depends(_get_answer_composer)]
TrainingDataDep = Annotated[TrainingDataService, Depends(_get_training_data_service)]


async def _require_bot(document_store: IDocumentStore, bot_id: str) -> Bot:
    bot = await document_store.get_bot(bot_id)
    if bot is None:
        raise NotFoundError(message=f"Bot '{bot_id}' not found")
    return bot


def _outcome_response(outcome: IngestionOutcome) -> IngestionResultResponse:
    return IngestionResultResponse(
        ok=outcome.ok,
        record_id=outcome.record_id,
        chunk_count=outcome.progress.chunk_count,
        processed_chunk_count=outcome.progress.processed_chunk_count,
        pages_processed=outcome.progress.pages_processed,
        error_kind=None if outcome.ok else outcome.kind,
        error=None if outcome.ok else outcome.message,
    )


async def _save_turns(
    document_store: IDocumentStore,
    session_id: str,
    bot_id: str,
    question: str,
    answer: str,
) -> None:
    """Append the exchange to the session history; failures are only logged."""
    try:
        await document_store.append_turns(
            session_id,
            bot_id,
            [
                ConversationTurn(role="user", content=question),
                ConversationTurn(role="assistant", content=answer),
            ],
        )
    except Exception as exc:
        _logger.warning("chat_history_save_failed", session_id=session_id, error=str(exc))


def _history_limit(request: Request) -> int:
    settings = getattr(request.app.state, "settings", None)
    return settings.history_turns if settings is not None else 3


# ---------------------------------------------------------------------------
# Bots
# ---------------------------------------------------------------------------


@router.post("/bots", response_model=BotResponse, status_code=201, summary="Create a bot")
async def create_bot(body: CreateBotRequest, document_store: DocumentStoreDep) -> BotResponse:
    bot = Bot(name=body.name, settings=body.settings or BotSettings())
    bot = await document_store.save_bot(bot)
    _logger.info("bot_created", bot_id=bot.id, name=bot.name)
    return BotResponse(**bot.model_dump())


@router.get("/bots/{bot_id}", response_model=BotResponse, summary="Get a bot")
async def get_bot(bot_id: str, document_store: DocumentStoreDep) -> BotResponse:
    bot = await _require_bot(document_store, bot_id)
    return BotResponse(**bot.model_dump())


@router.patch("/bots/{bot_id}/settings", response_model=BotResponse, summary="Update bot settings")
async def update_bot_settings(
    bot_id: str,
    body: UpdateBotSettingsRequest,
    document_store: DocumentStoreDep,
) -> BotResponse:
    bot = await _require_bot(document_store, bot_id)
    merged = BotSettings.model_validate(
        {**bot.settings.model_dump(), **body.model_dump(exclude_none=True)}
    )
    updated = await document_store.update_bot_settings(bot_id, merged)
    if updated is None:
        raise NotFoundError(message=f"Bot '{bot_id}' not found")
    return BotResponse(**updated.model_dump())


# ---------------------------------------------------------------------------
# Training
# ---------------------------------------------------------------------------


@router.post(
    "/bots/{bot_id}/training/documents",
    response_model=TrainDocumentsResponse,
    summary="Train a bot on uploaded files",
)
async def train_documents(
    bot_id: str,
    body: TrainDocumentsRequest,
    ingestion: IngestionDep,
) -> TrainDocumentsResponse:
    outcomes = await ingestion.ingest_documents(
        bot_id,
        [
            {"content": item.content, "metadata": item.metadata.model_dump(by_alias=True)}
            for item in body.files
        ],
    )
    results = [_outcome_response(outcome) for outcome in outcomes]
    succeeded = sum(1 for result in results if result.ok)
    return TrainDocumentsResponse(
        results=results,
        succeeded=succeeded,
        failed=len(results) - succeeded,
    )


@router.post(
    "/bots/{bot_id}/training/text",
    response_model=IngestionResultResponse,
    summary="Train a bot on pasted text",
)
async def train_text(bot_id: str, body: TrainTextRequest, ingestion: IngestionDep) -> IngestionResultResponse:
    outcome = await ingestion.ingest_text(bot_id, body.text, body.name)
    return _outcome_response(outcome)


@router.post(
    "/bots/{bot_id}/training/website",
    response_model=IngestionResultResponse,
    summary="Crawl a website and train a bot on it",
)
async def train_website(
    bot_id: str,
    body: TrainWebsiteRequest,
    ingestion: IngestionDep,
) -> IngestionResultResponse:
    outcome = await ingestion.ingest_website(bot_id, body.url, body.max_depth)
    return _outcome_response(outcome)


@router.get(
    "/bots/{bot_id}/training",
    response_model=TrainingSummaryResponse,
    summary="What a bot has been trained on",
)
async def training_summary(bot_id: str, training_data: TrainingDataDep) -> TrainingSummaryResponse:
    overview = await training_data.overview(bot_id)
    return TrainingSummaryResponse(**overview.model_dump())


@router.delete(
    "/bots/{bot_id}/training/documents/{document_id}",
    response_model=DeleteResponse,
    summary="Delete one trained document",
)
async def delete_document(bot_id: str, document_id: str, training_data: TrainingDataDep) -> DeleteResponse:
    removed = await training_data.delete_document(bot_id, document_id)
    return DeleteResponse(deleted_vectors=removed)


@router.delete(
    "/bots/{bot_id}/training/website",
    response_model=DeleteResponse,
    summary="Delete one trained website",
)
async def delete_website(
    bot_id: str,
    training_data: TrainingDataDep,
    url: Annotated[str, Query(min_length=1)],
) -> DeleteResponse:
    removed = await training_data.delete_website(bot_id, url)
    return DeleteResponse(deleted_vectors=removed)


@router.delete(
    "/bots/{bot_id}/training",
    response_model=DeleteResponse,
    summary="Delete all of a bot's training data",
)
async def delete_all_training(bot_id: str, training_data: TrainingDataDep) -> DeleteResponse:
    removed = await training_data.delete_all(bot_id)
    return DeleteResponse(deleted_vectors=removed)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post("/bots/{bot_id}/chat", response_model=ChatResponse, summary="Ask a bot a question")
async def chat(
    bot_id: str,
    body: ChatRequest,
    request: Request,
    composer: ComposerDep,
    document_store: DocumentStoreDep,
) -> ChatResponse:
    bot = await _require_bot(document_store, bot_id)
    session_id = body.session_id or uuid.uuid4().hex
    history = await document_store.recent_turns(session_id, _history_limit(request))

    answer = await composer.answer(bot, body.question, history)
    await _save_turns(document_store, session_id, bot_id, body.question, answer.text)

    return ChatResponse(
        answer=answer.text,
        sources=answer.sources,
        session_id=session_id,
        short_circuit=answer.short_circuit,
    )


@router.post("/bots/{bot_id}/chat/stream", summary="Ask a bot a question, streaming the reply")
async def chat_stream(
    bot_id: str,
    body: ChatRequest,
    request: Request,
    composer: ComposerDep,
    document_store: DocumentStoreDep,
) -> StreamingResponse:
    bot = await _require_bot(document_store, bot_id)
    session_id = body.session_id or uuid.uuid4().hex
    history = await document_store.recent_turns(session_id, _history_limit(request))

    async def token_stream() -> AsyncIterator[str]:
        queue: asyncio.Queue[str | None] = asyncio.Queue()

        async def sink(token: str) -> None:
            await queue.put(token)

        task = asyncio.create_task(composer.answer(bot, body.question, history, on_token=sink))
        task.add_done_callback(lambda _: queue.put_nowait(None))
        streamed = False
        try:
            while (token := await queue.get()) is not None:
                streamed = True
                yield token
            try:
                answer = task.result()
            except BotForgeError as exc:
                _logger.error("chat_stream_failed", bot_id=bot_id, error=str(exc))
                yield UNAVAILABLE_DETAIL
                return
            if not streamed:
                # Fixed replies never reach the token sink.
                yield answer.text
            await _save_turns(document_store, session_id, bot_id, body.question, answer.text)
        finally:
            if not task.done():
                # Client went away; cancelling closes the model stream.
                task.cancel()

    return StreamingResponse(
        token_stream(),
        media_type="text/plain; charset=utf-8",
        headers={"X-Session-Id": session_id},
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    vector_store = getattr(request.app.state, "vector_store", None)
    if vector_store is not None:
        try:
            stats = await vector_store.stats()
            providers["vector_store"] = True
            providers["vectors"] = stats.vector_count
        except BotForgeError:
            providers["vector_store"] = False
            providers["vectors"] = 0

    critical_ok = providers.get("embedding", False) and providers.get("vector_store", False)
    if critical_ok and providers.get("llm", False):
        status = "healthy"
    elif critical_ok:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(
        status=status,
        version=getattr(request.app.state, "version", "0.1.0"),
        providers=providers,
    )
