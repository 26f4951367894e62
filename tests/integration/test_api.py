"""Integration tests for FastAPI API endpoints using TestClient."""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.middleware import UNAVAILABLE_DETAIL, ErrorHandlingMiddleware, RequestLoggingMiddleware
from src.api.routes import router as api_router
from src.models.chat import ConversationTurn
from src.models.rag import META_CHATBOT_ID, META_SOURCE, META_TEXT, QueryMatch, VectorStats
from src.models.training import SourceDocument
from src.services.answer_composer import NOT_TRAINED_MESSAGE, AnswerComposer
from src.services.ingestion.chunker import RecursiveTextChunker
from src.services.ingestion.content_extractor import ContentExtractor
from src.services.ingestion.ingestion_service import IngestionService
from src.services.llm_client_cache import LLMClientCache
from src.services.training_data_service import TrainingDataService
from src.utils.errors import LLMError, PipelineError, UnsupportedFormatError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_test_app(embedding_provider, vector_store, llm_provider, document_store) -> FastAPI:
    """Build the app by hand with real services over mock providers."""
    app = FastAPI()
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router)

    app.state.settings = MagicMock(history_turns=3)
    app.state.version = "0.1.0-test"
    app.state.document_store = document_store
    app.state.vector_store = vector_store
    app.state.ingestion_service = IngestionService(
        extractor=ContentExtractor(),
        chunker=RecursiveTextChunker(),
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        document_store=document_store,
    )
    app.state.answer_composer = AnswerComposer(
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        llm_cache=LLMClientCache(lambda model, temperature, max_tokens: llm_provider),
        document_store=document_store,
    )
    app.state.training_data_service = TrainingDataService(
        vector_store=vector_store,
        document_store=document_store,
    )
    app.state.provider_registry = {
        "embedding": True,
        "embedding_provider": "mock-embedding",
        "llm": True,
        "llm_provider": "mock-llm",
    }
    return app


def _trained_index(vector_store) -> None:
    vector_store.stats = AsyncMock(return_value=VectorStats(vector_count=2, dimension=4))
    vector_store.query = AsyncMock(
        return_value=[
            QueryMatch(
                id="v1",
                score=0.92,
                metadata={
                    META_CHATBOT_ID: "bot-a",
                    META_TEXT: "Customers can request a refund within 30 days of purchase.",
                    META_SOURCE: "refunds.txt",
                },
            )
        ]
    )


@pytest.fixture
def client(mock_embedding_provider, mock_vector_store, mock_llm_provider, mock_document_store) -> TestClient:
    app = _create_test_app(mock_embedding_provider, mock_vector_store, mock_llm_provider, mock_document_store)
    return TestClient(app)


# ---------------------------------------------------------------------------
# Bots
# ---------------------------------------------------------------------------


class TestBots:
    def test_create_bot(self, client: TestClient, mock_document_store) -> None:
        response = client.post("/api/v1/bots", json={"name": "Support"})
        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "Support"
        assert body["settings"]["model"] == "gpt-3.5-turbo"
        assert body["training"]["total_chunks"] == 0
        mock_document_store.save_bot.assert_awaited_once()

    def test_create_bot_rejects_empty_name(self, client: TestClient) -> None:
        assert client.post("/api/v1/bots", json={"name": ""}).status_code == 422

    def test_get_bot(self, client: TestClient) -> None:
        response = client.get("/api/v1/bots/bot-a")
        assert response.status_code == 200
        assert response.json()["training"]["total_documents"] == 1

    def test_get_missing_bot(self, client: TestClient, mock_document_store) -> None:
        mock_document_store.get_bot = AsyncMock(return_value=None)
        response = client.get("/api/v1/bots/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_update_settings_merges(self, client: TestClient, mock_document_store, trained_bot) -> None:
        async def _update(bot_id, settings):
            return trained_bot.model_copy(update={"settings": settings})

        mock_document_store.update_bot_settings = AsyncMock(side_effect=_update)

        response = client.patch("/api/v1/bots/bot-a/settings", json={"temperature": 0.2})

        assert response.status_code == 200
        settings = response.json()["settings"]
        assert settings["temperature"] == 0.2
        assert settings["model"] == trained_bot.settings.model

    def test_update_settings_validates(self, client: TestClient) -> None:
        assert client.patch("/api/v1/bots/bot-a/settings", json={"temperature": 5}).status_code == 422


# ---------------------------------------------------------------------------
# Training
# ---------------------------------------------------------------------------


class TestTraining:
    def test_train_text(self, client: TestClient, mock_vector_store) -> None:
        response = client.post(
            "/api/v1/bots/bot-a/training/text",
            json={"text": "Refunds are accepted within 30 days.", "name": "refunds.txt"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["chunk_count"] == 1
        assert body["processed_chunk_count"] == 1
        mock_vector_store.upsert.assert_awaited_once()

    def test_train_documents_reports_each_file(self, client: TestClient) -> None:
        good = base64.b64encode(b"Shipping is free over 50 euros.").decode("ascii")
        bad = base64.b64encode(b"GIF89a").decode("ascii")
        response = client.post(
            "/api/v1/bots/bot-a/training/documents",
            json={
                "files": [
                    {"content": good, "metadata": {"originalName": "shipping.txt", "mimeType": "text/plain"}},
                    {"content": bad, "metadata": {"originalName": "logo.gif", "mimeType": "image/gif"}},
                ]
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["succeeded"] == 1
        assert body["failed"] == 1
        assert body["results"][1]["error_kind"] == "extraction"

    def test_train_documents_requires_files(self, client: TestClient) -> None:
        assert client.post("/api/v1/bots/bot-a/training/documents", json={"files": []}).status_code == 422

    def test_train_website_without_crawler(self, client: TestClient) -> None:
        response = client.post("/api/v1/bots/bot-a/training/website", json={"url": "https://example.com"})
        assert response.status_code == 500

    def test_training_overview(self, client: TestClient, mock_document_store, mock_vector_store) -> None:
        mock_document_store.list_documents = AsyncMock(
            return_value=[SourceDocument(chatbot_id="bot-a", original_name="a.txt")]
        )
        mock_vector_store.stats = AsyncMock(return_value=VectorStats(vector_count=2, dimension=4))

        response = client.get("/api/v1/bots/bot-a/training")

        assert response.status_code == 200
        body = response.json()
        assert body["vector_count"] == 2
        assert body["documents"][0]["original_name"] == "a.txt"

    def test_delete_document(self, client: TestClient, mock_document_store, mock_vector_store) -> None:
        document = SourceDocument(chatbot_id="bot-a", original_name="a.txt")
        mock_document_store.get_document = AsyncMock(return_value=document)
        mock_vector_store.delete_by_filter = AsyncMock(return_value=3)

        response = client.delete(f"/api/v1/bots/bot-a/training/documents/{document.id}")

        assert response.status_code == 200
        assert response.json() == {"deleted_vectors": 3}

    def test_delete_missing_document(self, client: TestClient) -> None:
        assert client.delete("/api/v1/bots/bot-a/training/documents/nope").status_code == 404

    def test_delete_website_requires_url(self, client: TestClient) -> None:
        assert client.delete("/api/v1/bots/bot-a/training/website").status_code == 422

    def test_delete_website(self, client: TestClient, mock_vector_store) -> None:
        mock_vector_store.delete_by_filter = AsyncMock(return_value=2)
        response = client.delete("/api/v1/bots/bot-a/training/website", params={"url": "https://example.com"})
        assert response.status_code == 200
        assert response.json()["deleted_vectors"] == 2

    def test_delete_all(self, client: TestClient, mock_vector_store) -> None:
        mock_vector_store.delete_by_filter = AsyncMock(return_value=9)
        response = client.delete("/api/v1/bots/bot-a/training")
        assert response.json() == {"deleted_vectors": 9}


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class TestChat:
    def test_untrained_bot_gets_fixed_reply(self, client: TestClient, mock_llm_provider) -> None:
        response = client.post("/api/v1/bots/bot-a/chat", json={"question": "Hello?"})
        assert response.status_code == 200
        body = response.json()
        assert body["answer"] == NOT_TRAINED_MESSAGE
        assert body["short_circuit"] == "not_trained"
        assert body["session_id"]
        mock_llm_provider.complete.assert_not_awaited()

    def test_answer_with_sources(self, client: TestClient, mock_vector_store, mock_document_store) -> None:
        _trained_index(mock_vector_store)

        response = client.post(
            "/api/v1/bots/bot-a/chat",
            json={"question": "What is the refund window?", "sessionId": "s-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["answer"] == "Refunds are accepted within 30 days."
        assert body["session_id"] == "s-1"
        assert body["sources"][0]["metadata"][META_SOURCE] == "refunds.txt"
        mock_document_store.recent_turns.assert_awaited_once_with("s-1", 3)
        session_id, bot_id, turns = mock_document_store.append_turns.await_args.args
        assert (session_id, bot_id) == ("s-1", "bot-a")
        assert [turn.role for turn in turns] == ["user", "assistant"]

    def test_history_is_passed_to_the_prompt(
        self, client: TestClient, mock_vector_store, mock_document_store, mock_llm_provider
    ) -> None:
        _trained_index(mock_vector_store)
        mock_document_store.recent_turns = AsyncMock(
            return_value=[ConversationTurn(role="user", content="I bought shoes last week.")]
        )

        client.post("/api/v1/bots/bot-a/chat", json={"question": "Can I return them?", "sessionId": "s-2"})

        prompt = mock_llm_provider.complete.await_args.args[0][1]["content"]
        assert "user: I bought shoes last week." in prompt

    def test_history_save_failure_does_not_fail_the_request(
        self, client: TestClient, mock_vector_store, mock_document_store
    ) -> None:
        _trained_index(mock_vector_store)
        mock_document_store.append_turns = AsyncMock(side_effect=RuntimeError("disk"))
        assert client.post("/api/v1/bots/bot-a/chat", json={"question": "q"}).status_code == 200

    def test_model_outage_is_503_with_generic_detail(
        self, client: TestClient, mock_vector_store, mock_llm_provider
    ) -> None:
        _trained_index(mock_vector_store)
        mock_llm_provider.complete = AsyncMock(
            side_effect=LLMError(message="secret upstream detail", provider_name="openai")
        )

        response = client.post("/api/v1/bots/bot-a/chat", json={"question": "q"})

        assert response.status_code == 503
        assert response.json()["detail"] == UNAVAILABLE_DETAIL

    def test_stream(self, client: TestClient, mock_vector_store, mock_document_store) -> None:
        _trained_index(mock_vector_store)

        response = client.post(
            "/api/v1/bots/bot-a/chat/stream",
            json={"question": "What is the refund window?", "sessionId": "s-3"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["x-session-id"] == "s-3"
        assert response.text == "Refunds within 30 days."
        turns = mock_document_store.append_turns.await_args.args[2]
        assert turns[1].content == "Refunds within 30 days."

    def test_stream_short_circuit_sends_fixed_reply(self, client: TestClient) -> None:
        response = client.post("/api/v1/bots/bot-a/chat/stream", json={"question": "q"})
        assert response.text == NOT_TRAINED_MESSAGE

    def test_stream_missing_bot(self, client: TestClient, mock_document_store) -> None:
        mock_document_store.get_bot = AsyncMock(return_value=None)
        assert client.post("/api/v1/bots/nope/chat/stream", json={"question": "q"}).status_code == 404


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (UnsupportedFormatError(message="unsupported"), 415),
            (PipelineError(message="busy"), 409),
        ],
    )
    def test_status_codes(self, client: TestClient, mock_document_store, error, status) -> None:
        mock_document_store.get_bot = AsyncMock(side_effect=error)
        response = client.get("/api/v1/bots/bot-a")
        assert response.status_code == status
        assert response.json()["detail"] == error.message


class TestHealth:
    def test_healthy(self, client: TestClient) -> None:
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["version"] == "0.1.0-test"
        assert body["providers"]["vector_store"] is True

    def test_degraded_without_llm(self, client: TestClient) -> None:
        client.app.state.provider_registry["llm"] = False
        assert client.get("/api/v1/health").json()["status"] == "degraded"
