"""Shared pytest fixtures for the botforge test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.interfaces.document_store import IDocumentStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.bot import Bot, BotSettings, TrainingSummary
from src.models.rag import VectorStats

# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def refund_policy_text() -> str:
    return (
        "Returns and refunds\n\n"
        "Customers can request a refund within 30 days of purchase. "
        "Items must be unused and in their original packaging.\n\n"
        "Shipping costs are not refundable."
    )


@pytest.fixture
def long_plain_text() -> str:
    """5000 characters of space-separated words with no other separators."""
    return "abcd " * 1000


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Return a minimal mock configuration for testing."""
    return {
        "app": {"name": "botforge", "version": "0.1.0"},
        "cors": {"allowed_origins": ["*"]},
        "crawler": {"extra_exclude_patterns": ["/wp-admin"], "user_agent": "test-agent"},
        "retrieval": {},
    }


# ---------------------------------------------------------------------------
# Bots
# ---------------------------------------------------------------------------


@pytest.fixture
def trained_bot() -> Bot:
    """A bot whose training summary reports stored chunks."""
    return Bot(
        id="bot-a",
        name="Support",
        settings=BotSettings(),
        training=TrainingSummary(total_documents=1, total_chunks=2),
    )


@pytest.fixture
def untrained_bot() -> Bot:
    return Bot(id="bot-new", name="Fresh")


# ---------------------------------------------------------------------------
# Mock providers
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> IEmbeddingProvider:
    """Mock IEmbeddingProvider returning one 4-dimensional vector per text."""
    mock = MagicMock(spec=IEmbeddingProvider)
    mock.get_provider_name.return_value = "mock-embedding"
    mock.is_available.return_value = True
    mock.get_dimension.return_value = 4

    async def _embed(texts: list[str]) -> list[list[float]]:
        return [[0.1, 0.2, 0.3, 0.4] for _ in texts]

    mock.embed = AsyncMock(side_effect=_embed)
    mock.embed_single = AsyncMock(return_value=[0.1, 0.2, 0.3, 0.4])
    return mock


@pytest.fixture
def mock_vector_store() -> IVectorStoreProvider:
    """Mock IVectorStoreProvider that accepts every upsert and matches nothing."""
    mock = MagicMock(spec=IVectorStoreProvider)
    mock.get_provider_name.return_value = "mock-vectors"
    mock.is_available.return_value = True

    async def _upsert(records: list[Any]) -> int:
        return len(records)

    mock.upsert = AsyncMock(side_effect=_upsert)
    mock.query = AsyncMock(return_value=[])
    mock.delete_by_filter = AsyncMock(return_value=0)
    mock.stats = AsyncMock(return_value=VectorStats(vector_count=0, dimension=4))
    return mock


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """Mock ILLMProvider with a fixed completion and a three-token stream."""
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    mock.model = "gpt-3.5-turbo"
    mock.complete = AsyncMock(return_value="Refunds are accepted within 30 days.")

    async def _stream(messages: list[Any]):
        for token in ("Refunds ", "within ", "30 days."):
            yield token

    mock.stream = MagicMock(side_effect=_stream)
    return mock


@pytest.fixture
def mock_document_store(trained_bot: Bot) -> IDocumentStore:
    """Mock IDocumentStore that echoes saved records back."""
    mock = MagicMock(spec=IDocumentStore)
    mock.initialize = AsyncMock(return_value=None)

    async def _echo(record: Any) -> Any:
        return record

    mock.save_bot = AsyncMock(side_effect=_echo)
    mock.get_bot = AsyncMock(return_value=trained_bot)
    mock.update_bot_settings = AsyncMock(return_value=trained_bot)
    mock.recompute_training_summary = AsyncMock(return_value=TrainingSummary())
    mock.record_message = AsyncMock(return_value=None)
    mock.save_document = AsyncMock(side_effect=_echo)
    mock.get_document = AsyncMock(return_value=None)
    mock.list_documents = AsyncMock(return_value=[])
    mock.delete_document = AsyncMock(return_value=True)
    mock.save_crawl = AsyncMock(side_effect=_echo)
    mock.get_crawl = AsyncMock(return_value=None)
    mock.find_crawl_by_url = AsyncMock(return_value=None)
    mock.list_crawls = AsyncMock(return_value=[])
    mock.delete_crawl = AsyncMock(return_value=True)
    mock.delete_training_records = AsyncMock(return_value=0)
    mock.append_turns = AsyncMock(return_value=None)
    mock.recent_turns = AsyncMock(return_value=[])
    return mock
