"""Dependency-injection assembly shared by the web app and the CLI.

``build_components`` constructs every provider and service once and
returns them as a flat dict.  ``main.py`` copies the dict onto
``app.state``; ``cli/train.py`` uses it directly.

Provider selection:
    - Embedding: OpenAI (if OPENAI_API_KEY is set) -> Nomic via Ollama
    - LLM:       OpenAI (if OPENAI_API_KEY is set) -> Ollama
    - Vector store: ChromaDB (always)
    - Document store: SQLite (always)
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.vector_store.chromadb_provider import ChromaDBProvider
from src.services.answer_composer import (
    NO_MATCHES_MESSAGE,
    NOT_TRAINED_MESSAGE,
    AnswerComposer,
)
from src.services.ingestion.chunker import RecursiveTextChunker
from src.services.ingestion.content_extractor import ContentExtractor
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.website_crawler import WebsiteCrawler
from src.services.llm_client_cache import LLMClientCache, LLMClientFactory
from src.services.training_data_service import TrainingDataService
from src.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the first available embedding provider.

    Raises
    ------
    ConfigurationError
        If neither OpenAI nor a local Ollama server is usable.
    """
    if app_settings.openai_api_key:
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    provider = NomicEmbeddingProvider(settings=app_settings)
    if provider.is_available():
        return provider

    raise ConfigurationError(
        message="No embedding provider available: set OPENAI_API_KEY or run Ollama",
    )


def build_llm_factory(app_settings: Settings) -> LLMClientFactory:
    """Return a factory creating one LLM client per bot configuration."""

    def factory(model: str, temperature: float, max_tokens: int) -> ILLMProvider:
        if app_settings.openai_api_key:
            return OpenAILLMProvider(app_settings, model, temperature, max_tokens)
        # OpenAI model names mean nothing to Ollama.
        local_model = app_settings.ollama_chat_model if model.startswith("gpt-") else model
        return OllamaLLMProvider(app_settings, local_model, temperature, max_tokens)

    return factory


def build_components(app_settings: Settings, config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components.
    """
    config = config or {}
    crawler_config = config.get("crawler", {})
    retrieval_config = config.get("retrieval", {})

    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(app_settings.crawl_page_timeout),
        follow_redirects=True,
    )

    embedding_provider = build_embedding_provider(app_settings)
    vector_store = ChromaDBProvider(
        embedding_provider=embedding_provider,
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
        upsert_batch_size=app_settings.upsert_batch_size,
        upsert_batch_delay=app_settings.upsert_batch_delay,
        delete_candidate_limit=app_settings.delete_candidate_limit,
        delete_batch_size=app_settings.delete_batch_size,
    )
    document_store = SQLiteDocumentStore(db_path=app_settings.sqlite_db_path)

    crawler = WebsiteCrawler(
        http_client=http_client,
        max_pages=app_settings.crawl_max_pages,
        page_timeout=app_settings.crawl_page_timeout,
        max_retries=app_settings.crawl_max_retries,
        retry_delay=app_settings.crawl_retry_delay,
        total_timeout=app_settings.crawl_total_timeout,
        extra_exclude_patterns=crawler_config.get("extra_exclude_patterns", ()),
        user_agent=crawler_config.get("user_agent", "botforge-crawler/0.1"),
    )

    ingestion_service = IngestionService(
        extractor=ContentExtractor(),
        chunker=RecursiveTextChunker(
            chunk_size=app_settings.chunk_size,
            overlap=app_settings.chunk_overlap,
        ),
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        document_store=document_store,
        crawler=crawler,
        embedding_batch_size=app_settings.embedding_batch_size,
        default_crawl_depth=app_settings.crawl_max_depth,
    )

    llm_cache = LLMClientCache(
        factory=build_llm_factory(app_settings),
        max_size=app_settings.llm_cache_size,
    )
    answer_composer = AnswerComposer(
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        llm_cache=llm_cache,
        document_store=document_store,
        top_k=app_settings.retrieval_top_k,
        history_turns=app_settings.history_turns,
        not_trained_message=retrieval_config.get("not_trained_message", NOT_TRAINED_MESSAGE),
        no_matches_message=retrieval_config.get("no_matches_message", NO_MATCHES_MESSAGE),
    )

    training_data_service = TrainingDataService(
        vector_store=vector_store,
        document_store=document_store,
    )

    llm_name = "openai" if app_settings.openai_api_key else "ollama"
    provider_registry = {
        "embedding": embedding_provider.is_available(),
        "embedding_provider": embedding_provider.get_provider_name(),
        "vector_store": vector_store.is_available(),
        "llm": llm_name in app_settings.get_available_llm_providers(),
        "llm_provider": llm_name,
    }
    logger.info("components_built", **provider_registry)

    return {
        "settings": app_settings,
        "http_client": http_client,
        "embedding_provider": embedding_provider,
        "vector_store": vector_store,
        "document_store": document_store,
        "crawler": crawler,
        "ingestion_service": ingestion_service,
        "llm_cache": llm_cache,
        "answer_composer": answer_composer,
        "training_data_service": training_data_service,
        "provider_registry": provider_registry,
    }
