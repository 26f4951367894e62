"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources (in priority order):
#
#   1. Environment variables: e.g. OPENAI_API_KEY=sk-abc123
#   2. .env file in the project root (local development)
#
# Field `openai_api_key` maps to env var `OPENAI_API_KEY`.  Defaults below
# apply when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """botforge application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Language models / embeddings ===
    # Empty string = "not configured" -> wiring falls back to Ollama.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (TogetherAI, etc.)
    openai_embedding_model: str = ""  # Defaults to text-embedding-3-small
    default_chat_model: str = "gpt-3.5-turbo"
    ollama_base_url: str = "http://localhost:11434"
    ollama_chat_model: str = "llama3.1"  # Used for bots set to a gpt-* model when no OpenAI key is set
    ollama_embedding_model: str = "nomic-embed-text"

    # === Vector store ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "botforge_vectors"

    # === Persistence ===
    sqlite_db_path: str = "data/botforge.db"

    # === Ingestion ===
    chunk_size: int = 2048
    chunk_overlap: int = 400
    embedding_batch_size: int = 20
    upsert_batch_size: int = 100
    upsert_batch_delay: float = 0.1  # seconds between upsert batches
    delete_candidate_limit: int = 10_000
    delete_batch_size: int = 1000

    # === Website crawler ===
    crawl_max_depth: int = 1
    crawl_page_timeout: float = 30.0
    crawl_max_retries: int = 3
    crawl_retry_delay: float = 1.0
    crawl_total_timeout: float = 120.0
    crawl_max_pages: int = 50

    # === Retrieval ===
    retrieval_top_k: int = 3
    history_turns: int = 3
    llm_cache_size: int = 32

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    def get_available_llm_providers(self) -> list[str]:
        """Return provider names usable with the current configuration."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
