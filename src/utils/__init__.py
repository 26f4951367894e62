"""Utility modules for botforge.

- **errors** -- Domain exception hierarchy rooted at BotForgeError; each
  pipeline stage raises its own subclass so callers can record or surface
  failures at the right level.
- **hashing** -- Deterministic vector ids (content + bot namespace) and
  short content fingerprints.
- **logging** -- structlog setup with a dual renderer: coloured console
  output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    BotForgeError,
    ConfigurationError,
    CrawlConnectivityError,
    CrawlError,
    CrawlTimeoutError,
    EmbeddingServiceError,
    EmptyContentError,
    ExtractionError,
    LLMError,
    NotFoundError,
    PipelineError,
    TenantIsolationViolation,
    UnsupportedFormatError,
    VectorStoreError,
)

# -- Identifiers -------------------------------------------------------------
from src.utils.hashing import vector_id

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "BotForgeError",
    "ConfigurationError",
    "CrawlConnectivityError",
    "CrawlError",
    "CrawlTimeoutError",
    "EmbeddingServiceError",
    "EmptyContentError",
    "ExtractionError",
    "LLMError",
    "NotFoundError",
    "PipelineError",
    "TenantIsolationViolation",
    "UnsupportedFormatError",
    "VectorStoreError",
    "configure_logging",
    "get_logger",
    "vector_id",
]
