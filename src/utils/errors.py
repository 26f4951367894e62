"""Custom exception hierarchy for botforge.

All application exceptions inherit from :class:`BotForgeError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "sqlite") caused the failure.

The hierarchy is organized by pipeline domain:

    BotForgeError  (base -- catch-all for any botforge error)
    +-- ExtractionError            (content extraction)
    |   +-- UnsupportedFormatError (unknown MIME type / extension)
    |   +-- EmptyContentError      (no non-whitespace text extracted)
    +-- EmbeddingServiceError      (batch embedding call failed)
    +-- VectorStoreError           (upsert / query / delete failed)
    +-- CrawlError                 (website crawl failed)
    |   +-- CrawlTimeoutError      (whole-crawl wall clock exceeded)
    |   +-- CrawlConnectivityError (site unreachable)
    +-- TenantIsolationViolation   (record from another bot surfaced)
    +-- LLMError                   (language-model call failed)
    +-- PipelineError              (illegal status transition)
    +-- ConfigurationError         (startup / missing config)
    +-- NotFoundError              (bot / document / crawl missing)

Extraction errors are non-retryable and stay scoped to one document.
Embedding and vector-store errors abort the current ingestion run but
keep its partial progress.  Crawl errors are split so operators can tell
"site too slow" from "site unreachable".
"""


class BotForgeError(Exception):
    """Base exception for all botforge errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Extraction errors
# ---------------------------------------------------------------------------

class ExtractionError(BotForgeError):
    """Raised when a source cannot be converted into plain text."""

    def __init__(
        self,
        message: str = "Content extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedFormatError(ExtractionError):
    """Raised when the MIME type or file extension is not recognized."""

    def __init__(
        self,
        message: str = "Unsupported file type",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyContentError(ExtractionError):
    """Raised when extraction yields no non-whitespace text."""

    def __init__(
        self,
        message: str = "No text content could be extracted",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding / vector-store errors
# ---------------------------------------------------------------------------

class EmbeddingServiceError(BotForgeError):
    """Raised when a batch embedding call fails (rate limit, transport, input)."""

    def __init__(
        self,
        message: str = "Embedding service call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorStoreError(BotForgeError):
    """Raised when an upsert, query, delete or stats call fails."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Crawl errors
# ---------------------------------------------------------------------------

class CrawlError(BotForgeError):
    """Raised when a website crawl fails for a reason other than timeout/connectivity."""

    def __init__(
        self,
        message: str = "Website crawl failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class CrawlTimeoutError(CrawlError):
    """Raised when the whole crawl exceeds its wall-clock budget."""

    def __init__(
        self,
        message: str = "Website crawling timed out after 2 minutes",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class CrawlConnectivityError(CrawlError):
    """Raised when the seed URL cannot be reached at all."""

    def __init__(
        self,
        message: str = "Could not connect to the website",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Retrieval / LLM errors
# ---------------------------------------------------------------------------

class TenantIsolationViolation(BotForgeError):
    """A query returned a record owned by a different bot.

    Never expected in practice.  The answer composer discards the record
    and logs this error instead of raising it.
    """

    def __init__(
        self,
        message: str = "Vector record belongs to a different chatbot",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(BotForgeError):
    """Raised when an LLM API call fails or returns an unusable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(BotForgeError):
    """Raised on an illegal ingestion status transition."""

    def __init__(
        self,
        message: str = "Invalid ingestion state transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(BotForgeError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotFoundError(BotForgeError):
    """Raised when a bot, document or website crawl does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
