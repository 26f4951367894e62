"""Public interface definitions for all external service providers.

Every external service botforge talks to is reached exclusively through
the abstract base classes in this package.  Concrete adapters live in
``src/providers/`` and are wired together in ``src/wiring.py``, so tests can
inject mocks and deployments can swap OpenAI for a local Ollama server
without touching the services.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────
    IEmbeddingProvider     →  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    IVectorStoreProvider   →  ChromaDBProvider
    ILLMProvider           →  OpenAILLMProvider, OllamaLLMProvider
    IDocumentStore         →  SQLiteDocumentStore
"""

from src.interfaces.document_store import IDocumentStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ChatMessage, ILLMProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider, MetadataFilter

__all__ = [
    "ChatMessage",
    "IDocumentStore",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IVectorStoreProvider",
    "MetadataFilter",
]
