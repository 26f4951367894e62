"""Training-record persistence backends.

SQLiteDocumentStore is the only implementation; it keeps bots, source
documents, website crawls and chat turns in one local SQLite file.
"""

from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore

__all__ = ["SQLiteDocumentStore"]
