"""Vector store provider implementations.

ChromaDB is the sole vector store implementation.  It keeps embeddings on
disk (CHROMADB_PERSIST_DIR) and supports cosine-similarity search with
metadata filtering, which is all the tenant-isolation scheme relies on.

To swap ChromaDB for another index (Qdrant, Pinecone), implement
IVectorStoreProvider and build it in wiring.py.
"""

from src.providers.vector_store.chromadb_provider import ChromaDBProvider

__all__ = ["ChromaDBProvider"]
