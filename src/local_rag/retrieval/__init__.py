"""
Retrieval module - vector similarity search for RAG.

This module provides:
- DocumentChunk / StoredRecord: the document model
- DuckDBVectorStore: persistent DuckDB-file store
- InMemoryVectorStore: testing/development store
- get_vector_store(): factory function
- RetrievalIndex: async façade (initialize / insert / search / terminate)

ARCHITECTURE:
-------------
1. Protocol defines the contract (in core.protocols)
2. Multiple implementations (DuckDBVectorStore, InMemoryVectorStore)
3. Factory function for instantiation
4. RetrievalIndex composes provider + store for async callers
"""

from local_rag.retrieval.document import (
    DocumentChunk,
    StoredRecord,
    chunks_from_file,
    split_text,
)
from local_rag.retrieval.store import (
    DuckDBVectorStore,
    InMemoryVectorStore,
    get_vector_store,
)
from local_rag.retrieval.index import RetrievalIndex

__all__ = [
    # Documents
    "DocumentChunk",
    "StoredRecord",
    "chunks_from_file",
    "split_text",
    # Implementations
    "DuckDBVectorStore",
    "InMemoryVectorStore",
    # Factory
    "get_vector_store",
    # Façade
    "RetrievalIndex",
]
