"""
local_rag - local retrieval-augmented generation substrate.

Embeds text into fixed-width vectors, persists them with their source
text in an embedded DuckDB file, retrieves nearest matches, and manages
a streaming generation engine with an explicit lifecycle.
"""

from local_rag.config import EngineConfig, RagConfig
from local_rag.core import SearchResult
from local_rag.errors import (
    DimensionMismatchError,
    EmbeddingError,
    EngineAbsentError,
    InitializationError,
    LocalRagError,
    MissingEmbeddingError,
    StoreInitError,
    StoreNotInitializedError,
    StoreQueryError,
    TerminationError,
)
from local_rag.generation import EngineLifecycleManager, EngineState, EngineStatus
from local_rag.retrieval import DocumentChunk, RetrievalIndex
from local_rag.session import RagSession

__version__ = "0.1.0"

__all__ = [
    "RagConfig",
    "EngineConfig",
    "DocumentChunk",
    "SearchResult",
    "RetrievalIndex",
    "EngineLifecycleManager",
    "EngineState",
    "EngineStatus",
    "RagSession",
    "LocalRagError",
    "InitializationError",
    "StoreInitError",
    "EmbeddingError",
    "MissingEmbeddingError",
    "EngineAbsentError",
    "StoreNotInitializedError",
    "StoreQueryError",
    "DimensionMismatchError",
    "TerminationError",
]
