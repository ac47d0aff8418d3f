"""
Core module - shared protocols and types for the entire system.

USAGE:
------
from local_rag.core import VectorStore, EmbeddingProvider

class MyVectorStore:
    '''Implements VectorStore protocol.'''
    ...
"""

from local_rag.core.protocols import (
    # Protocols
    EmbeddingProvider,
    VectorStore,
    GenerationEngine,
    # Data classes
    SearchResult,
)

__all__ = [
    # Protocols
    "EmbeddingProvider",
    "VectorStore",
    "GenerationEngine",
    # Data classes
    "SearchResult",
]
