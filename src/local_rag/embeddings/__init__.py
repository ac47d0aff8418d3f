"""
Embeddings module - text embedding generation.

1. Protocol (EmbeddingProvider) defines the interface
2. Production implementations (SentenceTransformerEmbeddings, OpenAIEmbeddings)
3. Test double (MockEmbeddings) for fast testing
4. Factory function (get_embedding_provider)
"""

from local_rag.embeddings.providers import (
    EMBEDDING_BACKENDS,
    PRECISION_OPTIONS,
    SentenceTransformerEmbeddings,
    OpenAIEmbeddings,
    MockEmbeddings,
    get_embedding_provider,
)
from local_rag.core.protocols import EmbeddingProvider

__all__ = [
    "EmbeddingProvider",
    "SentenceTransformerEmbeddings",
    "OpenAIEmbeddings",
    "MockEmbeddings",
    "get_embedding_provider",
    "EMBEDDING_BACKENDS",
    "PRECISION_OPTIONS",
]
