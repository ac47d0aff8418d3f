"""
Core protocols defining contracts for the RAG substrate.

All infrastructure components implement these protocols,
enabling dependency injection and easy testing.

PATTERN:
--------
- Protocol defines the contract
- Production implementation (DuckDB, sentence-transformers, OpenAI client)
- Test double (in-memory store, mock embeddings, scripted engine)
- Factory function for instantiation
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncIterator, Protocol, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from local_rag.retrieval.document import DocumentChunk


# ---------------------------------------------------------------------------
# EMBEDDING PROVIDER PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Contract for embedding generation.

    Implementations:
    - SentenceTransformerEmbeddings (local model, default)
    - OpenAIEmbeddings (remote API)
    - MockEmbeddings (testing)
    """

    @property
    def dimensions(self) -> int:
        """Width of every vector this provider returns."""
        ...

    def embed(self, text: str) -> np.ndarray:
        """Generate embedding for a single text."""
        ...

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts."""
        ...


# ---------------------------------------------------------------------------
# VECTOR STORE PROTOCOL
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchResult:
    """A retrieved chunk with its vector distance (lower = more similar)."""
    content: str
    similarity_score: float
    filepath: str | None = None

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "similarity_score": self.similarity_score,
            "filepath": self.filepath,
        }


@runtime_checkable
class VectorStore(Protocol):
    """
    Contract for vector similarity search.

    Implementations:
    - DuckDBVectorStore (persistent database file)
    - InMemoryVectorStore (testing/development)
    """

    @property
    def is_initialized(self) -> bool:
        ...

    def initialize(self) -> None:
        """Open resources and ensure the records table exists."""
        ...

    def insert(self, doc: DocumentChunk) -> None:
        """Embed and store a single chunk."""
        ...

    def insert_batch(self, docs: list[DocumentChunk]) -> None:
        """Embed and store several chunks."""
        ...

    def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        """Return the closest chunks, ordered by ascending distance."""
        ...

    def count(self) -> int:
        """Number of stored rows."""
        ...

    def terminate(self) -> None:
        """Release resources. Never raises."""
        ...


# ---------------------------------------------------------------------------
# GENERATION ENGINE PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class GenerationEngine(Protocol):
    """
    Contract for a heavyweight streaming text-generation engine.

    Implementations:
    - OpenAICompatibleEngine (any OpenAI-compatible chat endpoint)
    - MockGenerationEngine (testing)
    """

    @property
    def model(self) -> str:
        ...

    def stream(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> AsyncIterator[str]:
        """Yield text deltas in generation order."""
        ...

    async def dispose(self) -> None:
        """Release the engine's runtime resources."""
        ...
