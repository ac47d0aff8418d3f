"""
Shared fixtures for the local_rag test suite.

KeywordEmbeddings gives hand-checkable geometry: each known keyword owns
one axis, so "hello" is provably closer to "hello world" than to
"goodbye". Stores use a small dimension to keep vectors readable.
"""

import numpy as np
import pytest

from local_rag.config import EngineConfig, RagConfig
from local_rag.retrieval.store import DuckDBVectorStore

TEST_DIM = 8


class KeywordEmbeddings:
    """One axis per keyword, last axis for text with no known keyword."""

    KEYWORDS = ("hello", "goodbye", "world", "river", "mountain")

    def __init__(self, dimensions: int = TEST_DIM):
        self._dimensions = dimensions
        self.calls: list[str] = []

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> np.ndarray:
        self.calls.append(text)
        vector = np.zeros(self._dimensions, dtype=np.float32)
        lowered = text.lower()
        for axis, keyword in enumerate(self.KEYWORDS):
            if keyword in lowered:
                vector[axis] = 1.0
        if not vector.any():
            vector[-1] = 1.0
        return vector / np.linalg.norm(vector)

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        return [self.embed(text) for text in texts]


@pytest.fixture
def keyword_embeddings():
    return KeywordEmbeddings()


@pytest.fixture
def rag_config(tmp_path):
    """DuckDB file under tmp_path, small vectors, mock embedding backend."""
    return RagConfig(
        db_path=tmp_path / "store" / "rag.db",
        table_name="chunks",
        embedding_dim=TEST_DIM,
        embedding_backend="mock",
        embedding_model="mock",
        embedding_precision="fp32",
    )


@pytest.fixture
def engine_config():
    return EngineConfig(backend="mock", model="test-model", init_timeout_s=2.0)


@pytest.fixture
def duckdb_store(rag_config, keyword_embeddings):
    """Initialized DuckDB store, terminated after the test."""
    store = DuckDBVectorStore(rag_config, keyword_embeddings)
    store.initialize()
    yield store
    store.terminate()
