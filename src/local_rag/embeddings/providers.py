"""
Embeddings Module - Single Responsibility: Generate text embeddings.

It has ONE job: convert text to fixed-width vectors.

Every provider is created through ``init(model_identifier, dimension,
precision)`` and returns float32 vectors of exactly ``dimension``
components. The dimension must match the vector store's column width;
providers never pad or truncate to fit a store.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from typing import TYPE_CHECKING

import numpy as np
from openai import OpenAI

from local_rag.core.protocols import EmbeddingProvider
from local_rag.errors import EmbeddingError, InitializationError

if TYPE_CHECKING:
    from local_rag.config import RagConfig

logger = logging.getLogger(__name__)


# Precision hint -> SentenceTransformer constructor kwargs.
# q8 loads the int8 ONNX export published alongside the model weights.
PRECISION_OPTIONS: dict[str, dict] = {
    "fp32": {},
    "fp16": {"model_kwargs": {"torch_dtype": "float16"}},
    "q8": {"backend": "onnx", "model_kwargs": {"file_name": "onnx/model_quantized.onnx"}},
}


def _as_vector(raw, source: str) -> np.ndarray:
    if raw is None:
        raise EmbeddingError(f"{source} returned no embedding")
    vector = np.asarray(raw, dtype=np.float32).reshape(-1)
    if vector.size == 0:
        raise EmbeddingError(f"{source} returned an empty embedding")
    return vector


class SentenceTransformerEmbeddings:
    """
    Local embedding model loaded through sentence-transformers.

    The default model (ruri-v3-30m) is a small Japanese-capable encoder
    whose native width is 256, so no truncation happens at the default
    dimension.
    """

    def __init__(self, model, dimension: int, model_identifier: str):
        self._model = model
        self._dimensions = dimension
        self.model_identifier = model_identifier

    @classmethod
    def init(
        cls,
        model_identifier: str,
        dimension: int,
        precision: str = "fp32",
    ) -> "SentenceTransformerEmbeddings":
        """Load the model. Raises InitializationError if it cannot be used."""
        if precision not in PRECISION_OPTIONS:
            raise InitializationError(
                f"Unknown precision hint {precision!r}; expected one of {sorted(PRECISION_OPTIONS)}"
            )

        try:
            from sentence_transformers import SentenceTransformer

            model = SentenceTransformer(
                model_identifier,
                truncate_dim=dimension,
                **PRECISION_OPTIONS[precision],
            )
        except Exception as e:
            raise InitializationError(
                f"Could not load embedding model {model_identifier!r}: {e}"
            ) from e

        native = model.get_sentence_embedding_dimension()
        if native is not None and native < dimension:
            raise InitializationError(
                f"Model {model_identifier!r} produces {native} components, {dimension} requested"
            )

        logger.info(f"Embedding model loaded: {model_identifier} ({precision}, dim={dimension})")
        return cls(model, dimension, model_identifier)

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> np.ndarray:
        """Generate embedding for a single text."""
        raw = self._model.encode(text, convert_to_numpy=True)
        return _as_vector(raw, self.model_identifier)

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts."""
        if not texts:
            return []
        raw = self._model.encode(texts, convert_to_numpy=True)
        if raw is None or len(raw) != len(texts):
            raise EmbeddingError(
                f"{self.model_identifier} returned {0 if raw is None else len(raw)} "
                f"embeddings for {len(texts)} texts"
            )
        return [_as_vector(row, self.model_identifier) for row in raw]


class OpenAIEmbeddings:
    """
    OpenAI-based embedding provider.

    text-embedding-3-* models accept a ``dimensions`` argument, so the
    API returns vectors already shortened to the store width.
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        dimension: int = 256,
        api_key: str | None = None,
    ):
        self.model = model
        self._dimensions = dimension
        self._client = OpenAI(api_key=api_key or os.environ.get("OPENAI_API_KEY"))

    @classmethod
    def init(
        cls,
        model_identifier: str,
        dimension: int,
        precision: str = "fp32",
    ) -> "OpenAIEmbeddings":
        # The API always returns float32; the precision hint has no effect.
        try:
            return cls(model=model_identifier, dimension=dimension)
        except Exception as e:
            raise InitializationError(f"Could not create OpenAI client: {e}") from e

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> np.ndarray:
        """Generate embedding for a single text."""
        response = self._client.embeddings.create(
            input=text,
            model=self.model,
            dimensions=self._dimensions,
        )
        if not response.data:
            raise EmbeddingError(f"{self.model} returned no embedding")
        return _as_vector(response.data[0].embedding, self.model)

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts efficiently."""
        if not texts:
            return []

        response = self._client.embeddings.create(
            input=texts,
            model=self.model,
            dimensions=self._dimensions,
        )
        if len(response.data) != len(texts):
            raise EmbeddingError(
                f"{self.model} returned {len(response.data)} embeddings for {len(texts)} texts"
            )
        return [_as_vector(item.embedding, self.model) for item in response.data]


_TOKEN = re.compile(r"\w+", re.UNICODE)


class MockEmbeddings:
    """
    Mock embedding provider for testing without model downloads.

    Hashed bag-of-words: each lowercase token adds a signed unit to one
    md5-selected component, and the result is L2-normalised. Texts that
    share words end up close together, which is enough to exercise
    ranking. NOT for production use.
    """

    def __init__(self, dimensions: int = 256):
        self._dimensions = dimensions

    @classmethod
    def init(
        cls,
        model_identifier: str = "mock",
        dimension: int = 256,
        precision: str = "fp32",
    ) -> "MockEmbeddings":
        return cls(dimensions=dimension)

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic pseudo-embedding from token hashes."""
        vector = np.zeros(self._dimensions, dtype=np.float32)
        for token in _TOKEN.findall(text.lower()):
            digest = int(hashlib.md5(token.encode()).hexdigest(), 16)
            sign = 1.0 if (digest >> 127) & 1 else -1.0
            vector[digest % self._dimensions] += sign
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts."""
        return [self.embed(text) for text in texts]


EMBEDDING_BACKENDS = {
    "sentence-transformers": SentenceTransformerEmbeddings,
    "openai": OpenAIEmbeddings,
    "mock": MockEmbeddings,
}


def get_embedding_provider(config: RagConfig | None = None) -> EmbeddingProvider:
    """
    Factory function to get the configured embedding provider.

    Args:
        config: RAG configuration (loaded from env if not provided)

    Raises:
        InitializationError: unknown backend, or the model failed to load
    """
    if config is None:
        from local_rag.config import RagConfig

        config = RagConfig.from_env()

    provider_cls = EMBEDDING_BACKENDS.get(config.embedding_backend)
    if provider_cls is None:
        raise InitializationError(
            f"Unknown embedding backend {config.embedding_backend!r}; "
            f"expected one of {sorted(EMBEDDING_BACKENDS)}"
        )

    return provider_cls.init(
        config.embedding_model,
        config.embedding_dim,
        config.embedding_precision,
    )
