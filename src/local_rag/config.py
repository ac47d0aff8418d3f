"""
Configuration for the retrieval index and the generation engine.

Values are fixed constants with environment-variable overrides, loaded
through ``from_env()``. Nothing here is negotiated at runtime.

Environment Variables:
    LOCAL_RAG_DB_PATH: DuckDB file (default: ~/.local/share/local-rag/duckdb.db)
    LOCAL_RAG_TABLE: Records table name (default: chunks)
    LOCAL_RAG_EMBEDDING_DIM: Vector width D (default: 256)
    LOCAL_RAG_EMBEDDING_BACKEND: sentence-transformers | openai | mock
    LOCAL_RAG_EMBEDDING_MODEL: Embedding model identifier
    LOCAL_RAG_EMBEDDING_PRECISION: fp32 | fp16 | q8 (default: q8)
    LOCAL_RAG_OPERATION_TIMEOUT: Seconds per index call (default: unbounded)
    GENERATION_BACKEND: openai | mock (default: openai)
    GENERATION_MODEL: Chat model identifier
    GENERATION_BASE_URL: OpenAI-compatible endpoint of the local runtime
    GENERATION_API_KEY: API key for the endpoint (falls back to OPENAI_API_KEY)
    GENERATION_INIT_TIMEOUT: Seconds allowed for engine construction (default: 300)
    GENERATION_TIMEOUT: Seconds allowed per streamed completion (default: unbounded)
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

# Persisted-layout and model constants
DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "local-rag" / "duckdb.db"
DEFAULT_TABLE_NAME = "chunks"
DEFAULT_EMBEDDING_DIM = 256
DEFAULT_EMBEDDING_BACKEND = "sentence-transformers"
DEFAULT_EMBEDDING_MODEL = "sirasagi62/ruri-v3-30m-ONNX"
DEFAULT_EMBEDDING_PRECISION = "q8"

DEFAULT_GENERATION_BACKEND = "openai"
DEFAULT_GENERATION_MODEL = "gemma-2-2b-jpn-it"
DEFAULT_GENERATION_BASE_URL = "http://localhost:11434/v1"
GENERATION_TEMPERATURE = 0.7
GENERATION_MAX_TOKENS = 512
DEFAULT_INIT_TIMEOUT_S = 300.0

SCORE_PRECISION = 4

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _optional_float(name: str) -> float | None:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


def validate_identifier(name: str) -> str:
    """Reject table names that are not plain SQL identifiers."""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


@dataclass
class RagConfig:
    """Configuration for the embedding provider and the vector store."""

    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    table_name: str = DEFAULT_TABLE_NAME
    embedding_dim: int = DEFAULT_EMBEDDING_DIM
    embedding_backend: str = DEFAULT_EMBEDDING_BACKEND
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_precision: str = DEFAULT_EMBEDDING_PRECISION
    operation_timeout_s: float | None = None

    def __post_init__(self) -> None:
        self.db_path = Path(self.db_path)
        validate_identifier(self.table_name)
        if self.embedding_dim <= 0:
            raise ValueError(f"embedding_dim must be positive, got {self.embedding_dim}")

    @classmethod
    def from_env(cls) -> "RagConfig":
        """Load config from environment variables."""
        return cls(
            db_path=Path(os.environ.get("LOCAL_RAG_DB_PATH", str(DEFAULT_DB_PATH))).expanduser(),
            table_name=os.environ.get("LOCAL_RAG_TABLE", DEFAULT_TABLE_NAME),
            embedding_dim=int(os.environ.get("LOCAL_RAG_EMBEDDING_DIM", DEFAULT_EMBEDDING_DIM)),
            embedding_backend=os.environ.get("LOCAL_RAG_EMBEDDING_BACKEND", DEFAULT_EMBEDDING_BACKEND),
            embedding_model=os.environ.get("LOCAL_RAG_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            embedding_precision=os.environ.get("LOCAL_RAG_EMBEDDING_PRECISION", DEFAULT_EMBEDDING_PRECISION),
            operation_timeout_s=_optional_float("LOCAL_RAG_OPERATION_TIMEOUT"),
        )


@dataclass
class EngineConfig:
    """Configuration for the streaming generation engine.

    Temperature and max_tokens are fixed generation constants; they are
    fields only so tests can read them from one place.
    """

    backend: str = DEFAULT_GENERATION_BACKEND
    model: str = DEFAULT_GENERATION_MODEL
    base_url: str = DEFAULT_GENERATION_BASE_URL
    api_key: str = "local"
    temperature: float = GENERATION_TEMPERATURE
    max_tokens: int = GENERATION_MAX_TOKENS
    init_timeout_s: float | None = DEFAULT_INIT_TIMEOUT_S
    generation_timeout_s: float | None = None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load config from environment variables."""
        init_timeout = _optional_float("GENERATION_INIT_TIMEOUT")
        return cls(
            backend=os.environ.get("GENERATION_BACKEND", DEFAULT_GENERATION_BACKEND),
            model=os.environ.get("GENERATION_MODEL", DEFAULT_GENERATION_MODEL),
            base_url=os.environ.get("GENERATION_BASE_URL", DEFAULT_GENERATION_BASE_URL),
            api_key=(
                os.environ.get("GENERATION_API_KEY")
                or os.environ.get("OPENAI_API_KEY")
                or "local"
            ),
            init_timeout_s=init_timeout if init_timeout is not None else DEFAULT_INIT_TIMEOUT_S,
            generation_timeout_s=_optional_float("GENERATION_TIMEOUT"),
        )
