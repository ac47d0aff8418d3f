"""
Semantic Conventions for Span Attributes

Attribute keys following OpenTelemetry GenAI conventions plus a custom
``rag.*`` namespace for the retrieval path.

Reference: https://opentelemetry.io/docs/specs/semconv/gen-ai/
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# GENAI NAMESPACE (OTel standard)
# ---------------------------------------------------------------------------

GEN_AI_SYSTEM = "gen_ai.system"  # "openai-compatible", "mock"
GEN_AI_REQUEST_MODEL = "gen_ai.request.model"
GEN_AI_REQUEST_TEMPERATURE = "gen_ai.request.temperature"
GEN_AI_REQUEST_MAX_TOKENS = "gen_ai.request.max_tokens"

# Only set when PHOENIX_CAPTURE_LLM_CONTENT is on
GEN_AI_PROMPT = "gen_ai.prompt"
GEN_AI_COMPLETION = "gen_ai.completion"


# ---------------------------------------------------------------------------
# RAG NAMESPACE (custom)
# ---------------------------------------------------------------------------

RAG_STORE_BACKEND = "rag.store.backend"  # "duckdb", "memory"
RAG_STORE_TABLE = "rag.store.table"
RAG_EMBEDDING_DIM = "rag.embedding.dim"
RAG_SEARCH_LIMIT = "rag.search.limit"
RAG_SEARCH_RESULT_COUNT = "rag.search.result_count"
RAG_SEARCH_TOP_SCORE = "rag.search.top_score"
RAG_SEARCH_QUERY = "rag.search.query"  # content capture only
RAG_INSERT_COUNT = "rag.insert.count"
RAG_DOCUMENT_FILEPATH = "rag.document.filepath"


# ---------------------------------------------------------------------------
# ENGINE NAMESPACE (custom)
# ---------------------------------------------------------------------------

ENGINE_STATE = "engine.state"
ENGINE_CHUNK_COUNT = "engine.stream.chunk_count"
ENGINE_FIRST_CHUNK_MS = "engine.stream.first_chunk_ms"


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def store_attributes(backend: str, table: str, dim: int) -> dict[str, Any]:
    """Common attributes for vector store spans."""
    return {
        RAG_STORE_BACKEND: backend,
        RAG_STORE_TABLE: table,
        RAG_EMBEDDING_DIM: dim,
    }


def generation_attributes(
    system: str,
    model: str,
    temperature: float,
    max_tokens: int,
) -> dict[str, Any]:
    """Request attributes for a streamed completion span."""
    return {
        GEN_AI_SYSTEM: system,
        GEN_AI_REQUEST_MODEL: model,
        GEN_AI_REQUEST_TEMPERATURE: temperature,
        GEN_AI_REQUEST_MAX_TOKENS: max_tokens,
    }
