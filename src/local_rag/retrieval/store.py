"""
Vector store implementations.

Pattern: Protocol → Production impl → Test double → Factory

This module contains:
1. DuckDBVectorStore - embedded DuckDB database file (production)
2. InMemoryVectorStore - list-backed store (testing/development)
3. get_vector_store() - Factory function

Both stores rank by Euclidean distance (smaller = more similar), reject
vectors whose width differs from the configured dimension, and return
scores rounded to SCORE_PRECISION decimals.

SQL SAFETY:
-----------
Content, filepath and vectors always travel as bound parameters. The
only text interpolated into statements is the table name (validated as
an identifier by RagConfig, then double-quoted), the integer dimension
and the integer limit.
"""

from __future__ import annotations

import logging
import re

import duckdb
import numpy as np

from local_rag.config import SCORE_PRECISION, RagConfig
from local_rag.core import EmbeddingProvider, SearchResult
from local_rag.errors import (
    DimensionMismatchError,
    EmbeddingError,
    MissingEmbeddingError,
    StoreInitError,
    StoreNotInitializedError,
    StoreQueryError,
    TerminationError,
)
from local_rag.observability import get_tracer
from local_rag.observability.attributes import (
    RAG_DOCUMENT_FILEPATH,
    RAG_INSERT_COUNT,
    RAG_SEARCH_LIMIT,
    RAG_SEARCH_QUERY,
    RAG_SEARCH_RESULT_COUNT,
    RAG_SEARCH_TOP_SCORE,
    store_attributes,
)
from local_rag.observability.config import get_config
from local_rag.retrieval.document import DocumentChunk, StoredRecord

logger = logging.getLogger(__name__)

_ARRAY_WIDTH = re.compile(r"\[(\d+)\]\s*$")


# ---------------------------------------------------------------------------
# SHARED HELPERS
# ---------------------------------------------------------------------------


def _validate_limit(limit: int) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")
    return limit


def _embed_or_raise(embeddings: EmbeddingProvider, text: str, dim: int) -> np.ndarray:
    """Embed text and enforce the fixed width. Never pads or truncates."""
    try:
        raw = embeddings.embed(text)
    except EmbeddingError as e:
        raise MissingEmbeddingError(f'Embedding data missing for: "{text[:80]}"') from e

    if raw is None:
        raise MissingEmbeddingError(f'Embedding data missing for: "{text[:80]}"')
    vector = np.asarray(raw, dtype=np.float32).reshape(-1)
    if vector.size == 0:
        raise MissingEmbeddingError(f'Embedding data missing for: "{text[:80]}"')
    if vector.size != dim:
        raise DimensionMismatchError(expected=dim, actual=int(vector.size))
    return vector


def _embed_batch_or_raise(
    embeddings: EmbeddingProvider,
    texts: list[str],
    dim: int,
) -> list[np.ndarray]:
    try:
        raws = embeddings.embed_batch(texts)
    except EmbeddingError as e:
        raise MissingEmbeddingError(f"Embedding data missing for batch of {len(texts)}") from e

    if raws is None or len(raws) != len(texts):
        raise MissingEmbeddingError(f"Embedding data missing for batch of {len(texts)}")

    vectors = []
    for text, raw in zip(texts, raws):
        vector = np.asarray(raw if raw is not None else [], dtype=np.float32).reshape(-1)
        if vector.size == 0:
            raise MissingEmbeddingError(f'Embedding data missing for: "{text[:80]}"')
        if vector.size != dim:
            raise DimensionMismatchError(expected=dim, actual=int(vector.size))
        vectors.append(vector)
    return vectors


def _capture_content() -> bool:
    return get_config().capture_llm_content


# ---------------------------------------------------------------------------
# DUCKDB STORE (Production)
# ---------------------------------------------------------------------------


class DuckDBVectorStore:
    """
    Vector store backed by a single DuckDB database file.

    Records live in one table with a fixed-width ``FLOAT[D]`` column and
    are ranked with ``array_distance``. There is no ANN index: every search
    scans the table, so ``limit`` is mandatory.

    Dependencies are INJECTED, not created internally.

    Not safe for concurrent use from several threads; RetrievalIndex
    serializes calls before handing them to worker threads.
    """

    backend = "duckdb"

    def __init__(
        self,
        config: RagConfig,
        embeddings: EmbeddingProvider,
    ):
        """
        Args:
            config: Store configuration
            embeddings: Embedding provider (injected, not created here)
        """
        self.config = config
        self._embeddings = embeddings
        self._db: duckdb.DuckDBPyConnection | None = None
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._initialized = False
        self.last_termination_error: TerminationError | None = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def dimension(self) -> int:
        return self.config.embedding_dim

    @property
    def _table(self) -> str:
        return self.config.table_name

    @property
    def _sql_table(self) -> str:
        # Quoted so reserved words work; DuckDB still matches it case-insensitively
        return f'"{self.config.table_name}"'

    def _span_attributes(self) -> dict:
        return store_attributes(self.backend, self._table, self.dimension)

    # -- lifecycle ----------------------------------------------------------

    def initialize(self) -> None:
        """
        Open (or create) the database file and ensure the table exists.

        Idempotent. An existing table is never re-created, so data survives
        restarts. On failure every acquired handle is released before
        StoreInitError is raised.
        """
        if self._initialized:
            logger.warning("DuckDBVectorStore is already initialized.")
            return

        path = self.config.db_path
        try:
            if str(path) != ":memory:":
                path.parent.mkdir(parents=True, exist_ok=True)

            self._db = duckdb.connect(str(path))
            self._conn = self._db.cursor()
            logger.info(f"DuckDB opened: {path}")

            if self._table_exists():
                self._check_existing_width()
                logger.info(
                    f"Table '{self._table}' found with {self._count()} existing records."
                )
            else:
                self._conn.execute(
                    f"""
                    CREATE TABLE {self._sql_table} (
                        content VARCHAR,
                        filepath VARCHAR,
                        embedding FLOAT[{self.dimension}]
                    )
                    """
                )
                logger.info(f"Table '{self._table}' created (FLOAT[{self.dimension}]).")

            self._initialized = True

        except Exception as e:
            logger.error(f"Vector store initialization failed: {e}")
            self.terminate()
            raise StoreInitError(f"Vector store initialization failed: {e}") from e

    def terminate(self) -> None:
        """
        Checkpoint and close the connection and the database.

        Safe to call repeatedly. Failures are logged and recorded on
        ``last_termination_error``; handles are cleared regardless.
        """
        failures: list[str] = []

        if self._db is not None and self._initialized:
            try:
                self._db.execute("CHECKPOINT")
            except Exception as e:
                failures.append(f"checkpoint: {e}")

        if self._conn is not None:
            try:
                self._conn.close()
            except Exception as e:
                failures.append(f"connection: {e}")
            self._conn = None

        if self._db is not None:
            try:
                self._db.close()
            except Exception as e:
                failures.append(f"database: {e}")
            self._db = None

        self._initialized = False

        if failures:
            self.last_termination_error = TerminationError("; ".join(failures))
            logger.error(
                f"Termination failed, resources may still be active: {self.last_termination_error}"
            )
        else:
            logger.info("DuckDBVectorStore terminated.")

    # -- operations ---------------------------------------------------------

    def insert(self, doc: DocumentChunk) -> None:
        """Embed ``doc.content`` and append one row."""
        conn = self._require_connection()
        with get_tracer().start_span("vector_store.insert", attributes=self._span_attributes()) as span:
            span.set_attribute(RAG_INSERT_COUNT, 1)
            span.set_attribute(RAG_DOCUMENT_FILEPATH, doc.filepath)
            vector = _embed_or_raise(self._embeddings, doc.content, self.dimension)
            try:
                conn.execute(self._insert_sql(), self._row_params(doc, vector))
            except duckdb.Error as e:
                span.record_exception(e)
                raise StoreQueryError(f"Insert into '{self._table}' failed: {e}") from e

    def insert_batch(self, docs: list[DocumentChunk]) -> None:
        """Embed all chunks in one call and write them in one transaction."""
        conn = self._require_connection()
        if not docs:
            return

        with get_tracer().start_span("vector_store.insert", attributes=self._span_attributes()) as span:
            span.set_attribute(RAG_INSERT_COUNT, len(docs))
            vectors = _embed_batch_or_raise(
                self._embeddings, [doc.content for doc in docs], self.dimension
            )
            params = [self._row_params(doc, vec) for doc, vec in zip(docs, vectors)]
            try:
                conn.begin()
                conn.executemany(self._insert_sql(), params)
                conn.commit()
            except duckdb.Error as e:
                try:
                    conn.rollback()
                except duckdb.Error as rollback_error:
                    logger.warning(f"Rollback after failed batch insert failed: {rollback_error}")
                span.record_exception(e)
                raise StoreQueryError(f"Batch insert into '{self._table}' failed: {e}") from e

        logger.debug(f"Inserted {len(docs)} records into '{self._table}'")

    def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        """
        Return up to ``limit`` chunks ordered by ascending distance.

        An empty table yields an empty list.
        """
        limit = _validate_limit(limit)
        conn = self._require_connection()

        with get_tracer().start_span("vector_store.search", attributes=self._span_attributes()) as span:
            span.set_attribute(RAG_SEARCH_LIMIT, limit)
            if _capture_content():
                span.set_attribute(RAG_SEARCH_QUERY, query)

            query_vector = _embed_or_raise(self._embeddings, query, self.dimension)
            try:
                rows = conn.execute(
                    f"""
                    SELECT
                        content,
                        filepath,
                        array_distance(embedding, CAST(? AS FLOAT[{self.dimension}])) AS similarity_score
                    FROM {self._sql_table}
                    ORDER BY similarity_score
                    LIMIT {limit}
                    """,
                    [query_vector.tolist()],
                ).fetchall()
            except duckdb.Error as e:
                span.record_exception(e)
                raise StoreQueryError(f"Search on '{self._table}' failed: {e}") from e

            results = [
                SearchResult(
                    content=content,
                    similarity_score=round(float(score), SCORE_PRECISION),
                    filepath=filepath,
                )
                for content, filepath, score in rows
            ]
            span.set_attribute(RAG_SEARCH_RESULT_COUNT, len(results))
            if results:
                span.set_attribute(RAG_SEARCH_TOP_SCORE, results[0].similarity_score)
            return results

    def count(self) -> int:
        """Number of stored rows."""
        self._require_connection()
        return self._count()

    # -- internals ----------------------------------------------------------

    def _require_connection(self) -> duckdb.DuckDBPyConnection:
        if not self._initialized or self._conn is None:
            raise StoreNotInitializedError(
                "Vector store not initialized. Call initialize() first."
            )
        return self._conn

    def _insert_sql(self) -> str:
        return (
            f"INSERT INTO {self._sql_table} (content, filepath, embedding) "
            f"VALUES (?, ?, CAST(? AS FLOAT[{self.dimension}]))"
        )

    @staticmethod
    def _row_params(doc: DocumentChunk, vector: np.ndarray) -> list:
        return [doc.content, doc.filepath, vector.tolist()]

    def _table_exists(self) -> bool:
        row = self._conn.execute(
            """
            SELECT EXISTS (
                SELECT 1
                FROM information_schema.tables
                WHERE lower(table_name) = lower(?)
            ) AS exists_flag
            """,
            [self._table],
        ).fetchone()
        return bool(row[0])

    def _check_existing_width(self) -> None:
        row = self._conn.execute(
            """
            SELECT data_type
            FROM information_schema.columns
            WHERE lower(table_name) = lower(?) AND column_name = 'embedding'
            """,
            [self._table],
        ).fetchone()
        if row is None:
            raise StoreQueryError(f"Table '{self._table}' has no embedding column")

        match = _ARRAY_WIDTH.search(str(row[0]))
        if match and int(match.group(1)) != self.dimension:
            raise DimensionMismatchError(expected=self.dimension, actual=int(match.group(1)))

    def _count(self) -> int:
        return int(self._conn.execute(f"SELECT count(*) FROM {self._sql_table}").fetchone()[0])


# ---------------------------------------------------------------------------
# IN-MEMORY STORE (Testing/Development)
# ---------------------------------------------------------------------------


class InMemoryVectorStore:
    """
    In-memory vector store for development/testing.

    Implements the same interface as DuckDBVectorStore without a database.
    Records survive terminate() so a re-initialized store behaves like a
    reopened file.
    """

    backend = "memory"

    def __init__(self, embeddings: EmbeddingProvider, dimension: int = 256):
        self._embeddings = embeddings
        self._dimension = dimension
        self._records: list[StoredRecord] = []
        self._initialized = False
        self.last_termination_error: TerminationError | None = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def dimension(self) -> int:
        return self._dimension

    def initialize(self) -> None:
        if self._initialized:
            logger.warning("InMemoryVectorStore is already initialized.")
            return
        self._initialized = True

    def terminate(self) -> None:
        self._initialized = False

    def insert(self, doc: DocumentChunk) -> None:
        self._require_initialized()
        vector = _embed_or_raise(self._embeddings, doc.content, self._dimension)
        self._records.append(StoredRecord(chunk=doc, embedding=vector))

    def insert_batch(self, docs: list[DocumentChunk]) -> None:
        self._require_initialized()
        if not docs:
            return
        vectors = _embed_batch_or_raise(
            self._embeddings, [doc.content for doc in docs], self._dimension
        )
        self._records.extend(
            StoredRecord(chunk=doc, embedding=vec) for doc, vec in zip(docs, vectors)
        )

    def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        """Search using Euclidean distance, like array_distance."""
        limit = _validate_limit(limit)
        self._require_initialized()
        if not self._records:
            return []

        query_vector = _embed_or_raise(self._embeddings, query, self._dimension)
        matrix = np.stack([record.embedding for record in self._records])
        distances = np.linalg.norm(matrix - query_vector, axis=1)
        order = np.argsort(distances, kind="stable")[:limit]

        return [
            SearchResult(
                content=self._records[i].content,
                similarity_score=round(float(distances[i]), SCORE_PRECISION),
                filepath=self._records[i].filepath,
            )
            for i in order
        ]

    def count(self) -> int:
        self._require_initialized()
        return len(self._records)

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise StoreNotInitializedError(
                "Vector store not initialized. Call initialize() first."
            )


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_vector_store(
    config: RagConfig,
    embeddings: EmbeddingProvider,
    in_memory: bool = False,
) -> DuckDBVectorStore | InMemoryVectorStore:
    """
    Factory function to get the appropriate vector store.

    Args:
        config: Store configuration
        embeddings: Embedding provider, already initialized
        in_memory: Use the list-backed test double instead of DuckDB
    """
    if in_memory:
        return InMemoryVectorStore(embeddings, dimension=config.embedding_dim)
    return DuckDBVectorStore(config, embeddings)
