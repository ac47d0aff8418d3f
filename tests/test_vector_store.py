"""
Unit Tests for the vector stores

DuckDBVectorStore runs against a real DuckDB file under tmp_path;
InMemoryVectorStore is checked for the same observable behavior.

PATTERNS:
---------
1. Real database file, fake embeddings (no model download)
2. Persistence verified by terminate + reopen on the same path
3. Teardown failures injected with mocks
"""

from unittest.mock import MagicMock, patch

import duckdb
import numpy as np
import pytest

from local_rag.config import RagConfig
from local_rag.errors import (
    DimensionMismatchError,
    EmbeddingError,
    MissingEmbeddingError,
    StoreInitError,
    StoreNotInitializedError,
    TerminationError,
)
from local_rag.retrieval.document import DocumentChunk
from local_rag.retrieval.store import (
    DuckDBVectorStore,
    InMemoryVectorStore,
    get_vector_store,
)

from conftest import TEST_DIM, KeywordEmbeddings


def _fixed_embeddings(vector):
    embeddings = MagicMock()
    embeddings.embed.return_value = vector
    embeddings.embed_batch.side_effect = lambda texts: [vector for _ in texts]
    return embeddings


# ---------------------------------------------------------------------------
# INITIALIZATION
# ---------------------------------------------------------------------------


class TestDuckDBInitialize:
    """Opening, creating and re-opening the database file."""

    def test_creates_file_and_empty_table(self, rag_config, keyword_embeddings):
        store = DuckDBVectorStore(rag_config, keyword_embeddings)
        store.initialize()
        try:
            assert store.is_initialized
            assert rag_config.db_path.exists()
            assert store.count() == 0
        finally:
            store.terminate()

    def test_initialize_twice_is_noop(self, duckdb_store, caplog):
        duckdb_store.insert(DocumentChunk("hello world", "a.txt"))

        duckdb_store.initialize()

        assert duckdb_store.is_initialized
        assert duckdb_store.count() == 1
        assert "already initialized" in caplog.text

    def test_existing_table_is_kept_across_reopen(self, rag_config, keyword_embeddings):
        first = DuckDBVectorStore(rag_config, keyword_embeddings)
        first.initialize()
        first.insert(DocumentChunk("hello world", "a.txt"))
        first.terminate()

        second = DuckDBVectorStore(rag_config, keyword_embeddings)
        second.initialize()
        try:
            assert second.count() == 1
            results = second.search("hello", limit=1)
            assert results[0].content == "hello world"
        finally:
            second.terminate()

    def test_existing_table_with_other_width_is_rejected(self, rag_config, keyword_embeddings):
        store = DuckDBVectorStore(rag_config, keyword_embeddings)
        store.initialize()
        store.terminate()

        narrower = RagConfig(
            db_path=rag_config.db_path,
            table_name=rag_config.table_name,
            embedding_dim=4,
            embedding_backend="mock",
        )
        reopened = DuckDBVectorStore(narrower, KeywordEmbeddings(4))

        with pytest.raises(StoreInitError):
            reopened.initialize()

        assert not reopened.is_initialized
        assert reopened._conn is None
        assert reopened._db is None

    @pytest.mark.parametrize("table_name", ["order", "select", "group"])
    def test_reserved_word_table_names(self, rag_config, keyword_embeddings, table_name):
        config = RagConfig(
            db_path=rag_config.db_path,
            table_name=table_name,
            embedding_dim=TEST_DIM,
            embedding_backend="mock",
        )
        store = DuckDBVectorStore(config, keyword_embeddings)
        store.initialize()
        try:
            store.insert(DocumentChunk("hello world", "a.txt"))
            store.insert_batch([DocumentChunk("goodbye", "b.txt")])
            assert store.count() == 2
            assert store.search("hello", limit=1)[0].filepath == "a.txt"
        finally:
            store.terminate()

    def test_reopen_with_differently_cased_table_name(self, rag_config, keyword_embeddings):
        def config_for(table_name):
            return RagConfig(
                db_path=rag_config.db_path,
                table_name=table_name,
                embedding_dim=TEST_DIM,
                embedding_backend="mock",
            )

        first = DuckDBVectorStore(config_for("Chunks"), keyword_embeddings)
        first.initialize()
        first.insert(DocumentChunk("hello world", "a.txt"))
        first.terminate()

        second = DuckDBVectorStore(config_for("chunks"), keyword_embeddings)
        second.initialize()
        try:
            assert second.count() == 1
        finally:
            second.terminate()

    def test_connect_failure_raises_store_init_error(self, rag_config, keyword_embeddings):
        store = DuckDBVectorStore(rag_config, keyword_embeddings)

        with patch("local_rag.retrieval.store.duckdb.connect", side_effect=duckdb.IOException("locked")):
            with pytest.raises(StoreInitError, match="locked"):
                store.initialize()

        assert not store.is_initialized

    def test_partial_failure_releases_acquired_handles(self, rag_config, keyword_embeddings):
        mock_db = MagicMock()
        mock_cursor = mock_db.cursor.return_value
        mock_cursor.execute.side_effect = duckdb.Error("catalog unavailable")
        store = DuckDBVectorStore(rag_config, keyword_embeddings)

        with patch("local_rag.retrieval.store.duckdb.connect", return_value=mock_db):
            with pytest.raises(StoreInitError):
                store.initialize()

        mock_cursor.close.assert_called_once()
        mock_db.close.assert_called_once()
        assert store._conn is None
        assert store._db is None

    def test_operations_before_initialize_raise(self, rag_config, keyword_embeddings):
        store = DuckDBVectorStore(rag_config, keyword_embeddings)

        with pytest.raises(StoreNotInitializedError):
            store.insert(DocumentChunk("hello", "a.txt"))
        with pytest.raises(StoreNotInitializedError):
            store.search("hello")
        with pytest.raises(StoreNotInitializedError):
            store.count()


# ---------------------------------------------------------------------------
# INSERT / SEARCH
# ---------------------------------------------------------------------------


class TestDuckDBInsertAndSearch:
    """Write path and ranking query."""

    def test_hello_goodbye_scenario(self, duckdb_store):
        duckdb_store.insert(DocumentChunk(content="hello world", filepath="a.txt"))
        duckdb_store.insert(DocumentChunk(content="goodbye", filepath="b.txt"))

        results = duckdb_store.search("hello", limit=1)

        assert len(results) == 1
        assert results[0].content == "hello world"
        assert results[0].filepath == "a.txt"

    def test_search_on_empty_store_returns_empty_list(self, duckdb_store):
        assert duckdb_store.search("anything", limit=5) == []

    def test_own_content_is_top_result_with_zero_distance(self, duckdb_store):
        duckdb_store.insert(DocumentChunk("goodbye", "b.txt"))
        duckdb_store.insert(DocumentChunk("hello world", "a.txt"))

        results = duckdb_store.search("hello world", limit=2)

        assert results[0].content == "hello world"
        assert results[0].similarity_score == pytest.approx(0.0, abs=1e-4)

    def test_results_capped_and_ordered(self, duckdb_store):
        for content in ["hello world", "goodbye", "river bank", "mountain", "misc"]:
            duckdb_store.insert(DocumentChunk(content, f"{content}.txt"))

        capped = duckdb_store.search("hello", limit=2)
        everything = duckdb_store.search("hello", limit=50)

        assert len(capped) == 2
        assert len(everything) == 5
        scores = [r.similarity_score for r in everything]
        assert scores == sorted(scores)

    def test_scores_are_rounded(self, duckdb_store):
        duckdb_store.insert(DocumentChunk("hello world", "a.txt"))

        score = duckdb_store.search("hello", limit=1)[0].similarity_score

        assert score == round(score, 4)
        assert score == pytest.approx(0.7654, abs=1e-4)

    @pytest.mark.parametrize("limit", [0, -1, 2.5, True, "5"])
    def test_invalid_limit_rejected(self, duckdb_store, limit):
        with pytest.raises(ValueError):
            duckdb_store.search("hello", limit=limit)

    def test_quotes_and_sql_fragments_stored_verbatim(self, duckdb_store):
        content = "hello it's \"quoted\"'); DROP TABLE chunks; --"
        filepath = "o'neil's notes.txt"

        duckdb_store.insert(DocumentChunk(content, filepath))

        assert duckdb_store.count() == 1
        result = duckdb_store.search("hello", limit=1)[0]
        assert result.content == content
        assert result.filepath == filepath

    def test_wrong_width_vector_rejected(self, rag_config):
        store = DuckDBVectorStore(rag_config, _fixed_embeddings(np.ones(3, dtype=np.float32)))
        store.initialize()
        try:
            with pytest.raises(DimensionMismatchError) as exc_info:
                store.insert(DocumentChunk("hello", "a.txt"))
            assert exc_info.value.expected == TEST_DIM
            assert exc_info.value.actual == 3
            assert store.count() == 0
        finally:
            store.terminate()

    @pytest.mark.parametrize("missing", [None, np.array([], dtype=np.float32)])
    def test_missing_vector_rejected(self, rag_config, missing):
        store = DuckDBVectorStore(rag_config, _fixed_embeddings(missing))
        store.initialize()
        try:
            with pytest.raises(MissingEmbeddingError):
                store.insert(DocumentChunk("hello", "a.txt"))
            assert store.count() == 0
        finally:
            store.terminate()

    def test_provider_embedding_error_surfaces_as_missing(self, rag_config):
        embeddings = MagicMock()
        embeddings.embed.side_effect = EmbeddingError("model returned nothing")
        store = DuckDBVectorStore(rag_config, embeddings)
        store.initialize()
        try:
            with pytest.raises(MissingEmbeddingError):
                store.insert(DocumentChunk("hello", "a.txt"))
        finally:
            store.terminate()

    def test_insert_batch(self, duckdb_store, keyword_embeddings):
        docs = [
            DocumentChunk("hello world", "a.txt"),
            DocumentChunk("goodbye", "b.txt"),
            DocumentChunk("river bank", "c.txt"),
        ]

        duckdb_store.insert_batch(docs)

        assert duckdb_store.count() == 3
        assert duckdb_store.search("goodbye", limit=1)[0].filepath == "b.txt"

    def test_insert_batch_with_bad_vector_writes_nothing(self, rag_config):
        embeddings = MagicMock()
        embeddings.embed_batch.return_value = [
            np.ones(TEST_DIM, dtype=np.float32),
            np.ones(TEST_DIM + 1, dtype=np.float32),
        ]
        store = DuckDBVectorStore(rag_config, embeddings)
        store.initialize()
        try:
            with pytest.raises(DimensionMismatchError):
                store.insert_batch([DocumentChunk("a", "a.txt"), DocumentChunk("b", "b.txt")])
            assert store.count() == 0
        finally:
            store.terminate()

    def test_insert_batch_empty_is_noop(self, duckdb_store, keyword_embeddings):
        duckdb_store.insert_batch([])

        assert duckdb_store.count() == 0
        assert keyword_embeddings.calls == []


# ---------------------------------------------------------------------------
# TERMINATE
# ---------------------------------------------------------------------------


class TestDuckDBTerminate:
    """Best-effort teardown."""

    def test_terminate_is_repeatable(self, rag_config, keyword_embeddings):
        store = DuckDBVectorStore(rag_config, keyword_embeddings)
        store.initialize()

        store.terminate()
        store.terminate()

        assert not store.is_initialized
        assert store.last_termination_error is None
        with pytest.raises(StoreNotInitializedError):
            store.search("hello")

    def test_terminate_before_initialize_is_safe(self, rag_config, keyword_embeddings):
        store = DuckDBVectorStore(rag_config, keyword_embeddings)

        store.terminate()

        assert not store.is_initialized

    def test_teardown_failure_is_logged_not_raised(self, rag_config, keyword_embeddings, caplog):
        store = DuckDBVectorStore(rag_config, keyword_embeddings)
        store.initialize()
        store._conn.close()
        failing_cursor = MagicMock()
        failing_cursor.close.side_effect = RuntimeError("worker gone")
        store._conn = failing_cursor

        store.terminate()

        assert not store.is_initialized
        assert store._conn is None
        assert store._db is None
        assert isinstance(store.last_termination_error, TerminationError)
        assert "worker gone" in caplog.text

    def test_reinitialize_after_terminate(self, rag_config, keyword_embeddings):
        store = DuckDBVectorStore(rag_config, keyword_embeddings)
        store.initialize()
        store.insert(DocumentChunk("hello world", "a.txt"))
        store.terminate()

        store.initialize()
        try:
            assert store.count() == 1
        finally:
            store.terminate()


# ---------------------------------------------------------------------------
# IN-MEMORY STORE
# ---------------------------------------------------------------------------


class TestInMemoryVectorStore:
    """The test double ranks like the DuckDB store."""

    @pytest.fixture
    def memory_store(self, keyword_embeddings):
        store = InMemoryVectorStore(keyword_embeddings, dimension=TEST_DIM)
        store.initialize()
        return store

    def test_hello_goodbye_scenario(self, memory_store):
        memory_store.insert(DocumentChunk("hello world", "a.txt"))
        memory_store.insert(DocumentChunk("goodbye", "b.txt"))

        results = memory_store.search("hello", limit=1)

        assert [r.content for r in results] == ["hello world"]

    def test_empty_search(self, memory_store):
        assert memory_store.search("anything", limit=5) == []

    def test_scores_match_duckdb(self, memory_store, duckdb_store):
        for store in (memory_store, duckdb_store):
            store.insert(DocumentChunk("hello world", "a.txt"))
            store.insert(DocumentChunk("goodbye", "b.txt"))

        memory_scores = [r.similarity_score for r in memory_store.search("hello", limit=2)]
        duckdb_scores = [r.similarity_score for r in duckdb_store.search("hello", limit=2)]

        assert memory_scores == pytest.approx(duckdb_scores, abs=1e-4)

    def test_wrong_width_rejected(self):
        store = InMemoryVectorStore(_fixed_embeddings(np.ones(2)), dimension=TEST_DIM)
        store.initialize()

        with pytest.raises(DimensionMismatchError):
            store.insert(DocumentChunk("hello", "a.txt"))

    def test_records_survive_terminate(self, memory_store):
        memory_store.insert(DocumentChunk("hello", "a.txt"))
        memory_store.terminate()

        with pytest.raises(StoreNotInitializedError):
            memory_store.count()

        memory_store.initialize()
        assert memory_store.count() == 1


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


class TestGetVectorStoreFactory:

    def test_returns_duckdb_by_default(self, rag_config, keyword_embeddings):
        store = get_vector_store(rag_config, keyword_embeddings)
        assert isinstance(store, DuckDBVectorStore)

    def test_returns_in_memory_when_requested(self, rag_config, keyword_embeddings):
        store = get_vector_store(rag_config, keyword_embeddings, in_memory=True)
        assert isinstance(store, InMemoryVectorStore)
        assert store.dimension == rag_config.embedding_dim
