"""
RetrievalIndex - the async façade consumed by applications.

Composes an EmbeddingProvider and a VectorStore behind four calls:
initialize / insert / search / terminate.

CONCURRENCY:
------------
Model loading, embedding inference and SQL run in worker threads
(``asyncio.to_thread``) so the event loop stays responsive. One
``asyncio.Lock`` serializes calls on an index, so callers that fire
several inserts without awaiting them still get whole rows, one at a
time. Every call is bounded by ``RagConfig.operation_timeout_s`` when it
is set. A timed-out worker thread cannot be killed: the caller gets
``asyncio.TimeoutError`` at once, and the next call on the index (or
terminate) waits for that thread to return before touching the store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, TypeVar

from local_rag.config import RagConfig
from local_rag.core import EmbeddingProvider, SearchResult, VectorStore
from local_rag.embeddings import get_embedding_provider
from local_rag.errors import InitializationError, StoreNotInitializedError
from local_rag.retrieval.document import DocumentChunk
from local_rag.retrieval.store import get_vector_store

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_abandoned_failure(worker: asyncio.Future) -> None:
    if not worker.cancelled() and worker.exception() is not None:
        logger.warning(f"Timed-out store call failed after its caller gave up: {worker.exception()!r}")


EmbeddingsFactory = Callable[[RagConfig], EmbeddingProvider]
StoreFactory = Callable[[RagConfig, EmbeddingProvider], VectorStore]


class RetrievalIndex:
    """
    Embedding provider + vector store with an async lifecycle.

    Factories are injectable so tests can run with MockEmbeddings and an
    in-memory or temporary DuckDB store.

    Example:
        >>> index = RetrievalIndex(RagConfig.from_env())
        >>> await index.initialize()
        >>> await index.insert(DocumentChunk("hello world", "a.txt"))
        >>> await index.search("hello", limit=1)
        [SearchResult(content='hello world', similarity_score=..., filepath='a.txt')]
    """

    def __init__(
        self,
        config: RagConfig | None = None,
        embeddings_factory: EmbeddingsFactory | None = None,
        store_factory: StoreFactory | None = None,
    ):
        self.config = config or RagConfig.from_env()
        self._embeddings_factory = embeddings_factory or get_embedding_provider
        self._store_factory = store_factory or get_vector_store
        self._embeddings: EmbeddingProvider | None = None
        self._store: VectorStore | None = None
        self._lock = asyncio.Lock()
        self._abandoned: asyncio.Future | None = None

    @property
    def is_initialized(self) -> bool:
        return self._store is not None and self._store.is_initialized

    async def __aenter__(self) -> "RetrievalIndex":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.terminate()

    async def initialize(self) -> None:
        """
        Load the embedding model, then open the store.

        Idempotent. On failure, releases whatever was acquired and raises
        InitializationError (StoreInitError when the store was at fault).
        """
        async with self._lock:
            if self.is_initialized:
                logger.warning("RetrievalIndex is already initialized.")
                return

            logger.info("RetrievalIndex initialization start")
            try:
                self._embeddings = await self._in_worker(self._embeddings_factory, self.config)
                logger.info("Embedding model initialized.")

                self._store = self._store_factory(self.config, self._embeddings)
                await self._in_worker(self._store.initialize)
            except InitializationError:
                await self._teardown()
                raise
            except Exception as e:
                await self._teardown()
                logger.error(f"RetrievalIndex initialization failed: {e!r}")
                raise InitializationError(f"RetrievalIndex initialization failed: {e!r}") from e

            logger.info("RetrievalIndex ready")

    async def insert(self, doc: DocumentChunk) -> None:
        """Embed and persist one chunk."""
        await self._run(lambda store: store.insert(doc))

    async def insert_batch(self, docs: list[DocumentChunk]) -> None:
        """Embed and persist several chunks in one transaction."""
        await self._run(lambda store: store.insert_batch(list(docs)))

    async def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        """Nearest chunks to ``query``, smallest distance first."""
        return await self._run(lambda store: store.search(query, limit))

    async def count(self) -> int:
        return await self._run(lambda store: store.count())

    async def terminate(self) -> None:
        """Close the store and drop the embedding model. Never raises."""
        async with self._lock:
            await self._teardown()

    # -- internals ----------------------------------------------------------

    async def _in_worker(self, func: Callable[..., T], *args) -> T:
        worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.wait_for(
                asyncio.shield(worker), timeout=self.config.operation_timeout_s
            )
        except (asyncio.TimeoutError, asyncio.CancelledError):
            # The thread keeps running; later calls must not overlap it
            self._abandoned = worker
            worker.add_done_callback(_log_abandoned_failure)
            raise

    async def _settle_abandoned(self) -> None:
        worker, self._abandoned = self._abandoned, None
        if worker is not None and not worker.done():
            logger.warning("Waiting for a timed-out store call to finish")
            await asyncio.wait({worker})

    async def _run(self, call: Callable[[VectorStore], T]) -> T:
        async with self._lock:
            await self._settle_abandoned()
            if not self.is_initialized:
                raise StoreNotInitializedError(
                    "RetrievalIndex not initialized. Call initialize() first."
                )
            store = self._store
            return await self._in_worker(call, store)

    async def _teardown(self) -> None:
        await self._settle_abandoned()
        store, self._store, self._embeddings = self._store, None, None
        if store is not None:
            await asyncio.to_thread(store.terminate)
