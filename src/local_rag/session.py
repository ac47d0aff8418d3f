"""
RagSession - application-scoped context object.

Holds the one RetrievalIndex and the one EngineLifecycleManager of an
application session and is passed explicitly to whatever needs them.
Nothing is stored in module globals.

Retrieval and generation stay independent: the session does not build
prompts from search results.
"""

from __future__ import annotations

import logging

from local_rag.config import EngineConfig, RagConfig
from local_rag.generation import EngineLifecycleManager
from local_rag.retrieval import RetrievalIndex

logger = logging.getLogger(__name__)


class RagSession:
    """
    Example:
        >>> async with RagSession.from_config() as session:
        ...     await session.index.insert(DocumentChunk("hello world", "a.txt"))
        ...     await session.engine.generate_stream("Hi", print)
    """

    def __init__(
        self,
        index: RetrievalIndex,
        engine: EngineLifecycleManager,
        load_engine: bool = True,
    ):
        self.index = index
        self.engine = engine
        self.load_engine = load_engine

    @classmethod
    def from_config(
        cls,
        rag_config: RagConfig | None = None,
        engine_config: EngineConfig | None = None,
        load_engine: bool = True,
    ) -> "RagSession":
        return cls(
            index=RetrievalIndex(rag_config or RagConfig.from_env()),
            engine=EngineLifecycleManager(engine_config or EngineConfig.from_env()),
            load_engine=load_engine,
        )

    async def start(self) -> None:
        """
        Initialize the index, then (optionally) the engine.

        If the engine fails to load, the already-open index is terminated
        before the error propagates.
        """
        await self.index.initialize()
        if not self.load_engine:
            return
        try:
            await self.engine.initialize()
        except BaseException:
            await self.index.terminate()
            raise

    async def close(self) -> None:
        """Terminate the index and dispose the engine. Never raises."""
        await self.index.terminate()
        await self.engine.dispose_engine()
        logger.info("RagSession closed")

    async def __aenter__(self) -> "RagSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
