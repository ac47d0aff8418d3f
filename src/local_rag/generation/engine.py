"""
Generation engines - streaming text generation behind one small contract.

An engine is heavyweight and non-serializable: it owns a runtime (here an
HTTP client bound to a local OpenAI-compatible server such as llama.cpp,
Ollama or vLLM) and must only ever be held by EngineLifecycleManager.

This module contains:
1. OpenAICompatibleEngine - streams chat completions via the openai SDK
2. MockGenerationEngine - scripted test double
3. create_generation_engine() - async factory used by the lifecycle manager
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable

from openai import AsyncOpenAI

from local_rag.config import EngineConfig
from local_rag.core import GenerationEngine
from local_rag.errors import InitializationError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
EngineFactory = Callable[[EngineConfig, ProgressCallback], Awaitable[GenerationEngine]]


def _ignore_progress(text: str) -> None:
    pass


# ---------------------------------------------------------------------------
# OPENAI-COMPATIBLE ENGINE (Production)
# ---------------------------------------------------------------------------


class OpenAICompatibleEngine:
    """
    Streams completions from an OpenAI-compatible chat endpoint.

    Construction verifies that the model is served before the engine is
    handed out, reporting each step through the progress callback.
    """

    system = "openai-compatible"

    def __init__(self, client: AsyncOpenAI, model: str):
        self._client = client
        self._model = model

    @classmethod
    async def create(
        cls,
        config: EngineConfig,
        on_progress: ProgressCallback = _ignore_progress,
    ) -> "OpenAICompatibleEngine":
        on_progress(f"Connecting to {config.base_url}...")
        client = AsyncOpenAI(base_url=config.base_url, api_key=config.api_key)

        try:
            on_progress(f"Loading model {config.model}...")
            await client.models.retrieve(config.model)
        except BaseException:
            await client.close()
            raise

        on_progress(f"Model {config.model} loaded.")
        return cls(client, config.model)

    @property
    def model(self) -> str:
        return self._model

    async def stream(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> AsyncIterator[str]:
        """Yield non-empty content deltas of a single-turn completion."""
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
            stream=True,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        finally:
            await response.close()

    async def dispose(self) -> None:
        await self._client.close()


# ---------------------------------------------------------------------------
# MOCK ENGINE (Testing/Development)
# ---------------------------------------------------------------------------


class MockGenerationEngine:
    """
    Scripted engine for tests and offline demos.

    Replays ``chunks`` on every stream() call. Empty strings are yielded
    as-is so callers' empty-delta filtering can be exercised.
    """

    system = "mock"

    def __init__(
        self,
        chunks: list[str] | None = None,
        model: str = "mock",
        chunk_delay_s: float = 0.0,
        dispose_error: Exception | None = None,
    ):
        self._chunks = list(chunks) if chunks is not None else ["This ", "is ", "a ", "mock ", "reply."]
        self._model = model
        self._chunk_delay_s = chunk_delay_s
        self._dispose_error = dispose_error
        self.prompts: list[str] = []
        self.disposed = False

    @classmethod
    async def create(
        cls,
        config: EngineConfig,
        on_progress: ProgressCallback = _ignore_progress,
    ) -> "MockGenerationEngine":
        on_progress(f"Loading model {config.model}...")
        await asyncio.sleep(0)
        on_progress(f"Model {config.model} loaded.")
        return cls(model=config.model)

    @property
    def model(self) -> str:
        return self._model

    async def stream(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        for chunk in self._chunks:
            await asyncio.sleep(self._chunk_delay_s)
            yield chunk

    async def dispose(self) -> None:
        self.disposed = True
        if self._dispose_error is not None:
            raise self._dispose_error


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


ENGINE_BACKENDS = {
    "openai": OpenAICompatibleEngine,
    "mock": MockGenerationEngine,
}


async def create_generation_engine(
    config: EngineConfig,
    on_progress: ProgressCallback = _ignore_progress,
) -> GenerationEngine:
    """
    Construct the configured engine.

    Raises:
        InitializationError: unknown backend
    """
    engine_cls = ENGINE_BACKENDS.get(config.backend)
    if engine_cls is None:
        raise InitializationError(
            f"Unknown generation backend {config.backend!r}; expected one of {sorted(ENGINE_BACKENDS)}"
        )
    logger.debug(f"Creating {config.backend} engine for {config.model}")
    return await engine_cls.create(config, on_progress)
