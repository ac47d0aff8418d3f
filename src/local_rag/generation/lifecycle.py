"""
EngineLifecycleManager - sole owner of the live generation engine.

The engine object is heavyweight and must never be copied into observed
or serialized state. The manager keeps it in a private attribute and
exposes only a status snapshot:

    UNINITIALIZED ──initialize()──► INITIALIZING ──ok──► READY
                                         │                  │
                                       fail            dispose_engine()
                                         ▼                  ▼
                                       ERROR             DISPOSED

ERROR and DISPOSED may initialize again.

CONCURRENCY:
------------
The first initialize() call creates one asyncio task; every overlapping
call awaits that same task, so exactly one engine is ever constructed.
The check-and-set happens without an intervening await, which makes it
atomic on the event loop.

The status string is a single slot: load-progress text overwrites it and
listeners see each new value. No history is kept.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from local_rag.config import EngineConfig
from local_rag.core import GenerationEngine
from local_rag.errors import EngineAbsentError, InitializationError, TerminationError
from local_rag.generation.engine import EngineFactory, create_generation_engine
from local_rag.observability import get_tracer
from local_rag.observability.attributes import (
    ENGINE_CHUNK_COUNT,
    ENGINE_FIRST_CHUNK_MS,
    ENGINE_STATE,
    GEN_AI_COMPLETION,
    GEN_AI_PROMPT,
    GEN_AI_REQUEST_MODEL,
    generation_attributes,
)
from local_rag.observability.config import get_config

logger = logging.getLogger(__name__)

STATUS_UNINITIALIZED = "Not initialized"
STATUS_LOADING = "Loading generation engine..."
STATUS_READY = "Model ready"
STATUS_DISPOSING = "Disposing engine..."
STATUS_DISPOSED = "Engine disposed."
STATUS_RESET = "Reset complete. Reload to start a new session."


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class EngineStatus:
    """Observable view of the manager. Never carries the engine handle."""
    state: EngineState
    status: str

    @property
    def is_ready(self) -> bool:
        return self.state is EngineState.READY

    @property
    def is_loading(self) -> bool:
        return self.state is EngineState.INITIALIZING


StatusListener = Callable[[EngineStatus], None]
ChunkCallback = Callable[[str], None]


class EngineLifecycleManager:
    """
    Holds at most one live GenerationEngine and drives its lifecycle.

    Create one per application session (see RagSession) and pass it to
    the code that needs generation; there is no module-level instance.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        engine_factory: EngineFactory | None = None,
    ):
        self.config = config or EngineConfig.from_env()
        self._engine_factory = engine_factory or create_generation_engine
        self._engine: GenerationEngine | None = None
        self._init_task: asyncio.Task | None = None
        self._state = EngineState.UNINITIALIZED
        self._status = STATUS_UNINITIALIZED
        self._listeners: list[StatusListener] = []
        self.last_error: BaseException | None = None
        self.last_termination_error: TerminationError | None = None

    def __repr__(self) -> str:
        return f"EngineLifecycleManager(state={self._state.value!r}, status={self._status!r})"

    # -- observables --------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def status(self) -> str:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._state is EngineState.READY

    @property
    def is_loading(self) -> bool:
        return self._state is EngineState.INITIALIZING

    @property
    def has_engine(self) -> bool:
        return self._engine is not None

    def snapshot(self) -> EngineStatus:
        return EngineStatus(state=self._state, status=self._status)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, state: EngineState | None = None, status: str | None = None) -> None:
        if state is not None:
            self._state = state
        if status is not None:
            self._status = status

        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Status listener raised: {e!r}")

    def _on_progress(self, text: str) -> None:
        # Late callbacks from an abandoned load must not overwrite a final status
        if self._state is EngineState.INITIALIZING:
            self._publish(status=text)

    # -- lifecycle ----------------------------------------------------------

    async def initialize(self, timeout: float | None = None) -> None:
        """
        Construct the engine once.

        No-op when READY. Overlapping calls await the in-flight
        initialization and share its outcome.

        Args:
            timeout: Seconds allowed for construction (default: config.init_timeout_s)

        Raises:
            InitializationError: construction failed or timed out; state is ERROR
        """
        if self._state is EngineState.READY and self._engine is not None:
            return

        if self._init_task is None:
            effective = timeout if timeout is not None else self.config.init_timeout_s
            self._init_task = asyncio.ensure_future(self._initialize(effective))

        await asyncio.shield(self._init_task)

    async def _initialize(self, timeout: float | None) -> None:
        self._publish(EngineState.INITIALIZING, STATUS_LOADING)
        logger.info(f"Initializing generation engine: {self.config.model}")

        with get_tracer().start_span(
            "engine.initialize",
            attributes={GEN_AI_REQUEST_MODEL: self.config.model},
        ) as span:
            try:
                engine = await asyncio.wait_for(
                    self._engine_factory(self.config, self._on_progress),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as e:
                self._fail(f"timed out after {timeout}s", e)
                span.record_exception(e)
                raise InitializationError(
                    f"Engine initialization timed out after {timeout}s"
                ) from e
            except asyncio.CancelledError as e:
                self._fail("cancelled", e)
                raise
            except Exception as e:
                self._fail(str(e) or type(e).__name__, e)
                span.record_exception(e)
                raise InitializationError(f"Engine initialization failed: {e}") from e
            else:
                self._engine = engine
                self.last_error = None
                self._publish(EngineState.READY, STATUS_READY)
                logger.info("Generation engine ready")
            finally:
                self._init_task = None
                span.set_attribute(ENGINE_STATE, self._state.value)

    def _fail(self, reason: str, error: BaseException) -> None:
        self.last_error = error
        logger.error(f"Generation engine initialization failed: {reason}")
        self._publish(EngineState.ERROR, f"Initialization error: {reason}")

    async def dispose_engine(self) -> None:
        """
        Release the engine. No-op when none is held.

        Disposal errors are logged and recorded on
        ``last_termination_error``; the handle is cleared regardless.
        """
        engine, self._engine = self._engine, None
        if engine is None:
            return

        self._publish(status=STATUS_DISPOSING)
        status = STATUS_DISPOSED
        try:
            await engine.dispose()
            logger.info("Generation engine disposed.")
        except Exception as e:
            self.last_termination_error = TerminationError(f"Engine dispose failed: {e}")
            logger.error(f"Engine dispose failed, handle cleared anyway: {e!r}")
            status = f"{STATUS_DISPOSED} (teardown error: {e})"

        self._publish(EngineState.DISPOSED, status)

    async def reset_chat(self) -> None:
        """
        Dispose the engine and ask the caller to reload.

        A fresh initialize() may not recover mid-session runtime state, so
        the status tells the caller to start over.
        """
        logger.warning("Forced engine reset")
        await self.dispose_engine()
        state = EngineState.DISPOSED if self._state is EngineState.READY else None
        self._publish(state, STATUS_RESET)

    # -- generation ---------------------------------------------------------

    async def generate_stream(
        self,
        prompt: str,
        on_chunk: ChunkCallback,
        timeout: float | None = None,
    ) -> str:
        """
        Stream a completion for ``prompt``.

        ``on_chunk`` is called synchronously with each non-empty fragment,
        in generation order. Cancelling the awaiting task, or exceeding
        ``timeout`` (default: config.generation_timeout_s), closes the stream.

        Returns:
            The concatenated completion text.

        Raises:
            EngineAbsentError: no engine is held
        """
        engine = self._engine
        if engine is None:
            raise EngineAbsentError("Generation engine is not available. Call initialize() first.")

        effective = timeout if timeout is not None else self.config.generation_timeout_s
        capture = get_config().capture_llm_content
        logger.debug(f"Generating stream ({len(prompt)} prompt chars)")

        with get_tracer().start_span(
            "engine.generate_stream",
            attributes=generation_attributes(
                getattr(engine, "system", type(engine).__name__),
                engine.model,
                self.config.temperature,
                self.config.max_tokens,
            ),
        ) as span:
            if capture:
                span.set_attribute(GEN_AI_PROMPT, prompt)
            try:
                text = await asyncio.wait_for(
                    self._pump(engine, prompt, on_chunk, span),
                    timeout=effective,
                )
            except Exception as e:
                logger.error(f"Generation error: {e!r}")
                span.record_exception(e)
                raise
            if capture:
                span.set_attribute(GEN_AI_COMPLETION, text)
            return text

    async def _pump(self, engine: GenerationEngine, prompt: str, on_chunk: ChunkCallback, span) -> str:
        parts: list[str] = []
        start = time.perf_counter()

        async with aclosing(
            engine.stream(prompt, self.config.temperature, self.config.max_tokens)
        ) as deltas:
            async for delta in deltas:
                if not delta:
                    continue
                if not parts:
                    span.set_attribute(ENGINE_FIRST_CHUNK_MS, (time.perf_counter() - start) * 1000)
                parts.append(delta)
                on_chunk(delta)

        span.set_attribute(ENGINE_CHUNK_COUNT, len(parts))
        return "".join(parts)
