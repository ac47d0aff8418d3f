"""
Generation module - streaming text generation with an explicit lifecycle.

- GenerationEngine protocol (in core.protocols)
- OpenAICompatibleEngine / MockGenerationEngine implementations
- create_generation_engine(): async factory
- EngineLifecycleManager: owns the single live engine and its status
"""

from local_rag.generation.engine import (
    ENGINE_BACKENDS,
    MockGenerationEngine,
    OpenAICompatibleEngine,
    create_generation_engine,
)
from local_rag.generation.lifecycle import (
    EngineLifecycleManager,
    EngineState,
    EngineStatus,
)

__all__ = [
    "ENGINE_BACKENDS",
    "MockGenerationEngine",
    "OpenAICompatibleEngine",
    "create_generation_engine",
    "EngineLifecycleManager",
    "EngineState",
    "EngineStatus",
]
