"""
Exception hierarchy for the RAG substrate.

Every error raised by this package derives from LocalRagError so callers
can catch the whole family in one place.

PROPAGATION RULES:
------------------
- Initialization failures propagate after an internal teardown attempt.
- Per-call read/write failures propagate directly. Nothing retries.
- Teardown failures are wrapped in TerminationError, logged, and stored on
  the owning object's ``last_termination_error``. They are never raised.
"""


class LocalRagError(Exception):
    """Base class for all local_rag errors."""


class InitializationError(LocalRagError):
    """A model, engine or store failed to load or open."""


class StoreInitError(InitializationError):
    """The vector store database could not be opened or prepared."""


class EmbeddingError(LocalRagError):
    """The embedding model produced no usable output."""


class MissingEmbeddingError(EmbeddingError):
    """An insert could not proceed because no vector was produced."""


class EngineAbsentError(LocalRagError):
    """A generation call was made while no engine handle is held."""


class StoreNotInitializedError(LocalRagError):
    """The store was used before initialize() or after terminate()."""


class StoreQueryError(LocalRagError):
    """A SQL statement failed or was rejected before execution."""


class DimensionMismatchError(StoreQueryError):
    """A vector's width does not match the store's fixed dimension."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding has {actual} components, store requires exactly {expected}"
        )
        self.expected = expected
        self.actual = actual


class TerminationError(LocalRagError):
    """A teardown step failed. Logged and recorded, never raised."""
