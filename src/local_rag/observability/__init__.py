"""
Observability Module - Phoenix + OpenTelemetry Integration

Traces vector store calls and engine lifecycle/generation using
Arize Phoenix with OpenInference auto-instrumentation for OpenAI clients.

USAGE:
------
# At application startup:
from local_rag.observability import init_phoenix

init_phoenix()  # Starts local Phoenix UI if PHOENIX_ENABLED=true

# In code that needs tracing:
from local_rag.observability import get_tracer

tracer = get_tracer()
with tracer.start_span("vector_store.search", attributes={"rag.search.limit": 5}) as span:
    ...
"""

from __future__ import annotations

import logging

from local_rag.observability.config import (
    PhoenixConfig,
    get_config,
    reset_config,
)
from local_rag.observability.tracer import (
    NoOpTracer,
    get_tracer,
    reset_tracer,
)
from local_rag.observability import attributes

logger = logging.getLogger(__name__)

_phoenix_initialized = False


def init_phoenix(config: PhoenixConfig | None = None) -> bool:
    """
    Initialize Phoenix observability.

    This should be called once at application startup.
    Sets up OpenTelemetry tracer provider and registers auto-instrumentors.

    Args:
        config: Optional config (uses env vars if not provided)

    Returns:
        True if Phoenix was initialized, False if disabled or failed
    """
    global _phoenix_initialized
    if _phoenix_initialized:
        return True

    config = config or get_config()

    if not config.enabled:
        logger.debug("Phoenix observability disabled")
        return False

    try:
        import phoenix as px
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        if config.collector_endpoint:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
            exporter = OTLPSpanExporter(endpoint=config.collector_endpoint)
            logger.info(f"Phoenix connecting to remote: {config.collector_endpoint}")
        else:
            session = px.launch_app()
            exporter = px.otel.SimpleSpanProcessor.exporter()
            logger.info(f"Phoenix UI available at: {session.url}")

        provider = TracerProvider()
        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)

        from local_rag.observability.instrumentation import register_instrumentors
        register_instrumentors()

        # Drop any NoOpTracer handed out before the provider existed
        reset_tracer()
        _phoenix_initialized = True
        return True

    except ImportError as e:
        logger.warning(f"Phoenix not installed, observability disabled: {e}")
        return False
    except Exception as e:
        logger.error(f"Failed to initialize Phoenix: {e}")
        return False


def shutdown_phoenix() -> None:
    """Shutdown Phoenix and cleanup resources."""
    global _phoenix_initialized

    if not _phoenix_initialized:
        return

    try:
        from opentelemetry import trace
        provider = trace.get_tracer_provider()
        if hasattr(provider, "shutdown"):
            provider.shutdown()
    except Exception as e:
        logger.warning(f"Error shutting down Phoenix: {e}")

    reset_tracer()
    reset_config()
    _phoenix_initialized = False


__all__ = [
    "init_phoenix",
    "shutdown_phoenix",
    "PhoenixConfig",
    "get_config",
    "reset_config",
    "NoOpTracer",
    "get_tracer",
    "reset_tracer",
    "attributes",
]
