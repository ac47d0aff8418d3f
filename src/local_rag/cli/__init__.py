"""
CLI module - unified command-line interface.

Provides entry points for:
- Ingesting text files into the vector store
- Searching and counting stored chunks
- Streaming a completion from the generation engine
"""

from local_rag.cli.commands import (
    main,
    run_ingest_cli,
    run_search_cli,
    run_count_cli,
    run_generate_cli,
)

__all__ = [
    "main",
    "run_ingest_cli",
    "run_search_cli",
    "run_count_cli",
    "run_generate_cli",
]
