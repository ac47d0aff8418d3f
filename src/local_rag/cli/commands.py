"""
CLI commands - thin wrappers around RetrievalIndex and EngineLifecycleManager.

Each command follows a consistent pattern:
1. Parse arguments
2. Load environment
3. Run the async operation
4. Print results
5. Return exit code
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from local_rag.config import EngineConfig, RagConfig
from local_rag.errors import LocalRagError
from local_rag.generation import EngineLifecycleManager
from local_rag.observability import init_phoenix, shutdown_phoenix
from local_rag.retrieval import RetrievalIndex, chunks_from_file

logger = logging.getLogger(__name__)


def _load_env() -> None:
    """Load environment variables from .env file."""
    try:
        from dotenv import load_dotenv

        load_dotenv()
    except ImportError:
        pass  # dotenv is optional


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# RETRIEVAL COMMANDS
# ---------------------------------------------------------------------------


async def _ingest(paths: list[str], chunk_size: int) -> int:
    docs = []
    for path in paths:
        docs.extend(chunks_from_file(path, max_chars=chunk_size))

    async with RetrievalIndex(RagConfig.from_env()) as index:
        await index.insert_batch(docs)
        return await index.count()


def run_ingest_cli() -> int:
    """CLI entry point for ingesting text files."""
    parser = argparse.ArgumentParser(description="Split text files into chunks and index them")
    parser.add_argument("paths", nargs="+", help="UTF-8 text files to ingest")
    parser.add_argument("--chunk-size", type=_positive_int, default=800, help="Maximum characters per chunk")
    args = parser.parse_args()

    total = asyncio.run(_ingest(args.paths, args.chunk_size))
    print(f"Indexed {len(args.paths)} file(s); store now holds {total} chunks.")
    return 0


async def _search(query: str, limit: int):
    async with RetrievalIndex(RagConfig.from_env()) as index:
        return await index.search(query, limit=limit)


def run_search_cli() -> int:
    """CLI entry point for similarity search."""
    parser = argparse.ArgumentParser(description="Search indexed chunks by similarity")
    parser.add_argument("query", help="Query text")
    parser.add_argument("--limit", type=_positive_int, default=5, help="Maximum results")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    args = parser.parse_args()

    results = asyncio.run(_search(args.query, args.limit))

    if args.json:
        print(json.dumps([r.to_dict() for r in results], ensure_ascii=False, indent=2))
        return 0

    if not results:
        print("No results.")
        return 0

    for rank, result in enumerate(results, start=1):
        print(f"[{rank}] {result.similarity_score:.4f}  {result.filepath}")
        print(f"    {result.content[:200]}")
    return 0


async def _count() -> int:
    async with RetrievalIndex(RagConfig.from_env()) as index:
        return await index.count()


def run_count_cli() -> int:
    """CLI entry point for the stored row count."""
    print(asyncio.run(_count()))
    return 0


# ---------------------------------------------------------------------------
# GENERATION COMMAND
# ---------------------------------------------------------------------------


async def _generate(prompt: str) -> None:
    manager = EngineLifecycleManager(EngineConfig.from_env())
    unsubscribe = manager.subscribe(
        lambda snapshot: print(f"[{snapshot.state.value}] {snapshot.status}", file=sys.stderr)
    )
    try:
        await manager.initialize()
        unsubscribe()
        await manager.generate_stream(prompt, lambda text: print(text, end="", flush=True))
        print()
    finally:
        await manager.dispose_engine()


def run_generate_cli() -> int:
    """CLI entry point for streaming a completion."""
    parser = argparse.ArgumentParser(description="Stream a completion from the generation engine")
    parser.add_argument("prompt", help="Prompt text")
    args = parser.parse_args()

    asyncio.run(_generate(args.prompt))
    return 0


def main() -> int:
    """
    Main CLI entry point with subcommands.

    Usage:
        local-rag ingest notes.txt    # Chunk and index files
        local-rag search "query"      # Nearest chunks
        local-rag count               # Stored rows
        local-rag generate "prompt"   # Stream a completion
    """
    _load_env()

    parser = argparse.ArgumentParser(
        description="Local retrieval-augmented generation substrate",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  ingest      Split text files into chunks and index them
  search      Nearest chunks for a query (lower score = closer)
  count       Number of stored chunks
  generate    Stream a completion from the generation engine

Examples:
  local-rag ingest docs/*.txt --chunk-size 600
  local-rag search "vector distance" --limit 3 --json
        """,
    )
    parser.add_argument(
        "command",
        choices=["ingest", "search", "count", "generate"],
        help="Command to run",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args, remaining = parser.parse_known_args()
    _configure_logging(args.verbose)
    init_phoenix()

    commands = {
        "ingest": run_ingest_cli,
        "search": run_search_cli,
        "count": run_count_cli,
        "generate": run_generate_cli,
    }

    # Re-inject remaining args for the subcommand
    sys.argv = [sys.argv[0]] + remaining

    try:
        return commands[args.command]()
    except LocalRagError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        # Unreadable or non-UTF-8 input files
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    finally:
        shutdown_phoenix()


if __name__ == "__main__":
    sys.exit(main())
