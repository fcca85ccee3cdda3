#!/usr/bin/env python3
"""
ragpipe CLI - Command-line interface for loading and searching documents.

Usage:
    python -m ragpipe load <input>... [--meta key=value]
    python -m ragpipe search <text> [-k N]
    python -m ragpipe get <id>
    python -m ragpipe loaders   # List registered loaders
    python -m ragpipe models [--download [MODEL]]
    python -m ragpipe reset     # Delete every stored record

Examples:
    # Load local files and a URL, tagging every record
    python -m ragpipe load report.pdf notes.docx https://example.com/faq.txt --meta project=q3

    # Load inline text
    python -m ragpipe load "The quick brown fox jumps over the lazy dog"

    # Search the store
    python -m ragpipe search "who jumped over the dog?" -k 5
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from dotenv import load_dotenv

load_dotenv()

# Setup logging before imports
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

from . import api  # noqa: E402
from .core.record import Record  # noqa: E402
from .errors import RagpipeError, RecordNotFoundError  # noqa: E402
from .loaders.registry import get_registry  # noqa: E402

logger = logging.getLogger(__name__)


def _parse_meta(pairs: list[str]) -> dict[str, Any]:
    """Parse key=value pairs; values are read as JSON when they parse, else kept as strings."""
    metadata: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --meta '{pair}', expected key=value")
        try:
            metadata[key] = json.loads(value)
        except json.JSONDecodeError:
            metadata[key] = value
    return metadata


def _record_summary(record: Record, width: int = 120) -> dict[str, Any]:
    content = record.content if isinstance(record.content, str) else f"<{len(record.content)} bytes>"
    if len(content) > width:
        content = content[:width] + "..."

    summary = {"id": record.id, "content": content, "metadata": record.metadata}
    if record.created_at is not None:
        summary["createdAt"] = record.created_at.isoformat()
    return summary


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def cmd_load(args: argparse.Namespace) -> int:
    """Load inputs through the default write pipeline."""
    try:
        metadata = _parse_meta(args.meta)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.info(f"Loading {len(args.inputs)} input(s)")
    records = asyncio.run(api.load(args.inputs, metadata))

    if args.json:
        _print_json([_record_summary(r) for r in records])
    else:
        print(f"Stored {len(records)} record(s)")
        for record in records:
            source = record.metadata.get("fileName") or record.metadata.get("url") or "text"
            print(f"  #{record.id}  {source}  chunk {record.metadata.get('chunkIndex', 0)}")
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    """Search the store for the records nearest to a text."""
    records = asyncio.run(api.search(args.text, k=args.k))

    if args.json:
        _print_json([_record_summary(r) for r in records])
        return 0

    if not records:
        print("No matches")
        return 0

    for record in records:
        distance = record.metadata.get("distance", 0.0)
        summary = _record_summary(record, width=80)
        print(f"#{record.id}  distance={distance:.4f}  {summary['content']}")
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    """Print one stored record."""
    try:
        record = asyncio.run(api.get(args.id))
    except RecordNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _print_json(record.model_dump(by_alias=True, exclude={"vector"}))
    return 0


def cmd_loaders(args: argparse.Namespace) -> int:
    """List registered loaders."""
    for entry in get_registry().list_loaders():
        defaults = ", ".join(f"{k}={v!r}" for k, v in entry["defaults"].items())
        suffix = f" ({defaults})" if defaults else ""
        print(f"  {entry['name']:<10} {entry['factory']}{suffix}")
    return 0


def cmd_models(args: argparse.Namespace) -> int:
    """List embedding model presets, or pre-download one."""
    from .models.sentence_model import MODEL_PRESETS, SentenceTransformerModel, resolve_model_id

    if args.download is None:
        print("Embedding model presets:")
        for preset_name, model_id in MODEL_PRESETS.items():
            print(f"  {preset_name:<14} {model_id}")
        print(f"\nCurrent: {resolve_model_id()}")
        return 0

    model = SentenceTransformerModel(model_id=args.download or None)
    model.load_model()
    print(f"Downloaded {model.model_id} ({model.dimensions} dims) to {model.cache_dir}")
    return 0


def cmd_reset(args: argparse.Namespace) -> int:
    """Delete every stored record."""
    if not args.yes:
        print("Refusing to reset without --yes", file=sys.stderr)
        return 1

    asyncio.run(api.reset())
    print("Store reset")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="ragpipe",
        description="Load documents into a vector store and search them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Load command
    load_parser = subparsers.add_parser(
        "load",
        help="Load text, files or URLs into the store",
    )
    load_parser.add_argument(
        "inputs",
        nargs="+",
        help="Inline text, file paths or http(s) URLs",
    )
    load_parser.add_argument(
        "-m", "--meta",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Metadata added to every record (repeatable)",
    )
    load_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the stored records as JSON",
    )
    load_parser.set_defaults(func=cmd_load)

    # Search command
    search_parser = subparsers.add_parser(
        "search",
        help="Search the store",
    )
    search_parser.add_argument(
        "text",
        help="Query text",
    )
    search_parser.add_argument(
        "-k",
        type=int,
        default=None,
        help="Number of results (default: SEARCH_RESULTS or 3)",
    )
    search_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the matches as JSON",
    )
    search_parser.set_defaults(func=cmd_search)

    # Get command
    get_parser = subparsers.add_parser(
        "get",
        help="Print one stored record",
    )
    get_parser.add_argument(
        "id",
        help="Record id",
    )
    get_parser.set_defaults(func=cmd_get)

    # Loaders command
    loaders_parser = subparsers.add_parser(
        "loaders",
        help="List registered loaders",
    )
    loaders_parser.set_defaults(func=cmd_loaders)

    # Models command
    models_parser = subparsers.add_parser(
        "models",
        help="List embedding model presets or pre-download a model",
    )
    models_parser.add_argument(
        "--download",
        nargs="?",
        const="",
        default=None,
        metavar="MODEL",
        help="Download a preset or model id (default: the configured model)",
    )
    models_parser.set_defaults(func=cmd_models)

    # Reset command
    reset_parser = subparsers.add_parser(
        "reset",
        help="Delete every stored record",
    )
    reset_parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the reset",
    )
    reset_parser.set_defaults(func=cmd_reset)

    # Parse args
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Run command
    try:
        return args.func(args)
    except RagpipeError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
