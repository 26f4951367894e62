# =============================================================================
# src/cli/train.py: Bot Training CLI
# =============================================================================
#
# Operator tool for creating bots, training them on local files and
# websites, inspecting what they were trained on, and asking them
# questions from a terminal.  It drives the same services as the HTTP API
# (built by src/wiring.py), so a bot trained here answers over HTTP too.
#
# Supported subcommands:
#
#   create-bot  Create a bot and print its id
#   document    Ingest one or more local files (PDF, DOCX, TXT, CSV, HTML)
#   text        Ingest a string of text
#   website     Crawl a website and ingest its pages
#   stats       Show training records and vector counts for a bot
#   purge       Delete one document, one website, or all training data
#   ask         Ask a bot a question; the answer streams to stdout
#
# Usage examples:
#   python -m src.cli.train create-bot --name "Support bot"
#   python -m src.cli.train document --bot <id> --file handbook.pdf faq.docx
#   python -m src.cli.train website --bot <id> --url https://example.com --depth 1
#   python -m src.cli.train stats --bot <id>
#   python -m src.cli.train purge --bot <id> --url https://example.com --yes
#   python -m src.cli.train ask --bot <id> "What is the refund policy?"
# =============================================================================

"""Command-line tool for training and querying botforge bots.

Usage::

    python -m src.cli.train create-bot --name "Support bot"

    python -m src.cli.train document --bot <id> --file handbook.pdf

    python -m src.cli.train ask --bot <id> "What is the refund policy?"
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import mimetypes
import sys
from pathlib import Path
from typing import Any

from src.config.loader import load_config
from src.config.settings import Settings
from src.models.bot import Bot
from src.models.training import IngestionOutcome
from src.utils.errors import BotForgeError
from src.utils.logging import configure_logging
from src.wiring import build_components

# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _print_outcome(label: str, outcome: IngestionOutcome) -> None:
    if outcome.ok:
        print(f"  {label}: ok")
    else:
        print(f"  {label}: FAILED ({outcome.kind}) {outcome.message}")
    print(f"    Record ID:        {outcome.record_id}")
    print(f"    Chunks:           {outcome.progress.processed_chunk_count}/{outcome.progress.chunk_count}")
    if outcome.progress.pages_processed:
        print(f"    Pages processed:  {outcome.progress.pages_processed}")


def _read_file(path: Path) -> dict[str, Any]:
    """Return an upload entry (base64 content plus metadata) for *path*."""
    payload = path.read_bytes()
    mime_type, _ = mimetypes.guess_type(path.name)
    return {
        "content": base64.b64encode(payload).decode("ascii"),
        "metadata": {
            "originalName": path.name,
            "mimeType": mime_type or "",
            "size": len(payload),
        },
    }


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_create_bot(args: argparse.Namespace, components: dict[str, Any]) -> int:
    bot = await components["document_store"].save_bot(Bot(name=args.name))
    print(f"Created bot '{bot.name}'")
    print(f"  Bot ID: {bot.id}")
    print(f"  Model:  {bot.settings.model}")
    return 0


async def _handle_document(args: argparse.Namespace, components: dict[str, Any]) -> int:
    paths = [Path(item) for item in args.file]
    missing = [str(path) for path in paths if not path.is_file()]
    if missing:
        print(f"Error: file(s) not found: {', '.join(missing)}", file=sys.stderr)
        return 1

    print(f"Ingesting {len(paths)} file(s) into bot {args.bot}")
    outcomes = await components["ingestion_service"].ingest_documents(
        args.bot, [_read_file(path) for path in paths]
    )
    for path, outcome in zip(paths, outcomes):
        _print_outcome(path.name, outcome)
    return 0 if all(outcome.ok for outcome in outcomes) else 1


async def _handle_text(args: argparse.Namespace, components: dict[str, Any]) -> int:
    outcome = await components["ingestion_service"].ingest_text(args.bot, args.text, name=args.name)
    _print_outcome(args.name, outcome)
    return 0 if outcome.ok else 1


async def _handle_website(args: argparse.Namespace, components: dict[str, Any]) -> int:
    print(f"Crawling {args.url} (depth {args.depth if args.depth is not None else 'default'})")
    outcome = await components["ingestion_service"].ingest_website(args.bot, args.url, args.depth)
    _print_outcome(args.url, outcome)
    return 0 if outcome.ok else 1


async def _handle_stats(args: argparse.Namespace, components: dict[str, Any]) -> int:
    overview = await components["training_data_service"].overview(args.bot)
    summary = overview.summary

    print(f"Training data for bot {args.bot}")
    print("=" * 40)
    print(f"  Completed documents: {summary.total_documents}")
    print(f"  Completed websites:  {summary.total_websites}")
    print(f"  Total chunks:        {summary.total_chunks}")
    print(f"  Stored vectors:      {overview.vector_count}")
    print(f"  Last training:       {summary.last_training_date or 'never'}")

    if overview.documents:
        print("\n  Documents:")
        for document in overview.documents:
            line = f"    {document.id}  {document.status.value:<10} {document.original_name}"
            if document.error:
                line += f"  ({document.error})"
            print(line)
    if overview.websites:
        print("\n  Websites:")
        for crawl in overview.websites:
            line = f"    {crawl.id}  {crawl.status.value:<10} {crawl.url}  pages={crawl.pages_processed}"
            if crawl.error:
                line += f"  ({crawl.error})"
            print(line)
    return 0


async def _handle_purge(args: argparse.Namespace, components: dict[str, Any]) -> int:
    if args.document:
        target = f"document {args.document}"
    elif args.url:
        target = f"website {args.url}"
    else:
        target = "ALL training data"

    if not args.yes:
        answer = input(f"Delete {target} of bot {args.bot}? [y/N] ").strip().lower()
        if answer not in ("y", "yes"):
            print("  Aborted.")
            return 1

    service = components["training_data_service"]
    if args.document:
        deleted = await service.delete_document(args.bot, args.document)
    elif args.url:
        deleted = await service.delete_website(args.bot, args.url)
    else:
        deleted = await service.delete_all(args.bot)

    print(f"  Deleted {deleted} vectors ({target}).")
    return 0


async def _handle_ask(args: argparse.Namespace, components: dict[str, Any]) -> int:
    bot = await components["document_store"].get_bot(args.bot)
    if bot is None:
        print(f"Error: bot {args.bot} not found", file=sys.stderr)
        return 1

    def _write(token: str) -> None:
        sys.stdout.write(token)
        sys.stdout.flush()

    on_token = None if args.no_stream else _write
    answer = await components["answer_composer"].answer(bot, args.question, on_token=on_token)
    if on_token is None or answer.short_circuit is not None:
        print(answer.text)
    else:
        print()

    if args.sources and answer.sources:
        print("\nSources:")
        for reference in answer.sources:
            source = reference.metadata.get("source", "?")
            print(f"  [{reference.score:.2f}] {source}: {reference.preview}")
    return 0


_HANDLERS = {
    "create-bot": _handle_create_bot,
    "document": _handle_document,
    "text": _handle_text,
    "website": _handle_website,
    "stats": _handle_stats,
    "purge": _handle_purge,
    "ask": _handle_ask,
}


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    components = build_components(app_settings, load_config(settings=app_settings))
    try:
        await components["document_store"].initialize()
        return await _HANDLERS[args.command](args, components)
    except BotForgeError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await components["http_client"].aclose()


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the training CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.train",
        description="Create, train and query botforge bots.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Training commands")

    # -- create-bot --
    create_parser = subparsers.add_parser("create-bot", help="Create a new bot")
    create_parser.add_argument("--name", required=True, help="Display name of the bot")

    # -- document --
    doc_parser = subparsers.add_parser("document", help="Ingest local files")
    doc_parser.add_argument("--bot", required=True, help="Bot ID")
    doc_parser.add_argument("--file", required=True, nargs="+", help="Path(s) to the file(s)")

    # -- text --
    text_parser = subparsers.add_parser("text", help="Ingest a string of text")
    text_parser.add_argument("--bot", required=True, help="Bot ID")
    text_parser.add_argument("--name", default="pasted-text.txt", help="Name to record the text under")
    text_parser.add_argument("text", help="The text to ingest")

    # -- website --
    site_parser = subparsers.add_parser("website", help="Crawl and ingest a website")
    site_parser.add_argument("--bot", required=True, help="Bot ID")
    site_parser.add_argument("--url", required=True, help="Website URL (http or https)")
    site_parser.add_argument("--depth", type=int, default=None, help="Maximum link depth")

    # -- stats --
    stats_parser = subparsers.add_parser("stats", help="Show a bot's training data")
    stats_parser.add_argument("--bot", required=True, help="Bot ID")

    # -- purge --
    purge_parser = subparsers.add_parser("purge", help="Delete training data")
    purge_parser.add_argument("--bot", required=True, help="Bot ID")
    target = purge_parser.add_mutually_exclusive_group()
    target.add_argument("--document", help="Delete one document by ID")
    target.add_argument("--url", help="Delete one website by URL")
    purge_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    # -- ask --
    ask_parser = subparsers.add_parser("ask", help="Ask a bot a question")
    ask_parser.add_argument("--bot", required=True, help="Bot ID")
    ask_parser.add_argument("--no-stream", action="store_true", dest="no_stream", help="Print the answer at the end")
    ask_parser.add_argument("--sources", action="store_true", help="Print the retrieved sources")
    ask_parser.add_argument("question", help="The question to ask")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the training tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(log_level=app_settings.log_level)
    sys.exit(asyncio.run(_run(args, app_settings)))


if __name__ == "__main__":
    main()
