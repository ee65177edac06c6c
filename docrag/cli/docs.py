# =============================================================================
# docrag/cli/docs.py — Document management CLI
# =============================================================================
#
# Drives the ingestion and retrieval services from the shell against the
# stores configured in .env / the environment.
#
# Supported subcommands:
#
#   upload   — Upload a file into a scope and wait for processing
#   status   — Show one document's status and error message
#   list     — List documents (optionally for one scope), newest first
#   query    — Retrieve context + citations for a question
#   content  — Print a document's text, or every document in a scope
#   delete   — Delete a document, its fragments and its blob
#   recover  — Re-queue PENDING documents left by a previous run
#   stats    — Document counts per status and embedding counters
#   config   — Print the resolved configuration (secrets redacted)
#
# Processing runs on the in-process worker pool, so every command that
# queues work waits for the pool to drain before exiting.
#
# Usage examples:
#   python -m docrag.cli upload handbook.pdf --scope team-a
#   python -m docrag.cli query "How do refunds work?" --scope team-a
#   python -m docrag.cli list --scope team-a
#   python -m docrag.cli delete 6f1c... --yes
# =============================================================================

"""Standalone CLI for uploading and querying documents.

Usage::

    python -m docrag.cli upload notes.md --scope demo
    python -m docrag.cli query "what changed in v2?" --scope demo
    python -m docrag.cli stats
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import yaml

from docrag.config.loader import load_config
from docrag.config.settings import Settings
from docrag.main import Services, build_services
from docrag.models.document import Document
from docrag.utils.errors import DocRagError

# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _print_document(document: Document) -> None:
    print(f"  ID:        {document.document_id}")
    print(f"  Scope:     {document.scope_id}")
    print(f"  File:      {document.original_filename} ({document.content_type}, {document.size_bytes} bytes)")
    print(f"  Status:    {document.status.value}")
    print(f"  Fragments: {document.fragment_count}")
    if document.error_message:
        print(f"  Error:     {document.error_message}")


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, services: Services) -> int:
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    document = await services.ingestion.upload(
        path.read_bytes(),
        filename=path.name,
        scope_id=args.scope,
        content_type=args.content_type,
    )
    print(f"Uploaded {path.name} → {document.document_id}")

    if args.no_wait:
        return 0

    await services.ingestion.wait_until_idle()
    final = await services.ingestion.get_document(document.document_id)
    if final is None:
        print("Error: document disappeared during processing", file=sys.stderr)
        return 1
    _print_document(final)
    return 0 if final.status.value != "FAILED" else 2


async def _handle_status(args: argparse.Namespace, services: Services) -> int:
    document = await services.ingestion.get_document(args.document_id)
    if document is None:
        print(f"No document {args.document_id}", file=sys.stderr)
        return 1
    _print_document(document)
    return 0


async def _handle_list(args: argparse.Namespace, services: Services) -> int:
    documents = await services.ingestion.list_documents(args.scope)
    if not documents:
        print("No documents.")
        return 0

    print(f"{'ID':<38} {'STATUS':<11} {'FRAGS':>5}  {'SCOPE':<16} FILE")
    for d in documents:
        print(
            f"{d.document_id:<38} {d.status.value:<11} {d.fragment_count:>5}  "
            f"{d.scope_id:<16} {d.original_filename}"
        )
    return 0


async def _handle_query(args: argparse.Namespace, services: Services) -> int:
    retriever = services.retriever
    if args.all_scopes:
        fragments = await retriever.find_relevant_global(args.text)
    else:
        fragments = await retriever.find_relevant(args.text, args.scope)

    if not fragments:
        print("No relevant fragments.")
        return 0

    print(retriever.build_context(fragments).rstrip())
    print()
    print("Citations")
    print("=" * 40)
    for citation, fragment in zip(retriever.build_citations(fragments), fragments):
        print(
            f"  [{citation.index}] {citation.document_name} "
            f"(fragment {citation.fragment_order}, similarity {fragment.similarity:.3f})"
        )
    return 0


async def _handle_content(args: argparse.Namespace, services: Services) -> int:
    if args.document_id:
        content = await services.ingestion.get_content(args.document_id)
        if content is None:
            print("No content: document missing or not COMPLETED.", file=sys.stderr)
            return 1
    else:
        content = await services.ingestion.get_all_content(args.scope)
    print(content)
    return 0


async def _handle_delete(args: argparse.Namespace, services: Services) -> int:
    document = await services.ingestion.get_document(args.document_id)
    if document is None:
        print(f"No document {args.document_id}", file=sys.stderr)
        return 1

    if not args.yes:
        confirm = input(f"  Delete {document.original_filename}? [y/N] ").strip().lower()
        if confirm not in ("y", "yes"):
            print("  Aborted.")
            return 0

    await services.ingestion.delete(args.document_id)
    print(f"Deleted {args.document_id}")
    return 0


async def _handle_recover(args: argparse.Namespace, services: Services) -> int:
    result = await services.ingestion.recover_pending()
    await services.ingestion.wait_until_idle()
    print(f"Re-queued {result['resubmitted']} pending, failed {result['interrupted']} interrupted.")
    return 0


async def _handle_stats(args: argparse.Namespace, services: Services) -> int:
    counts = await services.ingestion.document_counts(args.scope)
    embedding = services.embedding_service.cache_stats()

    print("Document Statistics")
    print("=" * 40)
    for status, count in counts.items():
        print(f"  {status:<12} {count}")
    print(f"  {'TOTAL':<12} {sum(counts.values())}")
    print()
    print("Embedding")
    print("=" * 40)
    print(f"  Provider:   {embedding.provider} ({'ready' if embedding.available else 'not configured'})")
    print(f"  Dimension:  {services.embedding_service.get_dimension()}")
    print(f"  Strategy:   {services.retriever.strategy_name}")
    print(f"  Cache size: {embedding.cache_size}")
    return 0


def _handle_config(args: argparse.Namespace, app_settings: Settings) -> int:
    config = load_config(args.config_file, settings=app_settings)
    print(yaml.safe_dump(config, sort_keys=True, default_flow_style=False).rstrip())
    return 0


_HANDLERS = {
    "upload": _handle_upload,
    "status": _handle_status,
    "list": _handle_list,
    "query": _handle_query,
    "content": _handle_content,
    "delete": _handle_delete,
    "recover": _handle_recover,
    "stats": _handle_stats,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m docrag.cli",
        description="Upload, inspect and query docrag documents.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Document commands")

    upload_parser = subparsers.add_parser("upload", help="Upload a file into a scope")
    upload_parser.add_argument("file", help="Path to the file")
    upload_parser.add_argument("--scope", required=True, help="Scope (conversation) ID")
    upload_parser.add_argument("--content-type", dest="content_type", default=None,
                               help="MIME type (guessed from the extension when omitted)")
    upload_parser.add_argument("--no-wait", dest="no_wait", action="store_true",
                               help="Return once queued instead of waiting for processing")

    status_parser = subparsers.add_parser("status", help="Show a document's status")
    status_parser.add_argument("document_id", help="Document ID")

    list_parser = subparsers.add_parser("list", help="List documents, newest first")
    list_parser.add_argument("--scope", default=None, help="Only this scope")

    query_parser = subparsers.add_parser("query", help="Retrieve context for a question")
    query_parser.add_argument("text", help="Query text")
    scope_group = query_parser.add_mutually_exclusive_group(required=True)
    scope_group.add_argument("--scope", help="Scope to search")
    scope_group.add_argument("--all-scopes", dest="all_scopes", action="store_true",
                             help="Search every scope (native vector search only)")

    content_parser = subparsers.add_parser("content", help="Print document text")
    content_group = content_parser.add_mutually_exclusive_group(required=True)
    content_group.add_argument("--document", dest="document_id", help="One document")
    content_group.add_argument("--scope", help="Every COMPLETED document in a scope")

    delete_parser = subparsers.add_parser("delete", help="Delete a document")
    delete_parser.add_argument("document_id", help="Document ID")
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    subparsers.add_parser("recover", help="Re-queue documents left PENDING by a previous run")

    stats_parser = subparsers.add_parser("stats", help="Show document and embedding statistics")
    stats_parser.add_argument("--scope", default=None, help="Only this scope")

    config_parser = subparsers.add_parser("config", help="Print the resolved configuration")
    config_parser.add_argument("--file", dest="config_file", default="config/config.yaml",
                               help="YAML config file (default: config/config.yaml)")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    services = build_services(app_settings)
    await services.start()
    try:
        return await _HANDLERS[args.command](args, services)
    except DocRagError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await services.aclose()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    ``config`` only reads settings; every other command builds the full
    service graph, runs, then drains the worker pool before exiting.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()

    if args.command == "config":
        sys.exit(_handle_config(args, app_settings))

    sys.exit(asyncio.run(_run(args, app_settings)))


if __name__ == "__main__":
    main()
