"""CLI entry point for ragpack."""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from ragpack.config import BACKENDS, RetrievalOptions, Settings
from ragpack.errors import RagError
from ragpack.service import RetrievalService
from ragpack.storage import VectorIndex

logger = logging.getLogger(__name__)


def build_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with command-line overrides applied."""
    settings = Settings.from_env()

    store = settings.store
    if args.db:
        store = replace(store, path=args.db)
    if args.backend:
        store = replace(store, backend=args.backend)

    chunker = settings.chunker
    if getattr(args, "structure", False):
        chunker = replace(chunker, preserve_structure=True)
    if getattr(args, "max_chunk_size", None):
        chunker = replace(chunker, max_chunk_size=args.max_chunk_size)
    if getattr(args, "overlap", None) is not None:
        chunker = replace(chunker, chunk_overlap=args.overlap)

    return replace(
        settings,
        store=store,
        chunker=chunker,
        embedding_model=args.model or settings.embedding_model,
    )


def index(settings: Settings, source: str, document_id: str | None = None) -> None:
    """Index a text file.

    Args:
        settings: Store, chunker and model configuration
        source: Path to a UTF-8 text file
        document_id: Document id (defaults to the file name)
    """
    source_path = Path(source)
    if not source_path.is_file():
        logger.error(f"Cannot read: {source}")
        sys.exit(1)

    text = source_path.read_text(encoding="utf-8", errors="replace")
    document_id = document_id or source_path.name

    service = RetrievalService.from_settings(settings)
    try:
        count = asyncio.run(
            service.index_document(document_id, text, {"source": str(source_path)})
        )
    finally:
        service.close()

    logger.info(f"Indexed {source} as {document_id}: {count} chunks -> {settings.store.path}")


def query(settings: Settings, text: str, options: RetrievalOptions) -> None:
    """Print the context block for a query."""
    service = RetrievalService.from_settings(settings)
    try:
        result = asyncio.run(service.retrieve(text, options))
    finally:
        service.close()

    if not result.chunk_count:
        print(f"No results found for: {text}")
        return

    print(result.context)


def serve(settings: Settings, transport: str = "stdio") -> None:
    """Start MCP server for a store.

    Args:
        settings: Store, chunker and model configuration
        transport: Transport protocol (stdio or sse)
    """
    # Import here to avoid loading MCP unless needed
    from ragpack.server import create_mcp_server

    from typing import cast, Literal

    service = RetrievalService.from_settings(settings)
    logger.info(f"Serving {settings.store.path} via {transport}")
    mcp = create_mcp_server(service)
    try:
        mcp.run(transport=cast(Literal["stdio", "sse", "streamable-http"], transport))
    finally:
        service.close()


def info(settings: Settings) -> None:
    """Show information about a store."""
    store_path = Path(settings.store.path)

    with VectorIndex.open(store_path, backend=settings.store.backend) as store:
        metadata = {}
        for key in ["dimension", "embedding_model", "created_at"]:
            value = store.get_metadata(key)
            if value:
                metadata[key] = value

        documents = store.list_documents()
        chunk_count = store.count()
        backend = store.backend_name

    print(f"Store: {store_path.name}")
    print(f"  Size: {store_path.stat().st_size / 1024:.1f} KB")
    print(f"  Search backend: {backend}")
    print(f"")
    print(f"Metadata:")
    for key, value in metadata.items():
        print(f"  {key}: {value}")
    print(f"")
    print(f"Contents:")
    print(f"  Documents: {len(documents)}")
    print(f"  Chunks: {chunk_count}")


def list_documents(settings: Settings) -> None:
    """Print every indexed document with its size."""
    with VectorIndex.open(settings.store.path, backend=settings.store.backend) as store:
        documents = store.list_documents()
        if not documents:
            print("No documents indexed")
            return
        for document_id in documents:
            stats = store.get_document_stats(document_id)
            print(f"{document_id:<50} {stats.chunk_count:>6} chunks {stats.total_chars:>10} chars")


def stats(settings: Settings, document_id: str) -> None:
    """Print chunk and character counts for one document."""
    with VectorIndex.open(settings.store.path, backend=settings.store.backend) as store:
        doc_stats = store.get_document_stats(document_id)
    print(f"{document_id}: {doc_stats.chunk_count} chunks, {doc_stats.total_chars} chars")


def delete(settings: Settings, document_id: str) -> None:
    """Remove a document from the store."""
    with VectorIndex.open(settings.store.path, backend=settings.store.backend) as store:
        store.delete_document(document_id)
    logger.info(f"Deleted {document_id}")


def clear(settings: Settings) -> None:
    """Remove every document from the store."""
    with VectorIndex.open(settings.store.path, backend=settings.store.backend) as store:
        store.clear()
    logger.info(f"Cleared {settings.store.path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ragpack",
        description="ragpack - chunk, embed and retrieve documents from a local vector store",
    )
    parser.add_argument("--db", help="Vector store path (default: $RAGPACK_DB_PATH or ragpack.db)")
    parser.add_argument("--model", help="sentence-transformers model name")
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        help="Similarity search backend (default: auto)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # index command
    index_parser = subparsers.add_parser(
        "index",
        help="Index (or re-index) a text file",
    )
    index_parser.add_argument("source", help="Input text file path")
    index_parser.add_argument("--id", dest="document_id", help="Document id (default: file name)")
    index_parser.add_argument(
        "--structure",
        action="store_true",
        help="Split on markdown headings and tag chunks with their section",
    )
    index_parser.add_argument("--max-chunk-size", type=int, help="Maximum chunk size in characters")
    index_parser.add_argument("--overlap", type=int, help="Overlap between chunks in characters")

    # query command
    query_parser = subparsers.add_parser(
        "query",
        help="Retrieve context for a query",
    )
    query_parser.add_argument("text", help="Query text")
    query_parser.add_argument("-k", "--max-results", type=int, default=3, help="Maximum results (default: 3)")
    query_parser.add_argument(
        "--min-similarity",
        type=float,
        default=0.0,
        help="Drop results below this similarity (default: 0.0)",
    )
    query_parser.add_argument("--document", help="Restrict the search to one document id")
    query_parser.add_argument("--no-scores", action="store_true", help="Hide similarity scores")

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Start MCP server for the store",
    )
    serve_parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )

    subparsers.add_parser("info", help="Show information about the store")
    subparsers.add_parser("list", help="List indexed documents")

    stats_parser = subparsers.add_parser("stats", help="Show statistics for a document")
    stats_parser.add_argument("document_id", help="Document id")

    delete_parser = subparsers.add_parser("delete", help="Remove a document from the store")
    delete_parser.add_argument("document_id", help="Document id")

    subparsers.add_parser("clear", help="Remove every document from the store")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
    )

    try:
        settings = build_settings(args)
        logging.getLogger().setLevel(logging.DEBUG if args.verbose else settings.log_level.upper())

        if args.command == "index":
            index(settings, args.source, args.document_id)
        elif args.command == "query":
            options = RetrievalOptions(
                max_results=args.max_results,
                min_similarity=args.min_similarity,
                document_id=args.document,
                show_scores=not args.no_scores,
            )
            query(settings, args.text, options)
        elif args.command == "serve":
            serve(settings, args.transport)
        elif args.command == "info":
            info(settings)
        elif args.command == "list":
            list_documents(settings)
        elif args.command == "stats":
            stats(settings, args.document_id)
        elif args.command == "delete":
            delete(settings, args.document_id)
        elif args.command == "clear":
            clear(settings)
    except RagError as exc:
        logger.error(f"Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
