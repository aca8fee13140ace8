import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .adapters import describe_embedder_from_config
from .config import find_config_path, get_ingestion_dir, load_config
from .errors import KnowledgeBaseError
from .pipelines import DocumentCatalog, IngestionPipeline, RetrievalPipeline
from .stores import create_chunk_store_from_config

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowfix", description="Manage and search the internal knowledge base"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.toml in project root)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    ingest = commands.add_parser("ingest", help="Ingest a file or directory")
    ingest.add_argument(
        "path",
        type=Path,
        nargs="?",
        default=None,
        help="File or directory (default: ingestion directory from config)",
    )
    ingest.add_argument(
        "--timeout", type=float, default=None, help="Seconds allowed per file"
    )

    search = commands.add_parser("search", help="Search for an error message")
    search.add_argument("query")
    search.add_argument("--threshold", type=float, default=None)
    search.add_argument("--top-k", type=int, default=None)
    search.add_argument("--timeout", type=float, default=None)

    delete = commands.add_parser("delete", help="Delete a document and its chunks")
    delete.add_argument("document_id")

    commands.add_parser("list", help="List ingested documents")
    return parser


def _run_ingest(args: argparse.Namespace, config: dict, config_path: Path) -> None:
    pipeline = IngestionPipeline.from_config(config, config_path)
    path = args.path or get_ingestion_dir(config, config_path)

    if path.is_dir():
        documents = pipeline.ingest_directory(path, timeout=args.timeout)
    else:
        documents = [pipeline.ingest_file(path, timeout=args.timeout)]

    print("\n=== Ingestion Complete ===")
    for document in documents:
        print(f"{document.id}: {document.status.value} ({document.chunk_count} chunks)")


def _run_search(args: argparse.Namespace, config: dict, config_path: Path) -> None:
    pipeline = RetrievalPipeline.from_config(config, config_path)
    answer = pipeline.lookup(
        args.query, args.threshold, args.top_k, timeout=args.timeout
    )
    if not answer.found:
        print(answer.solution)
        return

    for match in answer.matches:
        print(
            f"[{match.similarity:.3f}] {match.metadata.source} "
            f"(page {match.metadata.page})"
        )
        print(match.content)
        print()


def _run_delete(args: argparse.Namespace, config: dict, config_path: Path) -> None:
    # Deleting never embeds, so open the store without provider credentials.
    model, dimension = describe_embedder_from_config(config)
    store = create_chunk_store_from_config(config, config_path, model, dimension)
    removed = store.delete_by_document_id(args.document_id)
    DocumentCatalog.from_config(config, config_path).remove(args.document_id)
    print(f"Deleted {removed} chunks for {args.document_id}")


def _run_list(args: argparse.Namespace, config: dict, config_path: Path) -> None:
    for document in DocumentCatalog.from_config(config, config_path).list_all():
        print(
            f"{document.id}\t{document.status.value}\t{document.chunk_count}\t"
            f"{document.upload_date.isoformat()}"
        )


COMMANDS = {
    "ingest": _run_ingest,
    "search": _run_search,
    "delete": _run_delete,
    "list": _run_list,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config_path = find_config_path(args.config)
        config = load_config(config_path)
        COMMANDS[args.command](args, config, config_path)
        return 0
    except (KnowledgeBaseError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
