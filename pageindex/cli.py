"""CLI entrypoints for pageindex commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import ConfigError, IndexerConfig, load_config
from .errors import PageIndexError
from .logging import configure_logging
from .pipeline import Pipeline
from .stores import PageStore


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pageindex",
        description="Index captured page text locally and search it semantically.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--config",
        default=".",
        help="Path to .pageindex.yml or the directory holding it (defaults to current directory).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser(
        "index",
        help="Chunk, embed, and store the text of a page.",
    )
    _add_verbose_option(index_parser, suppress_default=True)
    index_parser.add_argument(
        "path",
        help="Text file holding the page content, or '-' to read standard input.",
    )
    index_parser.add_argument(
        "--url",
        help="URL the text was captured from (defaults to the file URI).",
    )
    index_parser.add_argument(
        "--title",
        help="Page title (defaults to the file name).",
    )

    search_parser = subparsers.add_parser(
        "search",
        help="Rank stored chunks against a query.",
    )
    _add_verbose_option(search_parser, suppress_default=True)
    search_parser.add_argument("query", help="Free-text query.")
    search_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of results (defaults to search.default_limit).",
    )

    pages_parser = subparsers.add_parser(
        "pages",
        help="List indexed pages, most recent first.",
    )
    _add_verbose_option(pages_parser, suppress_default=True)

    delete_parser = subparsers.add_parser(
        "delete",
        help="Remove a page and its vectors from the store.",
    )
    _add_verbose_option(delete_parser, suppress_default=True)
    delete_parser.add_argument("page_id", help="Identifier printed by `pageindex pages`.")

    export_parser = subparsers.add_parser(
        "export",
        help="Write page metadata and settings as JSON.",
    )
    _add_verbose_option(export_parser, suppress_default=True)
    export_parser.add_argument(
        "--output",
        help="Destination file (defaults to standard output).",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind.")

    return parser


def _create_pipeline(config: IndexerConfig) -> Pipeline:
    pipeline = Pipeline(config)
    pipeline.initialize_from_config()
    return pipeline


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for pageindex commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(Path(args.config))
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    configure_logging(
        verbose=bool(args.verbose) or config.logging.verbose,
        log_file=config.logging.file,
    )

    try:
        _dispatch(args, config)
    except (PageIndexError, OSError, ValueError) as exc:
        parser.exit(1, f"pageindex {args.command} failed: {exc}\nRun with --verbose for more details.\n")


def _dispatch(args: argparse.Namespace, config: IndexerConfig) -> None:
    if args.command == "index":
        _run_index(args, config)
    elif args.command == "search":
        _run_search(args, config)
    elif args.command == "pages":
        store = PageStore(config.storage.root)
        pages = store.pages()
        if not pages:
            print("No pages indexed")
        for page in pages:
            suffix = f" [{len(page.degraded_chunks)} degraded]" if page.degraded_chunks else ""
            print(f"{page.page_id}\t{page.chunk_count} chunks\t{page.title}\t{page.url}{suffix}")
    elif args.command == "delete":
        store = PageStore(config.storage.root)
        if not store.delete_page(args.page_id):
            raise ValueError(f"Unknown page {args.page_id}")
        print(f"Deleted {args.page_id}")
    elif args.command == "export":
        payload = PageStore(config.storage.root).export(config.as_settings())
        text = json.dumps(payload, indent=2)
        if args.output:
            output = Path(args.output)
            output.write_text(text + "\n", encoding="utf-8")
            print(f"Export written to {_relativize(output.resolve())}")
        else:
            print(text)
    elif args.command == "serve":  # pragma: no cover - integration path
        from .service import run_service

        run_service(host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        raise ValueError("Unknown command")


def _run_index(args: argparse.Namespace, config: IndexerConfig) -> None:
    if args.path == "-":
        text = sys.stdin.read()
        url = args.url or "stdin"
        title = args.title or url
    else:
        source = Path(args.path).resolve()
        text = source.read_text(encoding="utf-8")
        url = args.url or source.as_uri()
        title = args.title or source.name

    pipeline = _create_pipeline(config)
    try:
        document = pipeline.index_document(text)
    finally:
        pipeline.close()
    record = PageStore(config.storage.root).add_page(document, url=url, title=title)
    print(f"Indexed {record.page_id} ({record.chunk_count} chunks)")
    if record.degraded_chunks:
        print(f"Degraded chunks: {', '.join(str(index) for index in record.degraded_chunks)}")
    print(f"Store at {_relativize(config.storage.root)}")


def _run_search(args: argparse.Namespace, config: IndexerConfig) -> None:
    store = PageStore(config.storage.root)
    pipeline = _create_pipeline(config)
    try:
        hits = pipeline.search_store(store, args.query, args.limit)
    finally:
        pipeline.close()
    if not hits:
        print("No results")
        return
    for rank, hit in enumerate(hits, start=1):
        snippet = " ".join(hit.chunk_text.split())[:120]
        print(f"{rank}. {hit.score:.4f}  {hit.title} ({hit.url}) #chunk_{hit.chunk_index}")
        if snippet:
            print(f"   {snippet}")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
