"""CLI commands for browsing ChromaDB collections."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from ..config.runtime import get_settings
from ..domain.errors import ChromaLensError, TransportError, ValidationError
from ..domain.filter_compiler import FilterCompiler
from ..domain.filters import Filter, Unparseable, WhereClause
from ..domain.records import BrowseState, SearchMode
from ..observability import configure_logging
from ..wiring import build_orchestrator, build_records_service


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def parse_filter_arg(spec: str, compiler: FilterCompiler) -> tuple[str, str, Any]:
    """Split ``field:op:value`` (value may itself contain colons)."""
    parts = spec.split(":", 2)
    if len(parts) != 3 or not parts[0].strip():
        raise argparse.ArgumentTypeError(f"filter must look like field:op:value, got {spec!r}")
    field, op, raw = parts
    return field.strip(), op.strip(), compiler.parse_operator_value(raw, op.strip())


async def _collections() -> list[dict]:
    svc = build_records_service()
    return [c.model_dump() for c in await svc.list_collections()]


async def _health() -> dict:
    settings = get_settings()
    ok = await build_records_service().heartbeat()
    target = (
        f"{settings.chroma_host}:{settings.chroma_port}" if settings.chroma_host else settings.chroma_path
    )
    return {"ok": ok, "target": target}


async def _fields(collection: str) -> list[dict]:
    orch = build_orchestrator()
    await orch.switch_collection(collection)
    if orch.catalog_status.error:
        raise TransportError(orch.catalog_status.error, collection=collection)
    return [f.model_dump() for f in orch.fields]


def build_browse_where(
    where_text: str | None, filter_specs: list[str] | None, compiler: FilterCompiler
) -> tuple[WhereClause, str | None]:
    """Combine ``--where`` and ``--filter`` into one where clause plus an optional notice.

    A ``--where`` that decompiles to filters is merged with the ``--filter``
    list; any other clause is sent verbatim and cannot be combined.
    """
    filters: list[Filter] = []
    if where_text:
        outcome = compiler.decompile(where_text)
        if isinstance(outcome, Unparseable):
            if filter_specs:
                raise ValidationError(
                    f"--where cannot be combined with --filter: {outcome.reason}", field="where"
                )
            return outcome.raw, outcome.reason
        filters.extend(outcome)
    for spec in filter_specs or []:
        filters.append(compiler.make_filter(*parse_filter_arg(spec, compiler)))
    return compiler.compile(filters), None


async def _browse(args: argparse.Namespace) -> dict:
    settings = get_settings()
    page_size = args.page_size or settings.default_page_size
    if page_size not in settings.page_size_options:
        raise ValidationError(
            f"page size must be one of {settings.page_size_options}, got {page_size}", field="page_size"
        )
    where, notice = build_browse_where(args.where, args.filter, FilterCompiler())

    result = await build_records_service(settings).browse_page(
        args.collection, page=args.page, page_size=page_size, where=where
    )
    position = BrowseState(page=result.page, page_size=result.page_size, total=result.total)
    return {
        "collection": args.collection,
        "where": where,
        "notice": notice,
        "page": position.page,
        "page_size": position.page_size,
        "total": position.total,
        "total_pages": position.total_pages,
        "records": [r.model_dump(exclude={"embedding"}) for r in result.records],
    }


async def _search(args: argparse.Namespace) -> dict:
    svc = build_records_service()
    where = FilterCompiler.load_where(args.where)
    results = await svc.search(
        args.collection,
        args.text,
        args.mode,
        where=where,
        limit=args.limit or get_settings().search_limit,
    )
    return {
        "collection": args.collection,
        "mode": args.mode,
        "where": where,
        "ranked": results.has_ranking,
        "records": [
            {**r.model_dump(exclude={"embedding"}), **({"distance": d} if results.has_ranking else {})}
            for r, d in zip(results.records, results.distances or [None] * len(results.records))
        ],
    }


async def _delete(collection: str, ids: list[str]) -> dict:
    deleted = await build_records_service().delete_records(collection, ids)
    return {"collection": collection, "deleted": deleted}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chroma-lens", description="Browse and search ChromaDB collections")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("collections", help="List collections with record counts")
    subparsers.add_parser("health", help="Check that the Chroma server answers")

    fields_parser = subparsers.add_parser("fields", help="Infer metadata fields of a collection")
    fields_parser.add_argument("collection")

    browse_parser = subparsers.add_parser("browse", help="Show one page of a collection")
    browse_parser.add_argument("collection")
    browse_parser.add_argument("--page", type=int, default=1, help="1-based page number (default: 1)")
    browse_parser.add_argument("--page-size", type=int, default=None, help="Records per page")
    browse_parser.add_argument("--where", type=str, default=None, help="Raw where clause as JSON")
    browse_parser.add_argument(
        "--filter",
        action="append",
        metavar="FIELD:OP:VALUE",
        help="Metadata filter, e.g. type:eq:text or tag:in:a,b (repeatable)",
    )

    search_parser = subparsers.add_parser("search", help="Text or semantic search")
    search_parser.add_argument("collection")
    search_parser.add_argument("text")
    search_parser.add_argument("--mode", choices=[m.value for m in SearchMode], default=SearchMode.text.value)
    search_parser.add_argument("--where", type=str, default=None, help="Raw where clause as JSON")
    search_parser.add_argument("--limit", type=int, default=None, help="Maximum results (1-100)")

    delete_parser = subparsers.add_parser("delete", help="Delete records by id")
    delete_parser.add_argument("collection")
    delete_parser.add_argument("ids", nargs="+")

    subparsers.add_parser("serve", help="Run the MCP browser server over stdio")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(get_settings().log_level)

    if args.command == "serve":
        from .mcp_browser import main as serve

        serve()
        return 0

    commands = {
        "collections": lambda: _collections(),
        "health": lambda: _health(),
        "fields": lambda: _fields(args.collection),
        "browse": lambda: _browse(args),
        "search": lambda: _search(args),
        "delete": lambda: _delete(args.collection, args.ids),
    }
    if args.command not in commands:
        parser.print_help()
        return 2

    try:
        result = asyncio.run(commands[args.command]())
    except ChromaLensError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    _print_json(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
