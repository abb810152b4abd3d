"""Tool registry for the MCP browser server.

One module-level browsing session (a QueryOrchestrator) is shared by the
``browser_*`` tools and ``records_delete``; ``collections_list`` and
``connection_health`` only use its records service. Responses go through
field allowlists.
"""

from __future__ import annotations

import json
import time
from typing import Any

from ...domain.errors import ChromaLensError, ValidationError
from ...domain.filter_compiler import FilterCompiler
from ...domain.filters import Filter, Unparseable
from ...domain.records import Record
from ...observability import log_tool_invocation, metrics_snapshot

# ---------------------------------------------------------------------------
# Response allowlists (field-level)
# ---------------------------------------------------------------------------
ALLOWED_RECORD_KEYS = frozenset({"id", "document", "metadata", "distance"})
ALLOWED_FILTER_KEYS = frozenset({"id", "field", "operator", "label", "value", "value_text"})
ALLOWED_FIELD_KEYS = frozenset({"name", "type", "sample_values"})
ALLOWED_COLLECTION_KEYS = frozenset({"name", "count"})
ALLOWED_STATUS_KEYS = frozenset({"busy", "error"})
ALLOWED_VIEW_KEYS = frozenset({
    "collection",
    "source",
    "filters",
    "where",
    "filter_notice",
    "search",
    "page",
    "page_size",
    "page_size_options",
    "total",
    "total_pages",
    "start_record",
    "end_record",
    "records",
    "status",
})

BROWSER_TOOLS = frozenset({
    "browser_select_collection",
    "browser_add_filter",
    "browser_update_filter",
    "browser_remove_filter",
    "browser_clear_filters",
    "browser_apply_where",
    "browser_set_page",
    "browser_set_page_size",
    "browser_search",
    "browser_find_similar",
    "browser_clear_search",
    "browser_refresh",
    "browser_view",
    "browser_fields",
    "collections_list",
    "connection_health",
    "records_delete",
})

_session = None


def _get_session():
    global _session
    if _session is None:
        from ...wiring import build_orchestrator
        _session = build_orchestrator()
    return _session


def set_session(orchestrator) -> None:
    """Replace (or with None, drop) the shared browsing session."""
    global _session
    _session = orchestrator


def _get_records_service():
    return _get_session().records_service


def _pick(d: dict, allowed: frozenset) -> dict:
    return {k: d[k] for k in allowed if k in d}


def _shape_record(record: Record, distance: float | None = None) -> dict:
    d: dict[str, Any] = {"id": record.id, "document": record.document, "metadata": record.metadata}
    if distance is not None:
        d["distance"] = distance
    return _pick(d, ALLOWED_RECORD_KEYS)


def _shape_filter(f: Filter) -> dict:
    d = {
        "id": f.id,
        "field": f.field,
        "operator": f.operator.value,
        "label": f.operator.label,
        "value": f.value,
        "value_text": FilterCompiler.value_to_text(f.value),
    }
    return _pick(d, ALLOWED_FILTER_KEYS)


def _shape_view(orch) -> dict:
    active = orch.active_results
    distances = list(active.distances) if active.has_ranking else [None] * len(active.records)
    search = orch.search
    d = {
        "collection": orch.collection,
        "source": active.source,
        "filters": [_shape_filter(f) for f in orch.filters],
        "where": orch.where_clause,
        "filter_notice": str(orch.filter_notice) if orch.filter_notice else None,
        "search": {
            "query_text": search.query_text,
            "mode": search.mode.value,
            "filters_stale": orch.search_filters_stale,
        },
        "page": orch.page,
        "page_size": orch.page_size,
        "page_size_options": orch.page_size_options,
        "total": orch.total,
        "total_pages": orch.total_pages,
        "start_record": orch.browse.start_record,
        "end_record": orch.browse.end_record,
        "records": [_shape_record(r, dist) for r, dist in zip(active.records, distances)],
        "status": {
            "browse": _pick(orch.browse_status.model_dump(), ALLOWED_STATUS_KEYS),
            "search": _pick(orch.search_status.model_dump(), ALLOWED_STATUS_KEYS),
            "catalog": _pick(orch.catalog_status.model_dump(), ALLOWED_STATUS_KEYS),
        },
    }
    return _pick(d, ALLOWED_VIEW_KEYS)


def _error_payload(exc: ChromaLensError) -> dict:
    payload: dict[str, Any] = {"error": str(exc), "kind": type(exc).__name__}
    field = getattr(exc, "field", None)
    if field:
        payload["field"] = field
    return payload


async def _session_call(tool: str, action) -> str:
    """Run a session mutation and answer with the refreshed view (or an error payload)."""
    t0 = time.monotonic()
    orch = _get_session()
    try:
        extra = await action(orch)
    except ChromaLensError as exc:
        log_tool_invocation(tool, (time.monotonic() - t0) * 1000, error=str(exc))
        return json.dumps(_error_payload(exc))
    view = _shape_view(orch)
    if extra:
        view.update(extra)
    log_tool_invocation(tool, (time.monotonic() - t0) * 1000, extra={"collection": orch.collection})
    return json.dumps(view, indent=2, default=str)


def _parse_value(value: str | int | float | list[str], operator: str) -> Any:
    if isinstance(value, str):
        return FilterCompiler.parse_operator_value(value, operator)
    return value


def register_browser_tools(mcp):
    """Register the browsing session tools and the stateless collection tools."""

    @mcp.tool()
    async def browser_select_collection(name: str) -> str:
        """Switch the session to a collection: clears filters and search, loads page 1 and the field catalog.

        Args:
            name: Collection name (see collections_list)
        """
        return await _session_call("browser_select_collection", lambda o: o.switch_collection(name))

    @mcp.tool()
    async def browser_add_filter(field: str, operator: str, value: str | int | float | list[str]) -> str:
        """Add a metadata filter and reload page 1.

        Args:
            field: Metadata field name (see browser_fields)
            operator: One of eq, ne, gt, lt, in
            value: Comparison value. Text is parsed as typed into a filter box: numbers
                become numbers, and for 'in' a comma-separated list becomes a list.
        """
        async def action(o):
            created = await o.add_filter(field, operator, _parse_value(value, operator))
            return {"created_filter_id": created.id}

        return await _session_call("browser_add_filter", action)

    @mcp.tool()
    async def browser_update_filter(
        filter_id: str,
        field: str | None = None,
        operator: str | None = None,
        value: str | int | float | list[str] | None = None,
    ) -> str:
        """Edit an existing filter in place (same id) and reload page 1.

        Args:
            filter_id: Id returned by browser_add_filter or listed in browser_view
            field: New field name
            operator: New operator; without a value the old value is carried over
            value: New value (parsed like browser_add_filter)
        """
        async def action(o):
            op = operator
            if value is not None and op is None:
                op = next((f.operator.value for f in o.filters if f.id == filter_id), "eq")
            parsed = _parse_value(value, op) if value is not None else None
            await o.update_filter(filter_id, field=field, operator=operator, value=parsed)

        return await _session_call("browser_update_filter", action)

    @mcp.tool()
    async def browser_remove_filter(filter_id: str) -> str:
        """Remove one filter and reload page 1."""
        return await _session_call("browser_remove_filter", lambda o: o.remove_filter(filter_id))

    @mcp.tool()
    async def browser_clear_filters() -> str:
        """Remove every filter (and any raw where clause) and reload page 1."""
        return await _session_call("browser_clear_filters", lambda o: o.clear_filters())

    @mcp.tool()
    async def browser_apply_where(where_json: str) -> str:
        """Apply a raw where clause given as JSON.

        Flat conjunctions become editable filters. Anything else (or groups,
        nested and) is applied verbatim and reported in filter_notice.

        Args:
            where_json: e.g. '{"and": [{"type": {"eq": "text"}}, {"year": {"gt": 2020}}]}'
        """
        async def action(o):
            outcome = await o.apply_raw_where_clause(where_json)
            return {"parsed": not isinstance(outcome, Unparseable)}

        return await _session_call("browser_apply_where", action)

    @mcp.tool()
    async def browser_set_page(page: int) -> str:
        """Go to a 1-based page of the browse view (not while a search is active)."""
        return await _session_call("browser_set_page", lambda o: o.set_page(page))

    @mcp.tool()
    async def browser_set_page_size(page_size: int) -> str:
        """Change records per page (10, 25, 50 or 100 by default) and go back to page 1."""
        return await _session_call("browser_set_page_size", lambda o: o.set_page_size(page_size))

    @mcp.tool()
    async def browser_search(query_text: str, mode: str = "text") -> str:
        """Search the selected collection with the current filters.

        Args:
            query_text: Text to look for
            mode: 'text' (document contains the text, unranked) or 'semantic' (nearest neighbours, with distances)
        """
        return await _session_call("browser_search", lambda o: o.run_search(query_text, mode))

    @mcp.tool()
    async def browser_find_similar(record_id: str) -> str:
        """Semantic search using the document of a record currently in view."""
        return await _session_call("browser_find_similar", lambda o: o.find_similar(record_id))

    @mcp.tool()
    async def browser_clear_search() -> str:
        """Leave search and return to the browse view."""
        return await _session_call("browser_clear_search", lambda o: o.clear_search())

    @mcp.tool()
    async def browser_refresh() -> str:
        """Reload whatever the view currently shows (search results or the browse page)."""
        return await _session_call("browser_refresh", lambda o: o.refresh())

    @mcp.tool()
    async def browser_view() -> str:
        """Return the current view without fetching anything."""
        async def action(o):
            return None

        return await _session_call("browser_view", action)

    @mcp.tool()
    async def browser_fields(refresh: bool = False) -> str:
        """Metadata fields inferred from a sample of the selected collection.

        Args:
            refresh: Re-sample the collection first
        """
        t0 = time.monotonic()
        orch = _get_session()
        try:
            if orch.collection is None:
                raise ValidationError("No collection selected", field="collection")
            if refresh:
                await orch.refresh_fields()
        except ChromaLensError as exc:
            log_tool_invocation("browser_fields", (time.monotonic() - t0) * 1000, error=str(exc))
            return json.dumps(_error_payload(exc))
        payload = {
            "collection": orch.collection,
            "fields": [_pick(f.model_dump(), ALLOWED_FIELD_KEYS) for f in orch.fields],
            "status": _pick(orch.catalog_status.model_dump(), ALLOWED_STATUS_KEYS),
        }
        log_tool_invocation("browser_fields", (time.monotonic() - t0) * 1000, extra={"fields": len(orch.fields)})
        return json.dumps(payload, indent=2, default=str)

    @mcp.tool()
    async def collections_list() -> str:
        """List collections with their record counts."""
        t0 = time.monotonic()
        try:
            collections = await _get_records_service().list_collections()
        except ChromaLensError as exc:
            log_tool_invocation("collections_list", (time.monotonic() - t0) * 1000, error=str(exc))
            return json.dumps(_error_payload(exc))
        log_tool_invocation("collections_list", (time.monotonic() - t0) * 1000)
        return json.dumps({"collections": [_pick(c.model_dump(), ALLOWED_COLLECTION_KEYS) for c in collections]})

    @mcp.tool()
    async def connection_health() -> str:
        """Liveness: whether the vector database answers, plus fetch counters."""
        ok = await _get_records_service().heartbeat()
        return json.dumps({"ok": ok, "metrics": metrics_snapshot()})

    @mcp.tool()
    async def records_delete(ids: list[str], collection: str | None = None) -> str:
        """Delete records by id. Defaults to the session's collection and reloads the view.

        Args:
            ids: Record ids to delete
            collection: Another collection to delete from, leaving the session untouched
        """
        t0 = time.monotonic()
        orch = _get_session()
        try:
            if collection is None or collection == orch.collection:
                deleted = await orch.delete_records(ids)
                target = orch.collection
            else:
                deleted = await _get_records_service().delete_records(collection, ids)
                target = collection
        except ChromaLensError as exc:
            log_tool_invocation("records_delete", (time.monotonic() - t0) * 1000, error=str(exc))
            return json.dumps(_error_payload(exc))
        log_tool_invocation("records_delete", (time.monotonic() - t0) * 1000, extra={"deleted": deleted})
        return json.dumps({"collection": target, "deleted": deleted})
