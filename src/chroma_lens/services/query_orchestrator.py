"""QueryOrchestrator: owns the filter, browse, search and catalog slices.

Search is authoritative whenever ``search.query_text`` is set; otherwise the
browse page is. Each fetching slice carries a generation counter that is
bumped synchronously when a fetch starts, so a response that arrives after a
newer request was issued is dropped instead of overwriting newer state.
"""

from __future__ import annotations

import asyncio
import copy
import json
import time
from collections.abc import Mapping
from typing import Any

from ..config.runtime import RuntimeSettings
from ..domain.errors import TransportError, UnparseableFilterError, ValidationError
from ..domain.filter_compiler import FilterCompiler, coerce_operator
from ..domain.filters import Filter, FilterOp, FilterValue, Unparseable, WhereClause
from ..domain.records import (
    ActiveResults,
    BrowseState,
    MetadataField,
    Record,
    SearchMode,
    SearchState,
    SliceStatus,
)
from ..observability import log_fetch
from .metadata_catalog import MetadataFieldCatalog
from .records_service import RecordsService


class _SliceCell:
    """Generation counter plus busy/error flags for one slice."""

    def __init__(self) -> None:
        self.generation = 0
        self.busy = False
        self.error: str | None = None

    def begin(self) -> int:
        self.generation += 1
        self.busy = True
        self.error = None
        return self.generation

    def invalidate(self) -> None:
        """Orphan any in-flight fetch without starting a new one."""
        self.generation += 1
        self.busy = False
        self.error = None

    def is_current(self, token: int) -> bool:
        return token == self.generation

    def finish(self, error: str | None = None) -> None:
        self.busy = False
        self.error = error

    def status(self) -> SliceStatus:
        return SliceStatus(busy=self.busy, error=self.error, generation=self.generation)


def _where_key(where: WhereClause) -> str:
    return json.dumps(where, sort_keys=True, default=str)


class QueryOrchestrator:
    """Stateful browse/search session over one collection at a time."""

    def __init__(
        self,
        records_service: RecordsService,
        catalog: MetadataFieldCatalog,
        *,
        settings: RuntimeSettings,
        compiler: FilterCompiler | None = None,
        logger: Any = None,
    ) -> None:
        self._records = records_service
        self._catalog = catalog
        self._settings = settings
        self._compiler = compiler or FilterCompiler()
        self._logger = logger

        self._collection: str | None = None

        # Filter slice
        self._filters: list[Filter] = []
        self._raw_where: dict[str, Any] | None = None
        self._filter_notice: UnparseableFilterError | None = None

        # Browse slice
        self._browse = BrowseState(page=1, page_size=settings.default_page_size, total=0)
        self._browse_records: tuple[Record, ...] = ()
        self._browse_key: tuple[Any, ...] | None = None
        self._browse_cell = _SliceCell()

        # Search slice
        self._search = SearchState()
        self._search_where_key: str | None = None
        self._search_cell = _SliceCell()

        # Catalog slice
        self._fields: list[MetadataField] = []
        self._catalog_cell = _SliceCell()

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    @property
    def collection(self) -> str | None:
        return self._collection

    @property
    def filters(self) -> tuple[Filter, ...]:
        return tuple(self._filters)

    @property
    def where_clause(self) -> WhereClause:
        if self._raw_where is not None:
            return copy.deepcopy(self._raw_where)
        return self._compiler.compile(self._filters)

    @property
    def filter_notice(self) -> UnparseableFilterError | None:
        return self._filter_notice

    @property
    def browse(self) -> BrowseState:
        return self._browse

    @property
    def page(self) -> int:
        return self._browse.page

    @property
    def page_size(self) -> int:
        return self._browse.page_size

    @property
    def total(self) -> int:
        return self._browse.total

    @property
    def total_pages(self) -> int:
        return self._browse.total_pages

    @property
    def browse_records(self) -> tuple[Record, ...]:
        return self._browse_records

    @property
    def search(self) -> SearchState:
        return self._search

    @property
    def search_filters_stale(self) -> bool:
        """True when visible search results were produced under a different where clause."""
        if not self._search.is_active or self._search_where_key is None:
            return False
        return self._search_where_key != _where_key(self.where_clause)

    @property
    def fields(self) -> tuple[MetadataField, ...]:
        return tuple(self._fields)

    @property
    def active_results(self) -> ActiveResults:
        if self._search.is_active:
            return ActiveResults(
                source="search",
                records=self._search.results,
                distances=self._search.distances,
            )
        return ActiveResults(source="browse", records=self._browse_records)

    @property
    def browse_status(self) -> SliceStatus:
        return self._browse_cell.status()

    @property
    def search_status(self) -> SliceStatus:
        return self._search_cell.status()

    @property
    def catalog_status(self) -> SliceStatus:
        return self._catalog_cell.status()

    @property
    def records_service(self) -> RecordsService:
        return self._records

    @property
    def page_size_options(self) -> list[int]:
        return list(self._settings.page_size_options)

    # ------------------------------------------------------------------
    # Filter mutators
    # ------------------------------------------------------------------

    async def add_filter(self, field: str, operator: FilterOp | str, value: FilterValue) -> Filter:
        new = self._compiler.make_filter(field, operator, value)
        self._commit_filters([*self._filters, new])
        await self._on_where_changed()
        return new

    async def update_filter(
        self,
        filter_id: str,
        *,
        field: str | None = None,
        operator: FilterOp | str | None = None,
        value: FilterValue | None = None,
    ) -> Filter:
        idx = self._filter_index(filter_id)
        current = self._filters[idx]
        data = current.model_dump()
        if field is not None:
            data["field"] = field
        if operator is not None:
            operator = coerce_operator(operator)
            data["operator"] = operator
        if value is not None:
            data["value"] = value
        elif operator is not None and operator != current.operator:
            # Carry the typed text over so eq "a" becomes in ["a"] and back.
            data["value"] = self._compiler.parse_operator_value(
                self._compiler.value_to_text(current.value), operator
            )
        updated = self._compiler.rebuild(data)

        filters = list(self._filters)
        filters[idx] = updated
        self._commit_filters(filters)
        await self._on_where_changed()
        return updated

    async def remove_filter(self, filter_id: str) -> None:
        idx = self._filter_index(filter_id)
        filters = list(self._filters)
        del filters[idx]
        self._commit_filters(filters)
        await self._on_where_changed()

    async def clear_filters(self) -> None:
        self._commit_filters([])
        await self._on_where_changed()

    async def apply_raw_where_clause(self, raw: str | Mapping[str, Any] | None) -> list[Filter] | Unparseable:
        """Replace the filters with a user-supplied where clause.

        A clause with a flat-filter form replaces the filter list. Any other
        object is kept verbatim as the query source and ``filter_notice``
        explains why no filters were derived.
        """
        outcome = self._compiler.decompile(raw)
        if isinstance(outcome, Unparseable):
            self._filters = []
            self._raw_where = outcome.raw
            self._filter_notice = outcome.error
        else:
            self._commit_filters(outcome)
        if self._logger:
            self._logger.info(
                "where_applied",
                extra={"collection": self._collection, "parsed": not isinstance(outcome, Unparseable)},
            )
        await self._on_where_changed()
        return outcome

    def _commit_filters(self, filters: list[Filter]) -> None:
        self._filters = filters
        self._raw_where = None
        self._filter_notice = None

    def _filter_index(self, filter_id: str) -> int:
        for idx, f in enumerate(self._filters):
            if f.id == filter_id:
                return idx
        raise ValidationError(f"Unknown filter id {filter_id!r}", field="filter_id")

    async def _on_where_changed(self) -> None:
        self._browse = self._browse.model_copy(update={"page": 1})
        if self._browse_is_active():
            await self._fetch_browse()
        else:
            self._browse_cell.invalidate()

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    async def set_page(self, n: int) -> None:
        if self._collection is None:
            raise ValidationError("No collection selected", field="collection")
        if self._search.is_active:
            raise ValidationError("Cannot change page while a search is active", field="page")
        if n < 1:
            raise ValidationError(f"page must be >= 1, got {n}", field="page")
        self._browse = self._browse.model_copy(update={"page": n})
        await self._fetch_browse()

    async def set_page_size(self, n: int) -> None:
        if n not in self._settings.page_size_options:
            raise ValidationError(
                f"page size must be one of {self._settings.page_size_options}, got {n}",
                field="page_size",
            )
        self._browse = self._browse.model_copy(update={"page": 1, "page_size": n})
        if self._browse_is_active():
            await self._fetch_browse()
        else:
            self._browse_cell.invalidate()

    def _browse_is_active(self) -> bool:
        return self._collection is not None and not self._search.is_active

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def run_search(self, text: str, mode: SearchMode | str = SearchMode.text) -> None:
        query = (text or "").strip()
        if not query:
            raise ValidationError("Search query cannot be empty", field="query_text")
        if self._collection is None:
            raise ValidationError("No collection selected", field="collection")
        try:
            mode = SearchMode(mode)
        except ValueError as exc:
            raise ValidationError(f"Unknown search mode {mode!r}", field="mode") from exc

        self._search = SearchState(query_text=query, mode=mode)
        await self._fetch_search()

    async def find_similar(self, record_id: str) -> None:
        """Semantic search seeded with the document of a visible record."""
        record = self._find_record(record_id)
        if record is None:
            raise ValidationError(f"Record {record_id!r} is not among the loaded results", field="record_id")
        if not record.document or not record.document.strip():
            raise ValidationError(f"Record {record_id!r} has no document to search with", field="record_id")
        await self.run_search(record.document, SearchMode.semantic)

    def _find_record(self, record_id: str) -> Record | None:
        for record in (*self.active_results.records, *self._browse_records):
            if record.id == record_id:
                return record
        return None

    async def clear_search(self) -> None:
        self._search_cell.invalidate()
        self._search = SearchState(mode=self._search.mode)
        self._search_where_key = None
        if not self._browse_is_active():
            return
        if self._browse_key == self._current_browse_key() and self._browse_cell.error is None:
            return
        await self._fetch_browse()

    # ------------------------------------------------------------------
    # Collection lifecycle
    # ------------------------------------------------------------------

    async def switch_collection(self, name: str) -> None:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Collection name is required", field="collection")

        self._collection = name
        self._commit_filters([])
        self._search_cell.invalidate()
        self._search = SearchState()
        self._search_where_key = None
        self._browse = BrowseState(page=1, page_size=self._browse.page_size, total=0)
        self._browse_records = ()
        self._browse_key = None
        self._fields = []
        if self._logger:
            self._logger.info("collection_switched", extra={"collection": name})

        await asyncio.gather(self._fetch_browse(), self._fetch_catalog())

    async def refresh(self) -> None:
        """Re-issue the fetch of whichever slice is authoritative."""
        if self._collection is None:
            raise ValidationError("No collection selected", field="collection")
        if self._search.is_active:
            await self._fetch_search()
        else:
            await self._fetch_browse()

    async def refresh_fields(self) -> None:
        if self._collection is None:
            raise ValidationError("No collection selected", field="collection")
        await self._fetch_catalog()

    async def delete_records(self, ids: list[str]) -> int:
        """Delete records, then reload the active source. Transport failures propagate."""
        if self._collection is None:
            raise ValidationError("No collection selected", field="collection")
        deleted = await self._records.delete_records(self._collection, ids)
        await self.refresh()
        return deleted

    # ------------------------------------------------------------------
    # Fetches
    # ------------------------------------------------------------------

    def _abandon(self, cell: _SliceCell, token: int, slice_name: str, collection: str, exc: Exception) -> None:
        """Release a slice whose fetch failed outside the transport layer."""
        message = f"{type(exc).__name__}: {exc}"
        if cell.is_current(token):
            cell.finish(message)
        if self._logger:
            self._logger.exception("fetch_failed", extra={"slice": slice_name, "collection": collection})

    def _current_browse_key(self) -> tuple[Any, ...]:
        return (self._collection, self._browse.page, self._browse.page_size, _where_key(self.where_clause))

    async def _fetch_browse(self) -> None:
        collection = self._collection
        if collection is None:
            return
        page, page_size = self._browse.page, self._browse.page_size
        where = self.where_clause
        key = self._current_browse_key()
        token = self._browse_cell.begin()
        t0 = time.monotonic()
        try:
            result = await self._records.browse_page(collection, page=page, page_size=page_size, where=where)
        except TransportError as exc:
            latency_ms = (time.monotonic() - t0) * 1000
            if not self._browse_cell.is_current(token):
                log_fetch("browse", collection, token, latency_ms, error=str(exc), stale=True)
                return
            self._browse_records = ()
            self._browse_key = None
            self._browse = self._browse.model_copy(update={"total": 0})
            self._browse_cell.finish(str(exc))
            log_fetch("browse", collection, token, latency_ms, error=str(exc))
            return
        except Exception as exc:
            self._abandon(self._browse_cell, token, "browse", collection, exc)
            raise

        latency_ms = (time.monotonic() - t0) * 1000
        if not self._browse_cell.is_current(token):
            log_fetch("browse", collection, token, latency_ms, stale=True)
            return
        self._browse_records = result.records
        self._browse_key = key
        self._browse = self._browse.model_copy(update={"total": result.total})
        self._browse_cell.finish()
        log_fetch("browse", collection, token, latency_ms, extra={"page": page, "total": result.total})

    async def _fetch_search(self) -> None:
        collection = self._collection
        query, mode = self._search.query_text, self._search.mode
        if collection is None or query is None:
            return
        where = self.where_clause
        token = self._search_cell.begin()
        self._search_where_key = _where_key(where)
        t0 = time.monotonic()
        try:
            results = await self._records.search(
                collection, query, mode, where=where, limit=self._settings.search_limit
            )
        except TransportError as exc:
            latency_ms = (time.monotonic() - t0) * 1000
            if not self._search_cell.is_current(token):
                log_fetch("search", collection, token, latency_ms, error=str(exc), stale=True)
                return
            self._search = self._search.model_copy(update={"results": (), "distances": ()})
            self._search_cell.finish(str(exc))
            log_fetch("search", collection, token, latency_ms, error=str(exc))
            return
        except Exception as exc:
            self._abandon(self._search_cell, token, "search", collection, exc)
            raise

        latency_ms = (time.monotonic() - t0) * 1000
        if not self._search_cell.is_current(token):
            log_fetch("search", collection, token, latency_ms, stale=True)
            return
        self._search = self._search.model_copy(
            update={"results": results.records, "distances": results.distances}
        )
        self._search_cell.finish()
        log_fetch(
            "search", collection, token, latency_ms,
            extra={"mode": mode.value, "results": len(results.records)},
        )

    async def _fetch_catalog(self) -> None:
        collection = self._collection
        if collection is None:
            return
        token = self._catalog_cell.begin()
        t0 = time.monotonic()
        try:
            fields = await self._catalog.refresh(collection)
        except TransportError as exc:
            latency_ms = (time.monotonic() - t0) * 1000
            if not self._catalog_cell.is_current(token):
                log_fetch("catalog", collection, token, latency_ms, error=str(exc), stale=True)
                return
            self._fields = []
            self._catalog_cell.finish(str(exc))
            log_fetch("catalog", collection, token, latency_ms, error=str(exc))
            return
        except Exception as exc:
            self._abandon(self._catalog_cell, token, "catalog", collection, exc)
            raise

        latency_ms = (time.monotonic() - t0) * 1000
        if not self._catalog_cell.is_current(token):
            log_fetch("catalog", collection, token, latency_ms, stale=True)
            return
        self._fields = fields
        self._catalog_cell.finish()
        log_fetch("catalog", collection, token, latency_ms, extra={"fields": len(fields)})
