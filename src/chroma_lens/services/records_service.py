"""RecordsService: stateless collection reads/deletes with input validation."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..domain.errors import TransportError, ValidationError
from ..domain.filters import WhereClause
from ..domain.records import CollectionInfo, Record, SearchMode
from ..ports.query_service import CollectionQueryService
from .result_adapter import ResultAdapter, SearchResults

MAX_SEARCH_LIMIT = 100


class BrowsePage(BaseModel):
    """One fetched page of a collection."""

    records: tuple[Record, ...] = ()
    total: int = Field(default=0, ge=0, description="Records matching the where clause")
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)


class RecordsService:
    """Validates requests, forwards them to the query service and normalizes replies."""

    def __init__(
        self,
        query_service: CollectionQueryService,
        adapter: ResultAdapter | None = None,
        logger: Any = None,
    ) -> None:
        self._query = query_service
        self._adapter = adapter or ResultAdapter()
        self._logger = logger

    @property
    def query_service(self) -> CollectionQueryService:
        return self._query

    async def list_collections(self) -> list[CollectionInfo]:
        collections = await self._query.list_collections()
        return sorted(collections, key=lambda c: c.name)

    async def heartbeat(self) -> bool:
        try:
            await self._query.heartbeat()
        except TransportError as exc:
            if self._logger:
                self._logger.warning("heartbeat_failed", extra={"error": str(exc)})
            return False
        return True

    async def browse_page(
        self,
        collection: str,
        *,
        page: int = 1,
        page_size: int = 10,
        where: WhereClause = None,
    ) -> BrowsePage:
        _require_collection(collection)
        if page < 1:
            raise ValidationError(f"page must be >= 1, got {page}", field="page")
        if page_size < 1:
            raise ValidationError(f"page_size must be >= 1, got {page_size}", field="page_size")

        raw = await self._query.fetch_page(collection, (page - 1) * page_size, page_size, where)
        records = self._adapter.from_browse_page(raw)
        return BrowsePage(records=tuple(records), total=raw.total_count, page=page, page_size=page_size)

    async def search(
        self,
        collection: str,
        query_text: str,
        mode: SearchMode | str = SearchMode.text,
        *,
        where: WhereClause = None,
        limit: int = 20,
    ) -> SearchResults:
        _require_collection(collection)
        text = (query_text or "").strip()
        if not text:
            raise ValidationError("Search query cannot be empty", field="query_text")
        if not (1 <= limit <= MAX_SEARCH_LIMIT):
            raise ValidationError(f"limit must be 1-{MAX_SEARCH_LIMIT}, got {limit}", field="limit")
        try:
            mode = SearchMode(mode)
        except ValueError as exc:
            raise ValidationError(f"Unknown search mode {mode!r}", field="mode") from exc

        if mode == SearchMode.semantic:
            raw = await self._query.semantic_search(collection, text, where, limit)
        else:
            raw = await self._query.text_search(collection, text, where, limit)
        return self._adapter.from_search(raw, mode)

    async def delete_records(self, collection: str, ids: list[str]) -> int:
        _require_collection(collection)
        unique = [i for i in dict.fromkeys(ids or []) if i]
        if not unique:
            raise ValidationError("At least one record id is required", field="ids")
        deleted = await self._query.delete_records(collection, unique)
        if self._logger:
            self._logger.info("records_deleted", extra={"collection": collection, "deleted": deleted})
        return deleted


def _require_collection(collection: str) -> None:
    if not collection or not collection.strip():
        raise ValidationError("Collection name is required", field="collection")
