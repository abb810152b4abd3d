"""Port: read/delete access to the records of a vector collection."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from ..domain.filters import WhereClause
from ..domain.records import CollectionInfo


class SearchResponse(BaseModel):
    """Raw parallel columns returned by a search.

    Columns may be flat or batched (one inner list per query) and may hold
    numpy arrays; ResultAdapter sorts that out.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ids: Any = Field(default_factory=list, description="Record ids")
    documents: Any = Field(default=None, description="Document text column")
    metadatas: Any = Field(default=None, description="Metadata column")
    embeddings: Any = Field(default=None, description="Embedding column")
    distances: Any = Field(default=None, description="Distance column (semantic search only)")


class PageResponse(SearchResponse):
    """One page of records plus the number of records matching the filter."""

    total_count: int = Field(..., ge=0, description="Records matching the where clause")


@runtime_checkable
class CollectionQueryService(Protocol):
    """Async interface to the vector database.

    Implementations raise ``TransportError`` when the database is unreachable,
    the collection does not exist, or the query is rejected.
    """

    # --- reads ---

    async def fetch_page(
        self, collection: str, offset: int, limit: int, where: WhereClause
    ) -> PageResponse: ...

    async def text_search(
        self, collection: str, query_text: str, where: WhereClause, limit: int
    ) -> SearchResponse: ...

    async def semantic_search(
        self, collection: str, query_text: str, where: WhereClause, limit: int
    ) -> SearchResponse: ...

    async def sample_metadata(
        self, collection: str, limit: int
    ) -> list[dict[str, Any] | None]: ...

    async def list_collections(self) -> list[CollectionInfo]: ...

    async def heartbeat(self) -> None: ...

    # --- mutations ---

    async def delete_records(self, collection: str, ids: list[str]) -> int: ...
