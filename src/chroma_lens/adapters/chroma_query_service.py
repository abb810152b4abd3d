"""Adapter: ChromaDB-backed CollectionQueryService.

chromadb clients are synchronous, so every call runs in a worker thread.
Client exceptions are wrapped in ``TransportError`` at this boundary.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import chromadb

from ..config.runtime import RuntimeSettings
from ..domain.errors import TransportError
from ..domain.filters import WhereClause
from ..domain.records import CollectionInfo
from ..ports.embedding import EmbeddingProvider
from ..ports.query_service import PageResponse, SearchResponse

T = TypeVar("T")

_LOGICAL = frozenset({"and", "or"})
_COMPARISON = frozenset({"eq", "ne", "gt", "gte", "lt", "lte", "in", "nin"})

_PAGE_INCLUDE = ["documents", "metadatas", "embeddings"]
_QUERY_INCLUDE = ["documents", "metadatas", "distances"]


def to_chroma_where(where: WhereClause) -> dict[str, Any] | None:
    """Rewrite bare operator keys (``eq``, ``and``...) into Chroma's ``$`` spelling.

    Keys already starting with ``$`` and field names pass through untouched.
    """
    if not where:
        return None
    return _translate(where)


def _translate(node: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in node.items():
        bare = key[1:] if key.startswith("$") else key
        if bare in _LOGICAL and isinstance(value, list):
            out[f"${bare}"] = [_translate(v) if isinstance(v, Mapping) else v for v in value]
        elif isinstance(value, Mapping):
            out[key] = {
                (f"${op}" if op in _COMPARISON else op): operand
                for op, operand in value.items()
            }
        else:
            out[key] = value
    return out


def _as_list(values: Any) -> list[Any]:
    if values is None:
        return []
    if hasattr(values, "tolist"):
        values = values.tolist()
    return list(values)


class ChromaQueryService:
    """Concrete CollectionQueryService backed by ChromaDB."""

    def __init__(
        self,
        settings: RuntimeSettings,
        embedding_provider: EmbeddingProvider | None = None,
        client: Any = None,
    ) -> None:
        self._settings = settings
        self._embed = embedding_provider
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            s = self._settings
            if s.chroma_host:
                self._client = chromadb.HttpClient(host=s.chroma_host, port=s.chroma_port, ssl=s.chroma_ssl)
            elif s.chroma_path == ":memory:":
                self._client = chromadb.EphemeralClient()
            else:
                self._client = chromadb.PersistentClient(path=s.chroma_path)
        return self._client

    async def _run(self, fn: Callable[..., T], *args: Any, collection: str | None = None) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except TransportError:
            raise
        except Exception as exc:
            raise TransportError(str(exc) or type(exc).__name__, collection=collection) from exc

    def _collection(self, name: str) -> Any:
        return self._get_client().get_collection(name=name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_page(
        self, collection: str, offset: int, limit: int, where: WhereClause
    ) -> PageResponse:
        return await self._run(self._fetch_page, collection, offset, limit, where, collection=collection)

    def _fetch_page(self, collection: str, offset: int, limit: int, where: WhereClause) -> PageResponse:
        col = self._collection(collection)
        chroma_where = to_chroma_where(where)
        rows = col.get(where=chroma_where, limit=limit, offset=offset, include=_PAGE_INCLUDE)
        if chroma_where is None:
            total = col.count()
        else:
            total = len(_as_list(col.get(where=chroma_where, include=[]).get("ids")))
        return PageResponse(
            ids=rows.get("ids"),
            documents=rows.get("documents"),
            metadatas=rows.get("metadatas"),
            embeddings=rows.get("embeddings"),
            total_count=total,
        )

    async def text_search(
        self, collection: str, query_text: str, where: WhereClause, limit: int
    ) -> SearchResponse:
        return await self._run(self._text_search, collection, query_text, where, limit, collection=collection)

    def _text_search(self, collection: str, query_text: str, where: WhereClause, limit: int) -> SearchResponse:
        rows = self._collection(collection).get(
            where=to_chroma_where(where),
            where_document={"$contains": query_text},
            limit=limit,
            include=_PAGE_INCLUDE,
        )
        return SearchResponse(
            ids=rows.get("ids"),
            documents=rows.get("documents"),
            metadatas=rows.get("metadatas"),
            embeddings=rows.get("embeddings"),
        )

    async def semantic_search(
        self, collection: str, query_text: str, where: WhereClause, limit: int
    ) -> SearchResponse:
        return await self._run(self._semantic_search, collection, query_text, where, limit, collection=collection)

    def _semantic_search(self, collection: str, query_text: str, where: WhereClause, limit: int) -> SearchResponse:
        col = self._collection(collection)
        kwargs: dict[str, Any] = {
            "n_results": limit,
            "where": to_chroma_where(where),
            "include": _QUERY_INCLUDE,
        }
        if self._embed is not None:
            kwargs["query_embeddings"] = [self._embed.embed(query_text)]
        else:
            kwargs["query_texts"] = [query_text]
        result = col.query(**kwargs)
        return SearchResponse(
            ids=result.get("ids"),
            documents=result.get("documents"),
            metadatas=result.get("metadatas"),
            distances=result.get("distances"),
        )

    async def sample_metadata(self, collection: str, limit: int) -> list[dict[str, Any] | None]:
        return await self._run(self._sample_metadata, collection, limit, collection=collection)

    def _sample_metadata(self, collection: str, limit: int) -> list[dict[str, Any] | None]:
        rows = self._collection(collection).get(limit=limit, include=["metadatas"])
        return [dict(m) if m else None for m in _as_list(rows.get("metadatas"))]

    async def list_collections(self) -> list[CollectionInfo]:
        return await self._run(self._list_collections)

    def _list_collections(self) -> list[CollectionInfo]:
        client = self._get_client()
        infos: list[CollectionInfo] = []
        for item in client.list_collections():
            # Older clients return Collection objects, newer ones return names.
            name = item if isinstance(item, str) else getattr(item, "name", str(item))
            count = client.get_collection(name=name).count()
            infos.append(CollectionInfo(name=name, count=count))
        return infos

    async def heartbeat(self) -> None:
        await self._run(lambda: self._get_client().heartbeat())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def delete_records(self, collection: str, ids: list[str]) -> int:
        return await self._run(self._delete_records, collection, ids, collection=collection)

    def _delete_records(self, collection: str, ids: list[str]) -> int:
        col = self._collection(collection)
        existing = _as_list(col.get(ids=list(dict.fromkeys(ids)), include=[]).get("ids"))
        if not existing:
            return 0
        col.delete(ids=existing)
        return len(existing)
