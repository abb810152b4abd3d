"""In-memory CollectionQueryService for tests and local development.

Understands the same where dialect as Chroma (bare or ``$``-prefixed
operators, ``and``/``or`` groups, shorthand equality) and ranks semantic
search by cosine distance.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..domain.errors import TransportError
from ..domain.filters import WhereClause
from ..domain.records import CollectionInfo
from ..ports.embedding import EmbeddingProvider
from ..ports.query_service import PageResponse, SearchResponse


@dataclass
class _StoredRecord:
    id: str
    document: str | None = None
    metadata: dict[str, Any] | None = None
    embedding: list[float] | None = None


@dataclass
class _CollectionState:
    records: dict[str, _StoredRecord] = field(default_factory=dict)


class InMemoryQueryService:
    """Simple in-memory implementation of the query port."""

    def __init__(self, embedding_provider: EmbeddingProvider | None = None) -> None:
        self._embed = embedding_provider
        self._collections: dict[str, _CollectionState] = {}

    # ------------------------------------------------------------------
    # Seeding (not part of the port)
    # ------------------------------------------------------------------

    def create_collection(self, name: str) -> None:
        self._collections.setdefault(name, _CollectionState())

    def add(
        self,
        collection: str,
        ids: Sequence[str],
        documents: Sequence[str | None] | None = None,
        metadatas: Sequence[Mapping[str, Any] | None] | None = None,
        embeddings: Sequence[Sequence[float]] | None = None,
    ) -> None:
        self.create_collection(collection)
        state = self._collections[collection]
        for idx, record_id in enumerate(ids):
            document = documents[idx] if documents is not None and idx < len(documents) else None
            metadata = metadatas[idx] if metadatas is not None and idx < len(metadatas) else None
            embedding = embeddings[idx] if embeddings is not None and idx < len(embeddings) else None
            if embedding is None and document is not None and self._embed is not None:
                embedding = self._embed.embed(document)
            state.records[str(record_id)] = _StoredRecord(
                id=str(record_id),
                document=document,
                metadata=dict(metadata) if metadata else None,
                embedding=[float(v) for v in embedding] if embedding is not None else None,
            )

    # ------------------------------------------------------------------
    # Port
    # ------------------------------------------------------------------

    async def fetch_page(
        self, collection: str, offset: int, limit: int, where: WhereClause
    ) -> PageResponse:
        matching = self._matching(collection, where)
        page = matching[offset : offset + limit]
        return PageResponse(**_columns(page), total_count=len(matching))

    async def text_search(
        self, collection: str, query_text: str, where: WhereClause, limit: int
    ) -> SearchResponse:
        hits = [
            r for r in self._matching(collection, where)
            if r.document is not None and query_text in r.document
        ]
        return SearchResponse(**_columns(hits[:limit]))

    async def semantic_search(
        self, collection: str, query_text: str, where: WhereClause, limit: int
    ) -> SearchResponse:
        if self._embed is None:
            raise TransportError("Semantic search needs an embedding provider", collection=collection)
        query_vector = self._embed.embed(query_text)
        scored = [
            (_cosine_distance(query_vector, r.embedding), r)
            for r in self._matching(collection, where)
            if r.embedding is not None
        ]
        scored.sort(key=lambda item: item[0])
        top = scored[:limit]
        columns = _columns([r for _, r in top])
        columns.pop("embeddings")
        return SearchResponse(**columns, distances=[d for d, _ in top])

    async def sample_metadata(self, collection: str, limit: int) -> list[dict[str, Any] | None]:
        records = list(self._get(collection).records.values())[:limit]
        return [dict(r.metadata) if r.metadata else None for r in records]

    async def list_collections(self) -> list[CollectionInfo]:
        return [
            CollectionInfo(name=name, count=len(state.records))
            for name, state in self._collections.items()
        ]

    async def heartbeat(self) -> None:
        return None

    async def delete_records(self, collection: str, ids: list[str]) -> int:
        state = self._get(collection)
        deleted = 0
        for record_id in ids:
            if record_id in state.records:
                del state.records[record_id]
                deleted += 1
        return deleted

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get(self, collection: str) -> _CollectionState:
        if collection not in self._collections:
            raise TransportError(f"Collection {collection} does not exist.", collection=collection)
        return self._collections[collection]

    def _matching(self, collection: str, where: WhereClause) -> list[_StoredRecord]:
        records = list(self._get(collection).records.values())
        if not where:
            return records
        try:
            return [r for r in records if matches_where(r.metadata or {}, where)]
        except ValueError as exc:
            raise TransportError(f"Invalid where clause: {exc}", collection=collection) from exc


def _columns(records: list[_StoredRecord]) -> dict[str, list[Any]]:
    return {
        "ids": [r.id for r in records],
        "documents": [r.document for r in records],
        "metadatas": [dict(r.metadata) if r.metadata else None for r in records],
        "embeddings": [list(r.embedding) if r.embedding is not None else None for r in records],
    }


def _cosine_distance(left: Sequence[float], right: Sequence[float]) -> float:
    dot = sum(a * b for a, b in zip(left, right))
    norm_left = math.sqrt(sum(a * a for a in left))
    norm_right = math.sqrt(sum(b * b for b in right))
    if norm_left == 0.0 or norm_right == 0.0:
        return 1.0
    return 1.0 - dot / (norm_left * norm_right)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equal(actual: Any, expected: Any) -> bool:
    # True must not equal 1
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    return actual == expected


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op == "eq":
        return _equal(actual, expected)
    if op == "ne":
        return not _equal(actual, expected)
    if op in ("gt", "gte", "lt", "lte"):
        if not _is_number(expected):
            raise ValueError(f"operator {op!r} needs a number, got {expected!r}")
        if not _is_number(actual):
            return False
        return {
            "gt": actual > expected,
            "gte": actual >= expected,
            "lt": actual < expected,
            "lte": actual <= expected,
        }[op]
    if op in ("in", "nin"):
        if not isinstance(expected, list):
            raise ValueError(f"operator {op!r} needs a list, got {expected!r}")
        found = any(_equal(actual, candidate) for candidate in expected)
        return found if op == "in" else not found
    raise ValueError(f"unsupported operator {op!r}")


def matches_where(metadata: Mapping[str, Any], where: Mapping[str, Any]) -> bool:
    """Evaluate a where clause against one record's metadata.

    A condition on a key the record does not carry never matches.
    Raises ValueError on operators or operands the dialect does not allow.
    """
    if not isinstance(where, Mapping):
        raise ValueError(f"where clause must be an object, got {type(where).__name__}")
    for key, condition in where.items():
        if not isinstance(key, str):
            raise ValueError(f"where keys must be strings, got {key!r}")
        bare = key[1:] if key.startswith("$") else key
        if bare in ("and", "or") and isinstance(condition, list):
            results = [matches_where(metadata, sub) for sub in condition]
            if not (all(results) if bare == "and" else any(results)):
                return False
            continue
        if key.startswith("$"):
            raise ValueError(f"unsupported logical operator {key!r}")
        if key not in metadata:
            return False
        actual = metadata[key]
        if isinstance(condition, Mapping):
            for op, expected in condition.items():
                if not isinstance(op, str):
                    raise ValueError(f"operator keys must be strings, got {op!r}")
                if not _compare(op[1:] if op.startswith("$") else op, actual, expected):
                    return False
        elif not _compare("eq", actual, condition):
            return False
    return True
