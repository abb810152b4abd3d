"""ResultAdapter: raw column responses -> ordered Record sequences."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from ..domain.records import Record, SearchMode, normalize_metadata_value
from ..ports.query_service import SearchResponse


class SearchResults(BaseModel):
    """Normalized search output. ``distances`` is empty unless the search ranked."""

    records: tuple[Record, ...] = ()
    distances: tuple[float, ...] = ()

    @property
    def has_ranking(self) -> bool:
        return len(self.distances) > 0


def _as_list(values: Any) -> list[Any]:
    if values is None:
        return []
    if hasattr(values, "tolist"):
        values = values.tolist()
    return list(values)


def _first_batch(values: Any) -> list[Any]:
    """Unwrap the single-query batch dimension, if there is one."""
    outer = _as_list(values)
    if not outer:
        return []
    first = outer[0]
    if hasattr(first, "tolist"):
        first = first.tolist()
    if isinstance(first, (list, tuple)):
        return list(first)
    return outer


def _embeddings(values: Any) -> list[Any]:
    # A flat embeddings column is already a list of vectors, so only unwrap
    # when the first item is itself a list of vectors.
    outer = _as_list(values)
    if outer and outer[0] is not None:
        first = _as_list(outer[0])
        if first and (isinstance(first[0], (list, tuple)) or getattr(first[0], "ndim", 0) > 0):
            return first
    return outer


def _at(column: list[Any], idx: int) -> Any:
    return column[idx] if idx < len(column) else None


class ResultAdapter:
    """Zip parallel id/document/metadata/embedding columns into Records."""

    def from_browse_page(self, raw: SearchResponse) -> list[Record]:
        return self._records(raw)

    def from_search(self, raw: SearchResponse, mode: SearchMode) -> SearchResults:
        records = self._records(raw)
        distances: tuple[float, ...] = ()
        if SearchMode(mode) == SearchMode.semantic:
            distances = tuple(float(d) for d in _first_batch(raw.distances)[: len(records)])
        return SearchResults(records=tuple(records), distances=distances)

    def _records(self, raw: SearchResponse) -> list[Record]:
        ids = _first_batch(raw.ids)
        documents = _first_batch(raw.documents)
        metadatas = _first_batch(raw.metadatas)
        embeddings = _embeddings(raw.embeddings)

        records: list[Record] = []
        for idx, record_id in enumerate(ids):
            metadata = _at(metadatas, idx)
            embedding = _at(embeddings, idx)
            document = _at(documents, idx)
            records.append(
                Record(
                    id=str(record_id),
                    document=None if document is None else str(document),
                    metadata=normalize_metadata_value(metadata) if isinstance(metadata, Mapping) else {},
                    embedding=None if embedding is None else tuple(float(v) for v in _as_list(embedding)),
                )
            )
        return records
