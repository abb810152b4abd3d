"""Records, metadata values and the browse/search state slices."""

from __future__ import annotations

import math
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ValueKind(str, Enum):
    """Closed set of type tags a metadata value can carry."""

    string = "string"
    number = "number"
    boolean = "boolean"
    array = "array"
    object = "object"
    null = "null"
    absent = "absent"


def normalize_metadata_value(value: Any) -> Any:
    """Fold an arbitrary client value into the closed metadata variant.

    numpy scalars and arrays become Python numbers and lists, tuples become
    lists, mappings get string keys, anything else unknown becomes its ``str``.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, float)):
        return value
    if hasattr(value, "tolist"):
        return normalize_metadata_value(value.tolist())
    if isinstance(value, Mapping):
        return {str(k): normalize_metadata_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_metadata_value(v) for v in value]
    return str(value)


def value_kind(value: Any) -> ValueKind:
    """Tag a normalized metadata value."""
    if value is None:
        return ValueKind.null
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return ValueKind.boolean
    if isinstance(value, (int, float)):
        return ValueKind.number
    if isinstance(value, str):
        return ValueKind.string
    if isinstance(value, list):
        return ValueKind.array
    if isinstance(value, dict):
        return ValueKind.object
    return value_kind(normalize_metadata_value(value))


def canonical_value(value: Any) -> Any:
    """Hashable, type-aware key for structural equality of metadata values."""
    kind = value_kind(value)
    if kind == ValueKind.boolean:
        return (kind.value, bool(value))
    if kind == ValueKind.number:
        return (kind.value, float(value))
    if kind == ValueKind.array:
        return (kind.value, tuple(canonical_value(v) for v in value))
    if kind == ValueKind.object:
        items = sorted(
            ((str(k), canonical_value(v)) for k, v in value.items()),
            key=lambda item: item[0],
        )
        return (kind.value, tuple(items))
    if kind == ValueKind.null:
        return (kind.value,)
    return (kind.value, value)


class SearchMode(str, Enum):
    """How a search query is matched."""

    text = "text"          # document containment, no ranking
    semantic = "semantic"  # nearest neighbours, ranked by distance


class Record(BaseModel):
    """One row of a collection as shown to the user."""

    model_config = ConfigDict(frozen=True)

    id: str
    document: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    embedding: tuple[float, ...] | None = None


class MetadataField(BaseModel):
    """A metadata key discovered by sampling a collection."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str = Field(..., description="Type tags joined by ' | ' in first-seen order")
    sample_values: list[Any] = Field(default_factory=list)


class CollectionInfo(BaseModel):
    """Collection name with its record count."""

    name: str
    count: int = Field(default=0, ge=0)


class BrowseState(BaseModel):
    """Pagination position of the browse slice."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)
    total: int = Field(default=0, ge=0)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size)

    @property
    def start_record(self) -> int:
        return 0 if self.total == 0 else self.offset + 1

    @property
    def end_record(self) -> int:
        return min(self.page * self.page_size, self.total)


class SearchState(BaseModel):
    """The search slice: query and whatever results it produced."""

    query_text: str | None = None
    mode: SearchMode = SearchMode.text
    results: tuple[Record, ...] = ()
    distances: tuple[float, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.query_text is not None


class SliceStatus(BaseModel):
    """Busy/error flags of one independently fetched slice."""

    busy: bool = False
    error: str | None = None
    generation: int = 0


class ActiveResults(BaseModel):
    """What the consumer should display right now."""

    source: str = Field(..., description="'browse' or 'search'")
    records: tuple[Record, ...] = ()
    distances: tuple[float, ...] = ()

    @property
    def has_ranking(self) -> bool:
        return len(self.distances) > 0
