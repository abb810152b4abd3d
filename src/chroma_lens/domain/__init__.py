"""Domain layer: filters, records and the filter compiler."""

from .errors import ChromaLensError, TransportError, UnparseableFilterError, ValidationError
from .filter_compiler import FilterCompiler
from .filters import AND_KEY, OPERATOR_LABELS, Filter, FilterOp, Unparseable
from .records import (
    ActiveResults,
    BrowseState,
    CollectionInfo,
    MetadataField,
    Record,
    SearchMode,
    SearchState,
    SliceStatus,
    ValueKind,
)

__all__ = [
    "AND_KEY",
    "OPERATOR_LABELS",
    "ActiveResults",
    "BrowseState",
    "ChromaLensError",
    "CollectionInfo",
    "Filter",
    "FilterCompiler",
    "FilterOp",
    "MetadataField",
    "Record",
    "SearchMode",
    "SearchState",
    "SliceStatus",
    "TransportError",
    "Unparseable",
    "UnparseableFilterError",
    "ValidationError",
    "ValueKind",
]
