"""chroma-lens: browse, filter and search ChromaDB collections."""

from .domain import (
    ChromaLensError,
    Filter,
    FilterCompiler,
    FilterOp,
    Record,
    SearchMode,
    TransportError,
    ValidationError,
)

__version__ = "0.1.0"
__all__ = [
    "ChromaLensError",
    "Filter",
    "FilterCompiler",
    "FilterOp",
    "Record",
    "SearchMode",
    "TransportError",
    "ValidationError",
]
