"""Error taxonomy shared by the domain, services and adapters."""

from __future__ import annotations


class ChromaLensError(Exception):
    """Base class for every error raised by chroma-lens."""


class ValidationError(ChromaLensError):
    """Bad user input or an invalid state transition.

    Raised before any committed state is touched, so callers can show the
    message next to the offending field and carry on.
    """

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class TransportError(ChromaLensError):
    """The query collaborator failed: unreachable, missing collection, rejected query."""

    def __init__(self, message: str, *, collection: str | None = None) -> None:
        super().__init__(message)
        self.collection = collection


class UnparseableFilterError(ChromaLensError):
    """A where clause is valid JSON but cannot be shown as a flat filter list.

    Not fatal: the raw clause keeps driving queries, only the filter chips
    are omitted.
    """
