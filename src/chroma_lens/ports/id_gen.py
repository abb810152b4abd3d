"""Port: ID generation for user-created filters."""

from __future__ import annotations

import uuid
from typing import Protocol, runtime_checkable


@runtime_checkable
class FilterIdProvider(Protocol):
    """Generate an opaque, unique filter id."""

    def new_filter_id(self) -> str: ...


class UuidFilterIdProvider:
    """Uses uuid4 for filter ids."""

    def new_filter_id(self) -> str:
        return f"filter-{uuid.uuid4().hex[:12]}"


class SequentialFilterIdProvider:
    """Deterministic ids (``filter-1``, ``filter-2``...) for tests and scripted sessions."""

    def __init__(self, prefix: str = "filter") -> None:
        self._prefix = prefix
        self._counter = 0

    def new_filter_id(self) -> str:
        self._counter += 1
        return f"{self._prefix}-{self._counter}"
