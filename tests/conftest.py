"""Shared fakes and fixtures.

No Chroma server or embedding model required: collaborators are fakes or
the in-memory query service.
"""

from __future__ import annotations

import asyncio
import math

import pytest

from chroma_lens.adapters.in_memory_query_service import InMemoryQueryService
from chroma_lens.config.runtime import RuntimeSettings
from chroma_lens.domain.errors import TransportError
from chroma_lens.domain.filter_compiler import FilterCompiler
from chroma_lens.observability import reset_metrics
from chroma_lens.ports.id_gen import SequentialFilterIdProvider
from chroma_lens.services.metadata_catalog import MetadataFieldCatalog
from chroma_lens.services.query_orchestrator import QueryOrchestrator
from chroma_lens.services.records_service import RecordsService

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeEmbeddingProvider:
    """Letter-frequency vectors: texts sharing letters end up close."""

    def embed(self, text: str) -> list[float]:
        counts = [0.0] * 26
        for ch in text.lower():
            if "a" <= ch <= "z":
                counts[ord(ch) - ord("a")] += 1.0
        norm = math.sqrt(sum(c * c for c in counts)) or 1.0
        return [c / norm for c in counts]


class GatedQueryService:
    """Wraps a query service; each fetch_page waits until its offset is released.

    Lets a test finish requests in any order it likes.
    """

    def __init__(self, inner: InMemoryQueryService) -> None:
        self._inner = inner
        self._gates: dict[int, asyncio.Event] = {}
        self.started: list[int] = []

    def gate(self, offset: int) -> asyncio.Event:
        return self._gates.setdefault(offset, asyncio.Event())

    def release(self, offset: int) -> None:
        self.gate(offset).set()

    async def fetch_page(self, collection, offset, limit, where):
        self.started.append(offset)
        await self.gate(offset).wait()
        return await self._inner.fetch_page(collection, offset, limit, where)

    def __getattr__(self, name):
        return getattr(self._inner, name)


class CountingQueryService:
    """Wraps a query service and counts calls per method; can be told to fail."""

    def __init__(self, inner: InMemoryQueryService) -> None:
        self._inner = inner
        self.calls: dict[str, int] = {}
        self.failing: set[str] = set()

    def __getattr__(self, name):
        target = getattr(self._inner, name)
        if not callable(target):
            return target

        async def wrapper(*args, **kwargs):
            self.calls[name] = self.calls.get(name, 0) + 1
            if name in self.failing:
                raise TransportError(f"{name} failed: connection refused")
            return await target(*args, **kwargs)

        return wrapper


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------

DOC_TYPES = ["text", "image", "text", "audio", "image", "text", "audio", "image", "video", "video"]


def seed_docs(service: InMemoryQueryService, name: str = "docs") -> None:
    """10 records, 3 of them typed 'text'."""
    service.add(
        name,
        ids=[f"doc-{i}" for i in range(10)],
        documents=[f"document number {i} about {t}" for i, t in enumerate(DOC_TYPES)],
        metadatas=[{"type": t, "rank": i, "tags": "a,b"} for i, t in enumerate(DOC_TYPES)],
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def settings() -> RuntimeSettings:
    return RuntimeSettings(_env_file=None, chroma_path=":memory:")


@pytest.fixture
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def memory(embedder) -> InMemoryQueryService:
    service = InMemoryQueryService(embedding_provider=embedder)
    seed_docs(service)
    return service


@pytest.fixture
def compiler() -> FilterCompiler:
    return FilterCompiler(SequentialFilterIdProvider())


def make_orchestrator(query_service, settings, compiler=None) -> QueryOrchestrator:
    return QueryOrchestrator(
        RecordsService(query_service),
        MetadataFieldCatalog(
            query_service,
            sample_size=settings.metadata_sample_size,
            max_sample_values=settings.metadata_sample_values,
        ),
        settings=settings,
        compiler=compiler or FilterCompiler(SequentialFilterIdProvider()),
    )
