"""Tests for RecordsService validation and routing, using fake query services."""

import pytest

from chroma_lens.domain.errors import TransportError, ValidationError
from chroma_lens.domain.records import CollectionInfo, SearchMode
from chroma_lens.ports.query_service import PageResponse, SearchResponse
from chroma_lens.services.records_service import RecordsService


class FakeQueryService:
    """Canned responses; records the arguments of each call."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.healthy = True

    async def fetch_page(self, collection, offset, limit, where):
        self.calls.append(("fetch_page", collection, offset, limit, where))
        ids = [f"r{offset + i}" for i in range(limit)]
        return PageResponse(ids=ids, total_count=456)

    async def text_search(self, collection, query_text, where, limit):
        self.calls.append(("text_search", collection, query_text, where, limit))
        return SearchResponse(ids=["t1"], documents=[query_text], distances=[0.3])

    async def semantic_search(self, collection, query_text, where, limit):
        self.calls.append(("semantic_search", collection, query_text, where, limit))
        return SearchResponse(ids=[["s1", "s2"]], distances=[[0.1, 0.2]])

    async def sample_metadata(self, collection, limit):
        return []

    async def list_collections(self):
        return [CollectionInfo(name="zeta", count=1), CollectionInfo(name="alpha", count=3)]

    async def heartbeat(self):
        if not self.healthy:
            raise TransportError("connection refused")

    async def delete_records(self, collection, ids):
        self.calls.append(("delete_records", collection, ids))
        return len(ids)


@pytest.fixture
def fake():
    return FakeQueryService()


@pytest.fixture
def svc(fake):
    return RecordsService(fake)


# ---------------------------------------------------------------------------
# browse_page
# ---------------------------------------------------------------------------


class TestBrowsePage:
    async def test_offset_is_derived_from_page_and_size(self, svc, fake):
        page = await svc.browse_page("docs", page=3, page_size=25, where={"a": {"eq": 1}})
        assert fake.calls[-1] == ("fetch_page", "docs", 50, 25, {"a": {"eq": 1}})
        assert page.total == 456
        assert page.page == 3 and page.page_size == 25
        assert page.records[0].id == "r50"

    @pytest.mark.parametrize("kwargs", [{"page": 0}, {"page": -1}, {"page_size": 0}])
    async def test_invalid_paging_is_rejected(self, svc, fake, kwargs):
        with pytest.raises(ValidationError):
            await svc.browse_page("docs", **kwargs)
        assert fake.calls == []

    async def test_collection_is_required(self, svc):
        with pytest.raises(ValidationError) as exc_info:
            await svc.browse_page("  ")
        assert exc_info.value.field == "collection"


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


class TestSearch:
    async def test_text_mode_uses_containment_and_has_no_ranking(self, svc, fake):
        results = await svc.search("docs", "  hello  ", SearchMode.text, limit=5)
        assert fake.calls[-1] == ("text_search", "docs", "hello", None, 5)
        assert not results.has_ranking

    async def test_semantic_mode_is_ranked(self, svc, fake):
        results = await svc.search("docs", "hello", "semantic", where={"a": {"eq": 1}})
        assert fake.calls[-1] == ("semantic_search", "docs", "hello", {"a": {"eq": 1}}, 20)
        assert [r.id for r in results.records] == ["s1", "s2"]
        assert results.distances == (0.1, 0.2)

    async def test_blank_query_is_rejected(self, svc, fake):
        with pytest.raises(ValidationError, match="Search query cannot be empty"):
            await svc.search("docs", "   ")
        assert fake.calls == []

    @pytest.mark.parametrize("limit", [0, 101])
    async def test_limit_bounds(self, svc, limit):
        with pytest.raises(ValidationError):
            await svc.search("docs", "x", limit=limit)

    async def test_limit_of_100_is_allowed(self, svc, fake):
        await svc.search("docs", "x", limit=100)
        assert fake.calls[-1][-1] == 100

    async def test_unknown_mode_is_rejected(self, svc):
        with pytest.raises(ValidationError):
            await svc.search("docs", "x", "fuzzy")


# ---------------------------------------------------------------------------
# collections / health / delete
# ---------------------------------------------------------------------------


class TestOtherOperations:
    async def test_collections_sorted_by_name(self, svc):
        assert [c.name for c in await svc.list_collections()] == ["alpha", "zeta"]

    async def test_heartbeat(self, svc, fake):
        assert await svc.heartbeat() is True
        fake.healthy = False
        assert await svc.heartbeat() is False

    async def test_delete_deduplicates_ids(self, svc, fake):
        assert await svc.delete_records("docs", ["a", "b", "a", ""]) == 2
        assert fake.calls[-1] == ("delete_records", "docs", ["a", "b"])

    async def test_delete_needs_ids(self, svc):
        with pytest.raises(ValidationError):
            await svc.delete_records("docs", [])
