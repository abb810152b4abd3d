"""Tests for ResultAdapter column zipping."""

from chroma_lens.domain.records import SearchMode
from chroma_lens.ports.query_service import PageResponse, SearchResponse
from chroma_lens.services.result_adapter import ResultAdapter


class ArrayLike:
    """Minimal object exposing ``tolist()`` the way numpy arrays do."""

    def __init__(self, data):
        self._data = data

    def tolist(self):
        return self._data


adapter = ResultAdapter()


class TestBrowsePage:
    def test_flat_columns_are_zipped_in_order(self):
        raw = PageResponse(
            ids=["a", "b"],
            documents=["doc a", "doc b"],
            metadatas=[{"k": 1}, {"k": 2}],
            embeddings=[[0.1, 0.2], [0.3, 0.4]],
            total_count=2,
        )
        records = adapter.from_browse_page(raw)
        assert [r.id for r in records] == ["a", "b"]
        assert records[0].document == "doc a"
        assert records[1].metadata == {"k": 2}
        assert records[1].embedding == (0.3, 0.4)

    def test_missing_columns_give_defaults(self):
        records = adapter.from_browse_page(PageResponse(ids=["a", "b"], total_count=2))
        assert [(r.document, r.metadata, r.embedding) for r in records] == [(None, {}, None)] * 2

    def test_short_columns_give_defaults(self):
        raw = PageResponse(ids=["a", "b"], documents=["only a"], metadatas=[None], total_count=2)
        a, b = adapter.from_browse_page(raw)
        assert a.document == "only a" and a.metadata == {}
        assert b.document is None and b.metadata == {}

    def test_batched_columns_are_unwrapped(self):
        raw = SearchResponse(
            ids=[["a", "b"]],
            documents=[["doc a", "doc b"]],
            metadatas=[[{"k": 1}, None]],
            embeddings=[[[1.0, 0.0], [0.0, 1.0]]],
        )
        records = adapter.from_browse_page(raw)
        assert [r.id for r in records] == ["a", "b"]
        assert records[0].embedding == (1.0, 0.0)
        assert records[1].metadata == {}

    def test_array_like_columns(self):
        raw = PageResponse(
            ids=["a"],
            embeddings=ArrayLike([[0.5, 0.25]]),
            metadatas=[{"vec": ArrayLike([1, 2]), "t": ("x", "y")}],
            total_count=1,
        )
        (record,) = adapter.from_browse_page(raw)
        assert record.embedding == (0.5, 0.25)
        assert record.metadata == {"vec": [1, 2], "t": ["x", "y"]}

    def test_empty_page(self):
        assert adapter.from_browse_page(PageResponse(total_count=0)) == []
        assert adapter.from_browse_page(SearchResponse(ids=[[]])) == []


class TestSearch:
    def test_text_mode_drops_distances(self):
        raw = SearchResponse(ids=["a"], documents=["x"], distances=[0.1])
        results = adapter.from_search(raw, SearchMode.text)
        assert results.distances == ()
        assert not results.has_ranking

    def test_semantic_mode_keeps_distances_as_floats(self):
        raw = SearchResponse(
            ids=[["a", "b"]],
            documents=[["x", "y"]],
            distances=[[ArrayLike(0.1).tolist(), 1]],
        )
        results = adapter.from_search(raw, "semantic")
        assert [r.id for r in results.records] == ["a", "b"]
        assert results.distances == (0.1, 1.0)
        assert all(isinstance(d, float) for d in results.distances)
        assert results.has_ranking

    def test_semantic_without_hits(self):
        results = adapter.from_search(SearchResponse(ids=[[]], distances=[[]]), SearchMode.semantic)
        assert results.records == ()
        assert not results.has_ranking
