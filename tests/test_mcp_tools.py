"""Tests for the MCP browser server: registered tools and session round-trips.

The shared session is swapped for an orchestrator over the in-memory
query service, so no Chroma server is needed.
"""

import json

import pytest

from chroma_lens.interface.mcp import tools as mcp_tools
from chroma_lens.interface.mcp.server import create_server
from chroma_lens.interface.mcp.tools import (
    ALLOWED_RECORD_KEYS,
    ALLOWED_VIEW_KEYS,
    BROWSER_TOOLS,
)

from conftest import make_orchestrator


def _get_tools(server) -> dict:
    """Registered tools by name from a FastMCP server."""
    # FastMCP stores tools in _tool_manager._tools dict
    return dict(server._tool_manager._tools)


@pytest.fixture
def server(memory, settings):
    mcp_tools.set_session(make_orchestrator(memory, settings))
    yield create_server()
    mcp_tools.set_session(None)


async def _call(server, name: str, /, **kwargs) -> dict:
    tool = _get_tools(server)[name]
    return json.loads(await tool.fn(**kwargs))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_server_exposes_exactly_the_browser_tools(server):
    assert set(_get_tools(server)) == BROWSER_TOOLS


async def test_tools_are_listed_over_the_protocol(server):
    listed = {t.name for t in await server.list_tools()}
    assert listed == BROWSER_TOOLS


# ---------------------------------------------------------------------------
# Session round-trips
# ---------------------------------------------------------------------------


class TestBrowserSession:
    async def test_select_collection_returns_first_page(self, server):
        view = await _call(server, "browser_select_collection", name="docs")
        assert set(view) <= ALLOWED_VIEW_KEYS
        assert view["collection"] == "docs"
        assert view["source"] == "browse"
        assert view["total"] == 10
        assert view["page_size_options"] == [10, 25, 50, 100]
        assert all(set(r) <= ALLOWED_RECORD_KEYS for r in view["records"])

    async def test_add_filter_parses_text_values(self, server):
        await _call(server, "browser_select_collection", name="docs")
        view = await _call(server, "browser_add_filter", field="type", operator="in", value="text, audio")
        assert view["where"] == {"type": {"in": ["text", "audio"]}}
        assert view["total"] == 5
        assert view["filters"][0]["id"] == view["created_filter_id"]
        assert view["filters"][0]["value_text"] == "text, audio"
        assert view["filters"][0]["label"] == "in (contains)"

    async def test_numeric_text_becomes_a_number(self, server):
        await _call(server, "browser_select_collection", name="docs")
        view = await _call(server, "browser_add_filter", field="rank", operator="gt", value="6")
        assert view["where"] == {"rank": {"gt": 6}}
        assert view["total"] == 3

    async def test_update_and_remove_filter(self, server):
        await _call(server, "browser_select_collection", name="docs")
        added = await _call(server, "browser_add_filter", field="type", operator="eq", value="text")
        fid = added["created_filter_id"]
        view = await _call(server, "browser_update_filter", filter_id=fid, value="video")
        assert view["where"] == {"type": {"eq": "video"}}
        view = await _call(server, "browser_remove_filter", filter_id=fid)
        assert view["where"] is None

    async def test_apply_where_reports_unparseable(self, server):
        await _call(server, "browser_select_collection", name="docs")
        view = await _call(
            server, "browser_apply_where", where_json='{"or": [{"type": {"eq": "text"}}, {"rank": {"gt": 8}}]}'
        )
        assert view["parsed"] is False
        assert view["filters"] == []
        assert view["filter_notice"]
        assert view["total"] == 4

    async def test_semantic_search_includes_distances(self, server):
        await _call(server, "browser_select_collection", name="docs")
        view = await _call(server, "browser_search", query_text="about audio", mode="semantic")
        assert view["source"] == "search"
        assert all("distance" in r for r in view["records"])
        view = await _call(server, "browser_clear_search")
        assert view["source"] == "browse"
        assert all("distance" not in r for r in view["records"])

    async def test_paging(self, server):
        await _call(server, "browser_select_collection", name="docs")
        view = await _call(server, "browser_set_page_size", page_size=25)
        assert view["page_size"] == 25 and view["total_pages"] == 1
        view = await _call(server, "browser_set_page", page=2)
        assert view["page"] == 2 and view["records"] == []

    async def test_errors_come_back_as_payloads(self, server):
        await _call(server, "browser_select_collection", name="docs")
        payload = await _call(server, "browser_set_page_size", page_size=7)
        assert payload["kind"] == "ValidationError"
        assert payload["field"] == "page_size"

        payload = await _call(server, "browser_search", query_text="  ")
        assert payload["error"] == "Search query cannot be empty"

    async def test_fields(self, server):
        payload = await _call(server, "browser_fields")
        assert payload["kind"] == "ValidationError"
        await _call(server, "browser_select_collection", name="docs")
        payload = await _call(server, "browser_fields", refresh=True)
        assert [f["name"] for f in payload["fields"]] == ["rank", "tags", "type"]


class TestStatelessTools:
    async def test_collections_and_health(self, server):
        payload = await _call(server, "collections_list")
        assert payload == {"collections": [{"name": "docs", "count": 10}]}
        health = await _call(server, "connection_health")
        assert health["ok"] is True
        assert "fetches" in health["metrics"]

    async def test_records_delete_reloads_session(self, server):
        await _call(server, "browser_select_collection", name="docs")
        payload = await _call(server, "records_delete", ids=["doc-0"])
        assert payload == {"collection": "docs", "deleted": 1}
        view = await _call(server, "browser_view")
        assert view["total"] == 9
