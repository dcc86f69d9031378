"""Tests for MCP server tools (search, saved searches, analytics, index)."""
import asyncio

import pytest

from vaultsearch.app import build_services
from vaultsearch.models import SearchOptions
from vaultsearch.server import create_mcp_server


@pytest.fixture
def server_env(config):
    """Keyword-only server environment over the tmp docs."""
    services = build_services(config)
    return {"mcp": create_mcp_server(services), "services": services}


def _call_tool(mcp, name, **kwargs):
    """Call an MCP tool by name, passing kwargs as arguments."""
    tool = None
    for t in mcp._tool_manager._tools.values():
        if t.name == name:
            tool = t
            break
    assert tool is not None, f"Tool {name} not found"
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(tool.run(kwargs))
    finally:
        loop.close()


class TestSearchKnowledge:
    def test_keyword_results(self, server_env):
        out = _call_tool(server_env["mcp"], "search_knowledge", query="payment", search_type="keyword")
        assert "Found 2 results" in out
        assert "finance/invoices.md" in out
        assert "notes/todo.txt" in out

    def test_filters(self, server_env):
        out = _call_tool(
            server_env["mcp"], "search_knowledge",
            query="payment", search_type="keyword", file_types=["md"],
        )
        assert "Found 1 results" in out
        assert "notes/todo.txt" not in out

    def test_no_results(self, server_env):
        out = _call_tool(server_env["mcp"], "search_knowledge", query="zebra", search_type="keyword")
        assert "No relevant documents found" in out

    def test_unknown_search_type(self, server_env):
        out = _call_tool(server_env["mcp"], "search_knowledge", query="payment", search_type="fuzzy")
        assert "Unknown search_type" in out

    def test_semantic_unavailable(self, server_env):
        out = _call_tool(server_env["mcp"], "search_knowledge", query="payment", search_type="semantic")
        assert out.startswith("Search failed:")

    def test_records_health(self, server_env):
        _call_tool(server_env["mcp"], "search_knowledge", query="payment")
        assert server_env["services"].health.status["searches_by_type"]["hybrid"] == 1


class TestSavedSearchTools:
    def test_empty_list(self, server_env):
        assert _call_tool(server_env["mcp"], "list_saved_searches") == "No saved searches yet."

    def test_list_and_run(self, server_env):
        engine = server_env["services"].engine
        saved = engine.save_search("Payments", "payment", SearchOptions(query="payment", search_type="keyword"))
        listed = _call_tool(server_env["mcp"], "list_saved_searches")
        assert saved.id in listed
        out = _call_tool(server_env["mcp"], "run_saved_search", search_id=saved.id)
        assert out.startswith("Saved search **Payments**")
        assert "Found 2 results" in out
        assert engine.get_saved_search(saved.id).use_count == 1

    def test_run_unknown(self, server_env):
        out = _call_tool(server_env["mcp"], "run_saved_search", search_id="search_missing")
        assert "Saved search not found" in out


class TestAnalyticsAndIndex:
    def test_analytics(self, server_env):
        _call_tool(server_env["mcp"], "search_knowledge", query="payment", search_type="keyword")
        out = _call_tool(server_env["mcp"], "search_analytics")
        assert "**Searches total:** 1" in out
        assert '"payment": 1x' in out

    def test_index_stats_disabled(self, server_env):
        assert "disabled" in _call_tool(server_env["mcp"], "get_index_stats")

    def test_reindex_without_embeddings(self, server_env):
        assert _call_tool(server_env["mcp"], "reindex").startswith("Re-index failed")
