# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
MCP Server factory – creates a FastMCP instance with tools
that share the engine/indexer from the main process.

Tools:
  - search_knowledge: Hybrid / semantic / keyword / AI-enhanced search
  - list_saved_searches: Saved searches, most recently used first
  - run_saved_search: Replay a saved search
  - search_analytics: Query statistics over the search history
  - get_index_stats: Index statistics
  - reindex: Manual re-index
"""
from mcp.server.fastmcp import FastMCP

from .app import Services
from .engine import SavedSearchNotFound
from .models import SearchOptions, SearchResult
from .providers import VaultsearchError


def _format_results(results: list[SearchResult], include_content: bool) -> str:
    if not results:
        return "No relevant documents found. Try a different or more specific query."

    output = [f"Found {len(results)} results\n"]
    for r in results:
        loc = r.metadata.path or r.id
        output.append(f"**{r.title}** ({loc}, Score: {r.ranking_score:.2f}, Origin: {r.origin})")
        for highlight in r.metadata.highlights:
            output.append(f"  > {highlight}")
        if include_content:
            output.append(f"\n{r.content}")
        output.append("\n---")
    return "\n".join(output)


def create_mcp_server(services: Services) -> FastMCP:
    """Factory: returns a configured FastMCP server that shares state with web.py."""
    config = services.config
    engine = services.engine

    mcp = FastMCP(
        "vaultsearch",
        instructions=(
            "Hybrid search over a knowledge base (keyword + semantic).\n\n"
            "WORKFLOW for the agent:\n"
            "1. search_knowledge() with a specific natural-language query\n"
            "2. Narrow with file_types / tags / folders instead of longer queries\n"
            "3. use_rerank=True when precision matters more than latency\n"
            "4. list_saved_searches() / run_saved_search() for recurring questions"
        ),
    )

    @mcp.tool()
    async def search_knowledge(
        query: str,
        search_type: str = "hybrid",
        max_results: int = 10,
        use_rerank: bool = False,
        include_content: bool = False,
        file_types: list[str] | None = None,
        tags: list[str] | None = None,
        folders: list[str] | None = None,
    ) -> str:
        """Search the knowledge base.

        Args:
            query: What you are looking for (natural language, be specific)
            search_type: One of "hybrid" (default), "semantic", "keyword", "ai_enhanced"
            max_results: Number of results (default: 10)
            use_rerank: Re-score results with the rerank model
            include_content: Include full document text instead of summaries
            file_types: Only these extensions, e.g. ["md", "pdf"]
            tags: Only documents carrying at least one of these tags
            folders: Only documents under these path prefixes

        Returns:
            Ranked results with path, score and matching highlights
        """
        if search_type not in ("hybrid", "semantic", "keyword", "ai_enhanced"):
            return f"Unknown search_type '{search_type}'. Use hybrid, semantic, keyword or ai_enhanced."
        options = SearchOptions(
            query=query,
            search_type=search_type,
            max_results=max_results,
            use_rerank=use_rerank,
            rerank_threshold=config.rerank_threshold,
            include_content=include_content,
            file_types=tuple(file_types or ()),
            tags=tuple(tags or ()),
            folders=tuple(folders or ()),
        )
        try:
            results = await engine.search(options)
        except VaultsearchError as e:
            return f"Search failed: {e}"
        return _format_results(results, include_content)

    @mcp.tool()
    def list_saved_searches() -> str:
        """List saved searches, most recently used first."""
        saved = engine.get_saved_searches()
        if not saved:
            return "No saved searches yet."
        lines = [f"**Saved searches ({len(saved)})**\n"]
        for s in saved:
            lines.append(
                f"- `{s.id}` **{s.name}**: \"{s.query}\" "
                f"({s.options.search_type}, used {s.use_count}x, last {s.last_used})"
            )
        return "\n".join(lines)

    @mcp.tool()
    async def run_saved_search(search_id: str) -> str:
        """Run a saved search by id (see list_saved_searches).

        Args:
            search_id: The saved search id, e.g. "search_1a2b3c4d5e6f"
        """
        try:
            saved = engine.get_saved_search(search_id)
            results = await engine.execute_saved_search(search_id)
        except SavedSearchNotFound:
            return f"Saved search not found: {search_id}"
        except VaultsearchError as e:
            return f"Search failed: {e}"
        return f"Saved search **{saved.name}**\n\n" + _format_results(
            results, saved.options.include_content,
        )

    @mcp.tool()
    def search_analytics() -> str:
        """Show search statistics: totals, top queries and search type distribution."""
        a = engine.get_search_analytics()
        top = "\n".join(
            f"  - \"{q['query']}\": {q['count']}x" for q in a["top_queries"]
        ) or "  (none)"
        types = "\n".join(f"  - {t}: {c}" for t, c in a["search_types"].items())
        return (
            f"**Search Analytics**\n\n"
            f"- **Searches total:** {a['total_searches']}\n"
            f"- **Average results:** {a['average_results']:.1f}\n\n"
            f"**Top queries:**\n{top}\n\n"
            f"**Search types:**\n{types}"
        )

    @mcp.tool()
    async def get_index_stats() -> str:
        """Show statistics about the current vector index."""
        if services.indexer is None:
            return "Semantic search is disabled (no embedding provider configured)."
        stats = await services.indexer.stats()
        return (
            f"**Index Statistics**\n\n"
            f"- **Nodes total:** {stats['total_nodes']}\n"
            f"- **Docs path:** {config.docs_path}\n"
            f"- **Embedding:** {stats['embedding_provider']}"
        )

    @mcp.tool()
    async def reindex(force: bool = False) -> str:
        """Re-index the knowledge base. Diff-aware by default (only changed files).
        Set force=True to rebuild all embeddings from scratch.

        Args:
            force: If True, re-embed all files regardless of changes (default: False)
        """
        try:
            result = await services.reindex(force=force)
        except VaultsearchError as e:
            return f"Re-index failed: {e}"
        return (
            f"Re-index complete!\n"
            f"  Files: {result['files_indexed']} ({result['files_changed']} changed, "
            f"{result['files_skipped']} skipped)\n"
            f"  Nodes upserted: {result['nodes_upserted']}\n"
            f"  Stale removed: {result['nodes_removed']}"
        )

    return mcp
