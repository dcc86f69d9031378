# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Web backend (FastAPI) – search, saved searches, history/analytics,
index maintenance and health.

All state is injected via create_web_app(services); the same Services
instance backs the MCP server.
"""
from datetime import datetime
from typing import Any, Literal, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .app import Services
from .config import Config
from .engine import SavedSearchNotFound
from .models import DateRange, SearchFilter, SearchOptions, SearchResult
from .providers import ConfigurationError, ProviderError


class DateRangeModel(BaseModel):
    start: datetime = Field(alias="from")
    end: datetime = Field(alias="to")

    model_config = {"populate_by_name": True}


class SearchRequest(BaseModel):
    query: str
    search_type: Literal["semantic", "keyword", "hybrid", "ai_enhanced"] | None = None
    max_results: int | None = Field(default=None, ge=1, le=200)
    use_rerank: bool = False
    rerank_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    include_content: bool = False
    file_types: list[str] = []
    tags: list[str] = []
    folders: list[str] = []
    date_range: Optional[DateRangeModel] = None
    sort_by: Literal["relevance", "date", "title", "size"] = "relevance"
    sort_order: Literal["asc", "desc"] = "desc"

    def to_options(self, config: Config) -> SearchOptions:
        return SearchOptions(
            query=self.query,
            search_type=self.search_type or config.default_search_type,
            max_results=self.max_results or config.default_max_results,
            use_rerank=self.use_rerank,
            rerank_threshold=(
                self.rerank_threshold if self.rerank_threshold is not None else config.rerank_threshold
            ),
            include_content=self.include_content,
            file_types=tuple(self.file_types),
            tags=tuple(self.tags),
            folders=tuple(self.folders),
            date_range=(
                DateRange(start=self.date_range.start, end=self.date_range.end)
                if self.date_range else None
            ),
            sort_by=self.sort_by,
            sort_order=self.sort_order,
        )


class FilterModel(BaseModel):
    name: str
    type: Literal["tag", "folder", "date", "size", "type"]
    value: Any
    operator: Literal["equals", "contains", "greater", "less", "between"] = "equals"


class ConfigUpdate(BaseModel):
    cache_ttl_seconds: Optional[float] = Field(default=None, ge=0)
    history_limit: Optional[int] = Field(default=None, ge=1)
    ai_scoring_concurrency: Optional[int] = Field(default=None, ge=1)
    default_search_type: Optional[Literal["semantic", "keyword", "hybrid", "ai_enhanced"]] = None
    default_max_results: Optional[int] = Field(default=None, ge=1, le=200)
    rerank_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class SaveSearchRequest(BaseModel):
    name: str
    search: SearchRequest
    filters: list[FilterModel] = []


def _results_payload(query: str, results: list[SearchResult], include_content: bool) -> dict:
    return {
        "query": query,
        "count": len(results),
        "results": [r.to_dict(include_content=include_content) for r in results],
    }


def create_web_app(services: Services) -> FastAPI:
    """Factory: returns a FastAPI app that shares the engine with the MCP server."""
    config = services.config
    engine = services.engine
    indexer = services.indexer
    health = services.health

    app = FastAPI(
        title="Vaultsearch",
        description="Hybrid search and reranking for knowledge bases",
    )

    @app.exception_handler(SavedSearchNotFound)
    async def _not_found(_request: Request, exc: SavedSearchNotFound):
        return JSONResponse(status_code=404, content={"detail": f"Saved search not found: {exc.args[0]}"})

    @app.exception_handler(ConfigurationError)
    async def _misconfigured(_request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ProviderError)
    async def _provider_failed(_request: Request, exc: ProviderError):
        return JSONResponse(status_code=502, content={"detail": str(exc), "provider": exc.provider})

    # ── Health ───────────────────────────────────────

    @app.get("/health")
    async def health_check():
        from . import __version__
        status = health.status
        return {
            "status": "ok" if (indexer is None or health.is_healthy) else "degraded",
            "version": __version__,
            "semantic_search": indexer is not None,
            "last_index_at": status.get("last_index_at"),
            "last_index_ok": status.get("last_index_ok"),
            "searches_total": status.get("searches_total", 0),
        }

    @app.get("/api/health")
    async def health_detail():
        return health.status

    @app.get("/api/config")
    async def get_config():
        return {"config": config.to_safe_dict()}

    @app.post("/api/config")
    async def update_config(update: ConfigUpdate):
        changes = update.model_dump(exclude_none=True)
        for key, value in changes.items():
            setattr(config, key, value)
        engine.cache_ttl = config.cache_ttl_seconds
        engine.history_limit = config.history_limit
        engine.ai_enhanced.concurrency = config.ai_scoring_concurrency
        config.save()
        return {"status": "success", "updated": sorted(changes), "config": config.to_safe_dict()}

    # ── Search ───────────────────────────────────────

    @app.post("/api/search")
    async def search(req: SearchRequest):
        results = await engine.search(req.to_options(config))
        return _results_payload(req.query, results, req.include_content)

    @app.post("/api/cache/clear")
    async def clear_cache():
        engine.clear_cache()
        return {"status": "success", "message": "Search cache cleared"}

    # ── Saved searches ───────────────────────────────

    @app.get("/api/saved-searches")
    async def list_saved_searches():
        return {"saved_searches": [s.to_dict() for s in engine.get_saved_searches()]}

    @app.post("/api/saved-searches")
    async def save_search(req: SaveSearchRequest):
        saved = engine.save_search(
            req.name,
            req.search.query,
            req.search.to_options(config),
            [SearchFilter(**f.model_dump()) for f in req.filters],
        )
        return saved.to_dict()

    @app.post("/api/saved-searches/{search_id}/run")
    async def run_saved_search(search_id: str):
        saved = engine.get_saved_search(search_id)
        results = await engine.execute_saved_search(search_id)
        return _results_payload(saved.query, results, saved.options.include_content)

    @app.delete("/api/saved-searches/{search_id}")
    async def delete_saved_search(search_id: str):
        if not engine.delete_saved_search(search_id):
            raise HTTPException(status_code=404, detail=f"Saved search not found: {search_id}")
        return {"status": "success"}

    # ── History & analytics ──────────────────────────

    @app.get("/api/history")
    async def get_history():
        return {"history": [h.to_dict() for h in engine.get_search_history()]}

    @app.delete("/api/history")
    async def clear_history():
        engine.clear_search_history()
        return {"status": "success", "message": "Search history cleared"}

    @app.get("/api/analytics")
    async def get_analytics():
        return engine.get_search_analytics()

    # ── Index ────────────────────────────────────────

    @app.get("/api/stats")
    async def get_stats():
        if indexer is None:
            return {"total_nodes": 0, "embedding_provider": None}
        return await indexer.stats()

    @app.post("/api/reindex")
    async def trigger_reindex(force: bool = False):
        return await services.reindex(force=force)

    return app
