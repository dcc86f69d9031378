# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Search orchestrator – the single entry point for callers.

search(options):
  cache lookup -> strategy (keyword | semantic | hybrid | ai_enhanced)
  -> optional rerank -> filters -> sort -> truncate -> cache -> history

The engine exclusively owns the result cache, saved searches and history.
All of it is mutated on the event loop only; concurrent searches interleave
at await points and each one only writes its own cache key and appends its
own history entry.
"""
import json
import logging
import time
from collections import Counter
from collections.abc import Callable
from datetime import datetime
from typing import Optional

from .expansion import QueryExpansionSearch
from .health import HealthTracker
from .hybrid import HybridSearchEngine
from .lexical import LexicalSearchEngine
from .models import (
    SEARCH_TYPES, CacheEntry, SavedSearch, SearchFilter, SearchHistoryEntry,
    SearchOptions, SearchResult, parse_timestamp, utc_now,
)
from .providers import (
    Corpus, EmbeddingProvider, RerankProvider, TextGenProvider, VaultsearchError, VectorIndex,
)
from .reranker import Reranker
from .semantic import SemanticSearchEngine
from .state import MemoryStateStore, SearchEngineState, StateStore

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 5 * 60
HISTORY_LIMIT = 100
TOP_QUERIES = 10

_EPOCH = 0.0


class SavedSearchNotFound(VaultsearchError, KeyError):
    """No saved search with the given id."""


def cache_key(options: SearchOptions) -> str:
    return json.dumps(options.cache_key_fields(), sort_keys=True, separators=(",", ":"))


# ── Filters & sorting ────────────────────────────────


def _modified_at(result: SearchResult) -> Optional[datetime]:
    try:
        return parse_timestamp(result.metadata.modified)
    except ValueError:
        return None


def apply_filters(results: list[SearchResult], options: SearchOptions) -> list[SearchResult]:
    """Filters only exclude on a positive mismatch; missing data passes,
    except for tags, where a configured tag filter needs at least one tag."""
    filtered = results

    if options.file_types:
        allowed = set(options.file_types)
        filtered = [
            r for r in filtered
            if r.document is None or r.document.extension in allowed
        ]

    if options.date_range is not None:
        date_range = options.date_range

        def in_range(r: SearchResult) -> bool:
            modified = _modified_at(r)
            return modified is None or date_range.contains(modified)

        filtered = [r for r in filtered if in_range(r)]

    if options.tags:
        wanted = set(options.tags)
        filtered = [r for r in filtered if wanted.intersection(r.metadata.tags)]

    if options.folders:
        filtered = [
            r for r in filtered
            if r.metadata.path is None
            or any(r.metadata.path.startswith(folder) for folder in options.folders)
        ]

    return filtered


def _date_key(result: SearchResult) -> float:
    modified = _modified_at(result)
    return modified.timestamp() if modified else _EPOCH


_SORT_KEYS: dict[str, Callable[[SearchResult], object]] = {
    "relevance": lambda r: r.ranking_score,
    "date": _date_key,
    "title": lambda r: r.title,
    "size": lambda r: r.metadata.word_count or 0,
}


def sort_results(results: list[SearchResult], options: SearchOptions) -> list[SearchResult]:
    """Stable sort; equal keys keep their input order in both directions."""
    key = _SORT_KEYS.get(options.sort_by, _SORT_KEYS["relevance"])
    return sorted(results, key=key, reverse=options.sort_order == "desc")


# ── Engine ───────────────────────────────────────────


class SearchEngine:
    def __init__(
        self,
        corpus: Corpus,
        embedder: Optional[EmbeddingProvider] = None,
        vector_index: Optional[VectorIndex] = None,
        rerank_provider: Optional[RerankProvider] = None,
        textgen: Optional[TextGenProvider] = None,
        store: Optional[StateStore] = None,
        *,
        cache_ttl: float = CACHE_TTL_SECONDS,
        history_limit: int = HISTORY_LIMIT,
        ai_scoring_concurrency: int = 5,
        provider_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        health: Optional[HealthTracker] = None,
    ):
        self.lexical = LexicalSearchEngine(corpus)
        self.semantic = SemanticSearchEngine(embedder, vector_index, timeout=provider_timeout)
        self.hybrid = HybridSearchEngine(self.semantic, self.lexical)
        self.ai_enhanced = QueryExpansionSearch(
            self.hybrid, textgen, concurrency=ai_scoring_concurrency, timeout=provider_timeout,
        )
        self.reranker = Reranker(rerank_provider, timeout=provider_timeout)

        self.cache_ttl = cache_ttl
        self.history_limit = history_limit
        self._clock = clock
        self._health = health
        self._cache: dict[str, CacheEntry] = {}
        self._store = store or MemoryStateStore()
        self._state: SearchEngineState = self._store.load()
        self._state.history = self._state.history[-history_limit:]

    # ── Search ───────────────────────────────────────

    async def search(self, options: SearchOptions) -> list[SearchResult]:
        key = cache_key(options)
        cached = self._cache.get(key)
        if cached is not None:
            if cached.is_live(self._clock(), self.cache_ttl):
                if self._health:
                    self._health.record_search(options.search_type, bool(cached.results), cached=True)
                return list(cached.results)
            del self._cache[key]

        try:
            results = await self._run_strategy(options)
        except Exception as e:
            logger.error("Search failed for %r (%s): %s", options.query, options.search_type, e)
            if self._health:
                self._health.record_search_failure(str(e))
            raise

        if options.use_rerank and self.reranker.available:
            results = await self.reranker.rerank(options.query, results, options)

        results = apply_filters(results, options)
        results = sort_results(results, options)
        results = results[: options.max_results]

        now = self._clock()
        self._prune_cache(now)
        self._cache[key] = CacheEntry(results=tuple(results), timestamp=now)
        self._add_to_history(options, len(results))
        if self._health:
            self._health.record_search(options.search_type, bool(results))
        return results

    async def _run_strategy(self, options: SearchOptions) -> list[SearchResult]:
        strategies = {
            "semantic": self.semantic,
            "keyword": self.lexical,
            "hybrid": self.hybrid,
            "ai_enhanced": self.ai_enhanced,
        }
        strategy = strategies.get(options.search_type, self.hybrid)
        return await strategy.search(options)

    def clear_cache(self):
        self._cache.clear()

    def _prune_cache(self, now: float):
        expired = [k for k, entry in self._cache.items() if not entry.is_live(now, self.cache_ttl)]
        for key in expired:
            del self._cache[key]

    # ── History & analytics ──────────────────────────

    def _add_to_history(self, options: SearchOptions, result_count: int):
        self._state.history.append(SearchHistoryEntry(
            query=options.query,
            timestamp=utc_now().isoformat(),
            result_count=result_count,
            search_type=options.search_type,
        ))
        if len(self._state.history) > self.history_limit:
            del self._state.history[: len(self._state.history) - self.history_limit]
        self._persist()

    def get_search_history(self) -> list[SearchHistoryEntry]:
        """Oldest first, at most history_limit entries."""
        return list(self._state.history)

    def clear_search_history(self):
        self._state.history.clear()
        self._persist()

    def get_search_analytics(self) -> dict:
        history = self._state.history
        query_counts = Counter(h.query for h in history)
        search_types = {t: 0 for t in SEARCH_TYPES}
        for h in history:
            search_types[h.search_type] = search_types.get(h.search_type, 0) + 1
        total_results = sum(h.result_count for h in history)
        return {
            "total_searches": len(history),
            "top_queries": [
                {"query": q, "count": c} for q, c in query_counts.most_common(TOP_QUERIES)
            ],
            "average_results": total_results / len(history) if history else 0.0,
            "search_types": search_types,
        }

    # ── Saved searches ───────────────────────────────

    def save_search(
        self,
        name: str,
        query: str,
        options: SearchOptions,
        filters: Optional[list[SearchFilter]] = None,
    ) -> SavedSearch:
        saved = SavedSearch(name=name, query=query, options=options, filters=list(filters or []))
        self._state.saved_searches[saved.id] = saved
        self._persist()
        return saved

    def get_saved_searches(self) -> list[SavedSearch]:
        """Most recently used first."""
        return sorted(
            self._state.saved_searches.values(),
            key=lambda s: parse_timestamp(s.last_used),
            reverse=True,
        )

    def get_saved_search(self, search_id: str) -> SavedSearch:
        saved = self._state.saved_searches.get(search_id)
        if saved is None:
            raise SavedSearchNotFound(search_id)
        return saved

    async def execute_saved_search(self, search_id: str) -> list[SearchResult]:
        saved = self.get_saved_search(search_id)
        saved.last_used = utc_now().isoformat()
        saved.use_count += 1
        self._persist()
        return await self.search(saved.options)

    def delete_saved_search(self, search_id: str) -> bool:
        removed = self._state.saved_searches.pop(search_id, None) is not None
        if removed:
            self._persist()
        return removed

    def _persist(self):
        self._store.save(self._state)
