# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Hybrid search: semantic and keyword results merged by result id with a
fixed 70/30 semantic/keyword weighting.

    semantic only:  final = sem * 0.7
    keyword only:   final = kw * 0.3
    both:           final = sem * 0.7 + kw * 0.3

Semantic failures degrade to an empty list; keyword failures propagate.
"""
import asyncio
import dataclasses
import logging

from .lexical import LexicalSearchEngine
from .models import SearchOptions, SearchResult
from .semantic import SemanticSearchEngine

logger = logging.getLogger(__name__)

SEMANTIC_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3
MAX_MERGED_HIGHLIGHTS = 5


def _merge_pair(semantic: SearchResult, keyword: SearchResult) -> SearchResult:
    sem_meta, kw_meta = semantic.metadata, keyword.metadata
    metadata = dataclasses.replace(
        sem_meta,
        path=sem_meta.path or kw_meta.path,
        tags=sem_meta.tags or kw_meta.tags,
        created=sem_meta.created or kw_meta.created,
        modified=sem_meta.modified or kw_meta.modified,
        word_count=kw_meta.word_count or sem_meta.word_count,
        highlights=(sem_meta.highlights + kw_meta.highlights)[:MAX_MERGED_HIGHLIGHTS],
    )
    return dataclasses.replace(
        semantic,
        origin="file" if keyword.document is not None else semantic.origin,
        document=keyword.document or semantic.document,
        full_text=keyword.full_text or semantic.full_text,
        metadata=metadata,
        final_score=semantic.score * SEMANTIC_WEIGHT + keyword.score * KEYWORD_WEIGHT,
    )


def combine(semantic: list[SearchResult], keyword: list[SearchResult]) -> list[SearchResult]:
    merged: dict[str, SearchResult] = {}
    semantic_by_id: dict[str, SearchResult] = {}
    for result in semantic:
        semantic_by_id[result.id] = result
        merged[result.id] = dataclasses.replace(result, final_score=result.score * SEMANTIC_WEIGHT)
    for result in keyword:
        if result.id in semantic_by_id:
            merged[result.id] = _merge_pair(semantic_by_id[result.id], result)
        else:
            merged[result.id] = dataclasses.replace(result, final_score=result.score * KEYWORD_WEIGHT)
    return sorted(merged.values(), key=lambda r: r.ranking_score, reverse=True)


class HybridSearchEngine:
    def __init__(self, semantic: SemanticSearchEngine, lexical: LexicalSearchEngine):
        self.semantic = semantic
        self.lexical = lexical

    async def search(self, options: SearchOptions) -> list[SearchResult]:
        semantic_results, keyword_results = await asyncio.gather(
            self.semantic.search(options),
            self.lexical.search(options),
            return_exceptions=True,
        )
        if isinstance(keyword_results, BaseException):
            raise keyword_results
        if isinstance(semantic_results, BaseException):
            logger.warning("Semantic search unavailable, using keyword results only: %s", semantic_results)
            semantic_results = []
        return combine(semantic_results, keyword_results)
