# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Second-stage reranking with a cross-encoder provider.

Reranking is best-effort: without a provider, or when the provider call
fails, the input comes back untouched.
"""
import dataclasses
import logging
from typing import Optional

from .models import SearchOptions, SearchResult
from .providers import RerankProvider, call_with_timeout

logger = logging.getLogger(__name__)

PRIOR_WEIGHT = 0.3
RERANK_WEIGHT = 0.7


class Reranker:
    def __init__(self, provider: Optional[RerankProvider], timeout: Optional[float] = None):
        self.provider = provider
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return self.provider is not None

    async def rerank(
        self, query: str, results: list[SearchResult], options: SearchOptions,
    ) -> list[SearchResult]:
        if self.provider is None or not results:
            return results

        documents = [r.text for r in results]
        top_k = min(options.max_results, len(documents))
        try:
            outcome = await call_with_timeout(
                self.provider.rerank(query, documents, top_k), self.timeout, self.provider.name,
            )
        except Exception as e:
            logger.warning("Reranking failed, keeping first-stage order: %s", e)
            return results

        reranked: list[SearchResult] = []
        for item in outcome.items:
            if not 0 <= item.index < len(results):
                logger.warning("Reranker returned out-of-range index %d", item.index)
                continue
            if item.relevance_score < options.rerank_threshold:
                continue
            original = results[item.index]
            reranked.append(dataclasses.replace(
                original,
                rerank_score=item.relevance_score,
                final_score=original.ranking_score * PRIOR_WEIGHT + item.relevance_score * RERANK_WEIGHT,
            ))
        return sorted(reranked, key=lambda r: r.ranking_score, reverse=True)
