# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""Vector search over the memory graph: embed the query, fetch nearest nodes."""
import logging
from typing import Optional

from .highlights import extract_highlights, extract_summary, extract_title, word_count
from .lexical import document_result_id
from .models import ResultMetadata, SearchOptions, SearchResult
from .providers import (
    ConfigurationError, EmbeddingProvider, VectorHit, VectorIndex, call_with_timeout,
)

logger = logging.getLogger(__name__)

OVERFETCH_FACTOR = 2


def _payload_tags(raw) -> tuple[str, ...]:
    if isinstance(raw, str):
        return tuple(t.strip() for t in raw.split(",") if t.strip())
    if isinstance(raw, (list, tuple)):
        return tuple(str(t) for t in raw)
    return ()


class SemanticSearchEngine:
    def __init__(
        self,
        embedder: Optional[EmbeddingProvider],
        index: Optional[VectorIndex],
        timeout: Optional[float] = None,
    ):
        self.embedder = embedder
        self.index = index
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return self.embedder is not None and self.index is not None

    async def search(self, options: SearchOptions) -> list[SearchResult]:
        if self.embedder is None:
            raise ConfigurationError("Embeddings not available for semantic search")
        if self.index is None:
            raise ConfigurationError("No vector index configured for semantic search")

        outcome = await call_with_timeout(
            self.embedder.embed(options.query), self.timeout, self.embedder.name,
        )
        hits = await call_with_timeout(
            self.index.search(outcome.first, options.max_results * OVERFETCH_FACTOR),
            self.timeout, "vector-index",
        )

        # Hits arrive best-first; keep the best node per document so ids stay unique.
        results: dict[str, SearchResult] = {}
        for hit in hits:
            result = self._to_result(hit, options)
            if result.id not in results:
                results[result.id] = result
        return list(results.values())

    @staticmethod
    def _to_result(hit: VectorHit, options: SearchOptions) -> SearchResult:
        payload = hit.payload
        text = str(payload.get("text", ""))
        path = payload.get("path") or None
        return SearchResult(
            id=document_result_id(path) if path else f"node:{hit.id}",
            title=str(payload.get("title") or extract_title(text)),
            content=text if options.include_content else extract_summary(text),
            full_text=text,
            origin="node",
            score=float(hit.score),
            metadata=ResultMetadata(
                source="memory_graph",
                path=path,
                tags=_payload_tags(payload.get("tags")),
                created=payload.get("created") or None,
                modified=payload.get("modified") or None,
                word_count=word_count(text),
                highlights=extract_highlights(text, options.query),
            ),
        )
