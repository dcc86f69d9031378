# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
AI-enhanced search: LLM query expansion, fan-out hybrid searches,
deduplication, then LLM relevance scoring of every surviving result.

Steps:
1. Ask the text generator for EXPANSION_COUNT paraphrases of the query.
2. Run hybrid search for the original query and each paraphrase.
3. Deduplicate by document path (or title), keeping the best-scored copy.
4. Score each result 0-1 with the generator, at most `concurrency` calls
   in flight; final = prior * 0.5 + ai * 0.5.

Without a ready generator, or when expansion itself fails, the stage is
plain hybrid search. A failed or unparsable scoring reply keeps that
result at its prior score.
"""
import asyncio
import dataclasses
import logging
import re
from typing import Optional

from .hybrid import HybridSearchEngine
from .models import SearchOptions, SearchResult
from .providers import TextGenProvider, call_with_timeout

logger = logging.getLogger(__name__)

EXPANSION_COUNT = 3
SCORING_PREVIEW_CHARS = 500
SCORING_MAX_TOKENS = 10
PRIOR_WEIGHT = 0.5
AI_WEIGHT = 0.5

_EXPAND_SYSTEM = (
    "You rewrite search queries for a personal knowledge base. "
    "Reply with {count} alternative phrasings of the user's query, one per line, "
    "without numbering or commentary."
)
_SCORE_SYSTEM = (
    "You are a search relevance analyzer. Rate the relevance of the given content "
    "to the search query on a scale of 0 to 1. Reply with the number only."
)
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_NUMBER_RE = re.compile(r"[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?")


def parse_expansions(reply: str, original: str, count: int = EXPANSION_COUNT) -> list[str]:
    seen = {original.strip().lower()}
    out: list[str] = []
    for line in reply.splitlines():
        query = _LIST_MARKER_RE.sub("", line).strip().strip('"').strip()
        if not query or query.lower() in seen:
            continue
        seen.add(query.lower())
        out.append(query)
        if len(out) >= count:
            break
    return out


def parse_relevance(reply: str) -> Optional[float]:
    """First number in the reply if it lies in [0, 1], else None."""
    match = _NUMBER_RE.search(reply.strip())
    if not match:
        return None
    try:
        value = float(match.group())
    except ValueError:
        return None
    return value if 0.0 <= value <= 1.0 else None


def dedup_key(result: SearchResult) -> str:
    if result.document is not None:
        return result.document.path
    return result.metadata.path or result.title


def deduplicate(results: list[SearchResult]) -> list[SearchResult]:
    best: dict[str, SearchResult] = {}
    for result in results:
        key = dedup_key(result)
        existing = best.get(key)
        if existing is None or result.ranking_score > existing.ranking_score:
            best[key] = result
    return list(best.values())


class QueryExpansionSearch:
    def __init__(
        self,
        hybrid: HybridSearchEngine,
        textgen: Optional[TextGenProvider],
        concurrency: int = 5,
        timeout: Optional[float] = None,
    ):
        self.hybrid = hybrid
        self.textgen = textgen
        self.concurrency = max(1, concurrency)
        self.timeout = timeout

    @property
    def ready(self) -> bool:
        return self.textgen is not None and self.textgen.is_ready()

    async def search(self, options: SearchOptions) -> list[SearchResult]:
        if not self.ready:
            return await self.hybrid.search(options)

        try:
            expansions = await self.expand_query(options.query)
        except Exception as e:
            logger.warning("Query expansion failed, falling back to hybrid search: %s", e)
            return await self.hybrid.search(options)

        variants = [options.query, *expansions]
        batches = await asyncio.gather(*(
            self.hybrid.search(dataclasses.replace(options, query=q)) for q in variants
        ))
        candidates = deduplicate([r for batch in batches for r in batch])
        return await self.score_results(options.query, candidates)

    async def expand_query(self, query: str) -> list[str]:
        reply = await call_with_timeout(
            self.textgen.generate([
                {"role": "system", "content": _EXPAND_SYSTEM.format(count=EXPANSION_COUNT)},
                {"role": "user", "content": f"Search query: {query}"},
            ]),
            self.timeout, self.textgen.name,
        )
        expansions = parse_expansions(reply, query)
        logger.debug("Expanded %r into %s", query, expansions)
        return expansions

    async def score_results(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        if not results:
            return results
        semaphore = asyncio.Semaphore(self.concurrency)

        async def score_one(result: SearchResult) -> SearchResult:
            prior = result.ranking_score
            async with semaphore:
                try:
                    reply = await call_with_timeout(
                        self.textgen.generate(
                            [
                                {"role": "system", "content": _SCORE_SYSTEM},
                                {
                                    "role": "user",
                                    "content": (
                                        f'Query: "{query}"\n\n'
                                        f'Content: "{result.text[:SCORING_PREVIEW_CHARS]}"\n\n'
                                        "Relevance score (0-1):"
                                    ),
                                },
                            ],
                            max_tokens=SCORING_MAX_TOKENS,
                        ),
                        self.timeout, self.textgen.name,
                    )
                except Exception as e:
                    logger.warning("AI relevance scoring failed for %s: %s", result.id, e)
                    return result
            ai_score = parse_relevance(reply)
            if ai_score is None:
                logger.debug("Unparsable relevance reply for %s: %r", result.id, reply)
                ai_score = prior
            return dataclasses.replace(
                result, final_score=prior * PRIOR_WEIGHT + ai_score * AI_WEIGHT,
            )

        scored = await asyncio.gather(*(score_one(r) for r in results), return_exceptions=True)
        out = [
            s if isinstance(s, SearchResult) else original
            for s, original in zip(scored, results)
        ]
        return sorted(out, key=lambda r: r.ranking_score, reverse=True)
