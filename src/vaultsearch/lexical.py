# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Keyword search: literal, case-insensitive term counting over the corpus.

score = (sum of per-word occurrence counts) / (number of query words), so
a document containing every query word once scores 1.0 and repeated
matches push it higher. Documents without any match are dropped.
"""
import asyncio
import logging
import re

from .highlights import (
    MAX_HIGHLIGHTS, extract_summary, find_word_context, query_words, word_count,
)
from .models import CorpusDocument, ResultMetadata, SearchOptions, SearchResult
from .providers import Corpus

logger = logging.getLogger(__name__)


def document_result_id(path: str) -> str:
    return f"doc:{path}"


class LexicalSearchEngine:
    def __init__(self, corpus: Corpus):
        self.corpus = corpus

    async def search(self, options: SearchOptions) -> list[SearchResult]:
        words = query_words(options.query)
        if not words:
            return []
        patterns = [re.compile(re.escape(w)) for w in words]

        refs = await asyncio.to_thread(self.corpus.list_documents)
        results: list[SearchResult] = []
        for ref in refs:
            try:
                doc = await self.corpus.read(ref)
            except Exception as e:
                logger.warning("Skipping unreadable document %s: %s", ref.path, e)
                continue
            result = self._score_document(doc, words, patterns, options)
            if result is not None:
                results.append(result)

        results.sort(key=lambda r: r.score, reverse=True)
        return results

    @staticmethod
    def _score_document(
        doc: CorpusDocument, words: list[str], patterns: list[re.Pattern], options: SearchOptions,
    ) -> SearchResult | None:
        content_lower = doc.content.lower()
        total = 0
        highlights: list[str] = []
        for word, pattern in zip(words, patterns):
            matches = len(pattern.findall(content_lower))
            total += matches
            if matches:
                highlights.extend(find_word_context(doc.content, word))
        if total == 0:
            return None

        ref = doc.ref
        return SearchResult(
            id=document_result_id(ref.path),
            title=ref.stem,
            content=doc.content if options.include_content else extract_summary(doc.content),
            full_text=doc.content,
            origin="file",
            score=total / len(words),
            document=ref,
            metadata=ResultMetadata(
                source="corpus",
                path=ref.path,
                tags=doc.tags,
                created=ref.created_at.isoformat(),
                modified=ref.modified_at.isoformat(),
                word_count=word_count(doc.content),
                highlights=tuple(highlights[:MAX_HIGHLIGHTS]),
            ),
        )
