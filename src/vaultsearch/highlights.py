# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""Text helpers shared by the search strategies: titles, summaries, highlight windows."""
import re

CONTEXT_CHARS = 50
WINDOWS_PER_WORD = 2
MAX_HIGHLIGHTS = 3
SUMMARY_CHARS = 200


def query_words(query: str) -> list[str]:
    return query.lower().split()


def find_word_context(content: str, word: str, context_length: int = CONTEXT_CHARS) -> list[str]:
    """Up to WINDOWS_PER_WORD windows of ±context_length chars around whole-word matches."""
    pattern = re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)
    windows: list[str] = []
    for match in pattern.finditer(content):
        start = max(0, match.start() - context_length)
        end = min(len(content), match.end() + context_length)
        windows.append(content[start:end].strip())
        if len(windows) >= WINDOWS_PER_WORD:
            break
    return windows


def extract_highlights(content: str, query: str, limit: int = MAX_HIGHLIGHTS) -> tuple[str, ...]:
    highlights: list[str] = []
    for word in query_words(query):
        highlights.extend(find_word_context(content, word))
    return tuple(highlights[:limit])


def extract_title(content: str) -> str:
    for line in content.splitlines():
        if line.startswith("#"):
            return re.sub(r"^#+\s*", "", line).strip()
    return content[:50].strip() + "..."


def extract_summary(content: str, max_length: int = SUMMARY_CHARS) -> str:
    cleaned = re.sub(r"#+\s*", "", content)
    cleaned = re.sub(r"\n+", " ", cleaned).strip()
    if len(cleaned) > max_length:
        return cleaned[:max_length] + "..."
    return cleaned


def word_count(content: str) -> int:
    return len(content.split())
