# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Collaborator contracts the search core depends on, the typed outcomes
they return, and the error hierarchy.

Adapters (voyage.py, openai_chat.py, local_models.py, vectorstore.py,
corpus.py) validate raw provider payloads into these outcome types at the
boundary; nothing untyped flows into the search stages.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, TypeVar

from .models import CorpusDocument, DocumentRef

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Errors
# =============================================================================

class VaultsearchError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(VaultsearchError):
    """A collaborator required by the requested operation is not configured."""


class ProviderError(VaultsearchError):
    """A provider call failed (transport, HTTP status, timeout or bad payload)."""

    def __init__(self, message: str, provider: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


# =============================================================================
# Outcomes
# =============================================================================

@dataclass(frozen=True)
class RerankItem:
    index: int
    relevance_score: float


@dataclass(frozen=True)
class RerankOutcome:
    """Validated rerank response. Items are ordered by relevance, descending."""
    items: tuple[RerankItem, ...]
    model: str = ""
    total_tokens: int = 0

    @classmethod
    def from_payload(cls, payload: Any, provider: str) -> "RerankOutcome":
        """Validate a `{"data": [{"index", "relevance_score"}, ...]}` payload."""
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise ProviderError("rerank response has no data list", provider)
        items: list[RerankItem] = []
        for entry in payload["data"]:
            try:
                items.append(RerankItem(
                    index=int(entry["index"]),
                    relevance_score=float(entry["relevance_score"]),
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise ProviderError(f"malformed rerank item {entry!r}: {e}", provider) from e
        items.sort(key=lambda it: it.relevance_score, reverse=True)
        usage = payload.get("usage") or {}
        return cls(
            items=tuple(items),
            model=str(payload.get("model", "")),
            total_tokens=int(usage.get("total_tokens", 0) or 0),
        )


@dataclass(frozen=True)
class EmbeddingOutcome:
    """Validated embedding response, one vector per input text, input order."""
    vectors: tuple[tuple[float, ...], ...]
    model: str = ""
    total_tokens: int = 0

    @property
    def first(self) -> tuple[float, ...]:
        if not self.vectors:
            raise ProviderError("embedding response is empty", self.model or "embedding")
        return self.vectors[0]

    @classmethod
    def from_vectors(cls, vectors: Sequence[Sequence[float]], model: str = "") -> "EmbeddingOutcome":
        return cls(vectors=tuple(tuple(float(x) for x in v) for v in vectors), model=model)

    @classmethod
    def from_payload(cls, payload: Any, provider: str) -> "EmbeddingOutcome":
        """Validate a `{"data": [{"index", "embedding"}, ...]}` payload."""
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise ProviderError("embedding response has no data list", provider)
        try:
            ordered = sorted(payload["data"], key=lambda e: int(e["index"]))
            vectors = [e["embedding"] for e in ordered]
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"malformed embedding response: {e}", provider) from e
        if any(not isinstance(v, list) or not v for v in vectors):
            raise ProviderError("embedding response contains an empty vector", provider)
        usage = payload.get("usage") or {}
        outcome = cls.from_vectors(vectors, model=str(payload.get("model", "")))
        return cls(outcome.vectors, outcome.model, int(usage.get("total_tokens", 0) or 0))


@dataclass(frozen=True)
class VectorHit:
    id: str
    score: float
    payload: dict = field(default_factory=dict)


# =============================================================================
# Contracts
# =============================================================================

class Corpus(ABC):
    """Enumerable document store. list_documents() must be restartable."""

    @abstractmethod
    def list_documents(self) -> list[DocumentRef]:
        ...

    @abstractmethod
    async def read(self, ref: DocumentRef) -> CorpusDocument:
        ...


class EmbeddingProvider(ABC):
    name: str = "embedding"

    @abstractmethod
    async def embed_many(self, texts: Sequence[str]) -> EmbeddingOutcome:
        ...

    async def embed(self, text: str) -> EmbeddingOutcome:
        return await self.embed_many([text])


class VectorIndex(ABC):
    @abstractmethod
    async def search(self, vector: Sequence[float], k: int) -> list[VectorHit]:
        ...

    @abstractmethod
    async def upsert(
        self, ids: Sequence[str], vectors: Sequence[Sequence[float]], payloads: Sequence[dict],
    ) -> None:
        ...

    @abstractmethod
    async def delete(self, ids: Sequence[str]) -> None:
        ...

    @abstractmethod
    async def ids(self) -> set[str]:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...


class RerankProvider(ABC):
    name: str = "rerank"

    @abstractmethod
    async def rerank(self, query: str, documents: Sequence[str], top_k: int) -> RerankOutcome:
        ...


class TextGenProvider(ABC):
    name: str = "textgen"

    def is_ready(self) -> bool:
        return True

    @abstractmethod
    async def generate(self, messages: list[dict[str, str]], max_tokens: Optional[int] = None) -> str:
        ...


# =============================================================================
# Helpers
# =============================================================================

async def call_with_timeout(awaitable: Awaitable[T], timeout: Optional[float], provider: str) -> T:
    """Await a provider call, turning a timeout into a ProviderError."""
    if not timeout:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise ProviderError(f"{provider} call timed out after {timeout}s", provider) from e
