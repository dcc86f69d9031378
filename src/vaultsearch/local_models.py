# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Local (in-process) providers built on sentence-transformers:
an embedder via chromadb's embedding function and a cross-encoder reranker.

Models are loaded lazily and cached per name; inference runs in a worker
thread so the event loop keeps serving other searches.
"""
import asyncio
import logging
import math
import threading
from collections.abc import Sequence

from chromadb.utils import embedding_functions

from .providers import (
    EmbeddingOutcome, EmbeddingProvider, ProviderError, RerankItem, RerankOutcome, RerankProvider,
)

logger = logging.getLogger(__name__)

_reranker_cache: dict[str, object] = {}
_reranker_lock = threading.Lock()


def _get_cross_encoder(model_name: str):
    """Lazy-load and cache a cross-encoder reranker model."""
    with _reranker_lock:
        if model_name in _reranker_cache:
            return _reranker_cache[model_name]
    from sentence_transformers import CrossEncoder
    model = CrossEncoder(model_name)
    with _reranker_lock:
        _reranker_cache[model_name] = model
    return model


def _sigmoid(x: float) -> float:
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


class LocalEmbedder(EmbeddingProvider):
    name = "local-embed"

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._ef = None
        self._lock = threading.Lock()

    def _function(self):
        with self._lock:
            if self._ef is None:
                self._ef = embedding_functions.SentenceTransformerEmbeddingFunction(
                    model_name=self.model_name
                )
            return self._ef

    async def embed_many(self, texts: Sequence[str]) -> EmbeddingOutcome:
        if not texts:
            return EmbeddingOutcome(vectors=(), model=self.model_name)
        try:
            vectors = await asyncio.to_thread(lambda: self._function()(list(texts)))
        except Exception as e:
            raise ProviderError(f"local embedding failed: {e}", self.name) from e
        return EmbeddingOutcome.from_vectors(vectors, model=self.model_name)


class CrossEncoderReranker(RerankProvider):
    """Scores (query, document) pairs into [0, 1].

    Models whose head already applies a sigmoid return probabilities and are
    used as-is; raw logits (any score outside [0, 1]) go through a sigmoid.
    """
    name = "local-rerank"

    def __init__(self, model_name: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"):
        self.model_name = model_name

    def _predict(self, query: str, documents: Sequence[str]) -> list[float]:
        model = _get_cross_encoder(self.model_name)
        return [float(s) for s in model.predict([(query, doc) for doc in documents])]

    async def rerank(self, query: str, documents: Sequence[str], top_k: int) -> RerankOutcome:
        if not documents:
            return RerankOutcome(items=(), model=self.model_name)
        try:
            raw = await asyncio.to_thread(self._predict, query, documents)
        except Exception as e:
            raise ProviderError(f"cross-encoder rerank failed: {e}", self.name) from e
        if any(s < 0.0 or s > 1.0 for s in raw):
            raw = [_sigmoid(s) for s in raw]
        items = sorted(
            (RerankItem(index=i, relevance_score=s) for i, s in enumerate(raw)),
            key=lambda it: it.relevance_score,
            reverse=True,
        )
        return RerankOutcome(items=tuple(items[:top_k]), model=self.model_name)
