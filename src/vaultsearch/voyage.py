# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Voyage AI adapters: hosted reranking and embeddings.

    POST {base}/rerank      {model, query, documents, top_k}
    POST {base}/embeddings  {model, input, input_type, truncation}

Document embeddings are sent in batches of EMBED_BATCH_SIZE texts.
"""
import logging
from collections.abc import Sequence
from typing import Literal, Optional

import httpx

from .http_client import JsonApiClient
from .providers import (
    EmbeddingOutcome, EmbeddingProvider, ProviderError, RerankOutcome, RerankProvider,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.voyageai.com/v1"
EMBED_BATCH_SIZE = 100


class VoyageClient(JsonApiClient):
    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("voyage", base_url, api_key, timeout, max_retries, transport)

    async def rerank(self, query: str, documents: Sequence[str], model: str, top_k: int) -> RerankOutcome:
        payload = await self.post_json("/rerank", {
            "model": model,
            "query": query,
            "documents": list(documents),
            "top_k": top_k,
            "return_documents": False,
        })
        return RerankOutcome.from_payload(payload, self.provider)

    async def embed(
        self,
        texts: Sequence[str],
        model: str,
        input_type: Literal["query", "document"] = "document",
    ) -> EmbeddingOutcome:
        payload = await self.post_json("/embeddings", {
            "model": model,
            "input": list(texts),
            "input_type": input_type,
            "truncation": True,
        })
        outcome = EmbeddingOutcome.from_payload(payload, self.provider)
        if len(outcome.vectors) != len(texts):
            raise ProviderError(
                f"expected {len(texts)} embeddings, got {len(outcome.vectors)}", self.provider,
            )
        return outcome

    async def test_connection(self, model: str) -> bool:
        try:
            outcome = await self.embed(["test connection"], model, input_type="query")
        except ProviderError as e:
            logger.warning("Voyage AI connection test failed: %s", e)
            return False
        return bool(outcome.vectors)


class VoyageReranker(RerankProvider):
    name = "voyage-rerank"

    def __init__(self, client: VoyageClient, model: str = "rerank-lite-1"):
        self.client = client
        self.model = model

    async def rerank(self, query: str, documents: Sequence[str], top_k: int) -> RerankOutcome:
        return await self.client.rerank(query, documents, self.model, min(top_k, len(documents)))


class VoyageEmbedder(EmbeddingProvider):
    name = "voyage-embed"

    def __init__(self, client: VoyageClient, model: str = "voyage-large-2"):
        self.client = client
        self.model = model

    async def embed(self, text: str) -> EmbeddingOutcome:
        return await self.client.embed([text], self.model, input_type="query")

    async def embed_many(self, texts: Sequence[str]) -> EmbeddingOutcome:
        vectors: list[tuple[float, ...]] = []
        tokens = 0
        for start in range(0, len(texts), EMBED_BATCH_SIZE):
            batch = texts[start:start + EMBED_BATCH_SIZE]
            outcome = await self.client.embed(batch, self.model, input_type="document")
            vectors.extend(outcome.vectors)
            tokens += outcome.total_tokens
        return EmbeddingOutcome(vectors=tuple(vectors), model=self.model, total_tokens=tokens)
