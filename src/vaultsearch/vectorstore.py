# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
ChromaDB-backed vector index for memory-graph nodes.

Vectors are always supplied by the caller (the collection has no embedding
function), so queries and documents share one EmbeddingProvider. The
collection uses cosine space; similarity = 1 - distance.
"""
import asyncio
import logging
from collections.abc import Sequence
from typing import Optional

import chromadb

from .providers import VectorHit, VectorIndex

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "memory_graph"
_BATCH_SIZE = 5000


def _chroma_metadata(payload: dict) -> dict:
    """Chroma metadata values must be scalars and never None."""
    out: dict = {}
    for key, value in payload.items():
        if key == "text" or value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            out[key] = ",".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            out[key] = value
        else:
            out[key] = str(value)
    return out


class ChromaVectorIndex(VectorIndex):
    def __init__(
        self,
        path: Optional[str] = None,
        collection_name: str = DEFAULT_COLLECTION,
        client=None,
    ):
        if client is None:
            client = chromadb.PersistentClient(path=path) if path else chromadb.EphemeralClient()
        self.chroma = client
        self.collection_name = collection_name
        self.collection = self._open_collection()

    def _open_collection(self):
        return self.chroma.get_or_create_collection(
            self.collection_name,
            embedding_function=None,
            metadata={"hnsw:space": "cosine"},
        )

    def _search(self, vector: Sequence[float], k: int) -> list[VectorHit]:
        total = self.collection.count()
        if total == 0 or k <= 0:
            return []
        results = self.collection.query(
            query_embeddings=[list(vector)],
            n_results=min(k, total),
            include=["documents", "metadatas", "distances"],
        )
        if not results["ids"] or not results["ids"][0]:
            return []
        hits: list[VectorHit] = []
        for node_id, doc, meta, dist in zip(
            results["ids"][0],
            results["documents"][0],
            results["metadatas"][0],
            results["distances"][0],
        ):
            payload = dict(meta or {})
            payload["text"] = doc or ""
            hits.append(VectorHit(id=node_id, score=1.0 - float(dist), payload=payload))
        return hits

    async def search(self, vector: Sequence[float], k: int) -> list[VectorHit]:
        return await asyncio.to_thread(self._search, vector, k)

    def _upsert(self, ids, vectors, payloads):
        for i in range(0, len(ids), _BATCH_SIZE):
            batch = slice(i, i + _BATCH_SIZE)
            self.collection.upsert(
                ids=list(ids[batch]),
                embeddings=[list(v) for v in vectors[batch]],
                documents=[str(p.get("text", "")) for p in payloads[batch]],
                metadatas=[_chroma_metadata(p) for p in payloads[batch]],
            )

    async def upsert(
        self, ids: Sequence[str], vectors: Sequence[Sequence[float]], payloads: Sequence[dict],
    ) -> None:
        if ids:
            await asyncio.to_thread(self._upsert, list(ids), list(vectors), list(payloads))

    def _delete(self, ids: list[str]):
        for i in range(0, len(ids), _BATCH_SIZE):
            self.collection.delete(ids=ids[i:i + _BATCH_SIZE])

    async def delete(self, ids: Sequence[str]) -> None:
        if ids:
            await asyncio.to_thread(self._delete, list(ids))

    async def ids(self) -> set[str]:
        result = await asyncio.to_thread(self.collection.get, include=[])
        return set(result["ids"])

    async def count(self) -> int:
        return await asyncio.to_thread(self.collection.count)

    def clear(self):
        try:
            self.chroma.delete_collection(self.collection_name)
        except Exception as e:
            logger.debug("Nothing to delete for %s: %s", self.collection_name, e)
        self.collection = self._open_collection()
