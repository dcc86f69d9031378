# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""Builds providers, indexer and engine from a Config."""
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config import Config
from .corpus import FilesystemCorpus
from .engine import SearchEngine
from .health import HealthTracker
from .http_client import JsonApiClient
from .indexer import CorpusIndexer
from .providers import (
    ConfigurationError, EmbeddingProvider, RerankProvider, TextGenProvider, VectorIndex,
)
from .state import JsonStateStore

logger = logging.getLogger(__name__)


def build_embedder(config: Config) -> Optional[EmbeddingProvider]:
    if config.embedding_provider == "local":
        from .local_models import LocalEmbedder
        return LocalEmbedder(config.embedding_model)
    if config.embedding_provider == "voyage":
        from .voyage import VoyageEmbedder
        if not config.voyage_api_key:
            raise ConfigurationError("embedding_provider=voyage requires voyage_api_key")
        return VoyageEmbedder(_voyage_client(config), config.voyage_embedding_model)
    return None


def build_rerank_provider(config: Config) -> Optional[RerankProvider]:
    if config.rerank_provider == "local":
        from .local_models import CrossEncoderReranker
        return CrossEncoderReranker(config.reranker_model)
    if config.rerank_provider == "voyage":
        from .voyage import VoyageReranker
        if not config.voyage_api_key:
            raise ConfigurationError("rerank_provider=voyage requires voyage_api_key")
        return VoyageReranker(_voyage_client(config), config.voyage_rerank_model)
    return None


def build_textgen(config: Config) -> Optional[TextGenProvider]:
    if config.textgen_provider == "openai":
        from .openai_chat import OpenAIChatProvider
        return OpenAIChatProvider(
            api_key=config.openai_api_key,
            model=config.textgen_model,
            base_url=config.openai_base_url,
            timeout=config.provider_timeout,
            max_retries=config.provider_max_retries,
        )
    return None


def _voyage_client(config: Config):
    from .voyage import VoyageClient
    return VoyageClient(
        api_key=config.voyage_api_key,
        base_url=config.voyage_base_url,
        timeout=config.provider_timeout,
        max_retries=config.provider_max_retries,
    )


@dataclass
class Services:
    """Shared state for the web app and the MCP server."""
    config: Config
    engine: SearchEngine
    indexer: Optional[CorpusIndexer]
    health: HealthTracker
    index_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    http_clients: list[JsonApiClient] = field(default_factory=list)

    async def reindex(self, force: bool = False) -> dict:
        if self.indexer is None:
            raise ConfigurationError("No embedding provider configured, nothing to index")
        async with self.index_lock:
            try:
                result = await self.indexer.sync(force=force)
            except Exception as e:
                logger.error("Indexing failed: %s", e)
                self.health.record_index(ok=False, error=str(e))
                raise
        if result.get("nodes_upserted") or result.get("nodes_removed"):
            self.engine.clear_cache()
        self.health.record_index(
            ok=result.get("status") == "success",
            chunks=result.get("nodes_upserted", 0),
            files=result.get("files_indexed", 0),
        )
        return result

    async def aclose(self):
        """Close the HTTP connection pools of hosted providers."""
        for client in self.http_clients:
            await client.aclose()


def build_services(config: Config, vector_index: Optional[VectorIndex] = None) -> Services:
    corpus = FilesystemCorpus(config.docs_path, config.docs_extensions)
    embedder = build_embedder(config)
    rerank_provider = build_rerank_provider(config)
    textgen = build_textgen(config)
    health = HealthTracker()

    indexer = None
    if embedder is not None:
        if vector_index is None:
            from .vectorstore import ChromaVectorIndex
            vector_index = ChromaVectorIndex(config.vectorstore_path, config.collection_name)
        indexer = CorpusIndexer(
            corpus, embedder, vector_index,
            hashes_path=Path(config.vectorstore_path) / f"{config.collection_name}_hashes.json",
            chunk_max_chars=config.chunk_max_chars,
        )
    else:
        logger.info("No embedding provider configured, semantic search disabled")

    engine = SearchEngine(
        corpus,
        embedder=embedder,
        vector_index=vector_index if embedder is not None else None,
        rerank_provider=rerank_provider,
        textgen=textgen,
        store=JsonStateStore(config.state_path),
        cache_ttl=config.cache_ttl_seconds,
        history_limit=config.history_limit,
        ai_scoring_concurrency=config.ai_scoring_concurrency,
        provider_timeout=config.provider_timeout,
        health=health,
    )
    http_clients = []
    for provider in (embedder, rerank_provider, textgen):
        client = getattr(provider, "client", None)
        if isinstance(client, JsonApiClient) and client not in http_clients:
            http_clients.append(client)
    return Services(
        config=config, engine=engine, indexer=indexer, health=health, http_clients=http_clients,
    )
