# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Central configuration – configurable via:
1. Environment variables (VAULTSEARCH_ prefix)
2. .env file
3. Web-UI (writes to config_file, default /data/config.json)
"""
import json
import logging
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_FILE = "/data/config.json"


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VAULTSEARCH_", env_file=".env", extra="ignore",
    )

    # ── Corpus ───────────────────────────────────
    docs_path: str = "/docs"
    docs_extensions: list[str] = [".md", ".txt", ".pdf", ".html", ".json", ".yaml", ".yml", ".csv"]

    # ── Vector DB ────────────────────────────────
    vectorstore_path: str = "/data/vectorstore"
    collection_name: str = "memory_graph"
    chunk_max_chars: int = 2000
    sync_interval: float = 300.0  # seconds between corpus syncs, 0 = off

    # ── Embeddings ───────────────────────────────
    embedding_provider: Literal["local", "voyage", "none"] = "local"
    embedding_model: str = "all-MiniLM-L6-v2"
    voyage_api_key: str = ""
    voyage_base_url: str = "https://api.voyageai.com/v1"
    voyage_embedding_model: str = "voyage-large-2"

    # ── Reranking ────────────────────────────────
    rerank_provider: Literal["local", "voyage", "none"] = "none"
    reranker_model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"
    voyage_rerank_model: str = "rerank-lite-1"

    # ── Text generation (query expansion, AI relevance) ──
    textgen_provider: Literal["openai", "none"] = "none"
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    textgen_model: str = "gpt-4o-mini"

    # ── Provider calls ───────────────────────────
    provider_timeout: float = 30.0
    provider_max_retries: int = 3

    # ── Search engine ────────────────────────────
    cache_ttl_seconds: float = 300.0
    history_limit: int = 100
    ai_scoring_concurrency: int = 5
    default_search_type: Literal["semantic", "keyword", "hybrid", "ai_enhanced"] = "hybrid"
    default_max_results: int = 10
    rerank_threshold: float = 0.1

    # ── State (saved searches, history) ──────────
    state_path: str = "/data/search_state.json"
    config_file: str = CONFIG_FILE

    # ── Server / Transport ───────────────────────
    transport: Literal["stdio", "sse"] = "sse"
    sse_port: int = 8081
    web_port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def load(cls) -> "Config":
        """Load config: ENV -> .env -> config.json (Web-UI overrides)."""
        config = cls()
        path = Path(config.config_file)

        if path.exists():
            try:
                overrides = json.loads(path.read_text())
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Config file error: %s", e)
                return config
            for key, value in overrides.items():
                if hasattr(config, key) and value != "":
                    setattr(config, key, value)

        return config

    def save(self):
        """Persist current config for Web-UI."""
        path = Path(self.config_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.model_dump(), indent=2, default=str)
        )

    def to_safe_dict(self) -> dict:
        """Config without secrets (for /api/config)."""
        d = self.model_dump()
        for key in ("voyage_api_key", "openai_api_key"):
            if d.get(key):
                d[key] = d[key][:8] + "..."
        return d
