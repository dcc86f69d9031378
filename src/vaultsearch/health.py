# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Centralized health/status tracker – shared across indexer, engine, web UI.
Thread-safe, no external dependencies.
"""
import threading
from datetime import datetime, timezone

from .models import SEARCH_TYPES


class HealthTracker:
    def __init__(self):
        self._lock = threading.Lock()
        self._data = {
            "last_index_at": None,
            "last_index_ok": False,
            "last_index_chunks": 0,
            "last_index_files": 0,
            "last_index_error": None,

            "started_at": datetime.now(timezone.utc).isoformat(),

            "searches_total": 0,
            "searches_hits": 0,
            "searches_misses": 0,
            "searches_cached": 0,
            "searches_failed": 0,
            "searches_by_type": {t: 0 for t in SEARCH_TYPES},
            "last_search_at": None,
            "last_search_error": None,
        }

    def record_index(self, ok: bool, chunks: int = 0, files: int = 0, error: str | None = None):
        with self._lock:
            self._data["last_index_at"] = datetime.now(timezone.utc).isoformat()
            self._data["last_index_ok"] = ok
            self._data["last_index_chunks"] = chunks
            self._data["last_index_files"] = files
            self._data["last_index_error"] = error

    def record_search(self, search_type: str, hit: bool, cached: bool = False):
        with self._lock:
            self._data["searches_total"] += 1
            if hit:
                self._data["searches_hits"] += 1
            else:
                self._data["searches_misses"] += 1
            if cached:
                self._data["searches_cached"] += 1
            by_type = self._data["searches_by_type"]
            if search_type in by_type:
                by_type[search_type] += 1
            self._data["last_search_at"] = datetime.now(timezone.utc).isoformat()

    def record_search_failure(self, error: str):
        with self._lock:
            self._data["searches_failed"] += 1
            self._data["last_search_error"] = error

    @property
    def status(self) -> dict:
        with self._lock:
            data = dict(self._data)
            data["searches_by_type"] = dict(self._data["searches_by_type"])
            return data

    @property
    def is_healthy(self) -> bool:
        with self._lock:
            return self._data["last_index_ok"]
