# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Persistent search-engine state: saved searches and search history.

The engine loads a snapshot once at construction and calls
store.save(state) after every mutation.
"""
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from .models import SavedSearch, SearchHistoryEntry

logger = logging.getLogger(__name__)


@dataclass
class SearchEngineState:
    saved_searches: dict[str, SavedSearch] = field(default_factory=dict)
    history: list[SearchHistoryEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "saved_searches": [s.to_dict() for s in self.saved_searches.values()],
            "search_history": [h.to_dict() for h in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SearchEngineState":
        state = cls()
        for raw in data.get("saved_searches", []):
            saved = SavedSearch.from_dict(raw)
            state.saved_searches[saved.id] = saved
        state.history = [SearchHistoryEntry.from_dict(h) for h in data.get("search_history", [])]
        return state


class StateStore(ABC):
    @abstractmethod
    def load(self) -> SearchEngineState:
        ...

    @abstractmethod
    def save(self, state: SearchEngineState) -> None:
        ...


class MemoryStateStore(StateStore):
    """Keeps the snapshot in memory; used when persistence is not wanted."""

    def __init__(self, state: SearchEngineState | None = None):
        self._data = state.to_dict() if state else {}
        self.saves = 0

    def load(self) -> SearchEngineState:
        return SearchEngineState.from_dict(self._data)

    def save(self, state: SearchEngineState) -> None:
        self._data = state.to_dict()
        self.saves += 1


class JsonStateStore(StateStore):
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> SearchEngineState:
        if not self.path.exists():
            return SearchEngineState()
        try:
            return SearchEngineState.from_dict(json.loads(self.path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Could not load search state from %s, starting empty: %s", self.path, e)
            return SearchEngineState()

    def save(self, state: SearchEngineState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # write-then-rename so a crash never leaves a half-written file
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2, default=str)
        os.replace(tmp, self.path)
