# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Corpus watcher – periodic re-index so the vector index follows the corpus.
Runs as a background task on the serving event loop.

Each tick is a normal diff-aware sync through Services.reindex, so it shares
the index lock with manual re-index requests and only re-embeds documents
that changed since the last run.
"""
import asyncio
import logging
from typing import Optional

from .app import Services

logger = logging.getLogger(__name__)


class CorpusWatcher:
    def __init__(self, services: Services, interval: float):
        self.services = services
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        if self.services.indexer is None:
            logger.info("No embedding provider configured, corpus watcher disabled")
            return False
        if self.interval <= 0:
            logger.info("Sync interval = 0, corpus watcher disabled")
            return False
        self._task = asyncio.get_running_loop().create_task(self._sync_loop())
        logger.info("Corpus watcher started (every %ss)", self.interval)
        return True

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _sync_loop(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                result = await self.services.reindex()
            except Exception as e:
                # already recorded in health; try again next tick
                logger.warning("Corpus sync failed: %s", e)
                continue
            if result.get("nodes_upserted") or result.get("nodes_removed"):
                logger.info("Corpus changed, index updated: %s", result)
