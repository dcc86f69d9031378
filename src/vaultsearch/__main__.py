# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Unified entry point: python -m vaultsearch

Runs Web API + MCP Server in a single process with shared state.
Both run on one event loop so the engine's cache, history and
saved searches are only ever touched from that loop.
"""
import asyncio
import logging

import uvicorn

from .app import build_services
from .config import Config
from .server import create_mcp_server
from .watcher import CorpusWatcher
from .web import create_web_app

logger = logging.getLogger("vaultsearch")


def _uvicorn_server(app, port: int) -> uvicorn.Server:
    return uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=port, log_level="warning"))


async def _serve(config: Config):
    services = build_services(config)

    if services.indexer is not None:
        logger.info("Initial indexing %s ...", config.docs_path)
        try:
            result = await services.reindex()
            logger.info("Done: %s", result)
        except Exception as e:
            logger.warning("Initial indexing failed, serving keyword search only: %s", e)

    web_app = create_web_app(services)
    mcp_server = create_mcp_server(services)

    servers = [_uvicorn_server(web_app, config.web_port).serve()]
    logger.info("Web API running on http://0.0.0.0:%d", config.web_port)

    logger.info("MCP server starting (%s transport)...", config.transport)
    if config.transport == "sse":
        servers.append(_uvicorn_server(mcp_server.sse_app(), config.sse_port).serve())
    else:
        servers.append(mcp_server.run_stdio_async())

    watcher = CorpusWatcher(services, config.sync_interval)
    watcher.start()
    try:
        await asyncio.gather(*servers)
    finally:
        await watcher.stop()
        await services.aclose()


def main():
    config = Config.load()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(_serve(config))


if __name__ == "__main__":
    main()
