# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Shared async JSON-over-HTTP client for hosted providers.

Retries transport errors, 429 and 5xx responses with exponential backoff;
anything else (and the last failed attempt) becomes a ProviderError.
"""
import logging
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from .providers import ProviderError

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return False


class JsonApiClient:
    def __init__(
        self,
        provider: str,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def post_json(self, path: str, body: dict) -> Any:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=0.5, max=8),
                retry=retry_if_exception(_is_retryable),
                reraise=True,
            ):
                with attempt:
                    response = await self.client.post(path, json=body)
                    response.raise_for_status()
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            raise ProviderError(
                f"{self.provider} {path} failed: {code} {e.response.text[:200]}",
                self.provider, status_code=code,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.provider} {path} failed: {e}", self.provider) from e

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.provider} returned invalid JSON", self.provider) from e

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
