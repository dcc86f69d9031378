# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""Text generation over any OpenAI-compatible /chat/completions endpoint."""
import logging
from typing import Optional

import httpx

from .http_client import JsonApiClient
from .providers import ProviderError, TextGenProvider

logger = logging.getLogger(__name__)


class OpenAIChatProvider(TextGenProvider):
    name = "openai-chat"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        max_retries: int = 3,
        temperature: float = 0.3,
        default_max_tokens: int = 256,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.default_max_tokens = default_max_tokens
        self.client = JsonApiClient(self.name, base_url, api_key, timeout, max_retries, transport)

    def is_ready(self) -> bool:
        return bool(self.client.api_key)

    async def generate(self, messages: list[dict[str, str]], max_tokens: Optional[int] = None) -> str:
        payload = await self.client.post_json("/chat/completions", {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens or self.default_max_tokens,
            "temperature": self.temperature,
        })
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"unexpected chat completion payload: {e}", self.name) from e
        if not isinstance(content, str):
            raise ProviderError("chat completion content is not text", self.name)
        return content
