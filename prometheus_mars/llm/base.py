"""LLM adapter interface, shared HTTP plumbing, and transport errors.

Adapters make direct httpx calls to each vendor's REST API (no SDKs).
They never retry: a non-2xx status, a timeout, or a response missing the
fields we need is raised as an LLMError and left to the caller.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from prometheus_mars.llm.schemas import Completion, Conversation, ToolCompletion, ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096


class LLMError(RuntimeError):
    """Fatal provider failure -- the conversation cannot continue."""


class ProviderHTTPError(LLMError):
    def __init__(self, provider: str, status_code: int, body: str) -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider} API error {status_code}: {body[:500]}")


class MalformedResponseError(LLMError):
    """Response parsed as JSON but lacks the fields the adapter requires."""


class LLMAdapter(ABC):
    """Uniform interface over one LLM vendor.

    Holds configuration and an optional shared httpx client only; no
    per-conversation state, so one adapter can serve concurrent loops.
    """

    provider: str = ""
    default_base_url: str = ""

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self._http = http_client
        self._owns_http = http_client is None
        self._timeout = timeout or httpx.Timeout(connect=10.0, read=120.0, write=10.0, pool=10.0)

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> Completion:
        """Send a system + user prompt pair and receive a text completion."""

    @abstractmethod
    async def complete_with_tools(
        self,
        system_prompt: str,
        conversation: Conversation,
        tools: list[ToolDefinition],
    ) -> ToolCompletion:
        """Run one model turn over the full conversation with tools advertised."""

    async def aclose(self) -> None:
        """Close the httpx client if this adapter created it."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
            self._owns_http = True
        return self._http

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any]:
        """POST payload and return the decoded JSON body.

        Raises ProviderHTTPError on non-2xx, LLMError on transport
        failure, MalformedResponseError if the body is not a JSON object.
        """
        try:
            response = await self._client().post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise LLMError(f"{self.provider} API request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise LLMError(f"{self.provider} HTTP error: {e}") from e

        if not response.is_success:
            raise ProviderHTTPError(self.provider, response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{self.provider} returned a non-JSON body: {response.text[:200]}"
            ) from e
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{self.provider} returned {type(data).__name__}, expected object")
        return data


def usage_total(*counts: Any) -> int | None:
    """Sum integer token counts, or None if none were reported."""
    values = [c for c in counts if isinstance(c, int)]
    return sum(values) if values else None
