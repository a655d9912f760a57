"""LLM module -- provider-agnostic adapters for the agentic loop.

Public API:
    create_llm_adapter - Factory selecting an adapter by provider tag
    LLMProvider        - Closed set of supported vendor tags
    LLMAdapter         - Interface: complete() / complete_with_tools()

Errors:
    LLMError, ProviderHTTPError, MalformedResponseError
"""

from __future__ import annotations

import logging
from enum import StrEnum

import httpx

from prometheus_mars.llm.anthropic import AnthropicAdapter
from prometheus_mars.llm.base import LLMAdapter, LLMError, MalformedResponseError, ProviderHTTPError
from prometheus_mars.llm.google import GoogleAdapter
from prometheus_mars.llm.openai import OpenAIAdapter
from prometheus_mars.llm.placeholder import PLACEHOLDER_TEXT, PlaceholderAdapter

logger = logging.getLogger(__name__)


class LLMProvider(StrEnum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"


_ADAPTERS: dict[LLMProvider, type[LLMAdapter]] = {
    LLMProvider.ANTHROPIC: AnthropicAdapter,
    LLMProvider.OPENAI: OpenAIAdapter,
    LLMProvider.GOOGLE: GoogleAdapter,
}


def create_llm_adapter(
    provider: str,
    api_key: str,
    model: str,
    *,
    max_tokens: int = 4096,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
    timeout: httpx.Timeout | None = None,
) -> LLMAdapter:
    """Create the adapter for `provider`.

    Falls back to PlaceholderAdapter (with a warning) when no API key is
    supplied or the provider tag is unknown.
    """
    if not api_key:
        logger.warning("No LLM_API_KEY set -- using placeholder adapter")
        return PlaceholderAdapter()

    try:
        tag = LLMProvider(provider.strip().lower())
    except ValueError:
        logger.warning('Unknown LLM provider "%s" -- using placeholder adapter', provider)
        return PlaceholderAdapter()

    return _ADAPTERS[tag](
        api_key,
        model,
        max_tokens=max_tokens,
        base_url=base_url or None,
        http_client=http_client,
        timeout=timeout,
    )


__all__ = [
    "AnthropicAdapter",
    "GoogleAdapter",
    "LLMAdapter",
    "LLMError",
    "LLMProvider",
    "MalformedResponseError",
    "OpenAIAdapter",
    "PLACEHOLDER_TEXT",
    "PlaceholderAdapter",
    "ProviderHTTPError",
    "create_llm_adapter",
]
