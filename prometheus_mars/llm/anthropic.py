"""Anthropic Messages API adapter.

Wire notes:
- system prompt is a top-level field, not a message
- tool invocations arrive as tool_use content blocks
- tool results go back as tool_result blocks inside a user message
"""

from __future__ import annotations

import logging
from typing import Any

from prometheus_mars.llm.base import LLMAdapter, MalformedResponseError, usage_total
from prometheus_mars.llm.schemas import (
    Completion,
    ContentBlock,
    Conversation,
    StopReason,
    TextBlock,
    ToolCompletion,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
    extract_text,
)

logger = logging.getLogger(__name__)

_API_VERSION = "2023-06-01"

_STOP_REASONS = {
    "tool_use": StopReason.TOOL_USE,
    "max_tokens": StopReason.MAX_TOKENS,
}


class AnthropicAdapter(LLMAdapter):
    provider = "anthropic"
    default_base_url = "https://api.anthropic.com"

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": _API_VERSION,
            "content-type": "application/json",
        }

    def build_payload(
        self,
        system_prompt: str,
        conversation: Conversation,
        tools: list[ToolDefinition] | None = None,
    ) -> dict[str, Any]:
        """Build the Messages API request body."""
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": [
                {"role": str(m.role), "content": _encode_content(m.content)}
                for m in conversation.messages
            ],
        }
        if tools:
            payload["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.input_schema}
                for t in tools
            ]
        return payload

    async def complete(self, system_prompt: str, user_prompt: str) -> Completion:
        payload = self.build_payload(system_prompt, Conversation.start(user_prompt))
        data = await self._post_json(f"{self.base_url}/v1/messages", payload, self._headers())
        blocks, _ = _parse_response(data)
        # Single-turn answers concatenate without separators
        text = "".join(b.text for b in blocks if isinstance(b, TextBlock))
        return Completion(
            content=text,
            provider=self.provider,
            model=self.model,
            tokens_used=_usage(data),
        )

    async def complete_with_tools(
        self,
        system_prompt: str,
        conversation: Conversation,
        tools: list[ToolDefinition],
    ) -> ToolCompletion:
        payload = self.build_payload(system_prompt, conversation, tools)
        data = await self._post_json(f"{self.base_url}/v1/messages", payload, self._headers())
        blocks, raw_stop = _parse_response(data)

        if any(isinstance(b, ToolUseBlock) for b in blocks):
            stop_reason = StopReason.TOOL_USE
        else:
            stop_reason = _STOP_REASONS.get(raw_stop or "", StopReason.END_TURN)

        logger.debug(
            "anthropic: stop_reason=%s blocks=%d text_chars=%d",
            raw_stop, len(blocks), len(extract_text(blocks)),
        )
        return ToolCompletion(content=blocks, stop_reason=stop_reason, tokens_used=_usage(data))


def _encode_content(content: str | list[ContentBlock]) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content
    encoded: list[dict[str, Any]] = []
    for block in content:
        if isinstance(block, TextBlock):
            encoded.append({"type": "text", "text": block.text})
        elif isinstance(block, ToolUseBlock):
            encoded.append({"type": "tool_use", "id": block.id, "name": block.name, "input": block.input})
        elif isinstance(block, ToolResultBlock):
            encoded.append({
                "type": "tool_result",
                "tool_use_id": block.tool_use_id,
                "content": block.content,
                "is_error": block.is_error,
            })
    return encoded


def _parse_response(data: dict[str, Any]) -> tuple[list[ContentBlock], str | None]:
    content = data.get("content")
    if not isinstance(content, list):
        raise MalformedResponseError("anthropic response has no 'content' list")

    blocks: list[ContentBlock] = []
    for raw in content:
        block_type = raw.get("type") if isinstance(raw, dict) else None
        if block_type == "text":
            blocks.append(TextBlock(str(raw.get("text", ""))))
        elif block_type == "tool_use":
            if "id" not in raw or "name" not in raw:
                raise MalformedResponseError("anthropic tool_use block missing id or name")
            tool_input = raw.get("input") or {}
            if not isinstance(tool_input, dict):
                blocks.append(ToolUseBlock(
                    id=raw["id"], name=raw["name"],
                    input_error=f"expected an object, got {type(tool_input).__name__}",
                ))
            else:
                blocks.append(ToolUseBlock(id=raw["id"], name=raw["name"], input=tool_input))
        # thinking / redacted blocks are not part of the neutral model

    return blocks, data.get("stop_reason")


def _usage(data: dict[str, Any]) -> int | None:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return None
    return usage_total(usage.get("input_tokens"), usage.get("output_tokens"))
