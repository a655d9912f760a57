"""Google Gemini generateContent adapter.

Wire notes:
- system prompt goes in systemInstruction
- roles are "user" and "model"
- invocations are functionCall parts, results are functionResponse parts
  keyed by tool *name*, so we recover the name from the invocation id
- older models do not return call ids; we synthesize stable ones
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from prometheus_mars.llm.base import LLMAdapter, MalformedResponseError
from prometheus_mars.llm.schemas import (
    Completion,
    ContentBlock,
    Conversation,
    Role,
    StopReason,
    TextBlock,
    ToolCompletion,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)

# JSON-schema keys accepted by Gemini function declarations
_SCHEMA_KEYS = frozenset({"type", "description", "properties", "required", "enum", "items", "nullable", "format"})


class GoogleAdapter(LLMAdapter):
    provider = "google"
    default_base_url = "https://generativelanguage.googleapis.com"

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key, "content-type": "application/json"}

    def _url(self) -> str:
        return f"{self.base_url}/v1beta/models/{self.model}:generateContent"

    def build_payload(
        self,
        system_prompt: str,
        conversation: Conversation,
        tools: list[ToolDefinition] | None = None,
    ) -> dict[str, Any]:
        """Build the generateContent request body."""
        names_by_id: dict[str, str] = {}
        contents: list[dict[str, Any]] = []
        for message in conversation.messages:
            parts: list[dict[str, Any]] = []
            for block in message.blocks():
                if isinstance(block, TextBlock):
                    parts.append({"text": block.text})
                elif isinstance(block, ToolUseBlock):
                    names_by_id[block.id] = block.name
                    parts.append({"functionCall": {"name": block.name, "args": block.input}})
                elif isinstance(block, ToolResultBlock):
                    name = names_by_id.get(block.tool_use_id)
                    if name is None:
                        raise ValueError(f"tool result {block.tool_use_id!r} has no matching invocation")
                    response_key = "error" if block.is_error else "result"
                    parts.append({
                        "functionResponse": {"name": name, "response": {response_key: block.content}},
                    })
            contents.append({
                "role": "model" if message.role == Role.ASSISTANT else "user",
                "parts": parts,
            })

        payload: dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": contents,
            "generationConfig": {"maxOutputTokens": self.max_tokens},
        }
        if tools:
            payload["tools"] = [{
                "functionDeclarations": [
                    {
                        "name": t.name,
                        "description": t.description,
                        "parameters": _gemini_schema(t.input_schema),
                    }
                    for t in tools
                ],
            }]
        return payload

    async def complete(self, system_prompt: str, user_prompt: str) -> Completion:
        payload = self.build_payload(system_prompt, Conversation.start(user_prompt))
        data = await self._post_json(self._url(), payload, self._headers())
        parts, _ = _first_candidate(data)
        text = "".join(p["text"] for p in parts if isinstance(p.get("text"), str))
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
        data = await self._post_json(self._url(), payload, self._headers())
        parts, finish_reason = _first_candidate(data)

        blocks: list[ContentBlock] = []
        for index, part in enumerate(parts):
            if isinstance(part.get("text"), str):
                if part.get("thought"):
                    continue
                blocks.append(TextBlock(part["text"]))
            elif isinstance(part.get("functionCall"), dict):
                blocks.append(_decode_function_call(part["functionCall"], index))

        if any(isinstance(b, ToolUseBlock) for b in blocks):
            stop_reason = StopReason.TOOL_USE
        elif finish_reason == "MAX_TOKENS":
            stop_reason = StopReason.MAX_TOKENS
        else:
            stop_reason = StopReason.END_TURN

        logger.debug("google: finishReason=%s blocks=%d", finish_reason, len(blocks))
        return ToolCompletion(content=blocks, stop_reason=stop_reason, tokens_used=_usage(data))


def _decode_function_call(call: dict[str, Any], index: int) -> ToolUseBlock:
    name = call.get("name")
    if not name:
        raise MalformedResponseError("google functionCall has no name")
    call_id = call.get("id") or f"call_{index}_{uuid.uuid4().hex[:12]}"
    args = call.get("args") or {}
    if not isinstance(args, dict):
        return ToolUseBlock(id=call_id, name=name, input_error="args must be an object")
    return ToolUseBlock(id=call_id, name=name, input=args)


def _first_candidate(data: dict[str, Any]) -> tuple[list[dict[str, Any]], str | None]:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        detail = f" (blockReason={block_reason})" if block_reason else ""
        raise MalformedResponseError(f"google response has no candidates{detail}")
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        raise MalformedResponseError("google candidate is not an object")
    finish_reason = candidate.get("finishReason")
    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not parts:
        # A candidate stopped for SAFETY or RECITATION carries no content
        raise MalformedResponseError(f"google candidate has no content parts (finishReason={finish_reason})")
    if not isinstance(parts, list):
        raise MalformedResponseError("google candidate parts is not a list")
    return [p for p in parts if isinstance(p, dict)], finish_reason


def _gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Reduce a JSON schema to the subset Gemini accepts."""
    out: dict[str, Any] = {k: v for k, v in schema.items() if k in _SCHEMA_KEYS}
    if isinstance(out.get("properties"), dict):
        out["properties"] = {
            name: _gemini_schema(prop) for name, prop in out["properties"].items() if isinstance(prop, dict)
        }
    if isinstance(out.get("items"), dict):
        out["items"] = _gemini_schema(out["items"])
    return out


def _usage(data: dict[str, Any]) -> int | None:
    metadata = data.get("usageMetadata")
    if isinstance(metadata, dict) and isinstance(metadata.get("totalTokenCount"), int):
        return metadata["totalTokenCount"]
    return None
