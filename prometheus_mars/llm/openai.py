"""OpenAI Chat Completions adapter.

Wire notes:
- system prompt is the first message with role "system"
- tool invocations are assistant `tool_calls` with JSON-string arguments
- each tool result is its own message with role "tool" and tool_call_id
"""

from __future__ import annotations

import json
import logging
from typing import Any

from prometheus_mars.llm.base import LLMAdapter, MalformedResponseError
from prometheus_mars.llm.schemas import (
    Completion,
    ContentBlock,
    Conversation,
    Message,
    Role,
    StopReason,
    TextBlock,
    ToolCompletion,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)


class OpenAIAdapter(LLMAdapter):
    provider = "openai"
    default_base_url = "https://api.openai.com"

    def _headers(self) -> dict[str, str]:
        return {
            "authorization": f"Bearer {self.api_key}",
            "content-type": "application/json",
        }

    def build_payload(
        self,
        system_prompt: str,
        conversation: Conversation,
        tools: list[ToolDefinition] | None = None,
    ) -> dict[str, Any]:
        """Build the Chat Completions request body."""
        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for message in conversation.messages:
            messages.extend(_encode_message(message))

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.input_schema,
                    },
                }
                for t in tools
            ]
        return payload

    async def complete(self, system_prompt: str, user_prompt: str) -> Completion:
        payload = self.build_payload(system_prompt, Conversation.start(user_prompt))
        data = await self._post_json(f"{self.base_url}/v1/chat/completions", payload, self._headers())
        message, _ = _first_choice(data)
        return Completion(
            content=message.get("content") or "",
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
        data = await self._post_json(f"{self.base_url}/v1/chat/completions", payload, self._headers())
        message, finish_reason = _first_choice(data)

        blocks: list[ContentBlock] = []
        if message.get("content"):
            blocks.append(TextBlock(message["content"]))
        for call in message.get("tool_calls") or []:
            blocks.append(_decode_tool_call(call))

        # Pending tool calls win over whatever finish_reason says
        if any(isinstance(b, ToolUseBlock) for b in blocks):
            stop_reason = StopReason.TOOL_USE
        elif finish_reason == "length":
            stop_reason = StopReason.MAX_TOKENS
        else:
            stop_reason = StopReason.END_TURN

        logger.debug("openai: finish_reason=%s blocks=%d", finish_reason, len(blocks))
        return ToolCompletion(content=blocks, stop_reason=stop_reason, tokens_used=_usage(data))


def _encode_message(message: Message) -> list[dict[str, Any]]:
    """Translate one neutral turn into one or more OpenAI messages."""
    if isinstance(message.content, str):
        return [{"role": str(message.role), "content": message.content}]

    texts = [b.text for b in message.content if isinstance(b, TextBlock)]
    tool_uses = [b for b in message.content if isinstance(b, ToolUseBlock)]
    results = [b for b in message.content if isinstance(b, ToolResultBlock)]

    if message.role == Role.ASSISTANT:
        encoded: dict[str, Any] = {
            "role": "assistant",
            "content": "\n".join(texts) if texts else None,
        }
        if tool_uses:
            encoded["tool_calls"] = [
                {
                    "id": b.id,
                    "type": "function",
                    "function": {"name": b.name, "arguments": json.dumps(b.input)},
                }
                for b in tool_uses
            ]
        return [encoded]

    out: list[dict[str, Any]] = [
        {"role": "tool", "tool_call_id": r.tool_use_id, "content": r.content}
        for r in results
    ]
    if texts:
        out.append({"role": "user", "content": "\n".join(texts)})
    return out


def _decode_tool_call(call: Any) -> ToolUseBlock:
    if not isinstance(call, dict) or "id" not in call or not isinstance(call.get("function"), dict):
        raise MalformedResponseError("openai tool_call missing id or function")
    function = call["function"]
    name = function.get("name")
    if not name:
        raise MalformedResponseError("openai tool_call function has no name")

    raw_args = function.get("arguments") or "{}"
    try:
        args = json.loads(raw_args)
    except json.JSONDecodeError as e:
        return ToolUseBlock(id=call["id"], name=name, input_error=f"arguments are not valid JSON ({e})")
    if not isinstance(args, dict):
        return ToolUseBlock(id=call["id"], name=name, input_error="arguments must be a JSON object")
    return ToolUseBlock(id=call["id"], name=name, input=args)


def _first_choice(data: dict[str, Any]) -> tuple[dict[str, Any], str | None]:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise MalformedResponseError("openai response has no choices")
    choice = choices[0]
    message = choice.get("message") if isinstance(choice, dict) else None
    if not isinstance(message, dict):
        raise MalformedResponseError("openai choice has no message")
    if message.get("content") is None and not message.get("tool_calls"):
        raise MalformedResponseError(
            f"openai message has neither content nor tool_calls (finish_reason={choice.get('finish_reason')})"
        )
    return message, choice.get("finish_reason")


def _usage(data: dict[str, Any]) -> int | None:
    usage = data.get("usage")
    if isinstance(usage, dict) and isinstance(usage.get("total_tokens"), int):
        return usage["total_tokens"]
    return None
