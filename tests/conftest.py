"""Shared fixtures: settings, scripted LLM stub, mock HTTP transports.

No network and no real vendor keys: adapters are driven through
httpx.MockTransport and the loop through ScriptedLLM.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from prometheus_mars.config import Settings
from prometheus_mars.llm.base import LLMAdapter
from prometheus_mars.llm.schemas import (
    Completion,
    ContentBlock,
    Conversation,
    Message,
    StopReason,
    TextBlock,
    ToolCompletion,
    ToolDefinition,
    ToolUseBlock,
)

# ---------------------------------------------------------------------------
# Scripted adapter
# ---------------------------------------------------------------------------


class ScriptedLLM(LLMAdapter):
    """Replays a fixed list of ToolCompletions, recording every call.

    Each recorded call keeps a snapshot of the conversation as it was
    when the adapter saw it.
    """

    provider = "scripted"

    def __init__(
        self,
        responses: list[ToolCompletion | Exception] | None = None,
        completion: Completion | None = None,
    ) -> None:
        super().__init__(api_key="test", model="scripted-1")
        self._responses = list(responses or [])
        self._completion = completion or Completion(content="plain answer", provider="scripted", model="scripted-1")
        self.calls: list[dict[str, Any]] = []
        self.complete_calls: list[tuple[str, str]] = []

    async def complete(self, system_prompt: str, user_prompt: str) -> Completion:
        self.complete_calls.append((system_prompt, user_prompt))
        return self._completion

    async def complete_with_tools(
        self,
        system_prompt: str,
        conversation: Conversation,
        tools: list[ToolDefinition],
    ) -> ToolCompletion:
        self.calls.append({
            "system": system_prompt,
            "messages": [Message(m.role, m.content if isinstance(m.content, str) else list(m.content))
                         for m in conversation.messages],
            "tools": list(tools),
        })
        if not self._responses:
            raise AssertionError("ScriptedLLM ran out of responses")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def text_turn(text: str, tokens: int | None = None, stop: StopReason = StopReason.END_TURN) -> ToolCompletion:
    return ToolCompletion(content=[TextBlock(text)], stop_reason=stop, tokens_used=tokens)


def tool_turn(
    *calls: tuple[str, str, dict[str, Any]],
    text: str | None = None,
    tokens: int | None = None,
    stop: StopReason = StopReason.TOOL_USE,
) -> ToolCompletion:
    content: list[ContentBlock] = [TextBlock(text)] if text is not None else []
    content.extend(ToolUseBlock(id=call_id, name=name, input=args) for call_id, name, args in calls)
    return ToolCompletion(content=content, stop_reason=stop, tokens_used=tokens)


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request for later assertions."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


def json_responder(body: Any, status_code: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=body)

    return _handler


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        SPACEMARS_API_URL="https://spacemars.test",
        SPACEMARS_API_KEY="mars_test",
        LLM_API_KEY="",
        SKILLS_DIR=str(tmp_path / "skills"),
        workspace_dir=str(tmp_path / "workspace"),
    )
