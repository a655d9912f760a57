"""Placeholder adapter used when no LLM credential is configured.

Honours the same contract as the real adapters (text + end_turn) so the
worker, loop, and tests run end-to-end without network access.
"""

from __future__ import annotations

import logging

from prometheus_mars.llm.base import LLMAdapter
from prometheus_mars.llm.schemas import (
    Completion,
    Conversation,
    StopReason,
    TextBlock,
    ToolCompletion,
    ToolDefinition,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "[LLM response placeholder -- configure LLM_API_KEY to enable]"


class PlaceholderAdapter(LLMAdapter):
    provider = "placeholder"

    def __init__(self) -> None:
        super().__init__(api_key="", model="none")

    async def complete(self, system_prompt: str, user_prompt: str) -> Completion:
        logger.info("[LLM placeholder] system: %s ...", system_prompt[:120])
        logger.info("[LLM placeholder] user: %s ...", user_prompt[:120])
        return Completion(content=PLACEHOLDER_TEXT, provider=self.provider, model=self.model)

    async def complete_with_tools(
        self,
        system_prompt: str,
        conversation: Conversation,
        tools: list[ToolDefinition],
    ) -> ToolCompletion:
        logger.info(
            "[LLM placeholder] %d message(s), %d tool(s) advertised",
            len(conversation), len(tools),
        )
        return ToolCompletion(content=[TextBlock(PLACEHOLDER_TEXT)], stop_reason=StopReason.END_TURN)
