"""Agentic loop -- drives a multi-turn tool-calling conversation.

State machine:

    AWAITING_MODEL --(invocations present)--> EXECUTING_TOOLS --> AWAITING_MODEL
    AWAITING_MODEL --(no invocations)-------> DONE
    any ------------(max_turns model calls)-> BUDGET_EXHAUSTED

The presence of tool_use blocks decides the EXECUTING_TOOLS transition,
whatever stop-reason label the adapter reported. Tool failures are folded
into the conversation as error results; only adapter errors (LLMError)
escape run().
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from prometheus_mars.llm.base import LLMAdapter
from prometheus_mars.llm.schemas import (
    Conversation,
    Message,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    extract_text,
)
from prometheus_mars.tools.dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 25
BUDGET_WARNING = "\n\n[Warning: Agent reached maximum turns limit]"
NO_ANSWER_FALLBACK = "[Agent reached maximum turns without producing a final answer]"


class LoopState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    BUDGET_EXHAUSTED = "budget_exhausted"


@dataclass(frozen=True)
class LoopConfig:
    max_turns: int = DEFAULT_MAX_TURNS

    def __post_init__(self) -> None:
        if self.max_turns < 1:
            raise ValueError("max_turns must be >= 1")


@dataclass
class LoopResult:
    """Terminal outcome of one loop invocation."""

    text: str
    state: LoopState
    turns: int = 0
    tool_calls: int = 0
    tokens_used: int = 0
    conversation: Conversation = field(default_factory=Conversation)


class LoopObserver(Protocol):
    """Hooks for watching a loop run. Must not raise."""

    def on_turn_start(self, turn: int) -> None: ...

    def on_tool_call(self, invocation: ToolUseBlock) -> None: ...

    def on_tool_result(self, invocation: ToolUseBlock, result: ToolResultBlock) -> None: ...


class LoggingObserver:
    """Default observer: reports progress through the module logger."""

    def on_turn_start(self, turn: int) -> None:
        logger.debug("Agent turn %d", turn)

    def on_tool_call(self, invocation: ToolUseBlock) -> None:
        logger.info("[Tool] %s(%s)", invocation.name, json.dumps(invocation.input, default=str)[:100])

    def on_tool_result(self, invocation: ToolUseBlock, result: ToolResultBlock) -> None:
        preview = result.content[:150] + ("..." if len(result.content) > 150 else "")
        logger.info(
            "[Tool] %s -> %s%s",
            invocation.name, "ERROR: " if result.is_error else "", preview,
        )


class AgentLoop:
    """Runs a task prompt against an LLM adapter, optionally with tools.

    One AgentLoop can serve many run() calls; each call owns its own
    conversation and turn counter.
    """

    def __init__(
        self,
        llm: LLMAdapter,
        config: LoopConfig | None = None,
        observer: LoopObserver | None = None,
    ) -> None:
        self._llm = llm
        self._config = config or LoopConfig()
        self._observer: LoopObserver = observer or LoggingObserver()

    @property
    def config(self) -> LoopConfig:
        return self._config

    async def run(
        self,
        system_prompt: str,
        task_prompt: str,
        dispatcher: ToolDispatcher | None = None,
    ) -> str:
        """Return the final answer for task_prompt.

        Without a dispatcher this is a single complete() call; with one
        (even an empty one) it is the full agentic loop.
        """
        result = await self.run_detailed(system_prompt, task_prompt, dispatcher)
        return result.text

    async def run_detailed(
        self,
        system_prompt: str,
        task_prompt: str,
        dispatcher: ToolDispatcher | None = None,
    ) -> LoopResult:
        if dispatcher is None:
            self._observer.on_turn_start(1)
            completion = await self._llm.complete(system_prompt, task_prompt)
            logger.info(
                "LLM responded (%s/%s%s)",
                completion.provider,
                completion.model,
                f", {completion.tokens_used} tokens" if completion.tokens_used else "",
            )
            conversation = Conversation.start(task_prompt)
            conversation.append(Message(Role.ASSISTANT, completion.content))
            return LoopResult(
                text=completion.content,
                state=LoopState.DONE,
                turns=1,
                tokens_used=completion.tokens_used or 0,
                conversation=conversation,
            )

        return await self._agentic_loop(system_prompt, task_prompt, dispatcher)

    # ------------------------------------------------------------------
    # Tool loop
    # ------------------------------------------------------------------

    async def _agentic_loop(
        self,
        system_prompt: str,
        task_prompt: str,
        dispatcher: ToolDispatcher,
    ) -> LoopResult:
        tools = dispatcher.tool_definitions()
        conversation = Conversation.start(task_prompt)
        state = LoopState.AWAITING_MODEL
        total_tokens = 0
        tool_calls = 0
        turn = 0

        while turn < self._config.max_turns:
            turn += 1
            self._observer.on_turn_start(turn)

            response = await self._llm.complete_with_tools(system_prompt, conversation, tools)
            total_tokens += response.tokens_used or 0
            conversation.append(Message(Role.ASSISTANT, response.content))

            for block in response.content:
                if isinstance(block, TextBlock) and block.text.strip():
                    logger.debug("[Agent] %s", block.text[:200])

            invocations = response.tool_uses
            if not invocations:
                state = _transition(state, LoopState.DONE)
                logger.info(
                    "Agentic loop completed in %d turn(s), %d tokens (stop_reason=%s)",
                    turn, total_tokens, response.stop_reason,
                )
                return LoopResult(
                    text=response.text,
                    state=state,
                    turns=turn,
                    tool_calls=tool_calls,
                    tokens_used=total_tokens,
                    conversation=conversation,
                )

            # Sequential on purpose: later calls must see earlier side effects
            state = _transition(state, LoopState.EXECUTING_TOOLS)
            results: list[ToolResultBlock] = []
            for invocation in invocations:
                self._observer.on_tool_call(invocation)
                result = await dispatcher.execute(invocation)
                tool_calls += 1
                self._observer.on_tool_result(invocation, result)
                results.append(result)

            conversation.append(Message(Role.USER, list(results)))
            state = _transition(state, LoopState.AWAITING_MODEL)

        state = _transition(state, LoopState.BUDGET_EXHAUSTED)
        logger.warning("Max turns (%d) reached", self._config.max_turns)
        return LoopResult(
            text=_exhausted_answer(conversation),
            state=state,
            turns=turn,
            tool_calls=tool_calls,
            tokens_used=total_tokens,
            conversation=conversation,
        )


def _transition(current: LoopState, new: LoopState) -> LoopState:
    logger.debug("Loop state %s -> %s", current, new)
    return new


def _exhausted_answer(conversation: Conversation) -> str:
    """Best-effort answer: last assistant text plus a warning marker."""
    last = conversation.last_assistant()
    blocks = last.blocks() if last else []
    if any(isinstance(b, TextBlock) for b in blocks):
        return extract_text(blocks) + BUDGET_WARNING
    return NO_ANSWER_FALLBACK
