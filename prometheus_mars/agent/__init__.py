"""Agent module -- the agentic tool-calling loop.

Public API:
    AgentLoop       - Drives model turns and tool dispatch to a final answer
    LoopConfig      - Turn budget (default 25)
    LoopResult      - Final text, terminal state, counters, conversation
    LoopState       - AWAITING_MODEL / EXECUTING_TOOLS / DONE / BUDGET_EXHAUSTED
    LoopObserver    - Observer protocol (on_turn_start/on_tool_call/on_tool_result)
    LoggingObserver - Default observer writing to the module logger
"""

from prometheus_mars.agent.loop import (
    BUDGET_WARNING,
    NO_ANSWER_FALLBACK,
    AgentLoop,
    LoggingObserver,
    LoopConfig,
    LoopObserver,
    LoopResult,
    LoopState,
)

__all__ = [
    "AgentLoop",
    "BUDGET_WARNING",
    "LoggingObserver",
    "LoopConfig",
    "LoopObserver",
    "LoopResult",
    "LoopState",
    "NO_ANSWER_FALLBACK",
]
