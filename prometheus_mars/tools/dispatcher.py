"""Tool contract and dispatcher for the agentic loop.

Provides:
- Tool: a ToolDefinition plus an async handler taking **kwargs -> str
- ToolError: raise from a handler for an expected, reportable failure
- ToolDispatcher: registers tools, advertises definitions, executes calls

Execution never raises for ordinary failures: unknown names, bad
arguments, and handler exceptions all come back as error-flagged
ToolResultBlocks so the model can see them and try again.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from prometheus_mars.llm.schemas import ToolDefinition, ToolResultBlock, ToolUseBlock

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Awaitable[str]]


class ToolError(Exception):
    """Expected tool failure; its message is shown to the model."""


@dataclass(frozen=True)
class Tool:
    definition: ToolDefinition
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.definition.name


def make_tool(
    name: str,
    description: str,
    properties: dict[str, Any],
    required: list[str],
    handler: ToolHandler,
) -> Tool:
    """Build a Tool with an object-typed input schema."""
    schema: dict[str, Any] = {"type": "object", "properties": properties, "required": required}
    return Tool(ToolDefinition(name=name, description=description, input_schema=schema), handler)


# ---------------------------------------------------------------------------
# ToolDispatcher
# ---------------------------------------------------------------------------


class ToolDispatcher:
    """Registry of tools keyed by name, plus uniform execution.

    Assembled once at startup and then only read, so it is safe to share
    between concurrent loop invocations.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool. A later registration with the same name wins."""
        if tool.name in self._tools:
            logger.debug("Replacing tool registration: %s", tool.name)
        self._tools[tool.name] = tool

    def tool_definitions(self) -> list[ToolDefinition]:
        """Return all tool definitions in registration order."""
        return [tool.definition for tool in self._tools.values()]

    def tool_names(self) -> list[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, invocation: ToolUseBlock) -> ToolResultBlock:
        """Run one invocation and wrap the outcome as a ToolResultBlock."""
        tool = self._tools.get(invocation.name)
        if tool is None:
            logger.warning("Model requested unknown tool: %s", invocation.name)
            return _error(invocation, f"Unknown tool: {invocation.name}")

        if invocation.input_error:
            return _error(invocation, f"Invalid arguments for {invocation.name}: {invocation.input_error}")

        try:
            output = await tool.handler(**invocation.input)
        except ToolError as e:
            logger.warning("Tool %s failed: %s", invocation.name, e)
            return _error(invocation, f"Error: {e}")
        except TypeError as e:
            # Missing/unexpected kwargs -- the model sent arguments that don't fit
            logger.warning("Tool %s called with bad arguments: %s", invocation.name, e)
            return _error(invocation, f"Invalid arguments for {invocation.name}: {e}")
        except Exception as e:
            logger.exception("Tool dispatch error for %s", invocation.name)
            return _error(invocation, f"Error: {e}")

        return ToolResultBlock(tool_use_id=invocation.id, content=str(output))


def _error(invocation: ToolUseBlock, message: str) -> ToolResultBlock:
    return ToolResultBlock(tool_use_id=invocation.id, content=message, is_error=True)
