"""Provider-neutral conversation model shared by the adapters and the loop.

Every adapter translates to and from these types; nothing outside
prometheus_mars.llm sees a vendor wire format.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Union


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class StopReason(StrEnum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"


@dataclass(frozen=True)
class TextBlock:
    text: str
    type: str = field(default="text", init=False)


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    # Set when the vendor sent arguments we could not decode
    input_error: str | None = None
    type: str = field(default="tool_use", init=False)


@dataclass(frozen=True)
class ToolResultBlock:
    """Answer to exactly one ToolUseBlock, matched by tool_use_id."""

    tool_use_id: str
    content: str
    is_error: bool = False
    type: str = field(default="tool_result", init=False)


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


@dataclass
class Message:
    """A single turn in a conversation."""

    role: Role
    content: str | list[ContentBlock]

    def blocks(self) -> list[ContentBlock]:
        """Content as a block list (plain text becomes one TextBlock)."""
        if isinstance(self.content, str):
            return [TextBlock(self.content)]
        return list(self.content)


@dataclass
class Conversation:
    """Ordered turns that strictly alternate, starting with a user turn."""

    messages: list[Message] = field(default_factory=list)

    @classmethod
    def start(cls, user_prompt: str) -> Conversation:
        conversation = cls()
        conversation.append(Message(Role.USER, user_prompt))
        return conversation

    def append(self, message: Message) -> None:
        expected = Role.USER if not self.messages or self.messages[-1].role == Role.ASSISTANT else Role.ASSISTANT
        if message.role != expected:
            raise ValueError(
                f"Conversation must alternate roles: expected {expected}, got {message.role}"
            )
        self.messages.append(message)

    def last_assistant(self) -> Message | None:
        for message in reversed(self.messages):
            if message.role == Role.ASSISTANT:
                return message
        return None

    def __len__(self) -> int:
        return len(self.messages)


@dataclass(frozen=True)
class ToolDefinition:
    """Advertised tool capability: name, description, JSON-schema input."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class Completion:
    """Result of a single-turn, tool-less call."""

    content: str
    provider: str
    model: str
    tokens_used: int | None = None


@dataclass
class ToolCompletion:
    """Result of a tool-capable call, already normalized."""

    content: list[ContentBlock]
    stop_reason: StopReason
    tokens_used: int | None = None

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def text(self) -> str:
        return extract_text(self.content)


def extract_text(blocks: list[ContentBlock]) -> str:
    """Join text blocks in order with newlines."""
    return "\n".join(b.text for b in blocks if isinstance(b, TextBlock))
