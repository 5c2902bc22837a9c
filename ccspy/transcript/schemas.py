"""Pydantic DTOs for transcript records and analysis results.

Message content is normalized on the way in: a bare string becomes a single
TextBlock, and unknown block types are dropped by the reader, so consumers
only ever see the four block types below.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class AnalysisKind(StrEnum):
    ARCHER_SUMMARY = "archer-summary"
    SECURITY = "security"


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str | None = None
    name: str = "unknown"
    input: Any = None


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str | None = None
    content: Any = None
    is_error: bool = False


class ThinkingBlock(BaseModel):
    type: Literal["thinking"] = "thinking"
    thinking: str = ""


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock, ThinkingBlock],
    Field(discriminator="type"),
]

KNOWN_BLOCK_TYPES = frozenset({"text", "tool_use", "tool_result", "thinking"})


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class Message(BaseModel):
    """One user or assistant record from a session file."""

    role: Literal["user", "assistant"]
    timestamp: datetime | None = None
    content: list[ContentBlock] = Field(default_factory=list)
    uuid: str | None = None
    model: str | None = None

    @property
    def text(self) -> str:
        """All text blocks joined with newlines."""
        return "\n".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def first_text(self) -> str:
        for block in self.content:
            if isinstance(block, TextBlock):
                return block.text
        return ""

    @property
    def is_tool_result(self) -> bool:
        """True for user turns that only carry tool output back to the assistant."""
        return bool(self.content) and isinstance(self.content[0], ToolResultBlock)

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]


# ---------------------------------------------------------------------------
# Analysis DTOs
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    name: str
    input: Any = None


class Interaction(BaseModel):
    """One user turn plus the assistant turns that answer it."""

    user_text: str
    assistant_text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    text: str
    tokens_used: int = 0
    model: str
    kind: AnalysisKind = AnalysisKind.ARCHER_SUMMARY
