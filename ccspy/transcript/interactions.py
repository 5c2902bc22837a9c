"""Reduce a conversation to analysis input.

Token counts here are a character heuristic (~4 chars per token over
assistant text), not a real tokenizer. The watch engine only compares the
estimate against itself, so consistency matters more than accuracy.
"""

from __future__ import annotations

import json
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ccspy.transcript.schemas import Interaction, Message, TextBlock, ToolCall

CHARS_PER_TOKEN = 4


def estimate_tokens(messages: Iterable[Message]) -> int:
    """Estimated tokens across all assistant text blocks."""
    total = 0
    for msg in messages:
        if msg.role != "assistant":
            continue
        for block in msg.content:
            if isinstance(block, TextBlock):
                total += math.ceil(len(block.text) / CHARS_PER_TOKEN)
    return total


def extract_interactions(
    messages: Sequence[Message],
    start_index: int = 0,
    limit: int = 10,
) -> list[Interaction]:
    """Group messages into user-turn interactions and keep the last ``limit``.

    Tool-result user turns do not open a new interaction; assistant turns
    that arrive before any user turn have nothing to attach to and are dropped.
    """
    interactions: list[Interaction] = []
    current: Interaction | None = None

    for msg in messages[start_index:]:
        if msg.role == "user":
            if msg.is_tool_result:
                continue
            if current is not None:
                interactions.append(current)
            current = Interaction(user_text=msg.first_text)
        elif current is not None:
            for block in msg.content:
                if isinstance(block, TextBlock):
                    current.assistant_text += block.text + "\n"
            current.tool_calls.extend(
                ToolCall(name=use.name, input=use.input) for use in msg.tool_uses
            )

    if current is not None:
        interactions.append(current)

    if limit <= 0:
        return []
    return interactions[-limit:]


def format_for_llm(interactions: Sequence[Interaction]) -> str:
    """Render interactions as the markdown block sent to the analysis model."""
    sections = []
    for idx, interaction in enumerate(interactions, start=1):
        text = f"\n## Interaction {idx}\n\n"
        text += f"**User Input:**\n{interaction.user_text}\n\n"
        if interaction.tool_calls:
            text += "**Tools Used:**\n"
            for call in interaction.tool_calls:
                text += f"- {call.name}: {json.dumps(call.input, indent=2, default=str)}\n"
            text += "\n"
        text += f"**Claude's Response:**\n{interaction.assistant_text}\n"
        sections.append(text)
    return "\n---\n".join(sections)


@dataclass
class ToolStats:
    """Tool usage counts over a span of messages."""

    counts: Counter = field(default_factory=Counter)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def summary(self) -> str:
        if not self.counts:
            return "none"
        return ", ".join(f"{name}({count})" for name, count in self.counts.items())


def tool_stats(messages: Iterable[Message]) -> ToolStats:
    stats = ToolStats()
    for msg in messages:
        if msg.role == "assistant":
            for use in msg.tool_uses:
                stats.counts[use.name or "unknown"] += 1
    return stats
