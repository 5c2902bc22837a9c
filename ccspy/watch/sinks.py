"""Output sinks for the watch engine.

The engine talks to a DisplaySink for everything the user sees and,
optionally, to a second sink that mirrors the same events into a plain
text log. Both render through the same helpers; the log just truncates
long assistant replies.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, Sequence

from rich.console import Console
from rich.rule import Rule
from rich.status import Status
from rich.text import Text

from ccspy.analysis.prompts import PROMPTS
from ccspy.transcript.schemas import (
    AnalysisResult,
    Message,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)

RULE = "━" * 60  # plain-text log separator

ROLE_STYLES = {
    "user": "bold green",
    "assistant": "bold magenta",
    "tool": "yellow",
}

_TOOL_RESULT_MAX_LINES = 20


class DisplaySink(Protocol):
    """Where the engine sends user-facing output."""

    def messages(self, batch: Sequence[Message]) -> None: ...

    def status(self, text: str) -> None: ...

    def progress(self, text: str) -> None: ...

    def analysis(self, result: AnalysisResult) -> None: ...

    def error(self, text: str, hint: str = "") -> None: ...


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _format_tool_result(block: ToolResultBlock) -> str:
    content = block.content
    if content is None:
        return "No result"
    if isinstance(content, list):
        texts = [c.get("text", "") for c in content if isinstance(c, dict) and c.get("type") == "text"]
        if texts:
            content = "\n".join(texts)
    if not isinstance(content, str):
        return json.dumps(content, indent=2, default=str)
    lines = content.split("\n")
    if len(lines) <= _TOOL_RESULT_MAX_LINES:
        return content
    preview = "\n".join(lines[:_TOOL_RESULT_MAX_LINES])
    return f"{preview}\n... ({len(lines) - _TOOL_RESULT_MAX_LINES} more lines)"


def format_assistant(msg: Message) -> str:
    parts = []
    for block in msg.content:
        if isinstance(block, TextBlock):
            parts.append(block.text)
        elif isinstance(block, ToolUseBlock):
            rendered = json.dumps(block.input, indent=2, default=str) if block.input else ""
            indented = "\n".join(f"    {line}" for line in rendered.split("\n")) if rendered else ""
            parts.append(f"[Tool: {block.name}]" + (f"\n{indented}" if indented else ""))
        elif isinstance(block, ThinkingBlock):
            parts.append("[Thinking]")
    return "\n".join(parts) if parts else "No response"


def render_message(msg: Message, max_chars: int | None = None) -> list[str]:
    """Plain-text lines for one message."""
    if msg.role == "user":
        if msg.is_tool_result:
            lines = ["Tool Result:"]
            for block in msg.content:
                if isinstance(block, ToolResultBlock):
                    lines.extend(f"  {line}" for line in _format_tool_result(block).split("\n"))
            return lines
        when = msg.timestamp.strftime("%H:%M:%S") if msg.timestamp else "unknown time"
        return [f"User ({when}):", *(f"  {line}" for line in msg.first_text.split("\n"))]

    body = format_assistant(msg)
    if max_chars is not None and len(body) > max_chars:
        body = body[:max_chars] + "..."
    return ["Claude:", *(f"  {line}" for line in body.split("\n"))]


def render_analysis(result: AnalysisResult) -> list[str]:
    title = PROMPTS[result.kind].title
    lines = [title, ""]
    paragraphs = result.text.split("\n\n")
    for idx, para in enumerate(paragraphs):
        lines.extend(line for line in para.split("\n") if line.strip())
        if idx < len(paragraphs) - 1:
            lines.append("")
    lines.append("")
    lines.append(f"Model: {result.model} | Tokens: {result.tokens_used}")
    return lines


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class ConsoleDisplay:
    """Terminal output through a rich Console.

    The idle countdown is a transient ``Console.status`` line. Any other
    output stops it first, so it never interleaves with messages.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)
        self._countdown: Status | None = None

    def _stop_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.stop()
            self._countdown = None

    def _print(self, *lines: str, style: str = "") -> None:
        self._stop_countdown()
        for line in lines:
            # Text, not str: tool names like "[Tool: Bash]" are not markup
            self.console.print(Text(line, style=style))

    def messages(self, batch: Sequence[Message]) -> None:
        self._stop_countdown()
        self.console.print(Rule(Text("New message(s) received!")))
        for msg in batch:
            header, *body = render_message(msg)
            role = "tool" if msg.is_tool_result else msg.role
            self.console.print()
            self._print(header, style=ROLE_STYLES[role])
            self._print(*body)

    def status(self, text: str) -> None:
        self._print(text)

    def progress(self, text: str) -> None:
        if self._countdown is None:
            self._countdown = self.console.status(Text(text))
            self._countdown.start()
        else:
            self._countdown.update(Text(text))

    def analysis(self, result: AnalysisResult) -> None:
        self._stop_countdown()
        title, _, *body = render_analysis(result)
        self.console.print(Rule(Text(title, style="bold cyan")))
        self._print(*body)
        self.console.print(Rule())

    def error(self, text: str, hint: str = "") -> None:
        self._print(f"Error: {text}", style="bold red")
        if hint:
            self._print(f"  {hint}", style="yellow")

    def close(self) -> None:
        self._stop_countdown()


class TextLogSink:
    """Append-only plain text log of a watch session.

    Write failures are logged and otherwise ignored so a full disk or a
    removed directory never stops the watch loop.
    """

    ASSISTANT_MAX_CHARS = 500

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        started = datetime.now(UTC).isoformat()
        try:
            self.path.write_text(f"# Claude Code Spy Watch Log\n\nStarted: {started}\n\n", encoding="utf-8")
        except OSError as e:
            logger.warning("Could not initialize log file %s: %s", self.path, e)

    def write(self, *lines: str) -> None:
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                for line in lines:
                    fh.write(line + "\n")
        except OSError as e:
            logger.warning("Error writing to log file %s: %s", self.path, e)

    def messages(self, batch: Sequence[Message]) -> None:
        self.write(RULE, "New message(s) received!", "")
        for msg in batch:
            self.write(*render_message(msg, max_chars=self.ASSISTANT_MAX_CHARS), "")

    def status(self, text: str) -> None:
        self.write(text)

    def progress(self, text: str) -> None:
        pass  # countdowns are terminal-only

    def analysis(self, result: AnalysisResult) -> None:
        self.write(f"## {PROMPTS[result.kind].title}", "", *render_analysis(result)[2:], "")

    def error(self, text: str, hint: str = "") -> None:
        self.write(f"Error: {text}" + (f" ({hint})" if hint else ""))
