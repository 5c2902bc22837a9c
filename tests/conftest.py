"""Shared builders and fakes for ccspy tests. No network, no real home dir."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Sequence

from ccspy.errors import FileTransientError
from ccspy.transcript.schemas import (
    AnalysisKind,
    AnalysisResult,
    Interaction,
    Message,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

# ---------------------------------------------------------------------------
# Raw JSONL records (what the assistant writes to disk)
# ---------------------------------------------------------------------------


def user_record(text: str, timestamp: str = "2026-01-01T10:00:00.000Z") -> dict[str, Any]:
    return {
        "type": "user",
        "timestamp": timestamp,
        "message": {"role": "user", "content": text},
    }


def assistant_record(
    text: str = "",
    tools: list[tuple[str, dict]] | None = None,
    timestamp: str = "2026-01-01T10:00:05.000Z",
) -> dict[str, Any]:
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    for name, tool_input in tools or []:
        content.append({"type": "tool_use", "id": f"toolu_{name}", "name": name, "input": tool_input})
    return {
        "type": "assistant",
        "timestamp": timestamp,
        "message": {"role": "assistant", "model": "claude-sonnet-4-5", "content": content},
    }


def tool_result_record(output: str) -> dict[str, Any]:
    return {
        "type": "user",
        "timestamp": "2026-01-01T10:00:06.000Z",
        "message": {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "toolu_x", "content": output}],
        },
    }


def write_jsonl(path: Path, records: Sequence[dict[str, Any]], trailing: str = "") -> Path:
    lines = [json.dumps(r) for r in records]
    path.write_text("\n".join(lines) + ("\n" if lines else "") + trailing, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Parsed messages
# ---------------------------------------------------------------------------


def user_msg(text: str) -> Message:
    return Message(role="user", content=[TextBlock(text=text)])


def assistant_msg(text: str, tools: list[str] | None = None) -> Message:
    content: list = [TextBlock(text=text)] if text else []
    content.extend(ToolUseBlock(name=name, input={"arg": 1}) for name in tools or [])
    return Message(role="assistant", content=content)


def tool_result_msg(output: str) -> Message:
    return Message(role="user", content=[ToolResultBlock(content=output)])


# ---------------------------------------------------------------------------
# Engine collaborators
# ---------------------------------------------------------------------------


class FakeReader:
    """In-memory transcript. Tests mutate ``conversation`` between ticks."""

    def __init__(self, conversation: Sequence[Message] | None = None) -> None:
        self.conversation: list[Message] = list(conversation or [])
        self.fail = False
        self.reads = 0

    def read(self, path) -> list[Message]:
        self.reads += 1
        if self.fail:
            raise FileTransientError("file is mid-write")
        return list(self.conversation)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeAnalyzer:
    """Records calls; optionally blocks on a gate or fails."""

    def __init__(
        self,
        text: str = "Intent Summary: refactor the parser.",
        gate: asyncio.Event | None = None,
        errors: list[Exception] | None = None,
    ) -> None:
        self.text = text
        self.gate = gate
        self.errors = list(errors or [])
        self.calls: list[tuple[list[Interaction], AnalysisKind]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def analyze(self, interactions, kind) -> AnalysisResult:
        self.calls.append((list(interactions), kind))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.errors:
                raise self.errors.pop(0)
            return AnalysisResult(text=self.text, tokens_used=321, model="gpt-4o-mini", kind=kind)
        finally:
            self.in_flight -= 1


class RecordingDisplay:
    """DisplaySink that keeps everything it was sent."""

    def __init__(self) -> None:
        self.batches: list[list[Message]] = []
        self.statuses: list[str] = []
        self.progress_lines: list[str] = []
        self.analyses: list[AnalysisResult] = []
        self.errors: list[tuple[str, str]] = []

    @property
    def emitted(self) -> list[Message]:
        return [m for batch in self.batches for m in batch]

    def messages(self, batch) -> None:
        self.batches.append(list(batch))

    def status(self, text: str) -> None:
        self.statuses.append(text)

    def progress(self, text: str) -> None:
        self.progress_lines.append(text)

    def analysis(self, result: AnalysisResult) -> None:
        self.analyses.append(result)

    def error(self, text: str, hint: str = "") -> None:
        self.errors.append((text, hint))


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)
