"""Tests for ccspy.watch.sinks — console and text-log rendering."""

from __future__ import annotations

import io
from datetime import UTC, datetime

from rich.console import Console

from ccspy.transcript.schemas import (
    AnalysisKind,
    AnalysisResult,
    Message,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from ccspy.watch.sinks import ConsoleDisplay, TextLogSink, render_analysis, render_message
from tests.conftest import assistant_msg, tool_result_msg

RESULT = AnalysisResult(
    text="Intent Summary: add auth.\n\nPotential Issues: none.",
    tokens_used=512,
    model="gpt-4o-mini",
    kind=AnalysisKind.SECURITY,
)


class TestRendering:
    def test_user_line_has_time(self) -> None:
        msg = Message(
            role="user",
            timestamp=datetime(2026, 1, 1, 9, 5, 7, tzinfo=UTC),
            content=[TextBlock(text="run the tests")],
        )
        assert render_message(msg) == ["User (09:05:07):", "  run the tests"]

    def test_assistant_tools_and_thinking(self) -> None:
        msg = Message(
            role="assistant",
            content=[
                ThinkingBlock(thinking="..."),
                TextBlock(text="Running them."),
                ToolUseBlock(name="Bash", input={"command": "pytest"}),
            ],
        )

        lines = render_message(msg)

        assert lines[0] == "Claude:"
        assert "  [Thinking]" in lines
        assert "  Running them." in lines
        assert "  [Tool: Bash]" in lines
        assert any('"command": "pytest"' in line for line in lines)

    def test_long_tool_result_truncated(self) -> None:
        output = "\n".join(f"line {i}" for i in range(30))
        lines = render_message(tool_result_msg(output))

        assert lines[0] == "Tool Result:"
        assert "  line 19" in lines
        assert "  line 20" not in lines
        assert lines[-1] == "  ... (10 more lines)"

    def test_structured_tool_result(self) -> None:
        msg = Message(
            role="user",
            content=[ToolResultBlock(content=[{"type": "text", "text": "ok"}])],
        )
        assert render_message(msg) == ["Tool Result:", "  ok"]

    def test_max_chars(self) -> None:
        lines = render_message(assistant_msg("x" * 50), max_chars=10)
        assert lines == ["Claude:", "  " + "x" * 10 + "..."]

    def test_analysis_block(self) -> None:
        lines = render_analysis(RESULT)
        assert lines[0] == "SECURITY ANALYSIS"
        assert "Intent Summary: add auth." in lines
        assert lines[-1] == "Model: gpt-4o-mini | Tokens: 512"


def _console() -> tuple[ConsoleDisplay, io.StringIO]:
    out = io.StringIO()
    console = Console(file=out, width=100, color_system=None, force_terminal=False, highlight=False)
    return ConsoleDisplay(console), out


class TestConsoleDisplay:
    def test_messages_and_status(self) -> None:
        display, out = _console()

        display.messages([assistant_msg("hello", tools=["Bash"])])
        display.status("Watching for new messages... (3 messages so far)")

        text = out.getvalue()
        assert "New message(s) received!" in text
        assert "Claude:" in text
        assert "  hello" in text
        assert "[Tool: Bash]" in text  # printed literally, not as markup
        assert text.rstrip().endswith("(3 messages so far)")

    def test_countdown_is_transient(self) -> None:
        """Countdown updates in place and is stopped by the next real line."""
        display, out = _console()

        display.progress("Idle: 4s/15s")
        first = display._countdown
        display.progress("Idle: 5s/15s")
        assert display._countdown is first

        display.status("next")

        assert display._countdown is None
        assert "Idle:" not in out.getvalue()
        assert "next" in out.getvalue()

    def test_close_stops_countdown(self) -> None:
        display, _ = _console()
        display.progress("Idle: 4s/15s")
        display.close()
        assert display._countdown is None

    def test_analysis_block(self) -> None:
        display, out = _console()

        display.analysis(RESULT)

        text = out.getvalue()
        assert "SECURITY ANALYSIS" in text
        assert "Potential Issues: none." in text
        assert "Model: gpt-4o-mini | Tokens: 512" in text

    def test_error_with_hint(self) -> None:
        display, out = _console()
        display.error("API rate limit exceeded (429)", "wait a moment")
        lines = [line.rstrip() for line in out.getvalue().splitlines()]
        assert lines == ["Error: API rate limit exceeded (429)", "  wait a moment"]


class TestTextLogSink:
    def test_header_and_entries(self, tmp_path) -> None:
        path = tmp_path / "watch.log"
        sink = TextLogSink(path)

        sink.messages([assistant_msg("y" * 800)])
        sink.progress("Idle: 5s/15s")
        sink.analysis(RESULT)
        sink.error("timeout", "slow network")

        text = path.read_text(encoding="utf-8")
        assert text.startswith("# Claude Code Spy Watch Log\n\nStarted: ")
        assert "y" * 500 + "..." in text
        assert "y" * 501 not in text
        assert "Idle:" not in text
        assert "## SECURITY ANALYSIS" in text
        assert "Error: timeout (slow network)" in text

    def test_unwritable_path_never_raises(self, tmp_path) -> None:
        sink = TextLogSink(tmp_path / "missing" / "dir" / "watch.log")
        sink.status("still fine")
        sink.messages([assistant_msg("hi")])
