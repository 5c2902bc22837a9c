"""Watch engine — tails a live session file and decides when to analyze it.

One engine per watched file. A single polling task re-reads the transcript
every ``poll_interval`` seconds:

- growth: new messages go to the display (and log) sink in file order and
  the idle timer restarts
- no growth: once the session has been idle for ``idle_threshold`` seconds
  AND at least ``token_threshold`` new assistant tokens have accumulated
  since the last analysis, an archer summary is started in the background

Manual triggers (key presses) go through run_analysis_now(). Automatic and
manual analyses share WatchState.analysis_pending, so at most one analysis
call is ever in flight. Everything runs on one event loop; the flag is
checked and set with no await in between.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Callable, Protocol, Sequence

from ccspy.analysis.prompts import PROMPTS
from ccspy.config import Settings
from ccspy.errors import AnalysisError, FileTransientError, ManualTriggerRejectedBusy
from ccspy.transcript.interactions import estimate_tokens, extract_interactions, tool_stats
from ccspy.transcript.schemas import AnalysisKind, AnalysisResult, Interaction, Message
from ccspy.watch.sinks import DisplaySink

logger = logging.getLogger(__name__)

# Countdown is only shown once the session has been quiet this long
_PROGRESS_AFTER_SECONDS = 3.0


class Reader(Protocol):
    def read(self, path: str | Path) -> list[Message]: ...


class Analyzer(Protocol):
    async def analyze(
        self, interactions: Sequence[Interaction], kind: AnalysisKind
    ) -> AnalysisResult: ...


@dataclass
class WatchOptions:
    poll_interval: float = 0.5
    idle_threshold: float = 15.0
    token_threshold: int = 1000
    interaction_limit: int = 10
    # None = only react to messages written after start()
    watch_start_index: int | None = None
    show_progress: bool = True

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> WatchOptions:
        values = {
            "poll_interval": settings.poll_interval,
            "idle_threshold": settings.idle_threshold,
            "token_threshold": settings.token_threshold,
            "interaction_limit": settings.interaction_limit,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class WatchState:
    """Session-relative state. Owned by exactly one WatchEngine."""

    last_message_count: int = 0
    last_message_time: float = 0.0  # engine clock reading at last growth
    last_analysis_token_count: int = 0
    analysis_pending: bool = False
    watch_start_index: int = 0
    idle_attempted: bool = False  # auto-analysis already tried this idle period
    session_generation: int = 0  # bumped when the file is truncated or replaced


class TickOutcome(StrEnum):
    CANCELLED = "cancelled"
    SKIPPED = "skipped"  # previous tick still running
    READ_FAILED = "read_failed"
    GROWTH = "growth"
    IDLE = "idle"
    ANALYSIS_STARTED = "analysis_started"
    ERROR = "error"


class WatchEngine:
    """Polling state machine over one session file."""

    def __init__(
        self,
        session_file: str | Path,
        options: WatchOptions | None = None,
        *,
        reader: Reader,
        analyzer: Analyzer,
        display: DisplaySink,
        log_sink: DisplaySink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_file = Path(session_file)
        self.options = options or WatchOptions()
        self.state = WatchState()
        self._reader = reader
        self._analyzer = analyzer
        self._display = display
        self._sinks: list[DisplaySink] = [display] if log_sink is None else [display, log_sink]
        self._clock = clock
        self._cancelled = False
        self._tick_running = False
        self._task: asyncio.Task | None = None
        self._analysis_task: asyncio.Task | None = None
        self._last_progress: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def start(self) -> Callable[[], None]:
        """Baseline the state from the current file and start polling.

        Returns the cancel handle.
        """
        if self._task is not None:
            raise RuntimeError("Watch engine already started")
        await self.prime()
        self._task = asyncio.create_task(self._poll_loop(), name="ccspy-watch")
        return self.cancel

    async def prime(self) -> None:
        """Read the file once and fix the session baseline (no polling)."""
        try:
            conversation = await self._read()
        except FileTransientError as e:
            logger.debug("Initial read failed, starting empty: %s", e)
            conversation = []

        count = len(conversation)
        start_index = self.options.watch_start_index
        start_index = count if start_index is None else max(0, min(start_index, count))
        self.state = WatchState(
            last_message_count=count,
            last_message_time=self._clock(),
            watch_start_index=start_index,
        )

        if start_index < count:
            # look-back context
            self._emit("messages", conversation[start_index:])
        self._emit_banner(conversation[start_index:])
        logger.info(
            "Watching %s (messages=%d, start_index=%d)",
            self.session_file,
            count,
            start_index,
        )

    def cancel(self) -> None:
        """Stop polling. Idempotent and synchronous, safe from signal handlers.

        An analysis already in flight may finish; nothing new starts.
        """
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info("Watch engine cancelled")

    async def stop(self) -> None:
        """Cancel, then wait for the poll loop and abandon any auto-analysis."""
        self.cancel()
        for task in (self._task, self._analysis_task):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def wait(self) -> None:
        """Block until the poll loop ends (i.e. until cancelled)."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def wait_for_analysis(self) -> AnalysisResult | None:
        """Await the in-flight automatic analysis, if any."""
        task = self._analysis_task
        if task is None:
            return None
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled():
                return None  # abandoned by stop()
            raise

    async def _poll_loop(self) -> None:
        while not self._cancelled:
            await self.tick()
            await asyncio.sleep(self.options.poll_interval)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def tick(self) -> TickOutcome:
        """Run one poll step. Never raises except on cancellation."""
        if self._cancelled:
            return TickOutcome.CANCELLED
        if self._tick_running:
            return TickOutcome.SKIPPED

        self._tick_running = True
        try:
            return await self._tick()
        except Exception:
            logger.exception("Watch tick failed")
            self._emit("status", "Watch error, retrying on next poll")
            return TickOutcome.ERROR
        finally:
            self._tick_running = False

    async def _tick(self) -> TickOutcome:
        try:
            conversation = await self._read()
        except FileTransientError as e:
            # Mid-write or briefly missing; the next tick retries
            logger.debug("Transient read failure: %s", e)
            return TickOutcome.READ_FAILED

        if self._cancelled:
            return TickOutcome.CANCELLED

        state = self.state
        now = self._clock()

        if len(conversation) < state.last_message_count:
            self._reset_session(len(conversation))

        if len(conversation) > state.last_message_count:
            new_messages = conversation[state.last_message_count:]
            state.last_message_count = len(conversation)
            state.last_message_time = now
            state.idle_attempted = False
            self._last_progress = None
            self._emit("messages", new_messages)
            self._emit(
                "status",
                f"Watching for new messages... ({state.last_message_count} messages so far)",
            )
            return TickOutcome.GROWTH

        idle_seconds = now - state.last_message_time
        window = conversation[state.watch_start_index:]
        total_tokens = estimate_tokens(window)
        new_tokens = total_tokens - state.last_analysis_token_count

        if (
            idle_seconds >= self.options.idle_threshold
            and new_tokens >= self.options.token_threshold
            and not state.analysis_pending
            and not state.idle_attempted
        ):
            state.analysis_pending = True
            state.idle_attempted = True
            self._last_progress = None
            self._emit(
                "status",
                f"Claude idle for {int(idle_seconds)}s ({new_tokens} new tokens), generating summary...",
            )
            self._analysis_task = asyncio.create_task(
                self._auto_analysis(window, total_tokens, state.session_generation),
                name="ccspy-auto-analysis",
            )
            return TickOutcome.ANALYSIS_STARTED

        self._report_progress(idle_seconds, new_tokens, window)
        return TickOutcome.IDLE

    def _reset_session(self, new_length: int) -> None:
        """The file got shorter: treat it as a brand new session."""
        logger.warning(
            "Session file shrank from %d to %d messages, re-baselining",
            self.state.last_message_count,
            new_length,
        )
        self.state.last_message_count = 0
        self.state.watch_start_index = 0
        self.state.last_analysis_token_count = 0
        self.state.idle_attempted = False
        self.state.session_generation += 1
        self._emit("status", "Session file was truncated or replaced; starting over")

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def run_analysis_now(self, kind: AnalysisKind) -> AnalysisResult | None:
        """Manual trigger.

        Raises ManualTriggerRejectedBusy if an analysis is already running.
        Returns None when the analysis failed or had nothing to look at
        (the reason has already been sent to the display).
        """
        if self._cancelled:
            logger.debug("Ignoring %s trigger after cancel", kind)
            return None
        if self.state.analysis_pending:
            self._emit("status", "Analysis already running...")
            raise ManualTriggerRejectedBusy(f"{kind} rejected: analysis in flight")

        self.state.analysis_pending = True
        try:
            self._emit("status", f"Running {PROMPTS[kind].title.title()} (manual trigger)...")
            generation = self.state.session_generation
            try:
                conversation = await self._read()
            except FileTransientError as e:
                self._emit("error", f"Could not read session file: {e}")
                return None
            if self._cancelled:
                return None
            window = conversation[self.state.watch_start_index:]
            return await self._analyze_window(kind, window, estimate_tokens(window), generation)
        finally:
            self.state.analysis_pending = False

    async def _auto_analysis(
        self, window: Sequence[Message], total_tokens: int, generation: int
    ) -> AnalysisResult | None:
        try:
            return await self._analyze_window(
                AnalysisKind.ARCHER_SUMMARY, window, total_tokens, generation
            )
        finally:
            self.state.analysis_pending = False

    async def _analyze_window(
        self,
        kind: AnalysisKind,
        window: Sequence[Message],
        total_tokens: int,
        generation: int,
    ) -> AnalysisResult | None:
        """Analyze one window. Caller owns analysis_pending.

        ``generation`` is the session generation the window was read in. If
        the file was truncated or replaced before the call returns, the
        result belongs to a session that no longer exists: it is neither
        shown nor allowed to move the new session's token baseline.
        """
        try:
            interactions = extract_interactions(window, limit=self.options.interaction_limit)
            if not interactions:
                self._emit("status", "No interactions to analyze")
                if self.state.session_generation == generation:
                    self.state.last_analysis_token_count = total_tokens
                return None

            result = await self._analyzer.analyze(interactions, kind)
            if self._cancelled:
                return result
            if self.state.session_generation != generation:
                logger.info("Session reset during %s analysis, discarding result", kind)
                self._emit("status", "Session changed during analysis; result discarded")
                return None

            self.state.last_analysis_token_count = total_tokens
            self._emit("analysis", result)
            return result
        except AnalysisError as e:
            # Baseline stays put so the next idle period tries again
            logger.warning("%s analysis failed: %s", kind, e)
            self._emit("error", f"{PROMPTS[kind].title.title()} failed: {e}", e.hint)
            return None
        except Exception as e:
            logger.exception("%s analysis crashed", kind)
            self._emit("error", f"{PROMPTS[kind].title.title()} failed: {e}")
            return None
        finally:
            if not self._cancelled:
                self._emit(
                    "status",
                    f"Resuming watch... ({self.state.last_message_count} messages so far)",
                )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def notify(self, text: str) -> None:
        """Status line for callers outside the engine (key help, exit notice)."""
        self._emit("status", text)

    async def _read(self) -> list[Message]:
        return await asyncio.to_thread(self._reader.read, self.session_file)

    def _emit(self, method: str, *args) -> None:
        """Send to every sink. A broken sink never stops the loop."""
        for sink in self._sinks:
            try:
                getattr(sink, method)(*args)
            except Exception:
                logger.exception("Sink %s.%s failed", type(sink).__name__, method)

    def _emit_banner(self, window: Sequence[Message]) -> None:
        users = sum(1 for m in window if m.role == "user")
        assistants = sum(1 for m in window if m.role == "assistant")
        stats = tool_stats(window)
        self._emit(
            "status",
            f"Watching session {self.session_file.stem} "
            f"({self.state.last_message_count} messages so far)",
        )
        self._emit(
            "status",
            f"Messages: {users} user, {assistants} assistant | "
            f"Tokens: ~{estimate_tokens(window)} | Tools used: {stats.summary()}",
        )

    def _report_progress(
        self, idle_seconds: float, new_tokens: int, window: Sequence[Message]
    ) -> None:
        """Advisory countdown toward the auto-analysis thresholds."""
        if not self.options.show_progress or self.state.analysis_pending:
            return
        if idle_seconds < _PROGRESS_AFTER_SECONDS or self.state.idle_attempted:
            return
        idle = min(int(idle_seconds), int(self.options.idle_threshold))
        threshold = self.options.token_threshold
        line = (
            f"Idle: {idle}s/{int(self.options.idle_threshold)}s | "
            f"Tokens: {max(new_tokens, 0)}/{threshold} "
            f"(need {max(0, threshold - new_tokens)} more) | "
            f"Tools: {tool_stats(window).summary()} | "
            "Press 'a' for summary, 's' for security check"
        )
        if line == self._last_progress:
            return
        self._last_progress = line
        try:
            self._display.progress(line)
        except Exception:
            logger.exception("Display progress failed")
