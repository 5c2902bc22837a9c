"""Single-keystroke control surface for watch mode.

  a       archer summary of recent interactions
  s       security review of recent interactions
  h       show key help
  q, ^C   exit

Manual analyses run as tasks on the engine's event loop, so a key press
never blocks polling. A press while another analysis is running is
rejected by the engine and reported there.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Callable, TextIO

from ccspy.errors import ManualTriggerRejectedBusy
from ccspy.transcript.schemas import AnalysisKind
from ccspy.watch.engine import WatchEngine

logger = logging.getLogger(__name__)

HELP_TEXT = """Keyboard Shortcuts:
a  - Run Archer (AI conversation analysis)
s  - Run Security Analysis
h  - Show this help
q  - Quit"""

_CTRL_C = "\x03"


class KeyBindings:
    """Maps key presses to engine operations."""

    def __init__(self, engine: WatchEngine, on_exit: Callable[[], None]) -> None:
        self._engine = engine
        self._on_exit = on_exit
        self._tasks: set[asyncio.Task] = set()

    def handle_key(self, ch: str) -> asyncio.Task | None:
        """Dispatch one key. Returns the analysis task for a/s, else None."""
        key = ch.lower()
        if key == "q" or ch == _CTRL_C:
            self._on_exit()
            return None
        if key == "h":
            self._engine.notify(HELP_TEXT)
            return None
        if key == "a":
            return self._spawn(AnalysisKind.ARCHER_SUMMARY)
        if key == "s":
            return self._spawn(AnalysisKind.SECURITY)
        return None

    def _spawn(self, kind: AnalysisKind) -> asyncio.Task | None:
        if self._engine.cancelled:
            return None
        task = asyncio.get_running_loop().create_task(
            self._trigger(kind), name=f"ccspy-manual-{kind}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _trigger(self, kind: AnalysisKind) -> None:
        try:
            await self._engine.run_analysis_now(kind)
        except ManualTriggerRejectedBusy:
            logger.debug("Manual %s rejected, analysis in flight", kind)
        except Exception:
            logger.exception("Manual %s trigger failed", kind)
            self._engine.notify(f"Manual {kind} failed, see log")

    async def cancel_pending(self) -> None:
        """Abandon manual analyses still in flight (process is exiting)."""
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            try:
                await task
            except asyncio.CancelledError:
                pass

    def attach_stdin(
        self,
        loop: asyncio.AbstractEventLoop,
        stream: TextIO | None = None,
    ) -> Callable[[], None]:
        """Read single keys from a TTY without blocking the loop.

        Puts the terminal in cbreak mode and registers a reader callback.
        Returns a callable that restores the terminal. Does nothing when
        stdin is not a terminal.
        """
        stream = stream or sys.stdin
        if not stream.isatty():
            return lambda: None

        import termios
        import tty

        fd = stream.fileno()
        saved = termios.tcgetattr(fd)
        tty.setcbreak(fd)

        def _on_readable() -> None:
            # os.read so nothing lingers in the TextIO buffer between presses
            data = os.read(fd, 32).decode("utf-8", errors="ignore")
            for ch in data:
                self.handle_key(ch)

        loop.add_reader(fd, _on_readable)

        def restore() -> None:
            loop.remove_reader(fd)
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)

        return restore
