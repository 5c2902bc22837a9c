"""ccspy entry point — watch the current directory's live session.

Initializes components and runs until the user quits:
  Settings -> session file -> AnalysisClient -> sinks -> WatchEngine -> keys
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from ccspy.analysis.client import AnalysisClient
from ccspy.config import Settings
from ccspy.errors import FileTransientError, SessionDirectoryMissing
from ccspy.transcript.reader import ConversationReader
from ccspy.transcript.sessions import (
    latest_session_file,
    project_dir_for,
    start_index_since,
    wait_for_session,
)
from ccspy.watch.engine import WatchEngine, WatchOptions
from ccspy.watch.keys import HELP_TEXT, KeyBindings
from ccspy.watch.sinks import ConsoleDisplay, TextLogSink

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ccspy",
        description="Watch the current directory's Claude Code session in real time.",
        epilog=HELP_TEXT,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--cwd", type=Path, default=None, help="project directory (default: cwd)")
    parser.add_argument("--session-file", type=Path, default=None, help="watch this transcript instead")
    parser.add_argument("--minutes-since", type=float, default=None, help="include the last N minutes as context")
    parser.add_argument("--log-file", type=Path, default=None, help="mirror watch output to a text log")
    parser.add_argument("--interactions", type=int, default=None, help="interactions per analysis")
    parser.add_argument("--fast", action="store_true", help="use the fast/cheap analysis model")
    return parser


async def resolve_session(settings: Settings, cwd: Path, display: ConsoleDisplay) -> Path:
    """Most recent session for cwd, waiting for one if the project has none yet.

    Raises SessionDirectoryMissing if the project directory does not exist.
    """
    project_dir = project_dir_for(cwd.resolve(), settings.projects_dir)
    session = latest_session_file(project_dir)
    if session is None:
        display.status("No conversation sessions found. Waiting for new session...")
        session = await wait_for_session(project_dir, settings.session_wait_interval)
    return session


async def run_watch(settings: Settings, args: argparse.Namespace) -> int:
    display = ConsoleDisplay()
    cwd = args.cwd or Path.cwd()
    display.status(f"Watch Mode - Current Directory: {cwd}")

    if args.session_file is not None:
        session_file = args.session_file
    else:
        try:
            session_file = await resolve_session(settings, cwd, display)
        except SessionDirectoryMissing as e:
            display.error(str(e), f"Expected directory: {e.project_dir}")
            return 1

    reader = ConversationReader()
    start_index = None
    if args.minutes_since is not None:
        try:
            start_index = start_index_since(reader.read(session_file), args.minutes_since)
        except FileTransientError:
            logger.warning("Could not compute look-back window, watching new messages only")

    overrides = {"watch_start_index": start_index}
    if args.interactions is not None:
        overrides["interaction_limit"] = args.interactions
    options = WatchOptions.from_settings(settings, **overrides)

    analyzer = AnalysisClient(settings)
    log_sink = TextLogSink(args.log_file) if args.log_file else None
    engine = WatchEngine(
        session_file,
        options,
        reader=reader,
        analyzer=analyzer,
        display=display,
        log_sink=log_sink,
    )

    loop = asyncio.get_running_loop()
    cancel = await engine.start()

    def request_exit() -> None:
        if not engine.cancelled:
            engine.notify("Exiting watch mode...")
        cancel()

    keys = KeyBindings(engine, on_exit=request_exit)
    restore_terminal = keys.attach_stdin(loop)
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_exit)
        except (NotImplementedError, RuntimeError):
            pass  # not available on this platform

    display.status("Press 'a' for Archer, 's' for Security, 'h' for help, 'q' to quit")
    try:
        await engine.wait()
    finally:
        # Shutdown (reverse order)
        restore_terminal()
        await keys.cancel_pending()
        await engine.stop()
        await analyzer.close()
        display.close()
    return 0


def main(argv: list[str] | None = None) -> None:
    """Parse args and settings, then run watch mode."""
    args = build_parser().parse_args(argv)
    overrides = {"fast_mode": True} if args.fast else {}
    settings = Settings(**overrides)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    sys.exit(asyncio.run(run_watch(settings, args)))


if __name__ == "__main__":
    main()
