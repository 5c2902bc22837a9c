"""Watch mode — live tailing of a session file with idle-triggered analysis."""

from ccspy.watch.engine import TickOutcome, WatchEngine, WatchOptions, WatchState
from ccspy.watch.sinks import ConsoleDisplay, DisplaySink, TextLogSink

__all__ = [
    "ConsoleDisplay",
    "DisplaySink",
    "TextLogSink",
    "TickOutcome",
    "WatchEngine",
    "WatchOptions",
    "WatchState",
]
