"""Session selection — find the transcript to watch for a working directory.

Transcripts live under ``<projects_dir>/<encoded cwd>/<session-id>.jsonl``
where the encoded cwd replaces every "/" with "-".
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Sequence

from ccspy.errors import SessionDirectoryMissing
from ccspy.transcript.schemas import Message

logger = logging.getLogger(__name__)


def encode_project_path(project_path: str | Path) -> str:
    path = str(project_path)
    if path.startswith("/"):
        path = path[1:]
    return "-" + path.replace("/", "-")


def decode_project_path(encoded: str) -> str:
    """Best-effort inverse of encode_project_path (dashes in names are lost)."""
    if encoded.startswith("-"):
        encoded = encoded[1:]
    return "/" + encoded.replace("-", "/")


def project_dir_for(cwd: str | Path, projects_dir: Path) -> Path:
    return projects_dir / encode_project_path(cwd)


def list_sessions(project_dir: Path) -> list[Path]:
    """Session files in project_dir, newest first."""
    if not project_dir.is_dir():
        raise SessionDirectoryMissing(project_dir)
    files = []
    for path in project_dir.glob("*.jsonl"):
        try:
            files.append((path.stat().st_mtime, path))
        except OSError:
            continue  # removed between glob and stat
    files.sort(key=lambda item: item[0], reverse=True)
    return [path for _, path in files]


def latest_session_file(project_dir: Path) -> Path | None:
    sessions = list_sessions(project_dir)
    return sessions[0] if sessions else None


async def wait_for_session(project_dir: Path, interval: float = 1.0) -> Path:
    """Poll until a session file shows up in project_dir."""
    while True:
        session = latest_session_file(project_dir)
        if session is not None:
            return session
        await asyncio.sleep(interval)


def start_index_since(
    messages: Sequence[Message],
    minutes: float,
    now: datetime | None = None,
) -> int:
    """Index of the first message newer than ``minutes`` ago.

    Used for the look-back option: the watch window then starts that far back
    instead of at the end of the file. Untimestamped messages are treated as
    old. Returns len(messages) when nothing is recent.
    """
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(minutes=minutes)
    for idx, msg in enumerate(messages):
        ts = msg.timestamp
        if ts is None:
            continue
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        if ts >= cutoff:
            return idx
    return len(messages)
