"""Conversation reader for session JSONL files.

The file is appended to by another process while we read it, so a final
line may be half-written. Such lines fail to parse and are skipped; the next
read picks them up once complete.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from dateutil.parser import isoparse
from pydantic import ValidationError

from ccspy.errors import FileTransientError
from ccspy.transcript.schemas import KNOWN_BLOCK_TYPES, Message

logger = logging.getLogger(__name__)

_ROLES = ("user", "assistant")


def _normalize_content(content: Any) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if not isinstance(content, list):
        return []
    return [
        block for block in content
        if isinstance(block, dict) and block.get("type") in KNOWN_BLOCK_TYPES
    ]


def _parse_timestamp(value: Any):
    if not isinstance(value, str) or not value:
        return None
    try:
        return isoparse(value)
    except (ValueError, OverflowError):
        return None


def parse_record(record: dict[str, Any]) -> Message | None:
    """Convert one decoded JSONL record to a Message, or None if it isn't one."""
    role = record.get("type")
    if role not in _ROLES:
        return None

    message = record.get("message")
    if not isinstance(message, dict):
        message = {}

    try:
        return Message(
            role=role,
            timestamp=_parse_timestamp(record.get("timestamp")),
            content=_normalize_content(message.get("content")),
            uuid=record.get("uuid"),
            model=message.get("model"),
        )
    except ValidationError as e:
        logger.debug("Skipping malformed %s record: %s", role, e)
        return None


def parse_lines(lines) -> list[Message]:
    conversation: list[Message] = []
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue  # partial trailing line or garbage
        if not isinstance(record, dict):
            continue
        msg = parse_record(record)
        if msg is not None:
            conversation.append(msg)
    return conversation


def read_conversation(path: str | Path) -> list[Message]:
    """Read a whole session file into user/assistant messages, in file order.

    Raises FileTransientError if the file can't be read right now.
    """
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        raise FileTransientError(f"Could not read {path}: {e}") from e
    # A multi-byte character cut in half can only sit on the unfinished last line
    return parse_lines(raw.decode("utf-8", errors="replace").splitlines())


class ConversationReader:
    """Reader collaborator for the watch engine."""

    def read(self, path: str | Path) -> list[Message]:
        return read_conversation(path)
