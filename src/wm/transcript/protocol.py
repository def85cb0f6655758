"""Transcript JSONL protocol: entry type + line parsing (no I/O).

Handles the host assistant's session log format:
- One JSON object per line
- ``type``: user | assistant | summary | system | progress | ...
- ``message.content``: a string, or a list of text / thinking / tool_use /
  tool_result blocks
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from wm.errors import TranscriptParseError

SYSTEM_REMINDER_OPEN = "<system-reminder>"
SYSTEM_REMINDER_CLOSE = "</system-reminder>"

MESSAGE_KINDS = ("user", "assistant")
SUMMARY_KIND = "summary"


@dataclass(frozen=True)
class TranscriptEntry:
    """One logged event from a session transcript."""

    kind: str
    text: str = ""
    role: str = ""
    timestamp: datetime | None = None
    session_id: str | None = None
    tool_uses: tuple[tuple[str, dict], ...] = ()
    tool_results: tuple[str, ...] = ()
    thinking: str = ""
    is_system_reminder: bool = False
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_message(self) -> bool:
        return self.kind in MESSAGE_KINDS

    @property
    def is_summary(self) -> bool:
        return self.kind == SUMMARY_KIND


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if not isinstance(value, str) or not value:
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def is_reminder_only(text: str) -> bool:
    """True if the whole text is wrapped in a system-reminder block."""
    stripped = text.strip()
    return stripped.startswith(SYSTEM_REMINDER_OPEN) and stripped.endswith(SYSTEM_REMINDER_CLOSE)


def _block_text(content: Any) -> str:
    """Flatten tool_result content (string or list of text blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            b.get("text", "") for b in content if isinstance(b, dict) and b.get("type") == "text"
        ]
        return "\n".join(p for p in parts if p)
    return ""


def parse_line(line: str, line_number: int | None = None) -> TranscriptEntry:
    """Parse a single JSONL line into a TranscriptEntry.

    Raises TranscriptParseError for invalid JSON or a non-object line.
    Unknown entry types are returned with their ``type`` as kind.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise TranscriptParseError(f"Invalid JSON: {e}", line_number) from e
    if not isinstance(data, dict):
        raise TranscriptParseError("Transcript line is not a JSON object", line_number)

    kind = str(data.get("type", ""))
    timestamp = parse_timestamp(data.get("timestamp"))
    session_id = data.get("sessionId") or data.get("session_id")

    if kind == SUMMARY_KIND:
        return TranscriptEntry(
            kind=kind,
            text=str(data.get("summary", "")),
            timestamp=timestamp,
            session_id=session_id,
        )

    message = data.get("message")
    if not isinstance(message, dict):
        return TranscriptEntry(
            kind=kind,
            timestamp=timestamp,
            session_id=session_id,
            metadata={"raw_type": kind},
        )

    role = str(message.get("role", kind))
    content = message.get("content", "")
    texts: list[str] = []
    tool_uses: list[tuple[str, dict]] = []
    tool_results: list[str] = []
    thinking: list[str] = []

    if isinstance(content, str):
        texts.append(content)
    elif isinstance(content, list):
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text":
                texts.append(block.get("text", ""))
            elif block_type == "thinking":
                thinking.append(block.get("thinking", ""))
            elif block_type == "tool_use":
                tool_input = block.get("input")
                tool_uses.append(
                    (block.get("name", ""), tool_input if isinstance(tool_input, dict) else {})
                )
            elif block_type == "tool_result":
                result = _block_text(block.get("content"))
                if result:
                    tool_results.append(result)

    text = "\n".join(t for t in texts if t)
    return TranscriptEntry(
        kind=kind,
        text=text,
        role=role,
        timestamp=timestamp,
        session_id=session_id,
        tool_uses=tuple(tool_uses),
        tool_results=tuple(tool_results),
        thinking="\n".join(t for t in thinking if t),
        is_system_reminder=bool(text) and is_reminder_only(text),
    )
