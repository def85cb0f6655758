"""Select the slice of a transcript worth sending for extraction.

System-reminder blocks carry explicit instructions (CLAUDE.md content, hook
output), not tacit knowledge, so they are removed before formatting.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from datetime import datetime, timedelta

from wm.transcript.protocol import (
    SYSTEM_REMINDER_CLOSE,
    SYSTEM_REMINDER_OPEN,
    TranscriptEntry,
)

DEFAULT_CARRYOVER = timedelta(minutes=5)


def strip_tags(text: str, open_tag: str, close_tag: str) -> str:
    """Remove every ``open_tag ... close_tag`` block. An unclosed tag drops the rest."""
    result: list[str] = []
    pos = 0
    while True:
        start = text.find(open_tag, pos)
        if start == -1:
            result.append(text[pos:])
            break
        result.append(text[pos:start])
        end = text.find(close_tag, start + len(open_tag))
        if end == -1:
            break
        pos = end + len(close_tag)
    return "".join(result).strip()


def strip_system_reminders(text: str) -> str:
    return strip_tags(text, SYSTEM_REMINDER_OPEN, SYSTEM_REMINDER_CLOSE)


def window_start(since: datetime | None, carryover: timedelta = DEFAULT_CARRYOVER) -> datetime | None:
    """Lower bound of the extraction window: last marker minus carryover."""
    return since - carryover if since is not None else None


def select_window(
    entries: Iterable[TranscriptEntry],
    since: datetime | None,
    until: datetime,
    *,
    carryover: timedelta = DEFAULT_CARRYOVER,
    session_id: str | None = None,
) -> list[TranscriptEntry]:
    """Keep messages and summaries in ``[since - carryover, until]`` for one session.

    Entries without a timestamp (summaries) always pass the time check.
    Reminder-only entries are dropped; reminder blocks are cut from the rest.
    """
    lower = window_start(since, carryover)
    selected: list[TranscriptEntry] = []

    for entry in entries:
        if not (entry.is_message or entry.is_summary):
            continue
        if session_id and entry.session_id and entry.session_id != session_id:
            continue
        if entry.timestamp is not None:
            if lower is not None and entry.timestamp < lower:
                continue
            if entry.timestamp > until:
                continue
        if entry.is_system_reminder:
            continue

        cleaned = strip_system_reminders(entry.text) if entry.text else ""
        if cleaned != entry.text:
            entry = dataclasses.replace(entry, text=cleaned)
        if not (entry.text or entry.tool_uses or entry.tool_results or entry.thinking):
            continue
        selected.append(entry)

    return selected


def _tool_summary(name: str, tool_input: dict) -> str:
    """Key argument of a tool call (file path, command, pattern)."""
    if name in ("Edit", "Write", "Read", "MultiEdit", "NotebookEdit"):
        return str(tool_input.get("file_path", ""))
    if name == "Bash":
        return str(tool_input.get("command", ""))
    if name in ("Glob", "Grep"):
        return str(tool_input.get("pattern", ""))
    return ""


def _truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + f"... [{len(text) - limit} chars truncated]"


def format_context(entries: Iterable[TranscriptEntry], max_tool_result_chars: int = 2000) -> str:
    """Render entries as labelled blocks for the extraction prompt."""
    parts: list[str] = []

    for entry in entries:
        if entry.is_summary:
            if entry.text:
                parts.append(f"SUMMARY: {entry.text}")
            continue

        if entry.kind == "user":
            for result in entry.tool_results:
                parts.append(f"TOOL_RESULT: {_truncate(result, max_tool_result_chars)}")
            if entry.text:
                parts.append(f"USER: {entry.text}")
            continue

        if entry.kind == "assistant":
            if entry.thinking:
                parts.append(f"THINKING: {entry.thinking}")
            if entry.tool_uses:
                calls = []
                for name, tool_input in entry.tool_uses:
                    summary = _tool_summary(name, tool_input)
                    calls.append(f"{name}({summary})" if summary else name)
                parts.append("TOOLS: " + " ".join(calls))
            if entry.text:
                parts.append(f"ASSISTANT: {entry.text}")

    return "\n\n".join(parts)
