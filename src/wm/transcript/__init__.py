"""Transcript access: discovery, line parsing, and window filtering."""

from wm.transcript.filter import format_context, select_window, strip_system_reminders
from wm.transcript.protocol import TranscriptEntry, parse_line
from wm.transcript.store import ProjectInfo, SessionInfo, TranscriptStore, project_id

__all__ = [
    "ProjectInfo",
    "SessionInfo",
    "TranscriptEntry",
    "TranscriptStore",
    "format_context",
    "parse_line",
    "project_id",
    "select_window",
    "strip_system_reminders",
]
