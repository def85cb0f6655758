"""Session discovery and transcript reading.

The host keeps one JSONL file per session under
``~/.claude/projects/<project-id>/<session-id>.jsonl``, where the project id
is the absolute project path with every non-alphanumeric character turned
into ``-``. Discovery only stats files; content is read lazily.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from wm.errors import NotFound, TranscriptParseError
from wm.transcript.protocol import TranscriptEntry, parse_line

logger = logging.getLogger(__name__)

TRANSCRIPT_SUFFIX = ".jsonl"
_FINGERPRINT_CHUNK = 1 << 16


def project_id(project_path: Path) -> str:
    """Host project id: /Users/me/my.app -> -Users-me-my-app"""
    try:
        abs_path = project_path.resolve()
    except OSError:
        abs_path = project_path.absolute()
    return re.sub(r"[^A-Za-z0-9-]", "-", str(abs_path))


@dataclass(frozen=True)
class SessionInfo:
    """Metadata for one discovered session transcript."""

    session_id: str
    transcript_path: Path
    project_dir: Path
    modified_at: datetime
    size_bytes: int

    def fingerprint(self) -> str:
        """Short SHA-256 of the transcript bytes."""
        digest = hashlib.sha256()
        with self.transcript_path.open("rb") as f:
            for chunk in iter(lambda: f.read(_FINGERPRINT_CHUNK), b""):
                digest.update(chunk)
        return digest.hexdigest()[:16]


@dataclass(frozen=True)
class ProjectInfo:
    """A host project directory and how many sessions it holds."""

    project_id: str
    project_dir: Path
    session_count: int


class TranscriptStore:
    """Read-only access to the host's session transcripts."""

    def __init__(self, projects_dir: Path) -> None:
        self.projects_dir = Path(projects_dir)

    # ── Discovery ─────────────────────────────────────────────

    def project_dir(self, project_path: Path) -> Path:
        return self.projects_dir / project_id(project_path)

    def discover(self, project_path: Path) -> list[SessionInfo]:
        """All sessions for a project, newest first. Raises NotFound if none exist."""
        directory = self.project_dir(project_path)
        if not directory.is_dir():
            raise NotFound(f"No transcript directory for {project_path} ({directory})")
        return self.discover_in_dir(directory)

    def discover_in_dir(self, directory: Path) -> list[SessionInfo]:
        sessions: list[SessionInfo] = []
        for path in directory.glob(f"*{TRANSCRIPT_SUFFIX}"):
            try:
                stat = path.stat()
            except OSError as e:
                logger.warning("Cannot stat %s: %s", path, e)
                continue
            if not path.is_file():
                continue
            sessions.append(
                SessionInfo(
                    session_id=path.stem,
                    transcript_path=path,
                    project_dir=directory,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size_bytes=stat.st_size,
                )
            )
        sessions.sort(key=lambda s: s.modified_at, reverse=True)
        return sessions

    def find_projects(self, name_filter: str) -> list[ProjectInfo]:
        """Host projects whose id contains ``name_filter`` (case-insensitive)."""
        if not name_filter.strip():
            raise ValueError("Project filter cannot be empty")
        if not self.projects_dir.is_dir():
            return []
        needle = name_filter.strip().lower()
        projects = []
        for directory in sorted(self.projects_dir.iterdir()):
            if not directory.is_dir() or needle not in directory.name.lower():
                continue
            count = len(list(directory.glob(f"*{TRANSCRIPT_SUFFIX}")))
            projects.append(ProjectInfo(directory.name, directory, count))
        return projects

    def discover_matching(self, name_filter: str) -> list[SessionInfo]:
        """Sessions from every project matching the filter, newest first."""
        projects = self.find_projects(name_filter)
        if not projects:
            raise NotFound(f"No projects found matching '{name_filter}'")
        sessions: list[SessionInfo] = []
        for project in projects:
            sessions.extend(self.discover_in_dir(project.project_dir))
        sessions.sort(key=lambda s: s.modified_at, reverse=True)
        return sessions

    def get(self, project_path: Path, session_id: str) -> SessionInfo:
        for session in self.discover(project_path):
            if session.session_id == session_id:
                return session
        raise NotFound(f"Session {session_id} not found for {project_path}")

    # ── Reading ───────────────────────────────────────────────

    def read(self, transcript_path: Path) -> Iterator[TranscriptEntry]:
        """Lazily yield entries in file order. Raises NotFound for a missing file.

        Every call re-opens the file, so the sequence can be restarted.
        Malformed lines are logged and skipped.
        """
        path = Path(transcript_path)
        if not path.is_file():
            raise NotFound(f"Transcript not found: {path}")
        return self._iter_entries(path)

    def read_session(self, session: SessionInfo) -> Iterator[TranscriptEntry]:
        return self.read(session.transcript_path)

    def _iter_entries(self, path: Path) -> Iterator[TranscriptEntry]:
        with path.open(encoding="utf-8", errors="replace") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    yield parse_line(line, line_number)
                except TranscriptParseError as e:
                    logger.warning(
                        "Skipping malformed line %d in %s: %s", line_number, path.name, e
                    )
