"""Shared fixtures: isolated project, host transcript dir, stub provider."""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from wm.config import DistillConfig, WMConfig
from wm.providers.base import AgentResponse
from wm.state import WMState
from wm.transcript.store import project_id

_ENV_VARS = [
    "WM_DISABLED",
    "SUPEREGO_DISABLED",
    "WM_PROJECT_DIR",
    "CLAUDE_PROJECT_DIR",
    "WM_CLAUDE_PROJECTS_DIR",
    "WM_PROVIDER",
    "WM_FALLBACK",
    "WM_MODEL",
    "WM_TIMEOUT",
    "WM_LOG_LEVEL",
    "WM_CARRYOVER_MINUTES",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_VARS:
        monkeypatch.delenv(key, raising=False)


class StubProvider:
    """Deterministic provider: answers from a list, then repeats ``default``.

    A response may be an Exception instance, which is raised instead.
    Each call records the message, system prompt and the guard variables.
    """

    def __init__(self, responses: list | None = None, default: str = "HAS_KNOWLEDGE: NO"):
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return "stub"

    async def send(self, message: str, *, system_prompt: str | None = None) -> AgentResponse:
        self.calls.append(
            {
                "message": message,
                "system_prompt": system_prompt,
                "WM_DISABLED": os.environ.get("WM_DISABLED"),
                "SUPEREGO_DISABLED": os.environ.get("SUPEREGO_DISABLED"),
            }
        )
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return AgentResponse(text=response)

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def project(tmp_path: Path) -> Path:
    path = tmp_path / "my-project"
    path.mkdir()
    return path


@pytest.fixture
def state(project: Path) -> WMState:
    s = WMState(project)
    s.initialize()
    return s


@pytest.fixture
def projects_dir(tmp_path: Path) -> Path:
    path = tmp_path / "claude-projects"
    path.mkdir()
    return path


@pytest.fixture
def config(project: Path, projects_dir: Path) -> WMConfig:
    return WMConfig(project_dir=project, projects_dir=projects_dir, distill=DistillConfig())


# ── Transcript helpers ────────────────────────────────────────


def ts(minutes_ago: float = 30) -> str:
    when = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    return when.isoformat().replace("+00:00", "Z")


def user_line(text: str, session_id: str, minutes_ago: float = 30) -> dict:
    return {
        "type": "user",
        "sessionId": session_id,
        "timestamp": ts(minutes_ago),
        "message": {"role": "user", "content": text},
    }


def assistant_line(text: str, session_id: str, minutes_ago: float = 29) -> dict:
    return {
        "type": "assistant",
        "sessionId": session_id,
        "timestamp": ts(minutes_ago),
        "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
    }


def write_transcript(
    projects_dir: Path, project: Path, session_id: str, lines: list, mtime: float | None = None
) -> Path:
    """Write a host transcript; ``lines`` holds dicts or raw strings."""
    directory = projects_dir / project_id(project)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{session_id}.jsonl"
    rendered = [line if isinstance(line, str) else json.dumps(line) for line in lines]
    path.write_text("\n".join(rendered) + "\n", encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path
