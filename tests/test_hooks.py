"""Tests for the host hook entry points."""

from __future__ import annotations

import json

import pytest

from conftest import StubProvider, assistant_line, user_line, write_transcript
from wm.hooks import emit, hook_response, parse_hook_input, run_compile_hook, run_distill_hook


def hook_input(project, **extra) -> str:
    return json.dumps({"session_id": "sess-1", "cwd": str(project), **extra})


class TestParseHookInput:
    def test_valid(self):
        assert parse_hook_input('{"cwd": "/x"}') == {"cwd": "/x"}

    @pytest.mark.parametrize("raw", ["", "   ", "{not json", "[1, 2]"])
    def test_invalid_is_empty(self, raw):
        assert parse_hook_input(raw) == {}


class TestCompileHook:
    def test_output_shape(self, state, project):
        state.guardrails_path.write_text("# Guardrails\n\n- Never force push\n")
        response = run_compile_hook(hook_input(project, prompt="push the branch"))

        output = response["hookSpecificOutput"]
        assert output["hookEventName"] == "UserPromptSubmit"
        assert output["additionalContext"] == "# Guardrails\n\n- Never force push"
        assert state.working_set_path("sess-1").exists()

    def test_uninitialized_project(self, project):
        response = run_compile_hook(hook_input(project))
        assert response == hook_response("")

    def test_disabled(self, state, project, monkeypatch):
        state.guardrails_path.write_text("# Guardrails\n\n- G\n")
        monkeypatch.setenv("WM_DISABLED", "1")
        assert run_compile_hook(hook_input(project)) == hook_response()

    def test_garbage_input_never_raises(self, project, monkeypatch):
        monkeypatch.chdir(project)
        assert run_compile_hook("not json at all") == hook_response()

    def test_broken_config_is_empty(self, state, project):
        (state.root / "config.toml").write_text("[provider\n")
        assert run_compile_hook(hook_input(project)) == hook_response()

    def test_emit(self):
        data = json.loads(emit(hook_response("ü")))
        assert data["hookSpecificOutput"]["additionalContext"] == "ü"


class TestDistillHook:
    @pytest.mark.asyncio
    async def test_runs_pipeline(self, state, project, projects_dir, monkeypatch):
        monkeypatch.setenv("WM_CLAUDE_PROJECTS_DIR", str(projects_dir))
        write_transcript(
            projects_dir,
            project,
            "sess-1",
            [user_line("Always use uv", "sess-1"), assistant_line("Noted", "sess-1")],
        )
        provider = StubProvider(["HAS_KNOWLEDGE: YES\n\n- Use uv for installs"], default="")

        report = await run_distill_hook(hook_input(project), provider)

        assert report is not None
        assert report.processed == ["sess-1"]
        assert "Use uv for installs" in state.raw_extractions_path.read_text()

    @pytest.mark.asyncio
    async def test_uninitialized_returns_none(self, project):
        assert await run_distill_hook(hook_input(project), StubProvider()) is None

    @pytest.mark.asyncio
    async def test_errors_swallowed(self, state, project, projects_dir, monkeypatch):
        # No transcripts for this project
        monkeypatch.setenv("WM_CLAUDE_PROJECTS_DIR", str(projects_dir))
        assert await run_distill_hook(hook_input(project), StubProvider()) is None
