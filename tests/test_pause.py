"""Tests for pause/resume state."""

from __future__ import annotations

import json

import pytest

from wm.pause import PauseController, PauseState, Scope


@pytest.fixture
def controller(tmp_path):
    return PauseController(tmp_path / "pause.json")


class TestPauseController:
    def test_defaults_active(self, controller):
        assert controller.status() == PauseState()
        assert not controller.is_extract_paused()
        assert not controller.is_compile_paused()

    def test_scopes_are_independent(self, controller):
        controller.pause("extract")
        assert controller.is_extract_paused()
        assert not controller.is_compile_paused()

        controller.resume("extract")
        controller.pause("compile")
        assert not controller.is_extract_paused()
        assert controller.is_compile_paused()

    def test_both(self, controller):
        controller.pause()
        assert controller.status() == PauseState(extract_paused=True, compile_paused=True)
        controller.resume(Scope.BOTH)
        assert controller.status() == PauseState()

    def test_idempotent(self, controller):
        first = controller.pause("extract")
        second = controller.pause("extract")
        assert first == second
        controller.resume("compile")
        assert controller.is_extract_paused()

    def test_persists_across_instances(self, controller):
        controller.pause("compile")
        assert PauseController(controller.path).is_compile_paused()
        data = json.loads(controller.path.read_text())
        assert data == {"extract_paused": False, "compile_paused": True}

    def test_corrupt_file_means_active(self, controller):
        controller.path.write_text("{{{")
        assert controller.status() == PauseState()

    def test_invalid_scope(self, controller):
        with pytest.raises(ValueError, match="Invalid scope"):
            controller.pause("everything")
        assert not controller.path.exists()

    def test_scope_parse_is_case_insensitive(self):
        assert Scope.parse(" Extract ") is Scope.EXTRACT

    def test_describe(self):
        assert PauseState(extract_paused=True).describe() == "extract: paused, compile: active"
