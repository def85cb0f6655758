"""Tests for .wm/ layout, atomic writes, ledger and lock."""

from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from wm.errors import LockHeld, NotInitialized
from wm.state import DistillLock, WMState, atomic_write_text, read_text


class TestInitialize:
    def test_creates_layout(self, project: Path):
        state = WMState(project)
        assert not state.is_initialized()
        assert state.initialize() is True
        assert state.distill_dir.is_dir()
        assert state.dives_dir.is_dir()

    def test_idempotent(self, project: Path):
        state = WMState(project)
        state.initialize()
        assert state.initialize() is False

    def test_require_initialized(self, project: Path):
        with pytest.raises(NotInitialized):
            WMState(project).require_initialized()


class TestAtomicWrite:
    def test_writes_and_replaces(self, tmp_path: Path):
        path = tmp_path / "sub" / "file.md"
        atomic_write_text(path, "one")
        atomic_write_text(path, "two")
        assert path.read_text() == "two"
        assert [p.name for p in path.parent.iterdir()] == ["file.md"]

    def test_read_text_missing(self, tmp_path: Path):
        assert read_text(tmp_path / "nope") == ""


class TestLedger:
    def test_append_blocks(self, state: WMState):
        when = datetime(2025, 5, 1, 12, 30, tzinfo=timezone.utc)
        state.append_raw_extraction("s1", "- Prefer functional style\n", when)
        state.append_raw_extraction("s2", "- Never skip tests", when)

        text = state.raw_extractions_path.read_text()
        assert text == (
            "## Session: s1 (2025-05-01T12:30:00Z)\n\n- Prefer functional style\n"
            "\n"
            "## Session: s2 (2025-05-01T12:30:00Z)\n\n- Never skip tests\n"
        )

    def test_replace_drops_only_that_session(self, state: WMState):
        when = datetime(2025, 5, 1, 12, 30, tzinfo=timezone.utc)
        state.append_raw_extraction("s1", "- old one", when)
        state.append_raw_extraction("s2", "- other session", when)
        state.append_raw_extraction("s1", "- old two", when)
        state.append_raw_extraction("s10", "- similar id", when)

        state.append_raw_extraction("s1", "- fresh", when, replace=True)

        text = state.raw_extractions_path.read_text()
        assert "old one" not in text
        assert "old two" not in text
        assert text == (
            "## Session: s2 (2025-05-01T12:30:00Z)\n\n- other session\n"
            "\n"
            "## Session: s10 (2025-05-01T12:30:00Z)\n\n- similar id\n"
            "\n"
            "## Session: s1 (2025-05-01T12:30:00Z)\n\n- fresh\n"
        )

    def test_replace_on_empty_ledger(self, state: WMState):
        when = datetime(2025, 5, 1, 12, 30, tzinfo=timezone.utc)
        state.append_raw_extraction("s1", "- only", when, replace=True)
        assert state.raw_extractions_path.read_text() == (
            "## Session: s1 (2025-05-01T12:30:00Z)\n\n- only\n"
        )

    def test_log_error_single_line(self, state: WMState):
        state.log_error("s1", "boom\nsecond line")
        lines = state.errors_log_path.read_text().splitlines()
        assert len(lines) == 1
        assert "Session s1: boom | second line" in lines[0]


class TestDistillLock:
    def test_acquire_release(self, tmp_path: Path):
        path = tmp_path / ".lock"
        with DistillLock(path):
            assert path.exists()
        assert not path.exists()

    def test_held_lock_raises(self, tmp_path: Path):
        path = tmp_path / ".lock"
        with DistillLock(path):
            with pytest.raises(LockHeld):
                DistillLock(path).acquire()
        assert not path.exists()

    def test_stale_lock_taken_over(self, tmp_path: Path):
        path = tmp_path / ".lock"
        path.write_text("12345 0\n")
        old = time.time() - 3600
        os.utime(path, (old, old))
        with DistillLock(path, timeout=600):
            assert path.read_text().startswith(str(os.getpid()))

    def test_failed_acquire_does_not_remove_foreign_lock(self, tmp_path: Path):
        path = tmp_path / ".lock"
        path.write_text("other\n")
        lock = DistillLock(path)
        with pytest.raises(LockHeld):
            lock.acquire()
        lock.release()
        assert path.exists()
