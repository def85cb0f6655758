"""Project state under .wm/: paths, atomic writes, and the distillation lock.

Layout:
    <project>/.wm/
    ├── config.toml                 # Optional project configuration
    ├── pause_state.json            # {extract_paused, compile_paused}
    ├── dive_context.md             # Working (unnamed) dive manifest
    ├── dives/
    │   ├── <name>.md               # Named dive manifests
    │   └── .current                # Pointer to the active named manifest
    ├── distill/
    │   ├── cache.json              # Session id -> fingerprint + marker
    │   ├── raw_extractions.md      # Pass 1 ledger (append-only)
    │   ├── guardrails.md           # Pass 2 output (full overwrite)
    │   ├── metis.md                # Pass 2 output (full overwrite)
    │   ├── errors.log              # Per-session failures
    │   └── *.backup                # Snapshots written before compress
    ├── sessions/<id>/working_set.md
    └── hook.log
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from pathlib import Path

from wm.config import WM_DIRNAME
from wm.errors import LockHeld, NotInitialized

logger = logging.getLogger(__name__)

DISTILL_DIR = "distill"
DIVES_DIR = "dives"
SESSIONS_DIR = "sessions"
CACHE_FILE = "cache.json"
RAW_EXTRACTIONS_FILE = "raw_extractions.md"
GUARDRAILS_FILE = "guardrails.md"
METIS_FILE = "metis.md"
ERRORS_LOG = "errors.log"
LOCK_FILE = ".lock"
PAUSE_FILE = "pause_state.json"
WORKING_DIVE_FILE = "dive_context.md"
WORKING_SET_FILE = "working_set.md"
HOOK_LOG_FILE = "hook.log"
LEDGER_HEADER = "## Session: "


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """Write to a temp file in the same directory, then rename over the target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        tmp.write_bytes(content)
        os.replace(tmp, path)
    finally:
        tmp.unlink(missing_ok=True)


def atomic_write_text(path: Path, content: str) -> None:
    atomic_write_bytes(path, content.encode("utf-8"))


def read_text(path: Path) -> str:
    """Read a UTF-8 file, returning "" if it does not exist."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""


def _drop_session_blocks(ledger: str, session_id: str) -> str:
    """Remove every ledger block headed ``## Session: <session_id> (...)``."""
    prefix = f"{LEDGER_HEADER}{session_id} ("
    kept: list[str] = []
    skipping = False
    for line in ledger.splitlines(keepends=True):
        if line.startswith(LEDGER_HEADER):
            skipping = line.startswith(prefix)
        if not skipping:
            kept.append(line)
    text = "".join(kept).rstrip("\n")
    return text + "\n" if text else ""


class WMState:
    """Paths and file helpers for one project's .wm/ directory."""

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = Path(project_dir)
        self.root = self.project_dir / WM_DIRNAME

    # ── Initialization ────────────────────────────────────────

    def is_initialized(self) -> bool:
        return self.root.is_dir()

    def require_initialized(self) -> None:
        if not self.is_initialized():
            raise NotInitialized(f"Not initialized: {self.root} does not exist. Run 'wm init' first.")

    def initialize(self) -> bool:
        """Create the .wm/ skeleton. Idempotent; returns False if it already existed."""
        existed = self.is_initialized()
        for d in [self.root, self.distill_dir, self.dives_dir]:
            d.mkdir(parents=True, exist_ok=True)
        if not existed:
            logger.info("Initialized %s", self.root)
        return not existed

    # ── Paths ─────────────────────────────────────────────────

    @property
    def distill_dir(self) -> Path:
        return self.root / DISTILL_DIR

    @property
    def dives_dir(self) -> Path:
        return self.root / DIVES_DIR

    @property
    def cache_path(self) -> Path:
        return self.distill_dir / CACHE_FILE

    @property
    def raw_extractions_path(self) -> Path:
        return self.distill_dir / RAW_EXTRACTIONS_FILE

    @property
    def guardrails_path(self) -> Path:
        return self.distill_dir / GUARDRAILS_FILE

    @property
    def metis_path(self) -> Path:
        return self.distill_dir / METIS_FILE

    @property
    def errors_log_path(self) -> Path:
        return self.distill_dir / ERRORS_LOG

    @property
    def lock_path(self) -> Path:
        return self.distill_dir / LOCK_FILE

    @property
    def pause_path(self) -> Path:
        return self.root / PAUSE_FILE

    @property
    def working_dive_path(self) -> Path:
        return self.root / WORKING_DIVE_FILE

    @property
    def hook_log_path(self) -> Path:
        return self.root / HOOK_LOG_FILE

    def session_dir(self, session_id: str) -> Path:
        return self.root / SESSIONS_DIR / session_id

    def working_set_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / WORKING_SET_FILE

    # ── Ledger & logs ─────────────────────────────────────────

    def append_raw_extraction(
        self, session_id: str, content: str, when: datetime, replace: bool = False
    ) -> None:
        """Append one session-tagged block to the raw extraction ledger.

        With ``replace``, earlier blocks of the same session are dropped first.
        The ledger is rewritten through a rename so readers never see a torn block.
        """
        ts = when.strftime("%Y-%m-%dT%H:%M:%SZ")
        block = f"{LEDGER_HEADER}{session_id} ({ts})\n\n{content.strip()}\n"
        existing = read_text(self.raw_extractions_path)
        if replace:
            existing = _drop_session_blocks(existing, session_id)
        if existing and not existing.endswith("\n"):
            existing += "\n"
        separator = "\n" if existing else ""
        atomic_write_text(self.raw_extractions_path, existing + separator + block)

    def log_error(self, session_id: str, error: str) -> None:
        """Append a single-line failure record to distill/errors.log."""
        self.distill_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        oneline = error.replace("\n", " | ")
        with self.errors_log_path.open("a", encoding="utf-8") as f:
            f.write(f"[{ts}] Session {session_id}: {oneline}\n")


class DistillLock:
    """Advisory single-writer lock for distillation runs.

    The lock file is created exclusively; a lock older than `timeout` seconds
    is treated as stale (its owner crashed) and taken over.
    """

    def __init__(self, path: Path, timeout: float = 600) -> None:
        self.path = path
        self.timeout = timeout
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                try:
                    age = time.time() - self.path.stat().st_mtime
                except FileNotFoundError:
                    continue
                if age < self.timeout:
                    raise LockHeld(f"Distillation already running (lock {self.path})")
                logger.warning("Removing stale lock %s (%.0fs old)", self.path, age)
                self.path.unlink(missing_ok=True)
                continue
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"{os.getpid()} {time.time()}\n")
            self._held = True
            return
        raise LockHeld(f"Could not acquire lock {self.path}")

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False

    def __enter__(self) -> DistillLock:
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
