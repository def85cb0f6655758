"""Knowledge-file compression with backup-before-write."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from wm.config import WMConfig
from wm.distill.prompts import COMPRESSION_SYSTEM_PROMPT, build_compression_message
from wm.errors import GenerationUnavailable, NoChange, NotFound
from wm.markers import WAS_COMPRESSED, parse_marker_response
from wm.providers import Provider, recursion_guard
from wm.state import GUARDRAILS_FILE, METIS_FILE, WMState, atomic_write_bytes, atomic_write_text

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup"
_ALIASES = {"guardrails": GUARDRAILS_FILE, "metis": METIS_FILE}


@dataclass
class CompressResult:
    path: Path
    backup_path: Path
    lines_before: int
    lines_after: int

    @property
    def reduction_percent(self) -> float:
        if self.lines_before == 0:
            return 0.0
        return (1 - self.lines_after / self.lines_before) * 100


class CompressEngine:
    """Re-synthesize a curated file through one generation call."""

    def __init__(self, state: WMState, config: WMConfig, provider: Provider | None = None) -> None:
        self.state = state
        self.config = config
        self.provider = provider

    def resolve(self, name: str) -> Path:
        """Map ``guardrails``/``metis`` (or a file name) to a path in distill/."""
        filename = _ALIASES.get(name, name)
        if Path(filename).name != filename:
            raise ValueError(f"Expected a file name inside the distill directory, got {name!r}")
        return self.state.distill_dir / filename

    async def compress(self, name: str) -> CompressResult:
        """Compress a knowledge file in place.

        Raises NotFound for a missing file and NoChange when the generator
        declines or returns the same content. GenerationError propagates;
        in every failure case the file is left untouched.
        """
        path = self.resolve(name)
        if not path.is_file():
            raise NotFound(f"Knowledge file not found: {path}")

        original = path.read_bytes()
        text = original.decode("utf-8")
        if not text.strip():
            raise NoChange(f"{path.name} is empty, nothing to compress")
        if self.provider is None:
            raise GenerationUnavailable("No generation provider configured")

        logger.info("Compressing %s (%d chars)", path.name, len(text))
        with recursion_guard(self.config.guard_vars):
            response = await self.provider.send(
                build_compression_message(text), system_prompt=COMPRESSION_SYSTEM_PROMPT
            )

        result = parse_marker_response(response.text, WAS_COMPRESSED)
        if not result.decision:
            raise NoChange(f"{path.name} is already concise")
        if not result.payload.strip():
            raise NoChange("Compression returned empty content")
        if result.payload.strip() == text.strip():
            raise NoChange("Compression returned identical content")

        backup_path = self._backup(path, original)
        atomic_write_text(path, result.payload.strip() + "\n")

        lines_before = len(text.strip().splitlines())
        lines_after = len(result.payload.strip().splitlines())
        logger.info("Compressed %s: %d -> %d lines", path.name, lines_before, lines_after)
        return CompressResult(path, backup_path, lines_before, lines_after)

    # ── Backups ───────────────────────────────────────────────

    def _backup(self, path: Path, content: bytes) -> Path:
        """Byte-exact copy next to the file; keep at most ``keep_backups`` per file."""
        ts = datetime.now().strftime("%Y%m%dT%H%M%S%f")
        backup_path = path.with_name(f"{path.name}.{ts}{BACKUP_SUFFIX}")
        atomic_write_bytes(backup_path, content)

        for old in self.backups(path.name)[self.config.distill.keep_backups:]:
            old.unlink(missing_ok=True)
        return backup_path

    def backups(self, name: str) -> list[Path]:
        """Backups of one knowledge file, newest first."""
        path = self.resolve(name)
        # Timestamps are fixed-width, so name order is time order
        return sorted(
            path.parent.glob(f"{path.name}.*{BACKUP_SUFFIX}"), key=lambda p: p.name, reverse=True
        )

    def restore(self, backup_path: Path) -> Path:
        """Write a backup's bytes back over its original file."""
        backup_path = Path(backup_path)
        if not backup_path.is_file():
            raise NotFound(f"Backup not found: {backup_path}")
        original_name = backup_path.name.split(".")
        # <name>.md.<timestamp>.backup -> <name>.md
        target = backup_path.with_name(".".join(original_name[:-2]))
        atomic_write_bytes(target, backup_path.read_bytes())
        logger.info("Restored %s from %s", target.name, backup_path.name)
        return target
