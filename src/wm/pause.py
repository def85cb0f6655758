"""Pause/resume control for extraction and compilation."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path

from wm.state import atomic_write_text

logger = logging.getLogger(__name__)


class Scope(str, Enum):
    EXTRACT = "extract"
    COMPILE = "compile"
    BOTH = "both"

    @classmethod
    def parse(cls, value: Scope | str) -> Scope:
        if isinstance(value, Scope):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Invalid scope {value!r}; expected one of: {valid}") from None


@dataclass
class PauseState:
    extract_paused: bool = False
    compile_paused: bool = False

    def describe(self) -> str:
        extract = "paused" if self.extract_paused else "active"
        compile_ = "paused" if self.compile_paused else "active"
        return f"extract: {extract}, compile: {compile_}"


class PauseController:
    """Two persisted flags. Every change rewrites the whole file atomically."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def status(self) -> PauseState:
        if not self.path.exists():
            return PauseState()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning("Unreadable pause state %s, assuming active: %s", self.path, e)
            return PauseState()
        if not isinstance(data, dict):
            return PauseState()
        return PauseState(
            extract_paused=bool(data.get("extract_paused", False)),
            compile_paused=bool(data.get("compile_paused", False)),
        )

    def is_extract_paused(self) -> bool:
        return self.status().extract_paused

    def is_compile_paused(self) -> bool:
        return self.status().compile_paused

    def pause(self, scope: Scope | str = Scope.BOTH) -> PauseState:
        return self._set(Scope.parse(scope), True)

    def resume(self, scope: Scope | str = Scope.BOTH) -> PauseState:
        return self._set(Scope.parse(scope), False)

    def _set(self, scope: Scope, paused: bool) -> PauseState:
        state = self.status()
        if scope in (Scope.EXTRACT, Scope.BOTH):
            state.extract_paused = paused
        if scope in (Scope.COMPILE, Scope.BOTH):
            state.compile_paused = paused
        atomic_write_text(self.path, json.dumps(asdict(state), indent=2) + "\n")
        logger.info("%s %s (%s)", "Paused" if paused else "Resumed", scope.value, state.describe())
        return state
