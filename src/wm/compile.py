"""Working-set compilation for the per-turn hook.

Reads the curated files and the current dive context and joins them. No
generation call happens here; any failure degrades to an empty working set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import yaml

from wm.config import WMConfig
from wm.dive import DiveContextManager
from wm.pause import PauseController
from wm.state import WMState, atomic_write_text, read_text

logger = logging.getLogger(__name__)

SECTION_SEPARATOR = "\n\n---\n\n"

SOURCE_GUARDRAILS = "guardrails"
SOURCE_METIS = "metis"
SOURCE_DIVE = "dive"


@dataclass
class WorkingSet:
    """Compiled context plus the names of the sources that contributed."""

    content: str = ""
    sources: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.content.strip()


class CompileEngine:
    def __init__(self, state: WMState, config: WMConfig) -> None:
        self.state = state
        self.config = config
        self.pause = PauseController(state.pause_path)
        self.dives = DiveContextManager(state)

    def compile(self, session_id: str | None = None, intent: str | None = None) -> WorkingSet:
        """Assemble guardrails, metis and dive context, in that order."""
        if self.config.disabled:
            return WorkingSet()
        if intent:
            logger.debug("Compile intent (%d chars)", len(intent))

        try:
            if self.pause.is_compile_paused():
                logger.info("Compilation paused, returning empty working set")
                return WorkingSet()
            working_set = self._assemble()
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Compile failed, returning empty working set: %s", e)
            return WorkingSet()

        if session_id and not working_set.is_empty:
            self._write_debug(session_id, working_set)
        return working_set

    def _assemble(self) -> WorkingSet:
        parts: list[str] = []
        sources: list[str] = []

        for source, path in (
            (SOURCE_GUARDRAILS, self.state.guardrails_path),
            (SOURCE_METIS, self.state.metis_path),
        ):
            content = read_text(path).strip()
            if content:
                parts.append(content)
                sources.append(source)

        dive = self.dives.current_content()
        if dive:
            parts.append(dive)
            sources.append(SOURCE_DIVE)

        return WorkingSet(content=SECTION_SEPARATOR.join(parts), sources=sources)

    def _write_debug(self, session_id: str, working_set: WorkingSet) -> None:
        path = self.state.working_set_path(session_id)
        try:
            atomic_write_text(path, working_set.content + "\n")
        except OSError as e:
            logger.warning("Cannot write working set for %s: %s", session_id, e)
