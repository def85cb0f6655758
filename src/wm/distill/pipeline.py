"""Distillation pipeline: per-session extraction, then categorization.

Pass 1 walks the project's sessions, windows each changed transcript since
its last cache marker, and asks the generator for tacit knowledge. Positive
answers are appended to the raw extraction ledger.

Pass 2 sends the whole ledger to the generator once and overwrites
guardrails.md and metis.md with the categorized bullets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from wm.config import WMConfig
from wm.distill.cache import STATUS_EMPTY, STATUS_FAILED, STATUS_PROCESSED, ExtractionCache
from wm.distill.prompts import (
    CATEGORIZATION_SYSTEM_PROMPT,
    EXTRACTION_SYSTEM_PROMPT,
    build_categorization_message,
    build_extraction_message,
    format_knowledge_file,
)
from wm.errors import GenerationError, NotFound, ParseError
from wm.markers import GUARDRAILS, HAS_KNOWLEDGE, METIS, parse_marker_response, parse_sections
from wm.pause import PauseController
from wm.providers import Provider, recursion_guard
from wm.state import DistillLock, WMState, atomic_write_text, read_text
from wm.transcript import (
    SessionInfo,
    TranscriptEntry,
    TranscriptStore,
    format_context,
    select_window,
)

logger = logging.getLogger(__name__)

PLAN_NEW = "new/changed"
PLAN_CACHED = "cached"
PLAN_FORCE = "force"


class DistillState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    FILTERING = "filtering"
    EXTRACTING = "extracting"
    CACHE_UPDATE = "cache_update"
    ACCUMULATING = "accumulating"
    CATEGORIZING = "categorizing"
    WRITING = "writing"


@dataclass
class SessionPlan:
    """What a real run would do with one session (dry-run output)."""

    session_id: str
    action: str
    entries_in_window: int = 0


@dataclass
class DistillReport:
    """Outcome of one distillation run."""

    dry_run: bool = False
    skipped_reason: str | None = None
    sessions_found: int = 0
    processed: list[str] = field(default_factory=list)
    cached: list[str] = field(default_factory=list)
    empty: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    blocks_appended: int = 0
    categorized: bool = False
    categorize_error: str | None = None
    guardrails_count: int = 0
    metis_count: int = 0
    plan: list[SessionPlan] = field(default_factory=list)

    def summary(self) -> str:
        if self.skipped_reason:
            return f"Skipped: {self.skipped_reason}"
        if self.dry_run:
            to_run = sum(1 for p in self.plan if p.action != PLAN_CACHED)
            return (
                f"Dry run: {self.sessions_found} sessions, "
                f"{to_run} would be processed, {len(self.plan) - to_run} cached"
            )
        parts = [
            f"{self.sessions_found} sessions",
            f"{len(self.processed)} processed",
            f"{len(self.cached)} cached",
            f"{len(self.empty)} empty",
            f"{len(self.failed)} failed",
            f"{self.blocks_appended} knowledge blocks",
        ]
        if self.categorized:
            parts.append(f"{self.guardrails_count} guardrails, {self.metis_count} metis")
        elif self.categorize_error:
            parts.append(f"categorization failed: {self.categorize_error}")
        return ", ".join(parts)


class DistillationPipeline:
    """Batch extraction and categorization for one project."""

    def __init__(
        self,
        state: WMState,
        config: WMConfig,
        provider: Provider,
        store: TranscriptStore | None = None,
    ) -> None:
        self.state = state
        self.config = config
        self.provider = provider
        self.store = store or TranscriptStore(config.projects_dir)
        self.pause = PauseController(state.pause_path)
        self.current_state = DistillState.IDLE

    def _enter(self, new_state: DistillState) -> None:
        logger.debug("distill: %s -> %s", self.current_state.value, new_state.value)
        self.current_state = new_state

    @property
    def carryover(self) -> timedelta:
        return timedelta(minutes=self.config.distill.carryover_minutes)

    async def run(
        self,
        project_path: Path | None = None,
        *,
        force: bool = False,
        dry_run: bool = False,
        project_filter: str | None = None,
    ) -> DistillReport:
        """Run both passes. Raises NotFound when no sessions can be discovered."""
        report = DistillReport(dry_run=dry_run)

        if self.config.disabled:
            report.skipped_reason = "WM_DISABLED is set"
            return report
        if self.pause.is_extract_paused():
            report.skipped_reason = "extraction is paused"
            logger.info("Extraction paused, skipping distillation")
            return report

        self.state.require_initialized()

        self._enter(DistillState.DISCOVERING)
        sessions = self._discover(project_path, project_filter)
        report.sessions_found = len(sessions)
        logger.info("Discovered %d sessions", len(sessions))

        cache = ExtractionCache.load(self.state.cache_path)

        try:
            if dry_run:
                for session in sessions:
                    report.plan.append(self._plan_session(session, cache, force))
                return report

            with DistillLock(self.state.lock_path, self.config.distill.lock_timeout):
                for session in sessions:
                    await self._process_session(session, cache, force, report)

                self._enter(DistillState.ACCUMULATING)
                if self._needs_categorization(report, force):
                    await self._categorize(report)
        finally:
            self._enter(DistillState.IDLE)

        logger.info("Distillation complete: %s", report.summary())
        return report

    def _discover(self, project_path: Path | None, project_filter: str | None) -> list[SessionInfo]:
        if project_filter:
            return self.store.discover_matching(project_filter)
        return self.store.discover(project_path or self.config.project_dir)

    # ── Pass 1 ────────────────────────────────────────────────

    def _window(
        self, session: SessionInfo, since: datetime | None, until: datetime
    ) -> list[TranscriptEntry]:
        entries = self.store.read_session(session)
        return select_window(
            entries, since, until, carryover=self.carryover, session_id=session.session_id
        )

    def _plan_session(self, session: SessionInfo, cache: ExtractionCache, force: bool) -> SessionPlan:
        sid = session.session_id
        try:
            fingerprint = session.fingerprint()
        except OSError as e:
            logger.warning("Cannot fingerprint %s: %s", sid, e)
            return SessionPlan(sid, PLAN_NEW)

        if not cache.should_process(sid, fingerprint, force):
            return SessionPlan(sid, PLAN_CACHED)

        entry = cache.get(sid)
        action = PLAN_FORCE if force and entry and entry.fingerprint == fingerprint else PLAN_NEW
        since = None if force or entry is None else entry.last_processed_at
        try:
            count = len(self._window(session, since, datetime.now(timezone.utc)))
        except (NotFound, OSError) as e:
            logger.warning("Cannot read %s: %s", sid, e)
            count = 0
        return SessionPlan(sid, action, count)

    async def _process_session(
        self,
        session: SessionInfo,
        cache: ExtractionCache,
        force: bool,
        report: DistillReport,
    ) -> None:
        sid = session.session_id
        try:
            fingerprint = session.fingerprint()
        except OSError as e:
            self._fail(sid, f"Cannot read transcript: {e}", report)
            return

        if not cache.should_process(sid, fingerprint, force):
            report.cached.append(sid)
            return

        entry = cache.get(sid)
        since = None if force or entry is None else entry.last_processed_at
        # Captured before reading so entries logged during the call land in the next window
        read_at = datetime.now(timezone.utc)

        self._enter(DistillState.FILTERING)
        try:
            entries = self._window(session, since, read_at)
        except (NotFound, OSError) as e:
            self._enter(DistillState.CACHE_UPDATE)
            cache.record_processed(sid, fingerprint, read_at, STATUS_FAILED, str(e))
            self._fail(sid, str(e), report)
            return

        if not entries:
            logger.debug("Session %s: nothing in window", sid)
            self._enter(DistillState.CACHE_UPDATE)
            cache.record_processed(sid, fingerprint, read_at, STATUS_EMPTY)
            report.empty.append(sid)
            return

        self._enter(DistillState.EXTRACTING)
        context = format_context(entries, self.config.distill.max_tool_result_chars)
        try:
            with recursion_guard(self.config.guard_vars):
                response = await self.provider.send(
                    build_extraction_message(context), system_prompt=EXTRACTION_SYSTEM_PROMPT
                )
        except GenerationError as e:
            self._enter(DistillState.CACHE_UPDATE)
            cache.record_processed(sid, fingerprint, read_at, STATUS_FAILED, str(e))
            self._fail(sid, str(e), report)
            return

        result = parse_marker_response(response.text, HAS_KNOWLEDGE)
        if result.decision and result.payload.strip():
            # Forced runs cover the whole session: at most one block per session
            self.state.append_raw_extraction(sid, result.payload, read_at, replace=force)
            report.blocks_appended += 1
            logger.info("Session %s: knowledge extracted (%d chars)", sid, len(result.payload))
        else:
            logger.info("Session %s: no knowledge", sid)

        self._enter(DistillState.CACHE_UPDATE)
        cache.record_processed(sid, fingerprint, read_at, STATUS_PROCESSED)
        report.processed.append(sid)

    def _fail(self, session_id: str, message: str, report: DistillReport) -> None:
        logger.error("Session %s failed: %s", session_id, message)
        report.failed[session_id] = message
        try:
            self.state.log_error(session_id, message)
        except OSError as e:
            logger.warning("Cannot write errors.log: %s", e)

    # ── Pass 2 ────────────────────────────────────────────────

    def _needs_categorization(self, report: DistillReport, force: bool) -> bool:
        if report.blocks_appended or force:
            return bool(read_text(self.state.raw_extractions_path).strip())
        if not read_text(self.state.raw_extractions_path).strip():
            return False
        return not (self.state.guardrails_path.exists() and self.state.metis_path.exists())

    async def _categorize(self, report: DistillReport) -> None:
        self._enter(DistillState.CATEGORIZING)
        ledger = read_text(self.state.raw_extractions_path)
        try:
            with recursion_guard(self.config.guard_vars):
                response = await self.provider.send(
                    build_categorization_message(ledger), system_prompt=CATEGORIZATION_SYSTEM_PROMPT
                )
        except GenerationError as e:
            logger.error("Categorization failed, keeping existing files: %s", e)
            report.categorize_error = str(e)
            return

        try:
            sections = parse_sections(response.text, (GUARDRAILS, METIS), strict=True)
        except ParseError as e:
            logger.error("Unparseable categorization, keeping existing files: %s", e)
            report.categorize_error = str(e)
            return

        self._enter(DistillState.WRITING)
        atomic_write_text(
            self.state.guardrails_path, format_knowledge_file("Guardrails", sections[GUARDRAILS])
        )
        atomic_write_text(self.state.metis_path, format_knowledge_file("Metis", sections[METIS]))

        report.categorized = True
        report.guardrails_count = len(sections[GUARDRAILS])
        report.metis_count = len(sections[METIS])
        logger.info(
            "Categorized into %d guardrails and %d metis",
            report.guardrails_count,
            report.metis_count,
        )
