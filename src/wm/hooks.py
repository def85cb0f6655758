"""Hook entry points for the host assistant.

Usage (Claude Code hooks):
    wm hook compile    # UserPromptSubmit: JSON on stdin, context JSON on stdout
    wm hook distill    # Stop/SessionEnd: run distillation for the hook's project

Hooks never fail the host turn: every error is logged to .wm/hook.log and
turned into an empty result with exit status 0.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from wm.compile import CompileEngine
from wm.config import load_config
from wm.distill.pipeline import DistillationPipeline, DistillReport
from wm.providers import Provider, build_provider
from wm.state import WMState

logger = logging.getLogger(__name__)

HOOK_EVENT = "UserPromptSubmit"
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def hook_response(context: str = "") -> dict:
    return {
        "hookSpecificOutput": {
            "hookEventName": HOOK_EVENT,
            "additionalContext": context,
        }
    }


def parse_hook_input(raw: str) -> dict:
    """Decode the hook payload. Blank or invalid input yields {}."""
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Invalid hook input, ignoring: %s", e)
        return {}
    return data if isinstance(data, dict) else {}


def setup_hook_logging(project_dir: Path, level: str = "INFO") -> None:
    """Send log records to .wm/hook.log; stdout belongs to the host."""
    state = WMState(project_dir)
    if state.is_initialized():
        logging.basicConfig(
            filename=str(state.hook_log_path),
            level=getattr(logging, level.upper(), logging.INFO),
            format=_LOG_FORMAT,
        )
    else:
        logging.basicConfig(level=logging.WARNING, format=_LOG_FORMAT)


def run_compile_hook(raw_input: str) -> dict:
    """Compile the working set for the turn described by ``raw_input``."""
    try:
        payload = parse_hook_input(raw_input)
        config = load_config(payload.get("cwd") or None)
        if config.disabled:
            return hook_response()
        state = WMState(config.project_dir)
        if not state.is_initialized():
            return hook_response()

        session_id = payload.get("session_id")
        logger.info("Compile hook fired (session %s)", session_id or "-")
        working_set = CompileEngine(state, config).compile(
            session_id=session_id, intent=payload.get("prompt")
        )
        logger.info(
            "Injecting %d chars from %s",
            len(working_set.content),
            ", ".join(working_set.sources) or "nothing",
        )
        return hook_response(working_set.content)
    except Exception as e:
        logger.exception("Compile hook failed: %s", e)
        return hook_response()


async def run_distill_hook(raw_input: str, provider: Provider | None = None) -> DistillReport | None:
    """Distill the hook's project. Returns None when nothing ran."""
    try:
        payload = parse_hook_input(raw_input)
        config = load_config(payload.get("cwd") or None)
        if config.disabled:
            return None
        state = WMState(config.project_dir)
        if not state.is_initialized():
            return None

        logger.info("Distill hook fired (session %s)", payload.get("session_id") or "-")
        pipeline = DistillationPipeline(state, config, provider or build_provider(config.provider))
        report = await pipeline.run(config.project_dir)
        logger.info("Distill hook: %s", report.summary())
        return report
    except Exception as e:
        logger.exception("Distill hook failed: %s", e)
        return None


def emit(response: dict) -> str:
    return json.dumps(response, ensure_ascii=False)
