"""Claude CLI provider: wraps `claude -p` using the Claude Code subscription."""

from __future__ import annotations

import asyncio
import json
import logging
import subprocess
from dataclasses import dataclass

from wm.errors import GenerationTimeout, GenerationUnavailable
from wm.providers.base import AgentResponse

logger = logging.getLogger(__name__)


@dataclass
class ClaudeCLIProvider:
    """Subprocess wrapper around `claude -p --output-format json`.

    Sessions are not persisted, so extraction calls never show up as new
    transcripts for the next distillation run.
    """

    model: str | None = None
    timeout: int = 300

    @property
    def name(self) -> str:
        return "claude_cli"

    async def send(self, message: str, *, system_prompt: str | None = None) -> AgentResponse:
        cmd = ["claude", "-p", "--output-format", "json", "--no-session-persistence"]

        if self.model:
            cmd.extend(["--model", self.model])
        if system_prompt:
            cmd.extend(["--system-prompt", system_prompt])
        cmd.append(message)

        logger.debug("Running: %s ... (message: %d chars)", " ".join(cmd[:4]), len(message))

        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GenerationTimeout(f"claude CLI did not respond within {self.timeout}s") from e
        except FileNotFoundError as e:
            raise GenerationUnavailable("`claude` CLI not found. Is Claude Code installed?") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            logger.error("claude CLI error (rc=%d): %s", result.returncode, stderr)
            raise GenerationUnavailable(
                f"claude CLI failed (rc={result.returncode}): {stderr or 'unknown error'}"
            )

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError:
            # Fallback: treat raw stdout as plain text
            return AgentResponse(text=result.stdout.strip())

        if not isinstance(data, dict):
            return AgentResponse(text=result.stdout.strip())
        if data.get("is_error"):
            raise GenerationUnavailable(f"claude CLI reported an error: {data.get('result', '')}")

        return AgentResponse(
            text=data.get("result", result.stdout.strip()),
            cost_usd=data.get("cost_usd") or data.get("total_cost_usd"),
            model=data.get("model"),
        )

    async def health_check(self) -> bool:
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                ["claude", "--version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
            return result.returncode == 0
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return False
