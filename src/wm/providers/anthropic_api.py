"""Anthropic API provider: direct Messages API calls, no tools."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from wm.errors import GenerationTimeout, GenerationUnavailable
from wm.providers.base import AgentResponse

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


@dataclass
class AnthropicAPIProvider:
    """Direct Anthropic API via the `anthropic` SDK."""

    model: str | None = None
    max_tokens: int = 4096
    timeout: int = 120

    def __post_init__(self) -> None:
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic package required. Install with: pip install 'wm[api]'"
            )
        self._anthropic = anthropic
        self._client = anthropic.Anthropic(timeout=self.timeout)

    @property
    def name(self) -> str:
        return "anthropic_api"

    async def send(self, message: str, *, system_prompt: str | None = None) -> AgentResponse:
        kwargs: dict = {
            "model": self.model or DEFAULT_MODEL,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": message}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = await asyncio.to_thread(self._client.messages.create, **kwargs)
        except self._anthropic.APITimeoutError as e:
            raise GenerationTimeout(f"Anthropic API timed out after {self.timeout}s") from e
        except self._anthropic.APIError as e:
            logger.error("Anthropic API error: %s", e)
            raise GenerationUnavailable(f"Anthropic API error: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        cost = None
        if response.usage:
            # Approximate cost (Sonnet pricing)
            cost = (response.usage.input_tokens * 3 + response.usage.output_tokens * 15) / 1e6

        return AgentResponse(text=text, cost_usd=cost, model=response.model)

    async def health_check(self) -> bool:
        try:
            response = await asyncio.to_thread(
                self._client.messages.create,
                model=self.model or DEFAULT_MODEL,
                max_tokens=10,
                messages=[{"role": "user", "content": "ping"}],
            )
            return bool(response.content)
        except self._anthropic.APIError:
            return False
