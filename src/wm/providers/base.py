"""Provider protocol, shared types, and the recursion guard."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from wm.errors import GenerationError

logger = logging.getLogger(__name__)


@dataclass
class AgentResponse:
    """Response from a text-generation provider."""

    text: str
    cost_usd: float | None = None
    model: str | None = None
    metadata: dict = field(default_factory=dict)


@runtime_checkable
class Provider(Protocol):
    """Protocol that all provider backends must implement.

    ``send`` raises GenerationTimeout or GenerationUnavailable on failure.
    """

    @property
    def name(self) -> str: ...

    async def send(self, message: str, *, system_prompt: str | None = None) -> AgentResponse:
        """Send a prompt and return the generated text."""
        ...

    async def health_check(self) -> bool:
        """Check if the provider is available. Returns True if healthy."""
        ...


@contextmanager
def recursion_guard(var_names: Sequence[str]) -> Iterator[None]:
    """Set each variable to "1" for the duration of a generation call.

    The host honors these as "do not re-enter wm". Previous values are
    restored on exit, including when the call raises.
    """
    saved = {name: os.environ.get(name) for name in var_names}
    for name in var_names:
        os.environ[name] = "1"
    try:
        yield
    finally:
        for name, value in saved.items():
            if value is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = value


@dataclass
class FallbackProvider:
    """Try the primary provider, then the fallback on a generation error."""

    primary: Provider
    fallback: Provider

    @property
    def name(self) -> str:
        return f"{self.primary.name}+{self.fallback.name}"

    async def send(self, message: str, *, system_prompt: str | None = None) -> AgentResponse:
        try:
            return await self.primary.send(message, system_prompt=system_prompt)
        except GenerationError as e:
            logger.warning(
                "Primary provider %s failed (%s), trying fallback: %s",
                self.primary.name,
                e,
                self.fallback.name,
            )
            return await self.fallback.send(message, system_prompt=system_prompt)

    async def health_check(self) -> bool:
        return await self.primary.health_check() or await self.fallback.health_check()
