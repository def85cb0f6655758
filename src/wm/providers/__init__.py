"""Text-generation providers."""

from __future__ import annotations

import logging

from wm.config import ProviderConfig
from wm.providers.base import AgentResponse, FallbackProvider, Provider, recursion_guard
from wm.providers.claude_cli import ClaudeCLIProvider

logger = logging.getLogger(__name__)

__all__ = [
    "AgentResponse",
    "ClaudeCLIProvider",
    "FallbackProvider",
    "Provider",
    "build_provider",
    "recursion_guard",
]


def _build_single(name: str, config: ProviderConfig) -> Provider:
    if name == "claude_cli":
        return ClaudeCLIProvider(model=config.model, timeout=config.timeout)
    if name == "anthropic_api":
        from wm.providers.anthropic_api import AnthropicAPIProvider

        return AnthropicAPIProvider(
            model=config.model, max_tokens=config.max_tokens, timeout=config.timeout
        )
    raise ValueError(f"Unknown provider: {name}")


def build_provider(config: ProviderConfig) -> Provider:
    """Build the configured provider, wrapped with its fallback if one is set."""
    provider = _build_single(config.name, config)
    if config.fallback and config.fallback != config.name:
        try:
            fallback = _build_single(config.fallback, config)
        except (ImportError, ValueError) as e:
            logger.warning("Failed to build fallback provider %s: %s", config.fallback, e)
        else:
            return FallbackProvider(provider, fallback)
    return provider
