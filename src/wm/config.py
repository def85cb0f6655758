"""Configuration loading from environment variables and .wm/config.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

WM_DIRNAME = ".wm"
_CONFIG_FILENAME = "config.toml"
_DEFAULT_PROJECTS_DIR = Path.home() / ".claude" / "projects"
_DEFAULT_GUARD_VARS = ["WM_DISABLED", "SUPEREGO_DISABLED"]


def is_disabled() -> bool:
    """True when WM_DISABLED is set. Checked before any file is touched."""
    return bool(os.getenv("WM_DISABLED"))


def resolve_project_dir(explicit: str | Path | None = None) -> Path:
    """Project root: explicit argument > WM_PROJECT_DIR > CLAUDE_PROJECT_DIR > cwd."""
    if explicit:
        return Path(explicit)
    for var in ("WM_PROJECT_DIR", "CLAUDE_PROJECT_DIR"):
        value = os.getenv(var)
        if value:
            return Path(value)
    return Path.cwd()


@dataclass
class ProviderConfig:
    """Configuration for the text-generation backend."""

    name: str = "claude_cli"
    fallback: str | None = None
    model: str | None = None
    timeout: int = 300
    max_tokens: int = 4096


@dataclass
class DistillConfig:
    """Distillation and compression tuning."""

    carryover_minutes: int = 5
    max_tool_result_chars: int = 2000
    lock_timeout: int = 600
    keep_backups: int = 10


@dataclass
class WMConfig:
    """Top-level wm configuration for one project."""

    project_dir: Path = field(default_factory=Path.cwd)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    distill: DistillConfig = field(default_factory=DistillConfig)
    projects_dir: Path = _DEFAULT_PROJECTS_DIR
    disabled: bool = False
    guard_vars: list[str] = field(default_factory=lambda: list(_DEFAULT_GUARD_VARS))
    log_level: str = "INFO"

    @property
    def wm_dir(self) -> Path:
        return self.project_dir / WM_DIRNAME


def load_config(
    project_dir: str | Path | None = None, config_path: Path | None = None
) -> WMConfig:
    """Load configuration from environment variables and optional .wm/config.toml.

    Priority: environment variables > config.toml > defaults.
    """
    root = resolve_project_dir(project_dir)
    path = config_path or root / WM_DIRNAME / _CONFIG_FILENAME

    file_data: dict = {}
    if path.exists():
        file_data = tomllib.loads(path.read_text(encoding="utf-8"))

    provider_data = file_data.get("provider", {})
    distill_data = file_data.get("distill", {})

    config = WMConfig(
        project_dir=root,
        provider=ProviderConfig(
            name=os.getenv("WM_PROVIDER", provider_data.get("name", "claude_cli")),
            fallback=os.getenv("WM_FALLBACK", provider_data.get("fallback")),
            model=os.getenv("WM_MODEL", provider_data.get("model")),
            timeout=int(os.getenv("WM_TIMEOUT", provider_data.get("timeout", 300))),
            max_tokens=int(provider_data.get("max_tokens", 4096)),
        ),
        distill=DistillConfig(
            carryover_minutes=int(
                os.getenv("WM_CARRYOVER_MINUTES", distill_data.get("carryover_minutes", 5))
            ),
            max_tool_result_chars=int(distill_data.get("max_tool_result_chars", 2000)),
            lock_timeout=int(distill_data.get("lock_timeout", 600)),
            keep_backups=int(distill_data.get("keep_backups", 10)),
        ),
        projects_dir=Path(
            os.getenv(
                "WM_CLAUDE_PROJECTS_DIR",
                file_data.get("projects_dir", str(_DEFAULT_PROJECTS_DIR)),
            )
        ).expanduser(),
        disabled=is_disabled(),
        guard_vars=list(file_data.get("guard_vars", _DEFAULT_GUARD_VARS)),
        log_level=os.getenv("WM_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
