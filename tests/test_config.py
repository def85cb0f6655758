"""Tests for configuration loading."""

from pathlib import Path

import pytest

from wm.config import is_disabled, load_config, resolve_project_dir


class TestConfig:
    def test_defaults(self, tmp_path: Path):
        config = load_config(tmp_path)
        assert config.project_dir == tmp_path
        assert config.provider.name == "claude_cli"
        assert config.provider.fallback is None
        assert config.provider.timeout == 300
        assert config.distill.carryover_minutes == 5
        assert config.distill.keep_backups == 10
        assert config.guard_vars == ["WM_DISABLED", "SUPEREGO_DISABLED"]
        assert config.wm_dir == tmp_path / ".wm"
        assert not config.disabled

    def test_env_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("WM_PROVIDER", "anthropic_api")
        monkeypatch.setenv("WM_TIMEOUT", "60")
        monkeypatch.setenv("WM_CARRYOVER_MINUTES", "0")
        monkeypatch.setenv("WM_CLAUDE_PROJECTS_DIR", str(tmp_path / "transcripts"))

        config = load_config(tmp_path)
        assert config.provider.name == "anthropic_api"
        assert config.provider.timeout == 60
        assert config.distill.carryover_minutes == 0
        assert config.projects_dir == tmp_path / "transcripts"

    def test_toml_file(self, tmp_path: Path):
        (tmp_path / ".wm").mkdir()
        (tmp_path / ".wm" / "config.toml").write_text("""
log_level = "DEBUG"
guard_vars = ["WM_DISABLED"]

[provider]
name = "anthropic_api"
fallback = "claude_cli"
model = "claude-haiku-4-5"
timeout = 120

[distill]
keep_backups = 3
max_tool_result_chars = 500
""")
        config = load_config(tmp_path)
        assert config.provider.name == "anthropic_api"
        assert config.provider.fallback == "claude_cli"
        assert config.provider.model == "claude-haiku-4-5"
        assert config.provider.timeout == 120
        assert config.distill.keep_backups == 3
        assert config.distill.max_tool_result_chars == 500
        assert config.guard_vars == ["WM_DISABLED"]
        assert config.log_level == "DEBUG"

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("WM_PROVIDER", "claude_cli")
        toml_path = tmp_path / "wm.toml"
        toml_path.write_text("""
[provider]
name = "anthropic_api"
""")
        config = load_config(tmp_path, toml_path)
        assert config.provider.name == "claude_cli"  # env wins

    def test_invalid_toml_raises(self, tmp_path: Path):
        toml_path = tmp_path / "wm.toml"
        toml_path.write_text("[provider\n")
        with pytest.raises(ValueError):
            load_config(tmp_path, toml_path)

    def test_disabled(self, tmp_path: Path, monkeypatch):
        assert not is_disabled()
        monkeypatch.setenv("WM_DISABLED", "1")
        assert is_disabled()
        assert load_config(tmp_path).disabled


class TestResolveProjectDir:
    def test_explicit_wins(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("WM_PROJECT_DIR", "/elsewhere")
        assert resolve_project_dir(tmp_path) == tmp_path

    def test_env_order(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("CLAUDE_PROJECT_DIR", "/from-host")
        assert resolve_project_dir() == Path("/from-host")
        monkeypatch.setenv("WM_PROJECT_DIR", "/from-wm")
        assert resolve_project_dir() == Path("/from-wm")

    def test_cwd_fallback(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert resolve_project_dir() == tmp_path
