"""Tests for knowledge-file compression and backups."""

from __future__ import annotations

import pytest

from conftest import StubProvider
from wm.compress import CompressEngine
from wm.errors import GenerationTimeout, NoChange, NotFound

METIS = "# Metis\n\n- Prefers X in module A\n- Prefers X in module B\n- Old note\n"
COMPRESSED = "WAS_COMPRESSED: YES\n\n# Metis\n\n- Generally prefers X\n"


class TestCompress:
    @pytest.mark.asyncio
    async def test_compress_writes_backup_then_file(self, state, config):
        state.metis_path.write_text(METIS)
        engine = CompressEngine(state, config, StubProvider([COMPRESSED]))

        result = await engine.compress("metis")

        assert state.metis_path.read_text() == "# Metis\n\n- Generally prefers X\n"
        assert result.backup_path.read_text() == METIS
        assert result.lines_before == 5
        assert result.lines_after == 3
        assert result.reduction_percent == pytest.approx(40.0)

    @pytest.mark.asyncio
    async def test_restore_is_byte_identical(self, state, config):
        original = METIS.encode("utf-8") + b"\xe2\x80\xa2 trailing bullet\n"
        state.metis_path.write_bytes(original)
        engine = CompressEngine(state, config, StubProvider([COMPRESSED]))

        result = await engine.compress("metis")
        assert state.metis_path.read_bytes() != original

        engine.restore(result.backup_path)
        assert state.metis_path.read_bytes() == original

    @pytest.mark.asyncio
    async def test_decision_no_is_no_change(self, state, config):
        state.guardrails_path.write_text("# Guardrails\n\n- G\n")
        engine = CompressEngine(state, config, StubProvider(["WAS_COMPRESSED: NO"]))
        with pytest.raises(NoChange):
            await engine.compress("guardrails")
        assert engine.backups("guardrails") == []

    @pytest.mark.asyncio
    async def test_identical_output_is_no_change(self, state, config):
        state.metis_path.write_text(METIS)
        engine = CompressEngine(state, config, StubProvider([f"WAS_COMPRESSED: YES\n\n{METIS}"]))
        with pytest.raises(NoChange):
            await engine.compress("metis")
        assert state.metis_path.read_text() == METIS
        assert engine.backups("metis") == []

    @pytest.mark.asyncio
    async def test_empty_payload_is_no_change(self, state, config):
        state.metis_path.write_text(METIS)
        engine = CompressEngine(state, config, StubProvider(["WAS_COMPRESSED: YES\n\n"]))
        with pytest.raises(NoChange):
            await engine.compress("metis")

    @pytest.mark.asyncio
    async def test_no_marker_is_no_change(self, state, config):
        state.metis_path.write_text(METIS)
        engine = CompressEngine(state, config, StubProvider(["Here is a shorter version: ..."]))
        with pytest.raises(NoChange):
            await engine.compress("metis")

    @pytest.mark.asyncio
    async def test_blank_file_makes_no_call(self, state, config):
        state.metis_path.write_text("\n")
        provider = StubProvider()
        with pytest.raises(NoChange):
            await CompressEngine(state, config, provider).compress("metis")
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_missing_file(self, state, config):
        with pytest.raises(NotFound):
            await CompressEngine(state, config, StubProvider()).compress("metis")

    @pytest.mark.asyncio
    async def test_generation_error_leaves_file(self, state, config):
        state.metis_path.write_text(METIS)
        engine = CompressEngine(state, config, StubProvider([GenerationTimeout("slow")]))
        with pytest.raises(GenerationTimeout):
            await engine.compress("metis")
        assert state.metis_path.read_text() == METIS
        assert engine.backups("metis") == []

    @pytest.mark.asyncio
    async def test_guard_vars_set_during_call(self, state, config):
        state.metis_path.write_text(METIS)
        provider = StubProvider([COMPRESSED])
        await CompressEngine(state, config, provider).compress("metis")
        assert provider.calls[0]["WM_DISABLED"] == "1"

    def test_rejects_paths(self, state, config):
        with pytest.raises(ValueError):
            CompressEngine(state, config).resolve("../secrets.md")


class TestBackups:
    @pytest.mark.asyncio
    async def test_keeps_at_most_configured(self, state, config):
        config.distill.keep_backups = 2
        engine = CompressEngine(state, config)
        for i in range(4):
            state.metis_path.write_text(f"# Metis\n\n- version {i}\n")
            engine.provider = StubProvider([f"WAS_COMPRESSED: YES\n\n# Metis\n\n- v{i}"])
            await engine.compress("metis")

        backups = engine.backups("metis")
        assert len(backups) == 2
        assert backups[0].read_text() == "# Metis\n\n- version 3\n"
        assert backups[1].read_text() == "# Metis\n\n- version 2\n"

    def test_restore_missing_backup(self, state, config):
        with pytest.raises(NotFound):
            CompressEngine(state, config).restore(state.distill_dir / "metis.md.1.backup")
