"""Tests for crowdcode record command."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from crowdcode.cli.main import cli
from crowdcode.cli.record import run_recording
from crowdcode.config.models import CrowdCodeConfig
from crowdcode.recording.models import RecordingSession

runner = CliRunner()


class FakeEngine:
    """Engine that cancels itself right after starting."""

    def __init__(self, *, started: bool = True, final: Path | None = None) -> None:
        self.started = started
        self.final = final
        self.session = RecordingSession(chunk_index=1)
        self.stopped = False

    async def start(self) -> bool:
        return self.started

    @property
    def is_recording(self) -> bool:
        return False

    async def stop(self) -> Path | None:
        self.stopped = True
        return self.final

    async def wait_for_background(self, timeout: float | None = None) -> None:
        return None


class TestRunRecording:
    @pytest.mark.asyncio
    async def test_stops_and_returns_final_chunk(self, tmp_path: Path) -> None:
        engine = FakeEngine(final=tmp_path / "chunk-0000.json.gz")

        with patch("crowdcode.cli.record.create_engine", return_value=engine):
            path = await run_recording(tmp_path, CrowdCodeConfig())

        assert engine.stopped
        assert path == tmp_path / "chunk-0000.json.gz"

    @pytest.mark.asyncio
    async def test_start_failure_raises(self, tmp_path: Path) -> None:
        engine = FakeEngine(started=False)

        with (
            patch("crowdcode.cli.record.create_engine", return_value=engine),
            pytest.raises(click.ClickException),
        ):
            await run_recording(tmp_path, CrowdCodeConfig())
        assert not engine.stopped


class TestRecordCommand:
    def test_invalid_config_reported(self, tmp_path: Path) -> None:
        config_dir = tmp_path / ".crowdcode"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("capture:\n  cache_max_entries: 0\n")

        with patch("crowdcode.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"):
            result = runner.invoke(cli, ["record", str(tmp_path)])

        assert result.exit_code == 1
        assert "cache_max_entries" in result.output

    def test_missing_workspace(self, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["record", str(tmp_path / "missing")])
        assert result.exit_code == 2

    def test_export_path_override(self, tmp_path: Path) -> None:
        seen: dict[str, Any] = {}

        async def fake_run(workspace_root: Path, config: CrowdCodeConfig) -> None:
            seen["root"] = workspace_root
            seen["export"] = config.persistence.export_path

        with (
            patch("crowdcode.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"),
            patch("crowdcode.cli.record.run_recording", fake_run),
        ):
            result = runner.invoke(
                cli, ["record", str(tmp_path), "--export-path", str(tmp_path / "out")]
            )

        assert result.exit_code == 0, result.output
        assert seen["root"] == tmp_path.resolve()
        assert seen["export"] == str((tmp_path / "out").resolve())


class TestVersion:
    def test_version(self) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output
