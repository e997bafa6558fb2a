"""Tests for config/loader.py module.

Covers:
- _load_yaml() function
- _deep_merge() function
- load_config() precedence
- resolve_export_path() function
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from crowdcode.config.loader import (
    GLOBAL_CONFIG_PATH,
    _deep_merge,
    _load_yaml,
    load_config,
    resolve_export_path,
)
from crowdcode.config.models import CrowdCodeConfig, LoggingConfig, PersistenceConfig
from crowdcode.core.errors import ConfigError, ErrorCode


@pytest.fixture
def no_global_config(tmp_path: Path) -> Any:
    with patch("crowdcode.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"):
        yield


def _write_workspace_config(root: Path, content: str) -> None:
    config_dir = root / ".crowdcode"
    config_dir.mkdir(exist_ok=True)
    (config_dir / "config.yaml").write_text(content)


class TestLoadYaml:
    """Tests for _load_yaml function."""

    def test_returns_empty_dict_for_missing_file(self, tmp_path: Path) -> None:
        assert _load_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_loads_valid_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("capture:\n  fs_debounce_sec: 0.5\n")

        assert _load_yaml(yaml_file) == {"capture": {"fs_debounce_sec": 0.5}}

    def test_returns_empty_for_yaml_null(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "null.yaml"
        yaml_file.write_text("null\n")
        assert _load_yaml(yaml_file) == {}

    def test_raises_config_error_for_invalid_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "invalid.yaml"
        yaml_file.write_text("logging:\n  level:\n    - invalid: [unclosed")

        with pytest.raises(ConfigError) as exc_info:
            _load_yaml(yaml_file)
        assert exc_info.value.code == ErrorCode.CONFIG_PARSE_ERROR


class TestDeepMerge:
    """Tests for _deep_merge function."""

    def test_nested_merge(self) -> None:
        base = {"upload": {"endpoint": "https://a", "url_timeout_sec": 5}}
        override = {"upload": {"endpoint": "https://b"}}
        assert _deep_merge(base, override) == {
            "upload": {"endpoint": "https://b", "url_timeout_sec": 5}
        }

    def test_override_replaces_non_dict(self) -> None:
        base: dict[str, Any] = {"a": {"nested": 1}}
        override: dict[str, Any] = {"a": "simple"}
        assert _deep_merge(base, override) == {"a": "simple"}

    def test_does_not_mutate_base(self) -> None:
        base = {"a": 1}
        _deep_merge(base, {"b": 2})
        assert base == {"a": 1}


class TestLoadConfig:
    """Precedence: defaults < global < workspace < env < kwargs."""

    def test_defaults(self, tmp_path: Path, no_global_config: None) -> None:
        config = load_config(tmp_path)

        assert config.logging.level == "INFO"
        assert config.persistence.save_interval_sec == 300.0
        assert config.git.operation_window_sec == 0.5
        assert config.upload.endpoint is None

    def test_workspace_config(self, tmp_path: Path, no_global_config: None) -> None:
        _write_workspace_config(tmp_path, "capture:\n  pending_edits_per_file: 50\n")

        assert load_config(tmp_path).capture.pending_edits_per_file == 50

    def test_workspace_overrides_global(self, tmp_path: Path) -> None:
        global_file = tmp_path / "global.yaml"
        global_file.write_text(
            "upload:\n  endpoint: https://global.example.com\n  url_timeout_sec: 3\n"
        )
        _write_workspace_config(tmp_path, "upload:\n  endpoint: https://local.example.com\n")

        with patch("crowdcode.config.loader.GLOBAL_CONFIG_PATH", global_file):
            config = load_config(tmp_path)

        assert config.upload.endpoint == "https://local.example.com"
        assert config.upload.url_timeout_sec == 3

    def test_env_vars_override_yaml(self, tmp_path: Path, no_global_config: None) -> None:
        _write_workspace_config(tmp_path, "capture:\n  fs_debounce_sec: 0.2\n")

        with patch.dict(os.environ, {"CROWDCODE__CAPTURE__FS_DEBOUNCE_SEC": "0.7"}):
            config = load_config(tmp_path)

        assert config.capture.fs_debounce_sec == 0.7

    def test_kwargs_override_all(self, tmp_path: Path, no_global_config: None) -> None:
        with patch.dict(os.environ, {"CROWDCODE__LOGGING__LEVEL": "WARNING"}):
            config = load_config(tmp_path, logging=LoggingConfig(level="ERROR"))

        assert config.logging.level == "ERROR"

    def test_invalid_value(self, tmp_path: Path, no_global_config: None) -> None:
        _write_workspace_config(tmp_path, "capture:\n  cache_max_entries: -1\n")

        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_VALUE
        assert "cache_max_entries" in exc_info.value.message


class TestResolveExportPath:
    """Export directory resolution and creation."""

    def test_default_under_workspace(self, tmp_path: Path) -> None:
        path = resolve_export_path(tmp_path, CrowdCodeConfig())

        assert path == tmp_path / ".crowdcode" / "recordings"
        assert path.is_dir()
        assert not (path / ".write-probe").exists()

    def test_relative_path_resolved_against_workspace(self, tmp_path: Path) -> None:
        config = CrowdCodeConfig(persistence=PersistenceConfig(export_path="out/chunks"))
        assert resolve_export_path(tmp_path, config) == tmp_path / "out" / "chunks"

    def test_absolute_path(self, tmp_path: Path) -> None:
        target = tmp_path / "elsewhere"
        config = CrowdCodeConfig(persistence=PersistenceConfig(export_path=str(target)))
        (tmp_path / "ws").mkdir()
        assert resolve_export_path(tmp_path / "ws", config) == target

    def test_missing_workspace(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            resolve_export_path(tmp_path / "missing", CrowdCodeConfig())
        assert exc_info.value.code == ErrorCode.CONFIG_NO_WORKSPACE

    def test_unwritable_location(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        config = CrowdCodeConfig(persistence=PersistenceConfig(export_path=str(blocker / "x")))

        with pytest.raises(ConfigError) as exc_info:
            resolve_export_path(tmp_path, config)
        assert exc_info.value.code == ErrorCode.CONFIG_NO_EXPORT_LOCATION


class TestGlobalConfigPath:
    def test_is_in_user_config(self) -> None:
        assert isinstance(GLOBAL_CONFIG_PATH, Path)
        assert "crowdcode" in str(GLOBAL_CONFIG_PATH)
