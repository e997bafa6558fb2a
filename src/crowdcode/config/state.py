"""Persisted key-value state (consent flag, anonymous user id).

Stored in ~/.config/crowdcode/state.yaml (auto-generated, not user-editable).
Hosts that bring their own settings storage pass any object satisfying
``crowdcode.host.KeyValueStore`` instead.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger()

GLOBAL_STATE_PATH = Path("~/.config/crowdcode/state.yaml").expanduser()

STATE_HEADER = """\
# AUTO-GENERATED - DO NOT EDIT MANUALLY
# Tracks data-collection consent and the anonymous user id.
# Use 'crowdcode consent accept|decline' to change consent.

"""


class YamlStateStore:
    """Small YAML-backed key-value store. Every ``set`` is written through."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or GLOBAL_STATE_PATH
        self._data: dict[str, Any] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open() as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("state_file_unreadable", path=str(self._path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = STATE_HEADER + yaml.dump(self._data, default_flow_style=False, sort_keys=True)
        self._path.write_text(content)
