"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (CROWDCODE__SECTION__KEY)
3. Workspace config (.crowdcode/config.yaml)
4. Global config (~/.config/crowdcode/config.yaml)
5. Built-in defaults (lowest priority)
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from crowdcode.config.models import (
    CaptureConfig,
    CrowdCodeConfig,
    GitConfig,
    LoggingConfig,
    PersistenceConfig,
    RedactionConfig,
    UploadConfig,
)
from crowdcode.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/crowdcode/config.yaml").expanduser()
WORKSPACE_DIR_NAME = ".crowdcode"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source."""

    class CrowdCodeSettings(BaseSettings):
        """Root config. Env vars: CROWDCODE__LOGGING__LEVEL, CROWDCODE__UPLOAD__ENDPOINT, etc."""

        model_config = SettingsConfigDict(
            env_prefix="CROWDCODE__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        capture: CaptureConfig = CaptureConfig()
        git: GitConfig = GitConfig()
        persistence: PersistenceConfig = PersistenceConfig()
        upload: UploadConfig = UploadConfig()
        redaction: RedactionConfig = RedactionConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return CrowdCodeSettings


def load_config(workspace_root: Path | None = None, **kwargs: Any) -> CrowdCodeConfig:
    """Load config: defaults < global yaml < workspace yaml < env vars < kwargs.

    Args:
        workspace_root: Workspace to load .crowdcode/config.yaml from.
                        Defaults to current working directory.
        **kwargs: Override values (highest precedence).

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    workspace_root = workspace_root or Path.cwd()

    yaml_config = _load_yaml(workspace_root / WORKSPACE_DIR_NAME / "config.yaml")
    global_config = _load_yaml(GLOBAL_CONFIG_PATH)
    if global_config:
        yaml_config = _deep_merge(global_config, yaml_config)

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return CrowdCodeConfig.model_validate(settings.model_dump())


def resolve_export_path(workspace_root: Path, config: CrowdCodeConfig) -> Path:
    """Resolve and create the chunk export directory.

    Raises:
        ConfigError: If the workspace is missing or the directory is not writable.
    """
    if not workspace_root.is_dir():
        raise ConfigError.no_workspace(str(workspace_root))

    if config.persistence.export_path:
        export_dir = Path(config.persistence.export_path).expanduser()
        if not export_dir.is_absolute():
            export_dir = workspace_root / export_dir
    else:
        export_dir = workspace_root / WORKSPACE_DIR_NAME / "recordings"

    try:
        export_dir.mkdir(parents=True, exist_ok=True)
        probe = export_dir / ".write-probe"
        probe.write_text("")
        probe.unlink()
    except OSError as e:
        raise ConfigError.no_export_location(str(export_dir), str(e)) from e
    return export_dir
