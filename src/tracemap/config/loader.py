"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (TRACEMAP__SECTION__KEY)
3. Repo config (.tracemap/config.yaml)
4. Global config (~/.config/tracemap/config.yaml)
5. Built-in defaults (lowest priority)
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from tracemap.config.constants import (
    CONFIG_FILE_NAME,
    DATA_DIR_NAME,
    INDEX_DB_NAME,
    LOCK_FILE_NAME,
    REPORTS_DB_NAME,
)
from tracemap.config.models import (
    DatabaseConfig,
    IndexConfig,
    LoggingConfig,
    ResolverConfig,
    RulesConfig,
    SyncConfig,
    TracemapConfig,
)
from tracemap.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/tracemap/config.yaml").expanduser()


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


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
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class TracemapSettings(BaseSettings):
        """Root config. Env vars: TRACEMAP__LOGGING__LEVEL, TRACEMAP__SYNC__BATCH_SIZE, etc."""

        model_config = SettingsConfigDict(
            env_prefix="TRACEMAP__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        index: IndexConfig = IndexConfig()
        rules: RulesConfig = RulesConfig()
        resolver: ResolverConfig = ResolverConfig()
        sync: SyncConfig = SyncConfig()
        database: DatabaseConfig = DatabaseConfig()

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

    return TracemapSettings


def load_config(repo_root: Path | None = None, **kwargs: Any) -> TracemapConfig:
    """Load config: defaults < global yaml < repo yaml < env vars < kwargs.

    Args:
        repo_root: Root of the indexed tree. Defaults to current working directory.
        **kwargs: Override values (highest precedence), keyed by section.

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    repo_root = repo_root or Path.cwd()

    yaml_config = _load_yaml(GLOBAL_CONFIG_PATH)
    repo_config = _load_yaml(repo_root / DATA_DIR_NAME / CONFIG_FILE_NAME)
    if repo_config:
        yaml_config = _deep_merge(yaml_config, repo_config)

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return TracemapConfig.model_validate(settings.model_dump())


@dataclass(frozen=True, slots=True)
class IndexPaths:
    """On-disk locations derived from config for one indexed root."""

    index_dir: Path
    db_path: Path
    reports_db_path: Path
    audit_dir: Path
    lock_path: Path


def get_index_paths(repo_root: Path, config: TracemapConfig | None = None) -> IndexPaths:
    """Resolve storage locations, respecting index.index_dir and sync.reports_db."""
    config = config or load_config(repo_root)
    if config.index.index_dir:
        index_dir = Path(config.index.index_dir).expanduser()
        if not index_dir.is_absolute():
            index_dir = repo_root / index_dir
    else:
        index_dir = repo_root / DATA_DIR_NAME
    reports_db = (
        Path(config.sync.reports_db).expanduser()
        if config.sync.reports_db
        else index_dir / REPORTS_DB_NAME
    )
    return IndexPaths(
        index_dir=index_dir,
        db_path=index_dir / INDEX_DB_NAME,
        reports_db_path=reports_db,
        audit_dir=index_dir,
        lock_path=index_dir / LOCK_FILE_NAME,
    )


def write_config(path: Path, config: TracemapConfig | None = None) -> None:
    """Write a repo config.yaml with helpful comments.

    Only the commonly tuned values are written; everything else keeps its default.
    """
    cfg = config or TracemapConfig()

    def _block(key: str, values: list[str]) -> list[str]:
        out = [f"  {key}:"]
        out.extend(f"    - {json.dumps(v)}" for v in values)
        return out

    lines = [
        "# tracemap configuration",
        "# Env vars override this file: TRACEMAP__SECTION__KEY (e.g. TRACEMAP__LOGGING__LEVEL)",
        "",
        "logging:",
        "  # DEBUG logs every indexed file",
        f"  level: {cfg.logging.level}",
        "",
        "index:",
        "  # Files larger than this (MB) are skipped and counted as failures",
        f"  max_file_size_mb: {cfg.index.max_file_size_mb}",
        "  # audit.jsonl is archived to a timestamped .gz past this size (MB)",
        f"  audit_max_mb: {cfg.index.audit_max_mb}",
        "",
        "rules:",
        "  # Self-made code. Glob dialect: fnmatch with ** and {a,b}",
        *_block("include", cfg.rules.include),
        "  # External code, checked first",
        *_block("exclude", cfg.rules.exclude),
        "  # Critical files are always self-made with confidence 1.0",
        f"  critical: {json.dumps(list(cfg.rules.critical))}",
        "",
        "resolver:",
        "  # Directory names that raise resolution confidence",
        f"  source_segments: {json.dumps(list(cfg.resolver.source_segments))}",
        "",
        "sync:",
        f"  freshness_interval_sec: {cfg.sync.freshness_interval_sec}",
        f"  reresolve_interval_sec: {cfg.sync.reresolve_interval_sec}",
        f"  batch_size: {cfg.sync.batch_size}",
        "  # Unresolved reports stop being retried after this many attempts",
        f"  max_attempts: {cfg.sync.max_attempts}",
        "",
    ]

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines))
