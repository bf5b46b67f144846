# src/wpmigrate/core/config.py
"""
Configuration schema and loading for wpmigrate.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from wpmigrate.contracts.enums import Decision

# Environments whose database failing a connection test makes a health
# check unhealthy. Failures elsewhere are recorded as warnings only.
DEFAULT_CRITICAL_ENVIRONMENTS: tuple[str, ...] = ("prod", "pprd")


class DatabaseSettings(BaseModel):
    """Database connection configuration for one environment.

    The URL is any SQLAlchemy URL, e.g. mysql+pymysql://user:pw@host:3306/wp.
    Host and port are parsed from it for network reachability probes.
    """

    model_config = {"frozen": True}

    url: str = Field(description="SQLAlchemy database URL")
    connect_timeout_seconds: int = Field(default=10, gt=0, description="Connection test timeout")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        from sqlalchemy.engine import make_url
        from sqlalchemy.exc import ArgumentError

        try:
            make_url(v)
        except ArgumentError as e:
            raise ValueError(f"Invalid database URL: {e}") from e
        return v


class StateSettings(BaseModel):
    """Where migration state directories live.

    Example YAML:
        state:
          root: ~/.wpmigrate/migration-logs
          legacy_root: ./logs
    """

    model_config = {"frozen": True}

    root: Path = Field(
        default=Path("~/.wpmigrate/migration-logs"),
        description="Canonical root for migration state directories",
    )
    legacy_root: Path = Field(
        default=Path("logs"),
        description="Older layout root, read as a fallback for pre-existing runs",
    )
    id_prefix: str = Field(
        default="env-migrate-",
        min_length=1,
        description="Prefix of migration ids and their directory names",
    )

    @field_validator("id_prefix")
    @classmethod
    def validate_id_prefix(cls, v: str) -> str:
        if "/" in v or "\\" in v or v.startswith("."):
            raise ValueError(f"id_prefix must be a plain directory name prefix, got {v!r}")
        return v

    def resolved_root(self) -> Path:
        return self.root.expanduser()

    def resolved_legacy_root(self) -> Path:
        return self.legacy_root.expanduser()


class DetectorSettings(BaseModel):
    """Systemic failure detection thresholds.

    Example YAML:
        detector:
          max_consecutive_failures: 5
          health_check_interval: 10
          pause_on_failure: true
    """

    model_config = {"frozen": True}

    max_consecutive_failures: int = Field(default=5, gt=0, description="Consecutive site failures before escalating")
    health_check_interval: int = Field(default=10, gt=0, description="Periodic health check every N processed sites")
    connection_test_interval: int = Field(default=20, gt=0, description="Periodic reachability probe every N processed sites")
    pause_on_failure: bool = Field(
        default=False,
        description="Pause automatically on an unhealthy escalation instead of asking the operator",
    )
    health_check_min_gap_seconds: float = Field(default=300.0, ge=0, description="Minimum gap between periodic health checks")
    connection_test_min_gap_seconds: float = Field(default=600.0, ge=0, description="Minimum gap between periodic probes")
    non_interactive_decision: Decision = Field(
        default=Decision.ABORT,
        description="Answer used in place of the operator prompt when no terminal is attached",
    )


class HealthSettings(BaseModel):
    """Health check thresholds."""

    model_config = {"frozen": True}

    critical_environments: tuple[str, ...] = Field(
        default=DEFAULT_CRITICAL_ENVIRONMENTS,
        description="Environments whose connection failure marks the run unhealthy",
    )
    memory_warning_mb: float = Field(default=512.0, gt=0, description="Warn above this resident memory")
    memory_critical_mb: float = Field(default=1024.0, gt=0, description="Report an issue above this resident memory")
    slow_health_check_ms: float = Field(default=30_000.0, gt=0, description="Warn when a health check takes longer")
    probe_timeout_seconds: float = Field(default=5.0, gt=0, description="TCP reachability probe timeout")
    default_port: int = Field(default=3306, gt=0, lt=65536, description="Port probed when a URL omits one")

    @model_validator(mode="after")
    def validate_memory_thresholds(self) -> "HealthSettings":
        if self.memory_critical_mb < self.memory_warning_mb:
            raise ValueError("memory_critical_mb must be >= memory_warning_mb")
        return self


class WpMigrateSettings(BaseModel):
    """Top-level wpmigrate configuration.

    All settings are validated and frozen after construction. Everything
    has a default, so an empty config is valid: it simply has no databases
    to health-check.
    """

    model_config = {"frozen": True}

    state: StateSettings = Field(default_factory=StateSettings)
    detector: DetectorSettings = Field(default_factory=DetectorSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    migration_database: DatabaseSettings | None = Field(
        default=None,
        description="Intermediate database used while moving tables between environments",
    )
    environments: dict[str, DatabaseSettings] = Field(
        default_factory=dict,
        description="Named environment databases (dev, uat, pprd, prod, ...)",
    )


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Args:
        config: Configuration dict (may contain nested structures)

    Returns:
        New dict with environment variables expanded
    """
    import os

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default = match.group(2)
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            # No env var and no default - keep original (validation will complain)
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lowercase_keys(value: Any) -> Any:
    """Dynaconf uppercases keys at every level; Pydantic fields are lowercase.

    Environment names under `environments` are lowercased too, matching how
    operators refer to them (dev, uat, prod).
    """
    if isinstance(value, dict):
        return {str(k).lower(): _lowercase_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lowercase_keys(item) for item in value]
    return value


def load_settings(config_path: Path | None = None) -> WpMigrateSettings:
    """Load settings from a YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (WPMIGRATE_*) - highest priority
    2. Config file (if given)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: WPMIGRATE_DETECTOR__PAUSE_ON_FAILURE=true
    for nested keys.

    Args:
        config_path: Path to YAML configuration file, or None for
            environment variables and defaults only

    Returns:
        Validated WpMigrateSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If an explicit config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Explicit check for file existence (Dynaconf silently accepts missing files)
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="WPMIGRATE",
        settings_files=[str(config_path)] if config_path is not None else [],
        environments=False,  # No [default]/[production] sections
        load_dotenv=False,  # The CLI loads .env itself
        merge_enabled=True,  # Deep merge nested dicts
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _lowercase_keys(raw_config)

    raw_config = _expand_env_vars(raw_config)

    return WpMigrateSettings(**raw_config)
