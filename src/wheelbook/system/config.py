"""
System configuration for wheelbook.

One configuration object for the whole system, loaded from YAML and merged
over built-in defaults:

- DatabaseConfig: where positions and share lots are persisted
- MetricsConfig: windows and limits used by the aggregation engine
- ReportingConfig: defaults for closed-trade reports
- LoggingConfig: logging options (converted to log_system.LoggingConfig)

Lookup order for the YAML file:
1. Explicit path passed to SystemConfig.load() / get_system_config()
2. Path in the WHEELBOOK_CONFIG environment variable
3. config/wheelbook.yaml in the current working directory
4. Built-in defaults

String values may reference environment variables as ${VAR}.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from wheelbook.system.log_system import LoggingConfig as LoggerConfig

DEFAULT_CONFIG_PATH = Path("config/wheelbook.yaml")
CONFIG_ENV_VAR = "WHEELBOOK_CONFIG"

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


@dataclass
class DatabaseConfig:
    """Persistence settings.

    Attributes:
        url: SQLAlchemy database URL
        echo: Echo emitted SQL (debugging only)
    """

    url: str = "sqlite:///wheelbook.db"
    echo: bool = False


@dataclass
class MetricsConfig:
    """Aggregation engine settings.

    Attributes:
        expiring_soon_days: Inclusive look-ahead window for "expiring soon"
        trailing_days: Length of the trailing realized P&L window
        top_tickers_per_portfolio: Exposure rows kept per portfolio snapshot
        top_tickers_per_account: Exposure rows kept in the account summary
        next_expirations_default: Default size of the upcoming expirations list
        next_expirations_max: Upper clamp for the upcoming expirations list
        max_workers: Thread pool size for per-portfolio fan-out
    """

    expiring_soon_days: int = 7
    trailing_days: int = 90
    top_tickers_per_portfolio: int = 3
    top_tickers_per_account: int = 5
    next_expirations_default: int = 3
    next_expirations_max: int = 10
    max_workers: int = 4


@dataclass
class ReportingConfig:
    """Closed-trade report settings."""

    default_lookback_days: int = 30


@dataclass
class LoggingConfig:
    """Logging section of the system config.

    Mirrors log_system.LoggingConfig with plain YAML-friendly types.
    """

    level: str = "INFO"
    format: str = "console"
    timestamp_format: str = "compact"
    enable_file: bool = False
    file_path: str = "logs/wheelbook.log"
    file_level: str = "WARNING"
    file_rotation: bool = True
    max_file_size_mb: int = 10
    backup_count: int = 3
    console_width: int = 0

    def to_logger_config(self) -> LoggerConfig:
        """Convert to the pydantic config consumed by LoggerFactory."""
        return LoggerConfig(
            level=self.level.upper(),  # type: ignore[arg-type]
            format=self.format,  # type: ignore[arg-type]
            timestamp_format=self.timestamp_format,  # type: ignore[arg-type]
            enable_file=self.enable_file,
            file_path=Path(self.file_path),
            file_level=self.file_level.upper(),  # type: ignore[arg-type]
            file_rotation=self.file_rotation,
            max_file_size_mb=self.max_file_size_mb,
            backup_count=self.backup_count,
            console_width=self.console_width,
        )


@dataclass
class SystemConfig:
    """Complete system configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "SystemConfig":
        """
        Load configuration from YAML, falling back to defaults.

        Args:
            path: Explicit config file. If None, WHEELBOOK_CONFIG or the
                default location is used.

        Returns:
            SystemConfig with file values merged over defaults
        """
        if path is None:
            env_path = os.environ.get(CONFIG_ENV_VAR)
            path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
        path = Path(path)

        if not path.exists():
            return cls()

        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        return cls._from_dict(_substitute_env_vars(raw))

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "SystemConfig":
        """Build config from a (possibly partial) dict."""
        defaults = cls()
        return cls(
            database=DatabaseConfig(**_deep_merge(vars(defaults.database), data.get("database") or {})),
            metrics=MetricsConfig(**_deep_merge(vars(defaults.metrics), data.get("metrics") or {})),
            reporting=ReportingConfig(**_deep_merge(vars(defaults.reporting), data.get("reporting") or {})),
            logging=LoggingConfig(**_deep_merge(vars(defaults.logging), data.get("logging") or {})),
        )


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base (override wins)."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _substitute_env_vars(value: Any) -> Any:
    """Replace ${VAR} references with environment values (unknown vars are kept)."""
    if isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_env_vars(v) for v in value]
    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    return value


_system_config: SystemConfig | None = None


def get_system_config(path: Path | str | None = None) -> SystemConfig:
    """
    Get the system configuration singleton.

    Args:
        path: Optional explicit file; forces a load from that file.

    Returns:
        Cached SystemConfig
    """
    global _system_config
    if path is not None or _system_config is None:
        _system_config = SystemConfig.load(path)
    return _system_config


def reload_system_config(path: Path | str | None = None) -> SystemConfig:
    """Force a reload of the system configuration singleton."""
    global _system_config
    _system_config = SystemConfig.load(path)
    return _system_config
