"""
Unit tests for system/config.py.

Covers:
- Section dataclasses and their defaults
- SystemConfig.load(): missing file, partial file, env var lookup
- _deep_merge and ${VAR} substitution
- Singleton functions: get_system_config(), reload_system_config()
"""

from pathlib import Path

import pytest

from wheelbook.system import config as config_module
from wheelbook.system.config import (
    CONFIG_ENV_VAR,
    DatabaseConfig,
    LoggingConfig,
    MetricsConfig,
    ReportingConfig,
    SystemConfig,
    _deep_merge,
    _substitute_env_vars,
    get_system_config,
    reload_system_config,
)


@pytest.fixture(autouse=True)
def reset_singleton(monkeypatch):
    """Each test starts without a cached config or env override."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.setattr(config_module, "_system_config", None)
    yield


class TestSectionDefaults:
    """Default values of each config section."""

    def test_database_defaults(self):
        config = DatabaseConfig()

        assert config.url == "sqlite:///wheelbook.db"
        assert config.echo is False

    def test_metrics_defaults(self):
        config = MetricsConfig()

        assert config.expiring_soon_days == 7
        assert config.trailing_days == 90
        assert config.top_tickers_per_portfolio == 3
        assert config.top_tickers_per_account == 5
        assert config.next_expirations_default == 3
        assert config.next_expirations_max == 10
        assert config.max_workers >= 1

    def test_reporting_defaults(self):
        assert ReportingConfig().default_lookback_days == 30

    def test_logging_defaults(self):
        config = LoggingConfig()

        assert config.level == "INFO"
        assert config.format == "console"
        assert config.enable_file is False
        assert config.file_path == "logs/wheelbook.log"


class TestLoggingConversion:
    """LoggingConfig.to_logger_config()."""

    def test_to_logger_config_converts_types(self):
        config = LoggingConfig(level="debug", file_level="error", file_path="logs/x.log", console_width=80)

        logger_config = config.to_logger_config()

        assert logger_config.level == "DEBUG"
        assert logger_config.file_level == "ERROR"
        assert logger_config.file_path == Path("logs/x.log")
        assert logger_config.console_width == 80


class TestSystemConfigLoad:
    """SystemConfig.load() from YAML."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = SystemConfig.load(tmp_path / "absent.yaml")

        assert config == SystemConfig()

    def test_partial_file_merges_over_defaults(self, tmp_path):
        path = tmp_path / "wheelbook.yaml"
        path.write_text("metrics:\n  trailing_days: 30\ndatabase:\n  url: sqlite:///other.db\n")

        config = SystemConfig.load(path)

        assert config.metrics.trailing_days == 30
        assert config.metrics.expiring_soon_days == 7
        assert config.database.url == "sqlite:///other.db"
        assert config.reporting.default_lookback_days == 30

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert SystemConfig.load(path) == SystemConfig()

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("reporting:\n  default_lookback_days: 7\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        config = SystemConfig.load()

        assert config.reporting.default_lookback_days == 7

    def test_env_substitution_in_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WHEELBOOK_TEST_DB", "sqlite:///from-env.db")
        path = tmp_path / "subst.yaml"
        path.write_text('database:\n  url: "${WHEELBOOK_TEST_DB}"\n')

        config = SystemConfig.load(path)

        assert config.database.url == "sqlite:///from-env.db"


class TestHelpers:
    """_deep_merge and _substitute_env_vars."""

    def test_deep_merge_nested(self):
        base = {"a": 1, "b": {"c": 2, "d": 3}}
        override = {"b": {"d": 4}, "e": 5}

        result = _deep_merge(base, override)

        assert result == {"a": 1, "b": {"c": 2, "d": 4}, "e": 5}
        assert base == {"a": 1, "b": {"c": 2, "d": 3}}

    def test_substitute_unknown_var_is_kept(self, monkeypatch):
        monkeypatch.delenv("WHEELBOOK_UNSET_VAR", raising=False)

        assert _substitute_env_vars("${WHEELBOOK_UNSET_VAR}") == "${WHEELBOOK_UNSET_VAR}"

    def test_substitute_walks_lists_and_dicts(self, monkeypatch):
        monkeypatch.setenv("WB_X", "1")

        assert _substitute_env_vars({"k": ["${WB_X}", 2]}) == {"k": ["1", 2]}


class TestSingleton:
    """get_system_config() / reload_system_config()."""

    def test_get_returns_cached_instance(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        first = get_system_config()
        second = get_system_config()

        assert first is second

    def test_reload_reads_file_again(self, tmp_path):
        path = tmp_path / "wheelbook.yaml"
        path.write_text("metrics:\n  trailing_days: 60\n")
        first = get_system_config(path)

        path.write_text("metrics:\n  trailing_days: 45\n")
        second = reload_system_config(path)

        assert first.metrics.trailing_days == 60
        assert second.metrics.trailing_days == 45
