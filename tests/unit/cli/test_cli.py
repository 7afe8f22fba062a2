"""
Unit tests for the wheelbook CLI.

Tests cover:
- Global options (--version, --db, --config)
- init-db schema creation
- snapshot and summary in table and JSON form
- report closed in table, CSV and JSON form
- Error exits for unknown ids and bad ranges
"""

import csv
import io
import json

import pytest
from sqlalchemy import inspect

from wheelbook.cli.main import main
from wheelbook.services.persistence import Database


def run(cli_runner, db_url, *args):
    return cli_runner.invoke(main, ["--db", db_url, "--log-level", "ERROR", *args])


class TestMainGroup:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert "version" in result.output

    def test_help_lists_commands(self, cli_runner):
        result = cli_runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for name in ("init-db", "snapshot", "summary", "report"):
            assert name in result.output

    def test_missing_config_file_rejected(self, cli_runner, tmp_path):
        result = cli_runner.invoke(main, ["--config", str(tmp_path / "nope.yaml"), "init-db"])

        assert result.exit_code != 0

    def test_config_file_supplies_database(self, cli_runner, tmp_path):
        db_file = tmp_path / "from-config.db"
        config_file = tmp_path / "wheelbook.yaml"
        config_file.write_text(f'database:\n  url: "sqlite:///{db_file}"\nlogging:\n  level: "ERROR"\n')

        result = cli_runner.invoke(main, ["--config", str(config_file), "init-db"])

        assert result.exit_code == 0
        assert db_file.exists()


class TestInitDb:
    def test_creates_tables(self, cli_runner, db_url):
        result = run(cli_runner, db_url, "init-db")

        assert result.exit_code == 0
        assert "Schema ready" in result.output
        database = Database(db_url)
        tables = set(inspect(database.engine).get_table_names())
        database.engine.dispose()
        assert {"portfolios", "trades", "share_lots"} <= tables


class TestSnapshot:
    def test_table(self, cli_runner, db_url, seeded):
        result = run(cli_runner, db_url, "snapshot", seeded)

        assert result.exit_code == 0
        assert "Wheel" in result.output
        assert "$18,000.00" in result.output

    def test_json(self, cli_runner, db_url, seeded):
        result = run(cli_runner, db_url, "snapshot", seeded, "--json", "--limit", "1")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["portfolio_id"] == seeded
        assert data["capital_in_use"] == "18000"
        assert data["total_realized"] == "150.00"
        assert len(data["next_expirations"]) == 1

    def test_unknown_portfolio_exits_nonzero(self, cli_runner, db_url, seeded):
        result = run(cli_runner, db_url, "snapshot", "missing")

        assert result.exit_code == 1
        assert "Snapshot failed" in result.output

    def test_wrong_user(self, cli_runner, db_url, seeded):
        result = run(cli_runner, db_url, "snapshot", seeded, "--user", "mallory")

        assert result.exit_code == 1


class TestSummary:
    def test_json(self, cli_runner, db_url, seeded):
        result = run(cli_runner, db_url, "summary", "alice", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert list(data["per_portfolio"]) == [seeded]
        assert data["totals"]["portfolio_count"] == 1

    def test_table(self, cli_runner, db_url, seeded):
        result = run(cli_runner, db_url, "summary", "alice")

        assert result.exit_code == 0
        assert "Total" in result.output


class TestReportClosed:
    """report closed over a wide explicit range."""

    RANGE = ("--start", "2000-01-01", "--end", "2100-01-01")

    def test_csv(self, cli_runner, db_url, seeded):
        result = run(cli_runner, db_url, "report", "closed", "-p", seeded, *self.RANGE, "--format", "csv")

        assert result.exit_code == 0
        records = list(csv.DictReader(io.StringIO(result.stdout)))
        assert len(records) == 1
        assert records[0]["ticker"] == "KO"
        assert records[0]["premiumCaptured"] == "150.00"

    def test_json_by_user(self, cli_runner, db_url, seeded):
        result = run(cli_runner, db_url, "report", "closed", "--user", "alice", *self.RANGE, "--format", "json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["count"] == 1
        assert data["range"]["start"] == "2000-01-01T00:00:00+00:00"

    def test_table(self, cli_runner, db_url, seeded):
        result = run(cli_runner, db_url, "report", "closed", "-p", seeded, *self.RANGE)

        assert result.exit_code == 0
        assert "KO" in result.output

    @pytest.mark.parametrize(
        "args",
        [
            ("--start", "2026-02-01", "--end", "2026-01-01"),
            (),
        ],
    )
    def test_errors_exit_nonzero(self, cli_runner, db_url, seeded, args):
        result = run(cli_runner, db_url, "report", "closed", *args)

        assert result.exit_code == 1
        assert "Report failed" in result.output
