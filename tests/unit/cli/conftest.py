"""CLI test fixtures."""

import pytest
from click.testing import CliRunner

from wheelbook.services.persistence import Database
from wheelbook.services.portfolio import PortfolioRegistry, TradeService
from wheelbook.system import LoggerFactory
from wheelbook.system import config as config_module


@pytest.fixture(autouse=True)
def isolated_cli(monkeypatch):
    """Keep the CLI away from the user's config and reset global logging afterwards."""
    monkeypatch.delenv("WHEELBOOK_CONFIG", raising=False)
    monkeypatch.delenv("WHEELBOOK_DB_URL", raising=False)
    yield
    LoggerFactory.reset()
    config_module._system_config = None


@pytest.fixture
def cli_runner():
    """Fixture providing Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def seeded(db_url):
    """
    alice owns one portfolio with an open AAPL put and a closed KO put.

    Returns the portfolio id.
    """
    database = Database(db_url)
    database.create_all()
    portfolio = PortfolioRegistry(database).create_portfolio("alice", "Wheel", "50000")
    trades = TradeService(database)
    trades.create_trade(portfolio.id, "AAPL", "CashSecuredPut", "180", "2099-01-16", 1, "2.60", "185")
    ko = trades.create_trade(portfolio.id, "KO", "CashSecuredPut", "60", "2099-01-16", 2, "1.00", "62")
    trades.close_trade(ko.id, 2, "0.25")
    database.engine.dispose()
    return portfolio.id
