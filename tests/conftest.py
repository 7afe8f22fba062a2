"""Shared fixtures: a SQLite database, a pinned clock and wired services."""

from datetime import datetime, timedelta, timezone

import pytest

from wheelbook.services.metrics import MetricsService
from wheelbook.services.persistence import Database
from wheelbook.services.portfolio import PortfolioRegistry, ShareLotService, TradeService
from wheelbook.services.reporting import ClosedTradesReporter
from wheelbook.system.config import MetricsConfig, ReportingConfig


class FakeClock:
    """Settable UTC clock; services call it like utc_now()."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Mid-month, mid-year instant so MTD/YTD windows have room on both sides."""
    return FakeClock(datetime(2026, 6, 15, 14, 30, tzinfo=timezone.utc))


@pytest.fixture
def db(tmp_path) -> Database:
    """File-backed SQLite so worker threads get their own connections."""
    database = Database(f"sqlite:///{tmp_path / 'wheelbook.db'}")
    database.create_all()
    yield database
    database.drop_all()
    database.engine.dispose()


@pytest.fixture
def registry(db: Database, clock: FakeClock) -> PortfolioRegistry:
    return PortfolioRegistry(db, clock=clock)


@pytest.fixture
def trades(db: Database, clock: FakeClock) -> TradeService:
    return TradeService(db, clock=clock)


@pytest.fixture
def lots(db: Database, clock: FakeClock) -> ShareLotService:
    return ShareLotService(db, clock=clock)


@pytest.fixture
def metrics(db: Database, clock: FakeClock) -> MetricsService:
    return MetricsService(db, MetricsConfig(max_workers=2), clock=clock)


@pytest.fixture
def reporter(db: Database, clock: FakeClock) -> ClosedTradesReporter:
    return ClosedTradesReporter(db, ReportingConfig(), clock=clock)


@pytest.fixture
def portfolio(registry: PortfolioRegistry):
    """Portfolio owned by alice with 50,000 starting capital."""
    return registry.create_portfolio("alice", "Wheel", "50000")
