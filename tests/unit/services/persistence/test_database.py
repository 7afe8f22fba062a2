"""Unit tests for the database wrapper and column types."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from wheelbook.errors import ConflictError, NotFoundError, PersistenceError
from wheelbook.services.persistence import Database, PortfolioRow


def add_portfolio(db: Database, **overrides) -> str:
    values = dict(user_id="alice", name="P", starting_capital=Decimal("1000.10"), created_at=datetime.now(timezone.utc))
    values.update(overrides)
    with db.transaction() as session:
        row = PortfolioRow(**values)
        session.add(row)
        session.flush()
        return row.id


class TestTransaction:
    """Commit and rollback semantics of Database.transaction()."""

    def test_commit_on_success(self, db):
        portfolio_id = add_portfolio(db)

        with db.read_session() as session:
            assert session.get(PortfolioRow, portfolio_id) is not None

    def test_wheelbook_error_rolls_back_and_propagates(self, db):
        with pytest.raises(NotFoundError):
            with db.transaction() as session:
                session.add(PortfolioRow(user_id="bob", starting_capital=Decimal("1"), created_at=datetime.now(timezone.utc)))
                session.flush()
                raise NotFoundError("gone")

        with db.read_session() as session:
            assert session.scalars(select(PortfolioRow).where(PortfolioRow.user_id == "bob")).all() == []

    def test_stale_data_becomes_conflict(self, db):
        with pytest.raises(ConflictError, match="modified concurrently"):
            with db.transaction():
                raise StaleDataError("version mismatch")

    def test_storage_failure_becomes_persistence_error(self, db):
        with pytest.raises(PersistenceError, match="rolled back"):
            with db.transaction():
                raise OperationalError("INSERT", {}, Exception("disk I/O error"))


class TestColumnTypes:
    """Decimal and timestamp round-trips."""

    def test_decimal_round_trips_exactly(self, db):
        portfolio_id = add_portfolio(db, starting_capital=Decimal("0.1"), additional_capital=Decimal("1234567.8900"))

        with db.read_session() as session:
            row = session.get(PortfolioRow, portfolio_id)
            assert row.starting_capital == Decimal("0.1")
            assert str(row.additional_capital) == "1234567.8900"

    def test_timestamps_come_back_as_aware_utc(self, db):
        eastern = timezone(timedelta(hours=-4))
        created = datetime(2026, 6, 15, 22, 0, tzinfo=eastern)
        portfolio_id = add_portfolio(db, created_at=created)

        with db.read_session() as session:
            stored = session.get(PortfolioRow, portfolio_id).created_at

        assert stored.tzinfo is not None
        assert stored.utcoffset() == timedelta(0)
        assert stored == created
        assert stored.day == 16
