"""Unit tests for the metrics service against a real database."""

from datetime import date
from decimal import Decimal

import pytest

from wheelbook.errors import NotFoundError


def open_csp(trades, portfolio, ticker, strike, contracts, price, expires):
    return trades.create_trade(portfolio.id, ticker, "CashSecuredPut", strike, expires, contracts, price, strike)


@pytest.fixture
def book(trades, lots, portfolio, clock):
    """One open AAPL put, one closed KO put and a covered lot with an open call."""
    open_csp(trades, portfolio, "AAPL", "180", 2, "2.60", "2026-06-19")
    clock.advance(minutes=1)
    ko = open_csp(trades, portfolio, "KO", "60", 1, "1.00", "2026-07-17")
    trades.close_trade(ko.id, 1, "0.05")
    clock.advance(minutes=1)
    lot = lots.create_share_lot(portfolio.id, "MSFT", 100, "400")
    clock.advance(minutes=1)
    trades.create_trade(portfolio.id, "MSFT", "CoveredCall", "420", "2026-06-26", 1, "3.00", "405", share_lot_id=lot.id)
    return portfolio


class TestPortfolioSnapshot:
    def test_capital_in_use_counts_only_cash_secured_puts(self, metrics, book):
        snap = metrics.get_portfolio_snapshot(book.id)

        assert snap.capital_in_use == Decimal("36000")
        assert snap.capital_used_detail.shares == Decimal("40000")

    def test_cash_available_invariant(self, metrics, book):
        snap = metrics.get_portfolio_snapshot(book.id)

        assert snap.total_realized == Decimal("95")
        assert snap.current_capital == Decimal("50095")
        assert snap.cash_available == snap.current_capital - snap.capital_in_use == Decimal("14095")

    def test_series_end_at_window_totals(self, metrics, book, clock):
        snap = metrics.get_portfolio_snapshot(book.id)

        assert snap.as_of == date(2026, 6, 15)
        assert snap.mtd_series.points[-1].key == "2026-06-15"
        assert snap.mtd_series.total == snap.realized_mtd == Decimal("95")
        assert snap.ytd_series.total == snap.realized_ytd
        assert snap.trailing_series.total == snap.realized_trailing

    def test_realized_moves_out_of_mtd_next_month(self, metrics, book, clock):
        clock.advance(days=20)

        snap = metrics.get_portfolio_snapshot(book.id)

        assert snap.realized_mtd == 0
        assert snap.realized_ytd == Decimal("95")
        assert snap.mtd_series.points[0].key == "2026-07-01"

    def test_next_expiration_and_limit(self, metrics, book):
        snap = metrics.get_portfolio_snapshot(book.id, expirations_limit=1)

        assert snap.next_expiration.day == date(2026, 6, 19)
        assert snap.next_expiration.top_ticker == "AAPL"
        assert snap.expiring_soon_count == 2
        assert [u.ticker for u in snap.next_expirations] == ["AAPL"]

    def test_upcoming_expirations(self, metrics, book):
        upcoming = metrics.get_upcoming_expirations(book.id, limit=5)

        assert [(u.ticker, u.expiration_date) for u in upcoming] == [
            ("AAPL", date(2026, 6, 19)),
            ("MSFT", date(2026, 6, 26)),
        ]

    def test_ownership(self, metrics, book):
        with pytest.raises(NotFoundError):
            metrics.get_portfolio_snapshot(book.id, user_id="mallory")


class TestAccountSummary:
    def test_two_portfolios_merge(self, metrics, registry, trades, book, clock):
        clock.advance(minutes=1)
        taxable = registry.create_portfolio("alice", "Taxable", "10000")
        put = open_csp(trades, taxable, "SPY", "500", 1, "3.00", "2026-06-19")
        trades.close_trade(put.id, 1, "1.00")
        open_csp(trades, taxable, "KO", "60", 2, "0.80", "2026-06-19")

        summary = metrics.get_account_summary("alice")

        assert list(summary.per_portfolio) == [book.id, taxable.id]
        assert summary.totals.portfolio_count == 2
        assert summary.totals.total_realized == Decimal("295")
        assert summary.totals.capital_in_use == Decimal("48000")
        assert summary.totals.cash_available == summary.totals.current_capital - summary.totals.capital_in_use
        today = summary.mtd_series.points[-1]
        assert today.change == Decimal("295")
        assert summary.mtd_series.total == summary.totals.realized_mtd
        assert [e.ticker for e in summary.exposures] == ["AAPL", "KO"]
        assert summary.next_expiration.contracts == 4
        assert summary.next_expiration.top_ticker == "AAPL"
        assert summary.premium_by_ticker[0].ticker == "SPY"

    def test_user_without_portfolios(self, metrics):
        summary = metrics.get_account_summary("nobody")

        assert summary.per_portfolio == {}
        assert summary.totals.portfolio_count == 0
        assert summary.next_expiration is None
