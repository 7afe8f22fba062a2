"""Unit tests for the pure metrics reducers."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from wheelbook.services.metrics.aggregation import (
    PortfolioBook,
    clamp_limit,
    exposures,
    merge_expirations,
    next_expiration,
    reduce_account,
    reduce_portfolio,
)
from wheelbook.services.portfolio.models import (
    Portfolio,
    ShareLot,
    ShareLotStatus,
    Trade,
    TradeStatus,
    TradeType,
)
from wheelbook.system.config import MetricsConfig

NOW = datetime(2026, 6, 15, 14, 30, tzinfo=timezone.utc)


def at(month, day, hour=0, minute=0, year=2026):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_portfolio(pid="p-1", capital="50000"):
    return Portfolio(id=pid, user_id="alice", name=pid, starting_capital=Decimal(capital), created_at=at(1, 1))


def open_trade(tid, ticker, type_, strike, contracts, price, expires, created):
    return Trade(
        id=tid,
        portfolio_id="p-1",
        ticker=ticker,
        type=type_,
        strike_price=Decimal(strike),
        expiration_date=expires,
        contracts_initial=contracts,
        contracts_open=contracts,
        contract_price=Decimal(price),
        status=TradeStatus.OPEN,
        created_at=created,
    )


def closed_trade(tid, ticker, closed, created, captured=None, percent=None, price="1.00", closing=None):
    return Trade(
        id=tid,
        portfolio_id="p-1",
        ticker=ticker,
        type=TradeType.CASH_SECURED_PUT,
        strike_price=Decimal("50"),
        expiration_date=closed.date(),
        contracts_initial=1,
        contracts_open=0,
        contract_price=Decimal(price),
        status=TradeStatus.CLOSED,
        closing_price=None if closing is None else Decimal(closing),
        premium_captured=None if captured is None else Decimal(captured),
        percent_pl=None if percent is None else Decimal(percent),
        closed_at=closed,
        created_at=created,
    )


@pytest.fixture
def book():
    """Two CSPs, a covered call, an expired long put, three closed rows and one lot."""
    return PortfolioBook(
        portfolio=make_portfolio(),
        open_trades=[
            open_trade("a", "AAPL", TradeType.CASH_SECURED_PUT, "180", 2, "2.60", date(2026, 6, 19), at(6, 5, 14, 30)),
            open_trade("b", "KO", TradeType.CASH_SECURED_PUT, "60", 3, "1.00", date(2026, 6, 19), at(6, 13, 14, 30)),
            open_trade("c", "AAPL", TradeType.COVERED_CALL, "200", 1, "1.50", date(2026, 7, 17), at(6, 13, 14, 30)),
            open_trade("d", "SPY", TradeType.PUT, "400", 1, "3.00", date(2026, 6, 10), at(6, 1, 14, 30)),
        ],
        closed_trades=[
            closed_trade("e", "AAPL", at(6, 10), at(6, 1), captured="510", percent="98.08"),
            closed_trade("f", "KO", at(5, 20), at(5, 10), closing="0.40"),
            closed_trade("g", "SPY", at(1, 15), at(1, 10), captured="-200", percent="-50"),
        ],
        open_lots=[
            ShareLot(
                id="lot",
                portfolio_id="p-1",
                ticker="KO",
                shares=100,
                shares_initial=100,
                avg_cost=Decimal("50"),
                status=ShareLotStatus.OPEN,
                created_at=at(5, 1),
            )
        ],
    )


class TestReducePortfolio:
    """Snapshot figures for a mixed book."""

    @pytest.fixture
    def snapshot(self, book):
        return reduce_portfolio(book, NOW, MetricsConfig()).snapshot

    def test_capital(self, snapshot):
        assert snapshot.capital_in_use == Decimal("54000")
        assert snapshot.total_realized == Decimal("370")
        assert snapshot.estimated_count == 1
        assert snapshot.current_capital == Decimal("50370")
        assert snapshot.cash_available == snapshot.current_capital - snapshot.capital_in_use
        assert snapshot.percent_used == Decimal("54000") / Decimal("50370") * 100

    def test_capital_used_detail_is_informational(self, snapshot):
        assert snapshot.capital_used_detail.options == Decimal("54300")
        assert snapshot.capital_used_detail.shares == Decimal("5000")
        assert snapshot.capital_used_detail.total == Decimal("59300")

    def test_open_book(self, snapshot):
        assert snapshot.open_count == 4
        assert snapshot.potential_premium == Decimal("1270")
        assert snapshot.open_avg_days == Decimal("7.0")
        assert snapshot.biggest.trade_id == "a"
        assert snapshot.biggest.collateral == Decimal("36000")

    def test_exposures(self, snapshot):
        assert [(e.ticker, e.collateral) for e in snapshot.exposures] == [
            ("AAPL", Decimal("36000")),
            ("KO", Decimal("18000")),
        ]
        assert sum(e.weight_pct for e in snapshot.exposures) == pytest.approx(100)

    def test_expirations_skip_past_days(self, snapshot):
        assert snapshot.next_expiration.day == date(2026, 6, 19)
        assert snapshot.next_expiration.contracts == 5
        assert snapshot.next_expiration.top_ticker == "KO"
        assert snapshot.expiring_soon_count == 5
        assert [u.trade_id for u in snapshot.next_expirations] == ["a", "b", "c"]

    def test_expiring_soon_window_is_inclusive(self):
        today = NOW.date()
        book = PortfolioBook(
            portfolio=make_portfolio(),
            open_trades=[
                open_trade("t0", "AAPL", TradeType.CASH_SECURED_PUT, "180", 1, "1.00", today, at(6, 1)),
                open_trade("t7", "KO", TradeType.CASH_SECURED_PUT, "60", 2, "1.00", today + timedelta(days=7), at(6, 1)),
                open_trade("t8", "SPY", TradeType.CASH_SECURED_PUT, "400", 4, "1.00", today + timedelta(days=8), at(6, 1)),
            ],
        )

        snapshot = reduce_portfolio(book, NOW, MetricsConfig()).snapshot

        assert snapshot.expiring_soon_count == 3
        assert snapshot.next_expiration.day == today
        assert snapshot.next_expiration.top_ticker == "AAPL"
        assert [u.trade_id for u in snapshot.next_expirations] == ["t0", "t7", "t8"]

    def test_realized_windows(self, snapshot):
        assert snapshot.realized_mtd == Decimal("510")
        assert snapshot.realized_ytd == Decimal("370")
        assert snapshot.realized_trailing == Decimal("570")
        assert snapshot.mtd_series.total == snapshot.realized_mtd
        assert snapshot.ytd_series.total == snapshot.realized_ytd
        assert snapshot.trailing_series.total == snapshot.realized_trailing

    def test_performance(self, snapshot):
        perf = snapshot.performance

        assert perf.closed_count == 3
        assert perf.win_rate == Decimal(1) / 3
        assert perf.avg_pl_percent == Decimal("24.04")
        assert perf.avg_days_in_trade == Decimal("8")

    def test_empty_portfolio(self):
        snapshot = reduce_portfolio(PortfolioBook(portfolio=make_portfolio()), NOW, MetricsConfig()).snapshot

        assert snapshot.capital_in_use == 0
        assert snapshot.cash_available == Decimal("50000")
        assert snapshot.percent_used == 0
        assert snapshot.open_avg_days is None
        assert snapshot.biggest is None
        assert snapshot.exposures == []
        assert snapshot.next_expiration is None
        assert snapshot.performance.closed_count == 0


class TestExpirationHelpers:
    def test_tie_keeps_first_seen_ticker(self):
        buckets = {date(2026, 6, 19): {"MSFT": 2, "AAPL": 2}, date(2026, 6, 26): {"KO": 9}}

        nxt = next_expiration(buckets)

        assert nxt.day == date(2026, 6, 19)
        assert nxt.top_ticker == "MSFT"
        assert nxt.contracts == 4

    def test_merge_expirations_sums_per_ticker(self):
        merged = merge_expirations([{date(2026, 6, 19): {"AAPL": 1}}, {date(2026, 6, 19): {"AAPL": 2, "KO": 1}}])

        assert merged == {date(2026, 6, 19): {"AAPL": 3, "KO": 1}}

    def test_exposures_empty_when_no_collateral(self):
        assert exposures({}) == []

    @pytest.mark.parametrize("limit, expected", [(None, 3), (0, 1), (5, 5), (50, 10)])
    def test_clamp_limit(self, limit, expected):
        assert clamp_limit(limit, MetricsConfig()) == expected


class TestReduceAccount:
    """Account-level merging of per-portfolio partials."""

    def reduce(self, pid, open_trades=(), closed_trades=()):
        book = PortfolioBook(
            portfolio=make_portfolio(pid, "10000"),
            open_trades=list(open_trades),
            closed_trades=list(closed_trades),
        )
        return reduce_portfolio(book, NOW, MetricsConfig())

    def test_same_day_realized_merges_into_one_increment(self):
        first = self.reduce("p-1", closed_trades=[closed_trade("x", "AAPL", at(6, 3, 15), at(6, 1), captured="100")])
        second = self.reduce("p-2", closed_trades=[closed_trade("y", "KO", at(6, 3, 20), at(6, 1), captured="100")])

        summary = reduce_account("alice", [first, second], NOW.date(), MetricsConfig())

        june_3 = next(p for p in summary.mtd_series.points if p.key == "2026-06-03")
        assert june_3.change == Decimal("200")
        assert june_3.value == Decimal("200")
        assert summary.mtd_series.total == summary.totals.realized_mtd == Decimal("200")

    def test_different_days_walk_once(self):
        first = self.reduce("p-1", closed_trades=[closed_trade("x", "AAPL", at(6, 2), at(6, 1), captured="100")])
        second = self.reduce("p-2", closed_trades=[closed_trade("y", "KO", at(6, 9), at(6, 1), captured="40")])

        summary = reduce_account("alice", [first, second], NOW.date(), MetricsConfig())

        values = {p.key: p.value for p in summary.mtd_series.points}
        assert values["2026-06-01"] == 0
        assert values["2026-06-05"] == Decimal("100")
        assert values["2026-06-15"] == Decimal("140")

    def test_totals_and_weights_from_summed_collateral(self):
        first = self.reduce(
            "p-1",
            open_trades=[open_trade("a", "AAPL", TradeType.CASH_SECURED_PUT, "180", 1, "2", date(2026, 6, 19), at(6, 1))],
        )
        second = self.reduce(
            "p-2",
            open_trades=[
                open_trade("b", "AAPL", TradeType.CASH_SECURED_PUT, "180", 1, "2", date(2026, 6, 26), at(6, 1)),
                open_trade("c", "KO", TradeType.CASH_SECURED_PUT, "40", 3, "1", date(2026, 6, 18), at(6, 1)),
            ],
        )

        summary = reduce_account("alice", [first, second], NOW.date(), MetricsConfig())

        assert list(summary.per_portfolio) == ["p-1", "p-2"]
        assert summary.totals.portfolio_count == 2
        assert summary.totals.capital_in_use == Decimal("48000")
        assert summary.totals.cash_available == Decimal("20000") - Decimal("48000")
        assert [(e.ticker, e.weight_pct) for e in summary.exposures] == [("AAPL", 75), ("KO", 25)]
        assert summary.next_expiration.day == date(2026, 6, 18)
        assert summary.next_expiration.top_ticker == "KO"

    def test_premium_by_ticker_sorted_descending(self):
        first = self.reduce("p-1", closed_trades=[closed_trade("x", "AAPL", at(6, 2), at(6, 1), captured="50")])
        second = self.reduce(
            "p-2",
            closed_trades=[
                closed_trade("y", "KO", at(6, 3), at(6, 1), captured="80"),
                closed_trade("z", "AAPL", at(6, 4), at(6, 1), captured="60"),
            ],
        )

        summary = reduce_account("alice", [first, second], NOW.date(), MetricsConfig())

        assert [(p.ticker, p.premium) for p in summary.premium_by_ticker] == [
            ("AAPL", Decimal("110")),
            ("KO", Decimal("80")),
        ]

    def test_no_portfolios(self):
        summary = reduce_account("nobody", [], NOW.date(), MetricsConfig())

        assert summary.totals.portfolio_count == 0
        assert summary.totals.percent_used == 0
        assert summary.mtd_series.total == 0
