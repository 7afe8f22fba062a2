"""Metrics aggregation: pure reducers from positions to snapshots.

Nothing here touches the database. A portfolio's open trades, closed trades
and open share lots go in (a PortfolioBook); a PortfolioReduction comes out,
holding the snapshot plus the partial maps (day buckets, collateral per
ticker, expirations per day) that the account-level reduction merges before
deriving its own figures.

All accumulator maps are local to one call.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from wheelbook.services.metrics.models import (
    AccountSummary,
    AccountTotals,
    BiggestPosition,
    CapitalUsedDetail,
    NextExpiration,
    PerformanceStats,
    PortfolioSnapshot,
    TickerExposure,
    TickerPremium,
    UpcomingExpiration,
)
from wheelbook.services.metrics.series import (
    DayBuckets,
    bucket_by_day,
    merge_buckets,
    month_start,
    rolling_series,
    trailing_start,
    utc_day,
    window_total,
    year_start,
)
from wheelbook.services.portfolio import calculator
from wheelbook.services.portfolio.models import Portfolio, ShareLot, Trade, TradeType
from wheelbook.system.config import MetricsConfig

ZERO = Decimal("0")
HUNDRED = Decimal("100")
SECONDS_PER_DAY = Decimal("86400")

ExpirationBuckets = dict[date, dict[str, int]]


@dataclass(frozen=True)
class PortfolioBook:
    """Everything the reducer needs about one portfolio."""

    portfolio: Portfolio
    open_trades: list[Trade] = field(default_factory=list)
    closed_trades: list[Trade] = field(default_factory=list)
    open_lots: list[ShareLot] = field(default_factory=list)


@dataclass(frozen=True)
class PortfolioReduction:
    """Snapshot plus the partial maps needed for account-level merging."""

    snapshot: PortfolioSnapshot
    realized_buckets: DayBuckets
    collateral_by_ticker: dict[str, Decimal]
    premium_by_ticker: dict[str, Decimal]
    expirations: ExpirationBuckets


# ==================== Capital ====================


def capital_in_use(open_trades: Iterable[Trade]) -> Decimal:
    """Σ collateral over open CashSecuredPut trades only."""
    return sum(
        (
            calculator.collateral(t.strike_price, t.contracts_open)
            for t in open_trades
            if t.type == TradeType.CASH_SECURED_PUT
        ),
        start=ZERO,
    )


def total_realized(closed_trades: Iterable[Trade]) -> tuple[Decimal, int]:
    """
    All-time realized amount and how many rows had to be estimated.

    Returns:
        (total, estimated_count)
    """
    total = ZERO
    estimated = 0
    for trade in closed_trades:
        amount = calculator.realized_for(trade)
        total += amount.amount
        if amount.is_estimate:
            estimated += 1
    return total, estimated


def percent_used(in_use: Decimal, current_capital: Decimal) -> Decimal:
    if current_capital <= 0:
        return ZERO
    return in_use / current_capital * HUNDRED


def capital_used_detail(open_trades: Iterable[Trade], open_lots: Iterable[ShareLot]) -> CapitalUsedDetail:
    options = sum((calculator.options_capital(t) for t in open_trades), start=ZERO)
    shares = sum((lot.avg_cost * lot.shares for lot in open_lots), start=ZERO)
    return CapitalUsedDetail(options=options, shares=shares)


def potential_premium(open_trades: Iterable[Trade]) -> Decimal:
    return sum((calculator.premium_notional(t.contract_price, t.contracts_open) for t in open_trades), start=ZERO)


# ==================== Exposure ====================


def collateral_by_ticker(open_trades: Iterable[Trade]) -> dict[str, Decimal]:
    """CashSecuredPut collateral summed per ticker, in first-seen order."""
    totals: dict[str, Decimal] = {}
    for t in open_trades:
        if t.type != TradeType.CASH_SECURED_PUT:
            continue
        totals[t.ticker] = totals.get(t.ticker, ZERO) + calculator.collateral(t.strike_price, t.contracts_open)
    return totals


def exposures(collateral: dict[str, Decimal]) -> list[TickerExposure]:
    """Weights from summed collateral, largest first (ties keep first-seen order)."""
    grand_total = sum(collateral.values(), start=ZERO)
    if grand_total == 0:
        return []
    rows = [
        TickerExposure(ticker=ticker, collateral=amount, weight_pct=amount / grand_total * HUNDRED)
        for ticker, amount in collateral.items()
    ]
    return sorted(rows, key=lambda row: row.collateral, reverse=True)


def biggest_position(open_trades: Iterable[Trade]) -> BiggestPosition | None:
    best: BiggestPosition | None = None
    for t in open_trades:
        if t.type != TradeType.CASH_SECURED_PUT:
            continue
        locked = calculator.collateral(t.strike_price, t.contracts_open)
        if best is None or locked > best.collateral:
            best = BiggestPosition(
                trade_id=t.id,
                ticker=t.ticker,
                strike_price=t.strike_price,
                contracts=t.contracts_open,
                collateral=locked,
                expiration_date=t.expiration_date,
            )
    return best


def premium_by_ticker(closed_trades: Iterable[Trade]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for t in closed_trades:
        totals[t.ticker] = totals.get(t.ticker, ZERO) + calculator.realized_for(t).amount
    return totals


# ==================== Expirations ====================


def expiration_buckets(open_trades: Iterable[Trade], today: date) -> ExpirationBuckets:
    """
    Open contracts per expiration day and ticker.

    Days strictly before today and rows with no open contracts are dropped.
    """
    buckets: ExpirationBuckets = {}
    for t in open_trades:
        if t.contracts_open <= 0 or t.expiration_date < today:
            continue
        per_ticker = buckets.setdefault(t.expiration_date, {})
        per_ticker[t.ticker] = per_ticker.get(t.ticker, 0) + t.contracts_open
    return buckets


def merge_expirations(bucket_maps: Iterable[ExpirationBuckets]) -> ExpirationBuckets:
    merged: ExpirationBuckets = {}
    for buckets in bucket_maps:
        for day, per_ticker in buckets.items():
            target = merged.setdefault(day, {})
            for ticker, contracts in per_ticker.items():
                target[ticker] = target.get(ticker, 0) + contracts
    return merged


def next_expiration(buckets: ExpirationBuckets) -> NextExpiration | None:
    """Earliest day; top ticker is the one with most contracts, first-seen wins ties."""
    if not buckets:
        return None
    day = min(buckets)
    per_ticker = buckets[day]
    top_ticker = ""
    top_count = -1
    for ticker, contracts in per_ticker.items():
        if contracts > top_count:
            top_ticker, top_count = ticker, contracts
    return NextExpiration(day=day, contracts=sum(per_ticker.values()), top_ticker=top_ticker)


def expiring_soon_count(buckets: ExpirationBuckets, today: date, days: int) -> int:
    """Contracts expiring within [today, today + days]."""
    horizon = today + timedelta(days=days)
    return sum(sum(per_ticker.values()) for day, per_ticker in buckets.items() if today <= day <= horizon)


def upcoming_expirations(open_trades: Iterable[Trade], today: date, limit: int) -> list[UpcomingExpiration]:
    candidates = [t for t in open_trades if t.contracts_open > 0 and t.expiration_date >= today]
    candidates.sort(key=lambda t: (t.expiration_date, t.created_at))
    return [
        UpcomingExpiration(
            trade_id=t.id,
            ticker=t.ticker,
            expiration_date=t.expiration_date,
            contracts=t.contracts_open,
            strike_price=t.strike_price,
            type=t.type,
        )
        for t in candidates[:limit]
    ]


def clamp_limit(limit: int | None, config: MetricsConfig) -> int:
    if limit is None:
        limit = config.next_expirations_default
    return max(1, min(limit, config.next_expirations_max))


# ==================== Ages and performance ====================


def _days_between(start: datetime, end: datetime) -> Decimal:
    return Decimal(str((end - start).total_seconds())) / SECONDS_PER_DAY


def open_avg_days(open_trades: Sequence[Trade], now: datetime) -> Decimal | None:
    """Mean age of open trades in days, one decimal place (None when nothing is open)."""
    if not open_trades:
        return None
    total = sum((max(ZERO, _days_between(t.created_at, now)) for t in open_trades), start=ZERO)
    return (total / len(open_trades)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def performance_stats(closed_trades: Sequence[Trade]) -> PerformanceStats:
    if not closed_trades:
        return PerformanceStats()

    wins = 0
    pct_sum, pct_count = ZERO, 0
    days_sum, days_count = ZERO, 0
    for t in closed_trades:
        if t.percent_pl is not None:
            pct_sum += t.percent_pl
            pct_count += 1
            if t.percent_pl > 0:
                wins += 1
        if t.closed_at is not None:
            days = _days_between(t.created_at, t.closed_at)
            if days >= 0:
                days_sum += days
                days_count += 1

    return PerformanceStats(
        closed_count=len(closed_trades),
        win_rate=Decimal(wins) / len(closed_trades),
        avg_pl_percent=pct_sum / pct_count if pct_count else ZERO,
        avg_days_in_trade=days_sum / days_count if days_count else ZERO,
    )


# ==================== Reductions ====================


def realized_buckets(closed_trades: Iterable[Trade]) -> DayBuckets:
    """Realized amounts bucketed by UTC close day (rows without closed_at are skipped)."""
    return bucket_by_day(
        (t.closed_at, calculator.realized_for(t).amount) for t in closed_trades if t.closed_at is not None
    )


def reduce_portfolio(
    book: PortfolioBook,
    now: datetime,
    config: MetricsConfig,
    expirations_limit: int | None = None,
) -> PortfolioReduction:
    """
    Reduce one portfolio's positions into a snapshot.

    Args:
        book: Positions of the portfolio
        now: Current instant (UTC); its UTC day is "today"
        config: Windows and limits
        expirations_limit: Size of next_expirations (clamped)
    """
    today = utc_day(now)
    portfolio = book.portfolio

    in_use = capital_in_use(book.open_trades)
    realized, estimated = total_realized(book.closed_trades)
    current = portfolio.capital_base + realized
    buckets = realized_buckets(book.closed_trades)
    mtd, ytd, trailing = rolling_series(buckets, today, config.trailing_days)
    collateral = collateral_by_ticker(book.open_trades)
    exposure_rows = exposures(collateral)
    expirations = expiration_buckets(book.open_trades, today)

    snapshot = PortfolioSnapshot(
        portfolio_id=portfolio.id,
        name=portfolio.name,
        as_of=today,
        starting_capital=portfolio.starting_capital,
        additional_capital=portfolio.additional_capital,
        capital_base=portfolio.capital_base,
        total_realized=realized,
        estimated_count=estimated,
        current_capital=current,
        capital_in_use=in_use,
        cash_available=current - in_use,
        percent_used=percent_used(in_use, current),
        capital_used_detail=capital_used_detail(book.open_trades, book.open_lots),
        open_count=len(book.open_trades),
        potential_premium=potential_premium(book.open_trades),
        open_avg_days=open_avg_days(book.open_trades, now),
        biggest=biggest_position(book.open_trades),
        exposures=exposure_rows,
        top_tickers=exposure_rows[: config.top_tickers_per_portfolio],
        next_expiration=next_expiration(expirations),
        next_expirations=upcoming_expirations(book.open_trades, today, clamp_limit(expirations_limit, config)),
        expiring_soon_count=expiring_soon_count(expirations, today, config.expiring_soon_days),
        realized_mtd=window_total(buckets, month_start(today), today),
        realized_ytd=window_total(buckets, year_start(today), today),
        realized_trailing=window_total(buckets, trailing_start(today, config.trailing_days), today),
        performance=performance_stats(book.closed_trades),
        mtd_series=mtd,
        ytd_series=ytd,
        trailing_series=trailing,
    )
    return PortfolioReduction(
        snapshot=snapshot,
        realized_buckets=buckets,
        collateral_by_ticker=collateral,
        premium_by_ticker=premium_by_ticker(book.closed_trades),
        expirations=expirations,
    )


def reduce_account(
    user_id: str,
    reductions: Sequence[PortfolioReduction],
    today: date,
    config: MetricsConfig,
) -> AccountSummary:
    """
    Combine per-portfolio reductions into an account summary.

    Totals are field sums. Exposure weights come from summed collateral, the
    next expiration from merged day buckets, and the series from merged
    realized buckets walked once.
    """
    snapshots = [r.snapshot for r in reductions]

    def total(attr: str) -> Decimal:
        return sum((getattr(s, attr) for s in snapshots), start=ZERO)

    capital_in_use_total = total("capital_in_use")
    current_capital_total = total("current_capital")
    totals = AccountTotals(
        portfolio_count=len(snapshots),
        starting_capital=total("starting_capital"),
        additional_capital=total("additional_capital"),
        capital_base=total("capital_base"),
        total_realized=total("total_realized"),
        estimated_count=sum(s.estimated_count for s in snapshots),
        current_capital=current_capital_total,
        capital_in_use=capital_in_use_total,
        cash_available=total("cash_available"),
        percent_used=percent_used(capital_in_use_total, current_capital_total),
        open_count=sum(s.open_count for s in snapshots),
        potential_premium=total("potential_premium"),
        expiring_soon_count=sum(s.expiring_soon_count for s in snapshots),
        realized_mtd=total("realized_mtd"),
        realized_ytd=total("realized_ytd"),
        realized_trailing=total("realized_trailing"),
        capital_used_detail=CapitalUsedDetail(
            options=sum((s.capital_used_detail.options for s in snapshots), start=ZERO),
            shares=sum((s.capital_used_detail.shares for s in snapshots), start=ZERO),
        ),
    )

    collateral: dict[str, Decimal] = {}
    premiums: dict[str, Decimal] = {}
    for r in reductions:
        for ticker, amount in r.collateral_by_ticker.items():
            collateral[ticker] = collateral.get(ticker, ZERO) + amount
        for ticker, amount in r.premium_by_ticker.items():
            premiums[ticker] = premiums.get(ticker, ZERO) + amount
    exposure_rows = exposures(collateral)
    premium_rows = sorted(
        (TickerPremium(ticker=ticker, premium=amount) for ticker, amount in premiums.items()),
        key=lambda row: row.premium,
        reverse=True,
    )

    buckets = merge_buckets(r.realized_buckets for r in reductions)
    mtd, ytd, trailing = rolling_series(buckets, today, config.trailing_days)

    return AccountSummary(
        user_id=user_id,
        as_of=today,
        per_portfolio={s.portfolio_id: s for s in snapshots},
        totals=totals,
        exposures=exposure_rows,
        top_tickers=exposure_rows[: config.top_tickers_per_account],
        premium_by_ticker=premium_rows,
        next_expiration=next_expiration(merge_expirations(r.expirations for r in reductions)),
        mtd_series=mtd,
        ytd_series=ytd,
        trailing_series=trailing,
    )
