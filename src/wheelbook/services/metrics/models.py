"""Read-side metric models.

Snapshots are immutable pydantic models built fresh on every request. All
money is Decimal and unrounded; presentation rounds.
"""

from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from wheelbook.services.portfolio.models import TradeType


class TickerExposure(BaseModel):
    """CashSecuredPut collateral on one ticker and its share of the total."""

    ticker: str
    collateral: Decimal
    weight_pct: Decimal

    model_config = ConfigDict(frozen=True)


class TickerPremium(BaseModel):
    """All-time realized premium on one ticker."""

    ticker: str
    premium: Decimal

    model_config = ConfigDict(frozen=True)


class NextExpiration(BaseModel):
    """Earliest expiration day on or after today, with the ticker carrying most contracts."""

    day: date
    contracts: int
    top_ticker: str

    model_config = ConfigDict(frozen=True)


class UpcomingExpiration(BaseModel):
    """One open trade in the upcoming expirations list."""

    trade_id: str
    ticker: str
    expiration_date: date
    contracts: int
    strike_price: Decimal
    type: TradeType

    model_config = ConfigDict(frozen=True)


class BiggestPosition(BaseModel):
    """Open CashSecuredPut tying up the most collateral."""

    trade_id: str
    ticker: str
    strike_price: Decimal
    contracts: int
    collateral: Decimal
    expiration_date: date

    model_config = ConfigDict(frozen=True)


class CapitalUsedDetail(BaseModel):
    """
    Informational capital breakdown (not capital_in_use).

    Attributes:
        options: CSP collateral plus premium paid on long options
        shares: Σ shares × avg_cost over OPEN share lots
    """

    options: Decimal = Decimal("0")
    shares: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.options + self.shares

    model_config = ConfigDict(frozen=True)


class PerformanceStats(BaseModel):
    """
    Closed-trade statistics.

    Attributes:
        closed_count: Closed rows considered
        win_rate: Fraction (0..1) of closed rows with percent_pl > 0
        avg_pl_percent: Mean percent_pl over rows that have one
        avg_days_in_trade: Mean closed_at − created_at in days
    """

    closed_count: int = 0
    win_rate: Decimal = Decimal("0")
    avg_pl_percent: Decimal = Decimal("0")
    avg_days_in_trade: Decimal = Decimal("0")

    model_config = ConfigDict(frozen=True)


class SeriesPoint(BaseModel):
    """
    One step of a cumulative realized P&L series.

    Attributes:
        key: "YYYY-MM-DD" for daily series, "YYYY-MM" for monthly
        period_start: First day of the step
        change: Realized amount attributed to this step
        value: Running total through this step
    """

    key: str
    period_start: date
    change: Decimal
    value: Decimal

    model_config = ConfigDict(frozen=True)


class PnLSeries(BaseModel):
    """Cumulative realized P&L from start to end, one point per calendar unit."""

    granularity: Literal["day", "month"]
    start: date
    end: date
    points: list[SeriesPoint] = Field(default_factory=list)

    @property
    def total(self) -> Decimal:
        """Last cumulative value (0 for an empty series)."""
        return self.points[-1].value if self.points else Decimal("0")

    model_config = ConfigDict(frozen=True)


class PortfolioSnapshot(BaseModel):
    """
    Accounting snapshot of one portfolio as of a UTC day.

    Invariant: cash_available == current_capital − capital_in_use.
    """

    portfolio_id: str
    name: str | None = None
    as_of: date

    # Capital
    starting_capital: Decimal
    additional_capital: Decimal
    capital_base: Decimal
    total_realized: Decimal
    estimated_count: int = 0
    current_capital: Decimal
    capital_in_use: Decimal
    cash_available: Decimal
    percent_used: Decimal
    capital_used_detail: CapitalUsedDetail

    # Open book
    open_count: int
    potential_premium: Decimal
    open_avg_days: Decimal | None = None
    biggest: BiggestPosition | None = None
    exposures: list[TickerExposure] = Field(default_factory=list)
    top_tickers: list[TickerExposure] = Field(default_factory=list)
    next_expiration: NextExpiration | None = None
    next_expirations: list[UpcomingExpiration] = Field(default_factory=list)
    expiring_soon_count: int = 0

    # Realized
    realized_mtd: Decimal
    realized_ytd: Decimal
    realized_trailing: Decimal
    performance: PerformanceStats
    mtd_series: PnLSeries
    ytd_series: PnLSeries
    trailing_series: PnLSeries

    model_config = ConfigDict(frozen=True)


class AccountTotals(BaseModel):
    """Field-by-field sums across an account's portfolios."""

    portfolio_count: int = 0
    starting_capital: Decimal = Decimal("0")
    additional_capital: Decimal = Decimal("0")
    capital_base: Decimal = Decimal("0")
    total_realized: Decimal = Decimal("0")
    estimated_count: int = 0
    current_capital: Decimal = Decimal("0")
    capital_in_use: Decimal = Decimal("0")
    cash_available: Decimal = Decimal("0")
    percent_used: Decimal = Decimal("0")
    open_count: int = 0
    potential_premium: Decimal = Decimal("0")
    expiring_soon_count: int = 0
    realized_mtd: Decimal = Decimal("0")
    realized_ytd: Decimal = Decimal("0")
    realized_trailing: Decimal = Decimal("0")
    capital_used_detail: CapitalUsedDetail = Field(default_factory=CapitalUsedDetail)

    model_config = ConfigDict(frozen=True)


class AccountSummary(BaseModel):
    """All portfolios of a user reduced into one view."""

    user_id: str
    as_of: date
    per_portfolio: dict[str, PortfolioSnapshot] = Field(default_factory=dict)
    totals: AccountTotals
    exposures: list[TickerExposure] = Field(default_factory=list)
    top_tickers: list[TickerExposure] = Field(default_factory=list)
    premium_by_ticker: list[TickerPremium] = Field(default_factory=list)
    next_expiration: NextExpiration | None = None
    mtd_series: PnLSeries
    ytd_series: PnLSeries
    trailing_series: PnLSeries

    model_config = ConfigDict(frozen=True)
