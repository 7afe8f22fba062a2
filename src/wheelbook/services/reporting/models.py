"""Closed-trade report rows."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from wheelbook.services.portfolio.calculator import Estimated, RealizedAmount, Recorded

RowKind = Literal["TRADE", "STOCK_LOT"]


class ClosedTradeRow(BaseModel):
    """
    One closed trade (or closed share lot) projected for export.

    Attributes:
        kind: TRADE for option rows, STOCK_LOT for closed share lots
        type: Trade type name, or "STOCK_LOT"
        premium_captured: Stored realized amount (None when never recorded)
        premium_received: contract_price × 100 × contracts_initial
        premium_paid_to_close: closing_price × 100 × contracts_closed
        premium_captured_computed: max(0, received − paid to close)
        pct_pl_on_premium: Captured ÷ received (0 when nothing was received)
        holding_days: Whole days from open to close, rounded up
        realized_pnl: Share P&L (stock lot rows only)
        exit_price: Lot close price (stock lot rows only)
    """

    kind: RowKind = "TRADE"
    id: str
    portfolio_id: str
    ticker: str
    type: str
    strike_price: Decimal = Decimal("0")
    entry_price: Decimal | None = None
    expiration_date: date | None = None
    contract_price: Decimal = Decimal("0")
    contracts_initial: int = 0
    contracts_open: int = 0
    contracts_closed: int = 0
    shares_closed: int = 0
    closing_price: Decimal | None = None
    premium_captured: Decimal | None = None
    premium_received: Decimal = Decimal("0")
    premium_paid_to_close: Decimal = Decimal("0")
    premium_captured_computed: Decimal = Decimal("0")
    pct_pl_on_premium: Decimal = Decimal("0")
    percent_pl: Decimal | None = None
    holding_days: int = 0
    realized_pnl: Decimal | None = None
    exit_price: Decimal | None = None
    created_at: datetime
    closed_at: datetime | None = None
    notes: str | None = None

    @property
    def captured(self) -> RealizedAmount:
        """Stored premium when recorded, computed premium otherwise."""
        if self.premium_captured is not None:
            return Recorded(self.premium_captured)
        return Estimated(self.premium_captured_computed)

    @property
    def effective_percent(self) -> Decimal:
        return self.percent_pl if self.percent_pl is not None else self.pct_pl_on_premium

    @property
    def sort_key(self) -> datetime:
        return self.closed_at or self.created_at

    model_config = ConfigDict(frozen=True)


class ClosedTradesReport(BaseModel):
    """Rows closed within [start, end), ascending by close time."""

    start: datetime
    end: datetime
    portfolio_ids: list[str] = Field(default_factory=list)
    rows: list[ClosedTradeRow] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.rows)

    model_config = ConfigDict(frozen=True)
