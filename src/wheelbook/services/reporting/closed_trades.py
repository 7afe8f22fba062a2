"""Closed-trade reporting projection.

Selects trades (and share lots) closed within a date range and derives the
premium figures an export needs. Read-only.
"""

import math
from collections.abc import Sequence
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select

from wheelbook.errors import ValidationError
from wheelbook.services.clock import Clock, utc_now
from wheelbook.services.persistence import Database, PortfolioRow, ShareLotRow, TradeRow
from wheelbook.services.portfolio import calculator
from wheelbook.services.portfolio.models import ShareLot, ShareLotStatus, Trade, TradeStatus
from wheelbook.services.portfolio.registry import require_portfolio
from wheelbook.services.reporting.models import ClosedTradeRow, ClosedTradesReport
from wheelbook.system import LoggerFactory
from wheelbook.system.config import ReportingConfig

logger = LoggerFactory.get_logger()

ZERO = Decimal("0")


def to_utc_datetime(value: Any, field: str = "date") -> datetime | None:
    """
    Normalize a report bound to an aware UTC datetime.

    Dates become UTC midnight; naive datetimes are taken as UTC.

    Raises:
        ValidationError: Unparseable value
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        text = value.strip().replace("Z", "+00:00")
        try:
            value = datetime.fromisoformat(text) if "T" in text or " " in text else date.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(f"Invalid {field}: {value!r}") from exc
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise ValidationError(f"Invalid {field}: {value!r}")


def holding_days(created_at: datetime, closed_at: datetime | None) -> int:
    """Whole days held, rounded up and floored at 0."""
    if closed_at is None:
        return 0
    seconds = (closed_at - created_at).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def project_trade(trade: Trade) -> ClosedTradeRow:
    """Report row for a closed option trade."""
    contracts_closed = max(0, trade.contracts_initial - trade.contracts_open)
    received = trade.contract_price * calculator.CONTRACT_MULTIPLIER * trade.contracts_initial
    paid = (trade.closing_price or ZERO) * calculator.CONTRACT_MULTIPLIER * contracts_closed
    computed = max(ZERO, received - paid)
    captured = trade.premium_captured if trade.premium_captured is not None else computed
    return ClosedTradeRow(
        kind="TRADE",
        id=trade.id,
        portfolio_id=trade.portfolio_id,
        ticker=trade.ticker,
        type=trade.type.value,
        strike_price=trade.strike_price,
        entry_price=trade.entry_price,
        expiration_date=trade.expiration_date,
        contract_price=trade.contract_price,
        contracts_initial=trade.contracts_initial,
        contracts_open=trade.contracts_open,
        contracts_closed=contracts_closed,
        shares_closed=contracts_closed * 100,
        closing_price=trade.closing_price,
        premium_captured=trade.premium_captured,
        premium_received=received,
        premium_paid_to_close=paid,
        premium_captured_computed=computed,
        pct_pl_on_premium=captured / received if received > 0 else ZERO,
        percent_pl=trade.percent_pl,
        holding_days=holding_days(trade.created_at, trade.closed_at),
        created_at=trade.created_at,
        closed_at=trade.closed_at,
        notes=trade.notes,
    )


def project_share_lot(lot: ShareLot) -> ClosedTradeRow:
    """Report row for a closed share lot (entry = avg cost, exit = close price)."""
    return ClosedTradeRow(
        kind="STOCK_LOT",
        id=lot.id,
        portfolio_id=lot.portfolio_id,
        ticker=lot.ticker,
        type="STOCK_LOT",
        entry_price=lot.avg_cost,
        expiration_date=lot.closed_at.date() if lot.closed_at else None,
        shares_closed=lot.shares_closed,
        holding_days=holding_days(lot.created_at, lot.closed_at),
        realized_pnl=lot.realized_pnl,
        exit_price=lot.close_price,
        created_at=lot.created_at,
        closed_at=lot.closed_at,
        notes=lot.notes,
    )


class ClosedTradesReporter:
    """
    Build closed-trade reports across one or more portfolios.

    Example:
        >>> reporter = ClosedTradesReporter(db)
        >>> report = reporter.get_closed_trades_report([pid], start="2026-01-01", end="2026-02-01")
        >>> report.count
        3
    """

    def __init__(self, database: Database, config: ReportingConfig | None = None, clock: Clock = utc_now):
        self._db = database
        self._config = config or ReportingConfig()
        self._clock = clock

    def get_closed_trades_report(
        self,
        portfolio_ids: Sequence[str] | None = None,
        start: Any = None,
        end: Any = None,
        user_id: str | None = None,
        include_share_lots: bool = True,
    ) -> ClosedTradesReport:
        """
        Closed rows with closed_at in [start, end), ascending by close time.

        Args:
            portfolio_ids: Portfolios to include; all of user_id's when empty
            start: Range start (default: end − configured lookback)
            end: Range end (default: now)
            user_id: Owner check; required when portfolio_ids is empty
            include_share_lots: Also emit STOCK_LOT rows for closed lots

        Raises:
            ValidationError: Bad bounds, start after end, or nothing to select by
            NotFoundError: A portfolio is missing or not owned by user_id
        """
        now = self._clock()
        range_end = to_utc_datetime(end, "end") or now
        range_start = to_utc_datetime(start, "start") or range_end - timedelta(
            days=self._config.default_lookback_days
        )
        if range_start > range_end:
            raise ValidationError("Report start must not be after end")

        with self._db.read_session() as session:
            if portfolio_ids:
                ids = list(dict.fromkeys(portfolio_ids))
                for pid in ids:
                    require_portfolio(session, pid, user_id)
            elif user_id is not None:
                ids = list(
                    session.scalars(
                        select(PortfolioRow.id)
                        .where(PortfolioRow.user_id == user_id)
                        .order_by(PortfolioRow.created_at, PortfolioRow.id)
                    ).all()
                )
            else:
                raise ValidationError("Report needs portfolio ids or a user id")

            rows: list[ClosedTradeRow] = []
            if ids:
                trades = session.scalars(
                    select(TradeRow).where(
                        TradeRow.portfolio_id.in_(ids),
                        TradeRow.status == TradeStatus.CLOSED.value,
                        TradeRow.closed_at >= range_start,
                        TradeRow.closed_at < range_end,
                    )
                ).all()
                rows.extend(project_trade(Trade.model_validate(t)) for t in trades)

                if include_share_lots:
                    lots = session.scalars(
                        select(ShareLotRow).where(
                            ShareLotRow.portfolio_id.in_(ids),
                            ShareLotRow.status == ShareLotStatus.CLOSED.value,
                            ShareLotRow.closed_at >= range_start,
                            ShareLotRow.closed_at < range_end,
                        )
                    ).all()
                    rows.extend(project_share_lot(ShareLot.model_validate(lot)) for lot in lots)

        rows.sort(key=lambda row: (row.sort_key, row.id))
        logger.debug(
            "closed_trades_reporter.report_built",
            portfolios=len(ids),
            rows=len(rows),
            start=range_start.isoformat(),
            end=range_end.isoformat(),
        )
        return ClosedTradesReport(start=range_start, end=range_end, portfolio_ids=ids, rows=rows)
