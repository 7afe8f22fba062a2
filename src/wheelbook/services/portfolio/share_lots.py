"""Share lot engine.

Owns share lot state: creation, sales against the lot, direct close of the
remainder, and the cost-basis reduction applied when a covered call written
against the lot closes.

Reservation is computed lazily: shares backing open covered calls are
100 × Σ contracts_open over open CoveredCall trades linked to the lot. They
stay in lot.shares but cannot be sold.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from wheelbook.errors import ConflictError, NotFoundError
from wheelbook.services.clock import Clock, utc_now
from wheelbook.services.persistence import Database, PortfolioRow, ShareLotRow, ShareLotSaleRow, TradeRow
from wheelbook.services.portfolio import calculator
from wheelbook.services.portfolio.models import (
    CloseShareLotRequest,
    NewShareLot,
    SaleResult,
    SellSharesRequest,
    ShareLot,
    ShareLotDetail,
    ShareLotPosition,
    ShareLotSale,
    ShareLotStatus,
    Trade,
    TradeStatus,
    TradeType,
    parse_enum,
    parse_input,
)
from wheelbook.services.portfolio.registry import require_portfolio
from wheelbook.system import LoggerFactory

logger = LoggerFactory.get_logger()


# ==================== Session-level helpers (shared with the trade engine) ====================


def require_share_lot(
    session: Session,
    share_lot_id: str,
    user_id: str | None = None,
    for_update: bool = False,
) -> ShareLotRow:
    """
    Load a share lot row, enforcing ownership through its portfolio.

    Raises:
        NotFoundError: Missing, or its portfolio is owned by another user
    """
    stmt = select(ShareLotRow).where(ShareLotRow.id == share_lot_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = session.scalars(stmt).one_or_none()
    if row is None:
        raise NotFoundError(f"Share lot not found: {share_lot_id}")
    if user_id is not None:
        owner = session.scalar(select(PortfolioRow.user_id).where(PortfolioRow.id == row.portfolio_id))
        if owner != user_id:
            raise NotFoundError(f"Share lot not found: {share_lot_id}")
    return row


def reserved_shares(session: Session, share_lot_id: str) -> int:
    """Shares backing open covered calls written against the lot."""
    contracts = session.scalar(
        select(func.coalesce(func.sum(TradeRow.contracts_open), 0)).where(
            TradeRow.share_lot_id == share_lot_id,
            TradeRow.type == TradeType.COVERED_CALL.value,
            TradeRow.status == TradeStatus.OPEN.value,
        )
    )
    return int(contracts or 0) * 100


def apply_covered_call_premium(lot: ShareLotRow, realized: Decimal) -> None:
    """Fold a covered-call leg's realized amount into the lot's cost basis (no-op for 0 or an empty lot)."""
    if realized == 0:
        return
    if lot.shares <= 0:
        logger.warning(
            "share_lot_service.basis_adjust_skipped",
            share_lot_id=lot.id,
            reason="lot has no shares",
            realized=str(realized),
        )
        return

    old_cost = lot.avg_cost
    lot.avg_cost = calculator.reduced_cost_basis(old_cost, lot.shares, realized)
    logger.info(
        "share_lot_service.cost_basis_adjusted",
        share_lot_id=lot.id,
        realized=str(realized),
        old_avg_cost=str(old_cost),
        new_avg_cost=str(lot.avg_cost),
    )


class ShareLotService:
    """
    Share lot lifecycle: OPEN → CLOSED (by selling to zero or direct close).

    Example:
        >>> lots = ShareLotService(db)
        >>> lot = lots.create_share_lot(portfolio_id, "KO", 200, "58.10")
        >>> result = lots.sell_shares(lot.id, 50, "61.00", fees="1")
        >>> result.new_shares
        150
    """

    def __init__(self, database: Database, clock: Clock = utc_now):
        self._db = database
        self._clock = clock
        logger.debug("share_lot_service.initialized")

    # ==================== Mutations ====================

    def create_share_lot(
        self,
        portfolio_id: str,
        ticker: str,
        shares: Any,
        avg_cost: Any,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> ShareLot:
        """
        Record a block of shares held at an average cost.

        Raises:
            ValidationError: Non-positive shares or cost, blank ticker
            NotFoundError: Portfolio missing or not owned by user_id
        """
        data = parse_input(
            NewShareLot,
            portfolio_id=portfolio_id,
            ticker=ticker,
            shares=shares,
            avg_cost=avg_cost,
            notes=notes,
        )
        with self._db.transaction() as session:
            require_portfolio(session, data.portfolio_id, user_id)
            row = ShareLotRow(
                portfolio_id=data.portfolio_id,
                ticker=data.ticker,
                shares=data.shares,
                shares_initial=data.shares,
                avg_cost=data.avg_cost,
                status=ShareLotStatus.OPEN.value,
                realized_pnl=Decimal("0"),
                created_at=self._clock(),
                notes=data.notes,
            )
            session.add(row)
            session.flush()
            lot = ShareLot.model_validate(row)

        logger.info(
            "share_lot_service.share_lot_created",
            share_lot_id=lot.id,
            portfolio_id=lot.portfolio_id,
            ticker=lot.ticker,
            shares=lot.shares,
            avg_cost=str(lot.avg_cost),
        )
        return lot

    def sell_shares(
        self,
        share_lot_id: str,
        shares_sold: Any,
        sale_price: Any,
        fees: Any = Decimal("0"),
        notes: str | None = None,
        user_id: str | None = None,
    ) -> SaleResult:
        """
        Sell shares out of an open lot.

        realized = (sale_price − avg_cost) × shares_sold − fees. avg_cost is
        unchanged; a lot sold down to zero closes at sale_price.

        Raises:
            ValidationError: Non-positive count/price or negative fees
            NotFoundError: Lot missing or not owned by user_id
            ConflictError: Lot not OPEN, or more shares than available to sell
        """
        data = parse_input(SellSharesRequest, shares_sold=shares_sold, sale_price=sale_price, fees=fees, notes=notes)

        with self._db.transaction() as session:
            lot = require_share_lot(session, share_lot_id, user_id, for_update=True)
            if lot.status != ShareLotStatus.OPEN.value:
                raise self._conflict(share_lot_id, "Share lot is not OPEN")

            reserved = reserved_shares(session, lot.id)
            available = lot.shares - reserved
            if data.shares_sold > available:
                raise self._conflict(
                    share_lot_id,
                    f"Cannot sell {data.shares_sold} shares: only {available} available "
                    f"({reserved} reserved by open covered calls)",
                )

            now = self._clock()
            realized = calculator.sale_realized(data.sale_price, lot.avg_cost, data.shares_sold, data.fees)
            sale_row = ShareLotSaleRow(
                share_lot_id=lot.id,
                shares_sold=data.shares_sold,
                sale_price=data.sale_price,
                fees=data.fees if data.fees > 0 else None,
                realized_pnl=realized,
                notes=data.notes,
                source="manual",
                created_at=now,
            )
            session.add(sale_row)

            lot.realized_pnl = lot.realized_pnl + realized
            lot.shares = lot.shares - data.shares_sold
            if lot.shares == 0:
                lot.status = ShareLotStatus.CLOSED.value
                lot.close_price = data.sale_price
                lot.closed_at = now
            session.flush()

            result = SaleResult(
                sale=ShareLotSale.model_validate(sale_row),
                reserved_shares=reserved,
                available_to_sell=available,
                new_shares=lot.shares,
                cumulative_realized=lot.realized_pnl,
                share_lot=ShareLot.model_validate(lot),
            )

        logger.info(
            "share_lot_service.shares_sold",
            share_lot_id=share_lot_id,
            shares_sold=data.shares_sold,
            sale_price=str(data.sale_price),
            realized=str(result.sale.realized_pnl),
            remaining=result.new_shares,
            status=result.share_lot.status.value,
        )
        return result

    def close_share_lot(self, share_lot_id: str, close_price: Any, user_id: str | None = None) -> ShareLot:
        """
        Liquidate the lot's remainder at one price without a sale record.

        realized_pnl accumulates (close_price − avg_cost) × remaining shares,
        which equals that expression outright on a lot never sold from.

        Raises:
            ValidationError: Non-positive close price
            NotFoundError: Lot missing or not owned by user_id
            ConflictError: Lot not OPEN, or shares reserved by open covered calls
        """
        data = parse_input(CloseShareLotRequest, close_price=close_price)

        with self._db.transaction() as session:
            lot = require_share_lot(session, share_lot_id, user_id, for_update=True)
            if lot.status != ShareLotStatus.OPEN.value:
                raise self._conflict(share_lot_id, "Share lot is not OPEN")
            reserved = reserved_shares(session, lot.id)
            if reserved > 0:
                raise self._conflict(
                    share_lot_id, f"Cannot close share lot: {reserved} shares reserved by open covered calls"
                )

            realized = calculator.sale_realized(data.close_price, lot.avg_cost, lot.shares)
            lot.realized_pnl = lot.realized_pnl + realized
            lot.close_price = data.close_price
            lot.shares = 0
            lot.status = ShareLotStatus.CLOSED.value
            lot.closed_at = self._clock()
            session.flush()
            closed = ShareLot.model_validate(lot)

        logger.info(
            "share_lot_service.share_lot_closed",
            share_lot_id=share_lot_id,
            close_price=str(closed.close_price),
            realized_pnl=str(closed.realized_pnl),
        )
        return closed

    # ==================== Queries ====================

    def get_share_lot(self, share_lot_id: str, user_id: str | None = None) -> ShareLotDetail:
        """Lot with linked trades (newest first), sale ledger (oldest first) and current reservation."""
        with self._db.read_session() as session:
            lot = require_share_lot(session, share_lot_id, user_id)
            trades = session.scalars(
                select(TradeRow)
                .where(TradeRow.share_lot_id == lot.id)
                .order_by(TradeRow.created_at.desc(), TradeRow.id)
            ).all()
            sales = session.scalars(
                select(ShareLotSaleRow)
                .where(ShareLotSaleRow.share_lot_id == lot.id)
                .order_by(ShareLotSaleRow.created_at, ShareLotSaleRow.id)
            ).all()
            return ShareLotDetail(
                share_lot=ShareLot.model_validate(lot),
                trades=[Trade.model_validate(t) for t in trades],
                sales=[ShareLotSale.model_validate(s) for s in sales],
                reserved_shares=reserved_shares(session, lot.id),
            )

    def list_share_lots(
        self,
        portfolio_id: str,
        status: ShareLotStatus | str | None = None,
        user_id: str | None = None,
    ) -> list[ShareLot]:
        """Lots of a portfolio, newest first, optionally filtered by status."""
        with self._db.read_session() as session:
            require_portfolio(session, portfolio_id, user_id)
            stmt = select(ShareLotRow).where(ShareLotRow.portfolio_id == portfolio_id)
            if status is not None:
                stmt = stmt.where(ShareLotRow.status == parse_enum(ShareLotStatus, status).value)
            rows = session.scalars(stmt.order_by(ShareLotRow.created_at.desc(), ShareLotRow.id)).all()
            return [ShareLot.model_validate(row) for row in rows]

    def share_lot_position(self, share_lot_id: str, user_id: str | None = None) -> ShareLotPosition:
        with self._db.read_session() as session:
            lot = require_share_lot(session, share_lot_id, user_id)
            reserved = reserved_shares(session, lot.id)
            return ShareLotPosition(
                share_lot_id=lot.id,
                shares=lot.shares,
                reserved_shares=reserved,
                available_to_sell=lot.shares - reserved,
            )

    def _conflict(self, share_lot_id: str, message: str) -> ConflictError:
        logger.warning("share_lot_service.rejected", share_lot_id=share_lot_id, reason=message)
        return ConflictError(message)
