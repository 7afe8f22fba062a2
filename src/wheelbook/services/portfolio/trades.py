"""Trade lifecycle engine.

State machine for option positions:

    open ──add──▶ open
    open ──close(k < open)──▶ open   (+ new closed leg row)
    open ──close(k = open)──▶ closed (terminal)

Every mutation runs in one transaction together with the share lot update
it triggers. Rows being mutated are loaded FOR UPDATE and carry a version
column, so two racing closes cannot both subtract from the same
contracts_open.

Writing a covered call also bumps the version of the lot it reserves
against, so a racing sale or second covered call on that lot fails with a
conflict instead of over-reserving its shares.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from wheelbook.errors import ConflictError, NotFoundError, ValidationError
from wheelbook.services.clock import Clock, utc_now
from wheelbook.services.persistence import Database, PortfolioRow, ShareLotRow, TradeAdjustmentRow, TradeRow
from wheelbook.services.portfolio import calculator
from wheelbook.services.portfolio.models import (
    AddToTradeRequest,
    CloseResult,
    CloseTradeRequest,
    NewTrade,
    NewTradeAdjustment,
    ShareLot,
    ShareLotStatus,
    Trade,
    TradeAdjustment,
    TradeStatus,
    TradeType,
    parse_enum,
    parse_input,
)
from wheelbook.services.portfolio.registry import require_portfolio
from wheelbook.services.portfolio.share_lots import apply_covered_call_premium, require_share_lot, reserved_shares
from wheelbook.system import LoggerFactory

logger = LoggerFactory.get_logger()


def require_trade(
    session: Session,
    trade_id: str,
    user_id: str | None = None,
    for_update: bool = False,
) -> TradeRow:
    """
    Load a trade row, enforcing ownership through its portfolio.

    Raises:
        NotFoundError: Missing, or its portfolio is owned by another user
    """
    stmt = select(TradeRow).where(TradeRow.id == trade_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = session.scalars(stmt).one_or_none()
    if row is None:
        raise NotFoundError(f"Trade not found: {trade_id}")
    if user_id is not None:
        owner = session.scalar(select(PortfolioRow.user_id).where(PortfolioRow.id == row.portfolio_id))
        if owner != user_id:
            raise NotFoundError(f"Trade not found: {trade_id}")
    return row


def adjusted_contracts(trade: Trade, adjustments: list[TradeAdjustment]) -> int:
    """Base size plus all annotated adjustment contracts."""
    return trade.contracts_initial + sum(a.contracts for a in adjustments)


def adjusted_average_price(trade: Trade, adjustments: list[TradeAdjustment]) -> Decimal:
    """Size-weighted average of the base price and all adjustment prices (0 when size is 0)."""
    total = adjusted_contracts(trade, adjustments)
    if total == 0:
        return Decimal("0")
    weighted = trade.contract_price * trade.contracts_initial + sum(
        (a.price * a.contracts for a in adjustments), start=Decimal("0")
    )
    return weighted / total


class TradeService:
    """
    Open, grow, and close option positions.

    Closing a CoveredCall linked to a share lot folds the leg's realized
    amount into that lot's average cost, inside the same transaction.

    Example:
        >>> trades = TradeService(db)
        >>> t = trades.create_trade(pid, "AAPL", "CashSecuredPut", 180, "2026-11-20", 2, "2.60", 185)
        >>> result = trades.close_trade(t.id, 2, "0.05")
        >>> result.realized_now
        Decimal('510.00')
    """

    def __init__(self, database: Database, clock: Clock = utc_now):
        self._db = database
        self._clock = clock
        logger.debug("trade_service.initialized")

    # ==================== Mutations ====================

    def create_trade(
        self,
        portfolio_id: str,
        ticker: str,
        type: Any,
        strike_price: Any,
        expiration_date: Any,
        contracts: Any,
        contract_price: Any,
        entry_price: Any,
        share_lot_id: str | None = None,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> Trade:
        """
        Open a new option position.

        A CoveredCall must reference an OPEN share lot of the same ticker in
        the same portfolio with at least contracts × 100 shares not already
        reserved by other open covered calls.

        Raises:
            ValidationError: Bad numbers, unknown type, missing lot reference, ticker mismatch
            NotFoundError: Portfolio or lot missing / not owned by user_id
            ConflictError: Lot not OPEN or too few unreserved shares
        """
        data = parse_input(
            NewTrade,
            portfolio_id=portfolio_id,
            ticker=ticker,
            type=type,
            strike_price=strike_price,
            expiration_date=expiration_date,
            contracts=contracts,
            contract_price=contract_price,
            entry_price=entry_price,
            share_lot_id=share_lot_id,
            notes=notes,
        )
        if data.type == TradeType.COVERED_CALL and not data.share_lot_id:
            raise ValidationError("CoveredCall requires a share lot")

        with self._db.transaction() as session:
            require_portfolio(session, data.portfolio_id, user_id)
            if data.share_lot_id:
                lot = self._linked_lot(session, data.share_lot_id, data.portfolio_id, data.ticker)
                if data.type == TradeType.COVERED_CALL:
                    self._check_coverage(session, lot, data.contracts)

            row = TradeRow(
                portfolio_id=data.portfolio_id,
                share_lot_id=data.share_lot_id,
                ticker=data.ticker,
                type=data.type.value,
                strike_price=data.strike_price,
                expiration_date=data.expiration_date,
                contracts_initial=data.contracts,
                contracts_open=data.contracts,
                contract_price=data.contract_price,
                entry_price=data.entry_price,
                status=TradeStatus.OPEN.value,
                created_at=self._clock(),
                notes=data.notes,
            )
            session.add(row)
            session.flush()
            trade = Trade.model_validate(row)

        logger.info(
            "trade_service.trade_created",
            trade_id=trade.id,
            portfolio_id=trade.portfolio_id,
            ticker=trade.ticker,
            type=trade.type.value,
            contracts=trade.contracts_open,
            contract_price=str(trade.contract_price),
            share_lot_id=trade.share_lot_id,
        )
        return trade

    def add_to_trade(
        self,
        trade_id: str,
        added_contracts: Any,
        added_contract_price: Any,
        user_id: str | None = None,
    ) -> Trade:
        """
        Increase an open position and re-blend its average contract price.

        Raises:
            ValidationError: Non-positive size or price
            NotFoundError: Trade missing or not owned by user_id
            ConflictError: Trade not open, or a covered call would exceed its lot's free shares
        """
        data = parse_input(
            AddToTradeRequest, added_contracts=added_contracts, added_contract_price=added_contract_price
        )

        with self._db.transaction() as session:
            row = require_trade(session, trade_id, user_id, for_update=True)
            if row.status != TradeStatus.OPEN.value:
                raise self._conflict(trade_id, "Trade is not open")
            if row.type == TradeType.COVERED_CALL.value and row.share_lot_id:
                lot = require_share_lot(session, row.share_lot_id, for_update=True)
                self._check_coverage(session, lot, data.added_contracts)

            row.contract_price = calculator.blended_price(
                row.contract_price, row.contracts_open, data.added_contract_price, data.added_contracts
            )
            row.contracts_open = row.contracts_open + data.added_contracts
            row.contracts_initial = row.contracts_initial + data.added_contracts
            session.flush()
            trade = Trade.model_validate(row)

        logger.info(
            "trade_service.trade_increased",
            trade_id=trade_id,
            added_contracts=data.added_contracts,
            contracts_open=trade.contracts_open,
            contract_price=str(trade.contract_price),
        )
        return trade

    def close_trade(
        self,
        trade_id: str,
        contracts_to_close: Any,
        closing_price: Any,
        fees_per_contract: Any = Decimal("0"),
        flat_fees: Any = Decimal("0"),
        full_close: bool | None = None,
        user_id: str | None = None,
    ) -> CloseResult:
        """
        Close some or all open contracts of a trade.

        Full close (all remaining contracts, or full_close=True) finishes the
        row in place and adds this leg to its premium_captured. A partial
        close shrinks the row and inserts a closed leg row (parent_trade_id
        set) carrying this leg's realized amount and percent.

        Raises:
            ValidationError: Non-positive count, negative price or fees
            NotFoundError: Trade missing or not owned by user_id
            ConflictError: Trade not open, or more contracts than are open
        """
        data = parse_input(
            CloseTradeRequest,
            contracts_to_close=contracts_to_close,
            closing_price=closing_price,
            fees_per_contract=fees_per_contract,
            flat_fees=flat_fees,
            full_close=full_close,
        )

        with self._db.transaction() as session:
            row = require_trade(session, trade_id, user_id, for_update=True)
            if row.status != TradeStatus.OPEN.value:
                raise self._conflict(trade_id, "Trade is not open")
            if data.contracts_to_close > row.contracts_open:
                raise self._conflict(
                    trade_id,
                    f"contractsToClose ({data.contracts_to_close}) exceeds open contracts ({row.contracts_open})",
                )

            trade_type = parse_enum(TradeType, row.type)
            leg = calculator.close_leg(
                row.contract_price,
                data.closing_price,
                data.contracts_to_close,
                trade_type,
                data.fees_per_contract,
                data.flat_fees,
            )
            now = self._clock()
            remaining = row.contracts_open - data.contracts_to_close
            is_full = bool(data.full_close) or remaining <= 0

            closed_leg: TradeRow | None = None
            if is_full:
                row.status = TradeStatus.CLOSED.value
                row.contracts_open = 0
                row.closing_price = data.closing_price
                row.percent_pl = leg.percent_pl
                row.premium_captured = (row.premium_captured or Decimal("0")) + leg.realized
                row.closed_at = now
            else:
                row.contracts_open = remaining
                closed_leg = TradeRow(
                    portfolio_id=row.portfolio_id,
                    share_lot_id=row.share_lot_id,
                    parent_trade_id=row.id,
                    ticker=row.ticker,
                    type=row.type,
                    strike_price=row.strike_price,
                    expiration_date=row.expiration_date,
                    contracts_initial=data.contracts_to_close,
                    contracts_open=0,
                    contract_price=row.contract_price,
                    entry_price=row.entry_price,
                    status=TradeStatus.CLOSED.value,
                    closing_price=data.closing_price,
                    premium_captured=leg.realized,
                    percent_pl=leg.percent_pl,
                    closed_at=now,
                    created_at=now,
                )
                session.add(closed_leg)

            lot: ShareLotRow | None = None
            if trade_type == TradeType.COVERED_CALL and row.share_lot_id:
                lot = require_share_lot(session, row.share_lot_id, for_update=True)
                apply_covered_call_premium(lot, leg.realized)

            session.flush()
            result = CloseResult(
                realized_now=leg.realized,
                fees_total=leg.fees,
                remaining=None if is_full else remaining,
                trade=Trade.model_validate(row),
                closed_leg=Trade.model_validate(closed_leg) if closed_leg is not None else None,
                share_lot=ShareLot.model_validate(lot) if lot is not None else None,
            )

        logger.info(
            "trade_service.trade_closed",
            trade_id=trade_id,
            full=is_full,
            contracts_closed=data.contracts_to_close,
            closing_price=str(data.closing_price),
            realized=str(result.realized_now),
            fees=str(result.fees_total),
            percent_pl=str(leg.percent_pl),
            remaining=result.remaining,
        )
        return result

    def record_adjustment(
        self,
        trade_id: str,
        contracts: Any,
        price: Any,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> TradeAdjustment:
        """
        Append an adjustment annotation to a trade.

        The trade row itself is not modified.

        Raises:
            ValidationError: Non-positive contracts or price
            NotFoundError: Trade missing or not owned by user_id
        """
        data = parse_input(NewTradeAdjustment, contracts=contracts, price=price, notes=notes)
        with self._db.transaction() as session:
            require_trade(session, trade_id, user_id)
            row = TradeAdjustmentRow(
                trade_id=trade_id,
                contracts=data.contracts,
                price=data.price,
                notes=data.notes,
                created_at=self._clock(),
            )
            session.add(row)
            session.flush()
            adjustment = TradeAdjustment.model_validate(row)

        logger.info(
            "trade_service.adjustment_recorded",
            trade_id=trade_id,
            contracts=adjustment.contracts,
            price=str(adjustment.price),
        )
        return adjustment

    # ==================== Queries ====================

    def get_trade(self, trade_id: str, user_id: str | None = None) -> Trade:
        with self._db.read_session() as session:
            return Trade.model_validate(require_trade(session, trade_id, user_id))

    def list_trades(
        self,
        portfolio_id: str,
        status: TradeStatus | str = TradeStatus.OPEN,
        user_id: str | None = None,
    ) -> list[Trade]:
        """
        Trades of a portfolio in one status.

        Open trades come oldest first; closed trades most recently closed first.
        """
        wanted = parse_enum(TradeStatus, status)
        with self._db.read_session() as session:
            require_portfolio(session, portfolio_id, user_id)
            stmt = select(TradeRow).where(TradeRow.portfolio_id == portfolio_id, TradeRow.status == wanted.value)
            if wanted == TradeStatus.OPEN:
                stmt = stmt.order_by(TradeRow.created_at, TradeRow.id)
            else:
                stmt = stmt.order_by(TradeRow.closed_at.desc(), TradeRow.id)
            return [Trade.model_validate(row) for row in session.scalars(stmt).all()]

    def list_adjustments(self, trade_id: str, user_id: str | None = None) -> list[TradeAdjustment]:
        """Adjustment ledger of a trade, oldest first."""
        with self._db.read_session() as session:
            require_trade(session, trade_id, user_id)
            rows = session.scalars(
                select(TradeAdjustmentRow)
                .where(TradeAdjustmentRow.trade_id == trade_id)
                .order_by(TradeAdjustmentRow.created_at, TradeAdjustmentRow.id)
            ).all()
            return [TradeAdjustment.model_validate(row) for row in rows]

    # ==================== Internals ====================

    def _linked_lot(self, session: Session, share_lot_id: str, portfolio_id: str, ticker: str) -> ShareLotRow:
        lot = require_share_lot(session, share_lot_id, for_update=True)
        if lot.portfolio_id != portfolio_id:
            raise NotFoundError(f"Share lot not found: {share_lot_id}")
        if lot.ticker != ticker:
            raise ValidationError(f"Share lot ticker {lot.ticker} does not match trade ticker {ticker}")
        return lot

    def _check_coverage(self, session: Session, lot: ShareLotRow, contracts: int) -> None:
        if lot.status != ShareLotStatus.OPEN.value:
            raise self._conflict(lot.id, "Share lot is not OPEN")
        needed = contracts * 100
        available = lot.shares - reserved_shares(session, lot.id)
        if available < needed:
            raise self._conflict(
                lot.id,
                f"Share lot has {available} unreserved shares; {needed} needed to cover {contracts} contracts",
            )
        # Reservation is derived, so touch the lot to take its version lock
        flag_modified(lot, "shares")

    def _conflict(self, entity_id: str, message: str) -> ConflictError:
        logger.warning("trade_service.rejected", entity_id=entity_id, reason=message)
        return ConflictError(message)
