"""Position book service interfaces (Protocol).

Defines the contracts the trade and share lot engines satisfy, so callers
(CLI, metrics, tests) can depend on the shape rather than the SQLAlchemy
implementation.
"""

from typing import Any, Protocol, runtime_checkable

from wheelbook.services.portfolio.models import (
    CloseResult,
    SaleResult,
    ShareLot,
    ShareLotDetail,
    ShareLotPosition,
    ShareLotStatus,
    Trade,
    TradeAdjustment,
    TradeStatus,
)


@runtime_checkable
class ITradeService(Protocol):
    """
    Trade lifecycle interface.

    Core responsibilities:
    - Open positions (covered calls checked against their share lot)
    - Grow open positions with a size-weighted average price
    - Close positions fully or partially, splitting closed legs into rows
    - Reduce a linked lot's cost basis when a covered call closes

    Example:
        >>> trades: ITradeService = TradeService(db)
        >>> result = trades.close_trade(trade_id, contracts_to_close=4, closing_price="0.40")
        >>> print(result.remaining)
    """

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
        """Open a new option position."""
        ...

    def add_to_trade(
        self,
        trade_id: str,
        added_contracts: Any,
        added_contract_price: Any,
        user_id: str | None = None,
    ) -> Trade:
        """Increase an open position."""
        ...

    def close_trade(
        self,
        trade_id: str,
        contracts_to_close: Any,
        closing_price: Any,
        fees_per_contract: Any = ...,
        flat_fees: Any = ...,
        full_close: bool | None = None,
        user_id: str | None = None,
    ) -> CloseResult:
        """
        Close some or all open contracts.

        Returns:
            CloseResult with realized_now, fees_total and remaining (None on full close)
        """
        ...

    def record_adjustment(
        self,
        trade_id: str,
        contracts: Any,
        price: Any,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> TradeAdjustment:
        """Append an adjustment annotation."""
        ...

    def get_trade(self, trade_id: str, user_id: str | None = None) -> Trade:
        """Single trade row."""
        ...

    def list_trades(
        self,
        portfolio_id: str,
        status: TradeStatus | str = ...,
        user_id: str | None = None,
    ) -> list[Trade]:
        """Trades of a portfolio in one status."""
        ...


@runtime_checkable
class IShareLotService(Protocol):
    """
    Share lot interface.

    Core responsibilities:
    - Record share lots
    - Sell shares not reserved by open covered calls
    - Liquidate a lot's remainder in one step
    - Report reservation and sale history

    Example:
        >>> lots: IShareLotService = ShareLotService(db)
        >>> position = lots.share_lot_position(lot_id)
        >>> print(position.available_to_sell)
    """

    def create_share_lot(
        self,
        portfolio_id: str,
        ticker: str,
        shares: Any,
        avg_cost: Any,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> ShareLot:
        """Record a block of shares."""
        ...

    def sell_shares(
        self,
        share_lot_id: str,
        shares_sold: Any,
        sale_price: Any,
        fees: Any = ...,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> SaleResult:
        """Sell unreserved shares out of an open lot."""
        ...

    def close_share_lot(self, share_lot_id: str, close_price: Any, user_id: str | None = None) -> ShareLot:
        """Close the lot's remainder at one price."""
        ...

    def get_share_lot(self, share_lot_id: str, user_id: str | None = None) -> ShareLotDetail:
        """Lot with linked trades and sales."""
        ...

    def list_share_lots(
        self,
        portfolio_id: str,
        status: ShareLotStatus | str | None = None,
        user_id: str | None = None,
    ) -> list[ShareLot]:
        """Lots of a portfolio, newest first."""
        ...

    def share_lot_position(self, share_lot_id: str, user_id: str | None = None) -> ShareLotPosition:
        """Reserved and sellable share counts."""
        ...
