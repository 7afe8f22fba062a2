"""Capital and collateral calculator.

Pure, stateless arithmetic shared by the lifecycle engine, the share lot
engine and the metrics aggregation. All inputs and outputs are Decimal;
nothing here rounds (display layers round).

Sign convention:
    Short types (CashSecuredPut, CoveredCall) collect premium at open, so a
    close below the open price is a gain. Long types (Put, Call) pay premium
    at open, so a close above the open price is a gain.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from wheelbook.services.portfolio.models import Trade, TradeType

CONTRACT_MULTIPLIER = Decimal("100")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def collateral(strike_price: Decimal, contracts: int) -> Decimal:
    """
    Cash reserved by a short put: |strike| × 100 × |contracts|.

    Applied to CashSecuredPut rows only; covered calls are backed by shares.
    """
    return abs(strike_price) * CONTRACT_MULTIPLIER * abs(contracts)


def premium_notional(contract_price: Decimal, contracts: int) -> Decimal:
    """Dollar premium for a number of contracts."""
    return abs(contract_price) * CONTRACT_MULTIPLIER * abs(contracts)


def options_capital(trade: Trade) -> Decimal:
    """
    Options capital an open trade ties up (informational breakdown).

    CashSecuredPut holds strike collateral; long options hold the premium
    paid; covered calls hold nothing beyond the shares already counted.
    """
    if trade.type == TradeType.CASH_SECURED_PUT:
        return collateral(trade.strike_price, trade.contracts_open)
    if trade.type in (TradeType.PUT, TradeType.CALL):
        return premium_notional(trade.contract_price, trade.contracts_open)
    return ZERO


def percent_pl(open_price: Decimal, close_price: Decimal, trade_type: TradeType) -> Decimal:
    """
    Realized percent for a close at close_price.

    Returns 0 when open_price is 0 (nothing was risked).
    """
    if open_price == 0:
        return ZERO
    if trade_type.is_short:
        return (open_price - close_price) / open_price * HUNDRED
    return (close_price - open_price) / open_price * HUNDRED


def gross_realized(open_price: Decimal, close_price: Decimal, contracts: int, trade_type: TradeType) -> Decimal:
    """Realized dollars before fees for closing contracts at close_price."""
    if trade_type.is_short:
        return (open_price - close_price) * CONTRACT_MULTIPLIER * contracts
    return (close_price - open_price) * CONTRACT_MULTIPLIER * contracts


def fees_total(fees_per_contract: Decimal, contracts: int, flat_fees: Decimal) -> Decimal:
    return fees_per_contract * contracts + flat_fees


def normalize_sign(amount: Decimal, pct: Decimal) -> Decimal:
    """
    Force the realized amount to carry the same sign as its percent.

    A percent of 0 or more gives a non-negative amount, a negative percent
    a non-positive one, whatever sign fee subtraction produced.
    """
    if pct >= 0:
        return abs(amount)
    return -abs(amount)


@dataclass(frozen=True)
class LegResult:
    """P&L of one closing leg."""

    gross: Decimal
    fees: Decimal
    realized: Decimal
    percent_pl: Decimal


def close_leg(
    open_price: Decimal,
    close_price: Decimal,
    contracts: int,
    trade_type: TradeType,
    fees_per_contract: Decimal = ZERO,
    flat_fees: Decimal = ZERO,
) -> LegResult:
    """
    Compute the realized outcome of closing contracts of a position.

    Args:
        open_price: Average per-contract price the position was opened at
        close_price: Per-contract closing price
        contracts: Contracts closed in this leg
        trade_type: Determines the sign convention
        fees_per_contract: Charged per contract closed
        flat_fees: Charged once per leg

    Returns:
        LegResult with realized = sign-normalized (gross - fees)

    Example:
        >>> leg = close_leg(Decimal("2.50"), Decimal("0.50"), 2, TradeType.CASH_SECURED_PUT)
        >>> leg.realized, leg.percent_pl
        (Decimal('400.00'), Decimal('80.0'))
    """
    gross = gross_realized(open_price, close_price, contracts, trade_type)
    fees = fees_total(fees_per_contract, contracts, flat_fees)
    pct = percent_pl(open_price, close_price, trade_type)
    return LegResult(gross=gross, fees=fees, realized=normalize_sign(gross - fees, pct), percent_pl=pct)


def blended_price(open_price: Decimal, open_contracts: int, added_price: Decimal, added_contracts: int) -> Decimal:
    """Contract-weighted average price after adding to a position."""
    total = open_contracts + added_contracts
    if total <= 0:
        return added_price
    return (open_price * open_contracts + added_price * added_contracts) / total


def reduced_cost_basis(avg_cost: Decimal, shares: int, realized: Decimal) -> Decimal:
    """
    Average cost after folding covered-call P&L into a share lot.

    newAvg = (avgCost × shares − realized) / shares, floored at 0.
    A gain lowers the basis; a loss raises it.
    """
    if shares <= 0:
        return avg_cost
    adjusted = (avg_cost * shares - realized) / shares
    return max(adjusted, ZERO)


def sale_realized(sale_price: Decimal, avg_cost: Decimal, shares: int, fees: Decimal = ZERO) -> Decimal:
    """Realized P&L of selling shares out of a lot."""
    return (sale_price - avg_cost) * shares - fees


# ==================== Realized amount (recorded vs estimated) ====================


@dataclass(frozen=True)
class Recorded:
    """Realized amount stored on the trade at close."""

    amount: Decimal

    @property
    def is_estimate(self) -> bool:
        return False


@dataclass(frozen=True)
class Estimated:
    """Realized amount reconstructed from prices because none was stored."""

    amount: Decimal

    @property
    def is_estimate(self) -> bool:
        return True


RealizedAmount = Union[Recorded, Estimated]


def realized_for(trade: Trade) -> RealizedAmount:
    """
    Realized amount of a closed trade row.

    Uses premium_captured when present; otherwise estimates
    (contract_price − closing_price) × 100 × contracts closed.
    """
    if trade.premium_captured is not None:
        return Recorded(trade.premium_captured)
    closing = trade.closing_price if trade.closing_price is not None else ZERO
    contracts = trade.contracts_closed or trade.contracts_initial
    return Estimated((trade.contract_price - closing) * CONTRACT_MULTIPLIER * contracts)
