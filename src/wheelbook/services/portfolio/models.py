"""Data models for the position book.

Defines all core entities:
- Portfolio: Capital pool owning trades and share lots
- Trade: Option position (or a closed leg split off one)
- TradeAdjustment: Annotation ledger entry against a trade
- ShareLot: Underlying shares held at an average cost
- ShareLotSale: Immutable sale record against a lot
- Command inputs (NewTrade, CloseTradeRequest, ...) validated on entry
- Operation results (CloseResult, SaleResult, ...)

All monetary values are Decimal. Floats handed in by callers are converted
through their shortest repr so 2.6 becomes Decimal("2.6"), never the binary
expansion.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, TypeVar

import pydantic
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from wheelbook.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_input(model_cls: type[ModelT], **data: Any) -> ModelT:
    """
    Validate raw command input into a model.

    Raises:
        ValidationError: With the first offending field named in the message
    """
    try:
        return model_cls(**data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or model_cls.__name__
        raise ValidationError(f"Invalid {field}: {first.get('msg', 'invalid value')}") from exc


EnumT = TypeVar("EnumT", bound=Enum)


def parse_enum(enum_cls: type[EnumT], value: Any) -> EnumT:
    """Enum member from its value; unknown values are a ValidationError."""
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown {enum_cls.__name__}: {value!r}") from exc


def _coerce_decimal(value: Any) -> Any:
    """Turn ints, floats and numeric strings into finite Decimals."""
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"not a number: {value!r}") from exc
    else:
        raise ValueError(f"not a number: {value!r}")
    if not result.is_finite():
        raise ValueError("number must be finite")
    return result


def _coerce_day(value: Any) -> Any:
    """Calendar day in UTC from a date, datetime or ISO string."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, str) and "T" in value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return _coerce_day(parsed)
    return value


def _normalize_ticker(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


Money = Annotated[Decimal, BeforeValidator(_coerce_decimal)]
Day = Annotated[date, BeforeValidator(_coerce_day)]
Ticker = Annotated[str, BeforeValidator(_normalize_ticker), Field(min_length=1, max_length=16)]


class TradeType(str, Enum):
    """Kind of option position."""

    CASH_SECURED_PUT = "CashSecuredPut"
    COVERED_CALL = "CoveredCall"
    PUT = "Put"
    CALL = "Call"

    @property
    def is_short(self) -> bool:
        """Premium was collected at open (credit)."""
        return self in (TradeType.CASH_SECURED_PUT, TradeType.COVERED_CALL)

    @classmethod
    def parse(cls, value: "str | TradeType") -> "TradeType":
        """
        Resolve a trade type from its canonical name or a common alias.

        Raises:
            ValidationError: If the value names no known type
        """
        if isinstance(value, TradeType):
            return value
        key = str(value).strip().lower().replace(" ", "").replace("_", "").replace("-", "")
        resolved = _TRADE_TYPE_ALIASES.get(key)
        if resolved is None:
            raise ValidationError(f"Unknown trade type: {value!r}")
        return resolved


_TRADE_TYPE_ALIASES: dict[str, TradeType] = {
    "cashsecuredput": TradeType.CASH_SECURED_PUT,
    "csp": TradeType.CASH_SECURED_PUT,
    "coveredcall": TradeType.COVERED_CALL,
    "cc": TradeType.COVERED_CALL,
    "put": TradeType.PUT,
    "longput": TradeType.PUT,
    "call": TradeType.CALL,
    "longcall": TradeType.CALL,
}


class TradeStatus(str, Enum):
    """Lifecycle state of a trade row."""

    OPEN = "open"
    CLOSED = "closed"


class ShareLotStatus(str, Enum):
    """Lifecycle state of a share lot."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


# ==================== Entities ====================


class Portfolio(BaseModel):
    """
    Capital pool owned by a user.

    Attributes:
        id: Unique identifier
        user_id: Owner reference
        name: Display name
        starting_capital: Fixed baseline
        additional_capital: Cumulative net deposits/withdrawals
        notes: Free text
        created_at: Creation time (UTC)
    """

    id: str
    user_id: str
    name: str | None = None
    starting_capital: Decimal
    additional_capital: Decimal = Decimal("0")
    notes: str | None = None
    created_at: datetime

    @property
    def capital_base(self) -> Decimal:
        """Starting capital plus net deposits."""
        return self.starting_capital + self.additional_capital

    model_config = ConfigDict(frozen=True, from_attributes=True)


class Trade(BaseModel):
    """
    Option position row.

    A partial close leaves this row open with fewer contracts and inserts a
    sibling closed row (parent_trade_id set) carrying that leg's P&L.

    Attributes:
        contracts_initial: Size at creation (grows with add-to-position)
        contracts_open: Remaining open size (0 once closed)
        contract_price: Average premium per contract (credit if short, debit if long)
        entry_price: Underlying price at entry (informational)
        closing_price: Per-contract price of the most recent close
        premium_captured: Realized dollars accumulated on this row
        percent_pl: Realized percent of the last closing leg
    """

    id: str
    portfolio_id: str
    share_lot_id: str | None = None
    parent_trade_id: str | None = None
    ticker: str
    type: TradeType
    strike_price: Decimal
    expiration_date: date
    contracts_initial: int
    contracts_open: int
    contract_price: Decimal
    entry_price: Decimal | None = None
    status: TradeStatus
    closing_price: Decimal | None = None
    premium_captured: Decimal | None = None
    percent_pl: Decimal | None = None
    closed_at: datetime | None = None
    created_at: datetime
    notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN

    @property
    def contracts_closed(self) -> int:
        return max(0, self.contracts_initial - self.contracts_open)

    model_config = ConfigDict(frozen=True, from_attributes=True)


class TradeAdjustment(BaseModel):
    """Annotation of extra size/price against a trade."""

    id: str
    trade_id: str
    contracts: int
    price: Decimal
    notes: str | None = None
    created_at: datetime

    model_config = ConfigDict(frozen=True, from_attributes=True)


class ShareLot(BaseModel):
    """
    Underlying shares held at an average cost.

    Invariant: shares == 0 exactly when status is CLOSED.

    Attributes:
        shares: Remaining open share count
        shares_initial: Share count at creation
        avg_cost: Average cost per share (reduced by covered-call premium)
        realized_pnl: Cumulative realized P&L across all sales
    """

    id: str
    portfolio_id: str
    ticker: str
    shares: int
    shares_initial: int
    avg_cost: Decimal
    status: ShareLotStatus
    close_price: Decimal | None = None
    realized_pnl: Decimal = Decimal("0")
    created_at: datetime
    closed_at: datetime | None = None
    notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == ShareLotStatus.OPEN

    @property
    def shares_closed(self) -> int:
        return max(0, self.shares_initial - self.shares)

    model_config = ConfigDict(frozen=True, from_attributes=True)


class ShareLotSale(BaseModel):
    """Append-only sale record (never mutated after creation)."""

    id: str
    share_lot_id: str
    shares_sold: int
    sale_price: Decimal
    fees: Decimal | None = None
    realized_pnl: Decimal
    notes: str | None = None
    source: str = "manual"
    created_at: datetime

    model_config = ConfigDict(frozen=True, from_attributes=True)


# ==================== Command inputs ====================


class NewPortfolio(BaseModel):
    """Input for creating a portfolio."""

    user_id: str = Field(min_length=1)
    name: str | None = None
    starting_capital: Money = Field(ge=0)
    additional_capital: Money = Decimal("0")
    notes: str | None = None


class NewTrade(BaseModel):
    """Input for opening an option position."""

    portfolio_id: str = Field(min_length=1)
    ticker: Ticker
    type: TradeType
    strike_price: Money = Field(gt=0)
    expiration_date: Day
    contracts: int = Field(gt=0)
    contract_price: Money = Field(gt=0)
    entry_price: Money = Field(ge=0)
    share_lot_id: str | None = None
    notes: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v: Any) -> TradeType:
        """Accept canonical names and aliases; unknown types are rejected."""
        return TradeType.parse(v)


class AddToTradeRequest(BaseModel):
    """Input for increasing an open position."""

    added_contracts: int = Field(gt=0)
    added_contract_price: Money = Field(gt=0)


class CloseTradeRequest(BaseModel):
    """Input for closing some or all open contracts."""

    contracts_to_close: int = Field(gt=0)
    closing_price: Money = Field(ge=0)
    fees_per_contract: Money = Field(default=Decimal("0"), ge=0)
    flat_fees: Money = Field(default=Decimal("0"), ge=0)
    full_close: bool | None = None


class NewTradeAdjustment(BaseModel):
    """Input for an adjustment ledger entry."""

    contracts: int = Field(gt=0)
    price: Money = Field(gt=0)
    notes: str | None = None


class NewShareLot(BaseModel):
    """Input for recording a block of shares."""

    portfolio_id: str = Field(min_length=1)
    ticker: Ticker
    shares: int = Field(gt=0)
    avg_cost: Money = Field(gt=0)
    notes: str | None = None


class SellSharesRequest(BaseModel):
    """Input for selling shares out of a lot."""

    shares_sold: int = Field(gt=0)
    sale_price: Money = Field(gt=0)
    fees: Money = Field(default=Decimal("0"), ge=0)
    notes: str | None = None


class CloseShareLotRequest(BaseModel):
    """Input for liquidating a lot's remainder at one price."""

    close_price: Money = Field(gt=0)


# ==================== Results ====================


class CloseResult(BaseModel):
    """
    Outcome of a close operation.

    Attributes:
        realized_now: Realized amount of this leg (after fees and sign law)
        fees_total: Fees charged on this leg
        remaining: Contracts still open on the original row (None on full close)
        trade: Original row after the close
        closed_leg: New closed row (partial close only)
        share_lot: Linked lot after cost-basis adjustment (covered calls only)
    """

    realized_now: Decimal
    fees_total: Decimal
    remaining: int | None = None
    trade: Trade
    closed_leg: Trade | None = None
    share_lot: ShareLot | None = None

    model_config = ConfigDict(frozen=True)


class SaleResult(BaseModel):
    """
    Outcome of a share sale.

    reserved_shares and available_to_sell are the figures the sale was
    checked against (before it was applied).
    """

    sale: ShareLotSale
    reserved_shares: int
    available_to_sell: int
    new_shares: int
    cumulative_realized: Decimal
    share_lot: ShareLot

    model_config = ConfigDict(frozen=True)


class ShareLotPosition(BaseModel):
    """Reservation view of a lot."""

    share_lot_id: str
    shares: int
    reserved_shares: int
    available_to_sell: int

    model_config = ConfigDict(frozen=True)


class ShareLotDetail(BaseModel):
    """Lot with its linked trades (newest first) and sale ledger."""

    share_lot: ShareLot
    trades: list[Trade] = Field(default_factory=list)
    sales: list[ShareLotSale] = Field(default_factory=list)
    reserved_shares: int = 0

    model_config = ConfigDict(frozen=True)
