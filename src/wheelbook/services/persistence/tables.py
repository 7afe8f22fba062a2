"""SQLAlchemy table definitions.

Rows are the persisted form of portfolios, option trades, share lots and
their sale / adjustment ledgers. Services convert rows to the immutable
pydantic models in wheelbook.services.portfolio.models before returning.

Monetary columns use DecimalString so values round-trip exactly on every
backend (SQLite would otherwise store NUMERIC as binary floating point).
Timestamps use UTCDateTime: stored naive-UTC, always returned tz-aware.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, TypeDecorator
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DecimalString(TypeDecorator):
    """Exact Decimal storage as canonical text."""

    impl = String(48)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> str | None:
        if value is None:
            return None
        return str(Decimal(value))

    def process_result_value(self, value: Any, dialect: Any) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on any backend."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: Any, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all wheelbook tables."""

    pass


class PortfolioRow(Base):
    """Capital pool that owns trades and share lots."""

    __tablename__ = "portfolios"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str | None] = mapped_column(String(120))
    starting_capital: Mapped[Decimal] = mapped_column(DecimalString, default=Decimal("0"))
    additional_capital: Mapped[Decimal] = mapped_column(DecimalString, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)


class TradeRow(Base):
    """Option position (or a closed leg split off one)."""

    __tablename__ = "trades"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    portfolio_id: Mapped[str] = mapped_column(ForeignKey("portfolios.id", ondelete="CASCADE"), index=True)
    share_lot_id: Mapped[str | None] = mapped_column(ForeignKey("share_lots.id"), index=True)
    # Set on closed legs created by a partial close
    parent_trade_id: Mapped[str | None] = mapped_column(ForeignKey("trades.id"), index=True)

    ticker: Mapped[str] = mapped_column(String(16), index=True)
    type: Mapped[str] = mapped_column(String(24))
    strike_price: Mapped[Decimal] = mapped_column(DecimalString)
    expiration_date: Mapped[date] = mapped_column(Date, index=True)

    contracts_initial: Mapped[int] = mapped_column(Integer)
    contracts_open: Mapped[int] = mapped_column(Integer)
    contract_price: Mapped[Decimal] = mapped_column(DecimalString)
    entry_price: Mapped[Decimal | None] = mapped_column(DecimalString)

    status: Mapped[str] = mapped_column(String(8), default="open", index=True)
    closing_price: Mapped[Decimal | None] = mapped_column(DecimalString)
    premium_captured: Mapped[Decimal | None] = mapped_column(DecimalString)
    percent_pl: Mapped[Decimal | None] = mapped_column(DecimalString)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
    notes: Mapped[str | None] = mapped_column(Text)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class TradeAdjustmentRow(Base):
    """Append-only size/price annotation against a trade."""

    __tablename__ = "trade_adjustments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    trade_id: Mapped[str] = mapped_column(ForeignKey("trades.id", ondelete="CASCADE"), index=True)
    contracts: Mapped[int] = mapped_column(Integer)
    price: Mapped[Decimal] = mapped_column(DecimalString)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)


class ShareLotRow(Base):
    """Block of underlying shares held at an average cost."""

    __tablename__ = "share_lots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    portfolio_id: Mapped[str] = mapped_column(ForeignKey("portfolios.id", ondelete="CASCADE"), index=True)
    ticker: Mapped[str] = mapped_column(String(16), index=True)
    shares: Mapped[int] = mapped_column(Integer)
    shares_initial: Mapped[int] = mapped_column(Integer)
    avg_cost: Mapped[Decimal] = mapped_column(DecimalString)
    status: Mapped[str] = mapped_column(String(8), default="OPEN", index=True)
    close_price: Mapped[Decimal | None] = mapped_column(DecimalString)
    realized_pnl: Mapped[Decimal] = mapped_column(DecimalString, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, index=True)
    notes: Mapped[str | None] = mapped_column(Text)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class ShareLotSaleRow(Base):
    """Immutable record of shares sold out of a lot."""

    __tablename__ = "share_lot_sales"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    share_lot_id: Mapped[str] = mapped_column(ForeignKey("share_lots.id", ondelete="CASCADE"), index=True)
    shares_sold: Mapped[int] = mapped_column(Integer)
    sale_price: Mapped[Decimal] = mapped_column(DecimalString)
    fees: Mapped[Decimal | None] = mapped_column(DecimalString)
    realized_pnl: Mapped[Decimal] = mapped_column(DecimalString)
    notes: Mapped[str | None] = mapped_column(Text)
    source: Mapped[str] = mapped_column(String(16), default="manual")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
