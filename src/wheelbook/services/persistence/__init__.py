"""Persistence layer (SQLAlchemy)."""

from wheelbook.services.persistence.database import Database
from wheelbook.services.persistence.tables import (
    Base,
    PortfolioRow,
    ShareLotRow,
    ShareLotSaleRow,
    TradeAdjustmentRow,
    TradeRow,
)

__all__ = [
    "Database",
    "Base",
    "PortfolioRow",
    "TradeRow",
    "TradeAdjustmentRow",
    "ShareLotRow",
    "ShareLotSaleRow",
]
