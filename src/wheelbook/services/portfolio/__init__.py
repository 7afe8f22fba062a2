"""Position book: portfolios, option trades and share lots."""

from wheelbook.services.portfolio.interface import IShareLotService, ITradeService
from wheelbook.services.portfolio.models import (
    CloseResult,
    Portfolio,
    SaleResult,
    ShareLot,
    ShareLotDetail,
    ShareLotPosition,
    ShareLotSale,
    ShareLotStatus,
    Trade,
    TradeAdjustment,
    TradeStatus,
    TradeType,
)
from wheelbook.services.portfolio.registry import PortfolioRegistry
from wheelbook.services.portfolio.share_lots import ShareLotService
from wheelbook.services.portfolio.trades import TradeService

__all__ = [
    "ITradeService",
    "IShareLotService",
    "PortfolioRegistry",
    "TradeService",
    "ShareLotService",
    "Portfolio",
    "Trade",
    "TradeAdjustment",
    "TradeType",
    "TradeStatus",
    "ShareLot",
    "ShareLotSale",
    "ShareLotStatus",
    "ShareLotDetail",
    "ShareLotPosition",
    "CloseResult",
    "SaleResult",
]
