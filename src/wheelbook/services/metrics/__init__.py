"""Metrics aggregation: capital figures, exposures, expirations and rolling P&L."""

from wheelbook.services.metrics.models import (
    AccountSummary,
    AccountTotals,
    NextExpiration,
    PnLSeries,
    PortfolioSnapshot,
    SeriesPoint,
    TickerExposure,
)
from wheelbook.services.metrics.service import MetricsService

__all__ = [
    "MetricsService",
    "PortfolioSnapshot",
    "AccountSummary",
    "AccountTotals",
    "TickerExposure",
    "NextExpiration",
    "PnLSeries",
    "SeriesPoint",
]
