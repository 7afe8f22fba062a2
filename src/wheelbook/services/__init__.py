"""wheelbook services package.

Each service takes a Database (and optionally its config section and a
clock) by constructor injection and is independently testable.
"""

from wheelbook.services.metrics import MetricsService
from wheelbook.services.portfolio import PortfolioRegistry, ShareLotService, TradeService
from wheelbook.services.reporting import ClosedTradesReporter

__all__: list[str] = [
    "PortfolioRegistry",
    "TradeService",
    "ShareLotService",
    "MetricsService",
    "ClosedTradesReporter",
]
