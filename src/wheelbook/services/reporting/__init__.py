"""Closed-trade reporting and console/CSV/JSON renderers."""

from wheelbook.services.reporting.closed_trades import ClosedTradesReporter
from wheelbook.services.reporting.formatters import (
    CSV_HEADERS,
    display_account_summary,
    display_closed_trades,
    display_portfolio_snapshot,
    report_to_csv,
    report_to_dict,
)
from wheelbook.services.reporting.models import ClosedTradeRow, ClosedTradesReport

__all__ = [
    "ClosedTradesReporter",
    "ClosedTradeRow",
    "ClosedTradesReport",
    "CSV_HEADERS",
    "report_to_csv",
    "report_to_dict",
    "display_portfolio_snapshot",
    "display_account_summary",
    "display_closed_trades",
]
