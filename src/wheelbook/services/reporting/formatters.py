"""Report renderers: CSV, JSON and Rich console tables.

CSV and JSON are export formats for closed-trade reports; the Rich tables
display snapshots, account summaries and reports in a terminal.
"""

import csv
import io
from decimal import Decimal
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from wheelbook.services.metrics.models import AccountSummary, PnLSeries, PortfolioSnapshot
from wheelbook.services.reporting.models import ClosedTradeRow, ClosedTradesReport

CSV_HEADERS = [
    "createdAt",
    "closedAt",
    "ticker",
    "strikePrice",
    "entryPrice",
    "type",
    "expirationDate",
    "contractsInitial",
    "sharesClosed",
    "premiumCaptured",
    "percentPL",
    "notes",
]


def _plain(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return format(value, "f")
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _csv_record(row: ClosedTradeRow) -> list[str]:
    return [
        _plain(row.created_at),
        _plain(row.closed_at),
        row.ticker,
        _plain(row.strike_price),
        _plain(row.entry_price),
        row.type,
        _plain(row.expiration_date),
        _plain(row.contracts_initial),
        _plain(row.shares_closed),
        _plain(row.captured.amount),
        _plain(row.effective_percent),
        row.notes or "",
    ]


def report_to_csv(report: ClosedTradesReport) -> str:
    """
    Render a report as CSV with a fixed header row.

    premiumCaptured falls back to the computed premium when none was
    recorded; percentPL falls back to the premium ratio.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for row in report.rows:
        writer.writerow(_csv_record(row))
    return buffer.getvalue()


def report_to_dict(report: ClosedTradesReport) -> dict[str, Any]:
    """JSON-ready shape: {"range": {"start", "end"}, "count", "rows"}."""
    return {
        "range": {"start": report.start.isoformat(), "end": report.end.isoformat()},
        "count": report.count,
        "rows": [row.model_dump(mode="json") for row in report.rows],
    }


# ==================== Console ====================


def _format_pct(value: Decimal, precision: int = 2) -> str:
    return f"{float(value):.{precision}f}%"


def _format_currency(value: Decimal, precision: int = 2) -> str:
    return f"${float(value):,.{precision}f}"


def _get_color(value: Decimal) -> str:
    if value > 0:
        return "green"
    elif value < 0:
        return "red"
    return "white"


def _colored(text: str, value: Decimal) -> str:
    color = _get_color(value)
    return f"[{color}]{text}[/{color}]"


def _create_capital_table(snapshot: PortfolioSnapshot) -> Table:
    title = f"💰 {snapshot.name or snapshot.portfolio_id}"
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("As of", snapshot.as_of.isoformat())
    table.add_row("Capital Base", _format_currency(snapshot.capital_base))
    realized = _colored(_format_currency(snapshot.total_realized), snapshot.total_realized)
    if snapshot.estimated_count:
        realized += f" [dim]({snapshot.estimated_count} estimated)[/dim]"
    table.add_row("Total Realized", realized)
    table.add_row("Current Capital", _format_currency(snapshot.current_capital))
    table.add_row("Capital In Use", _format_currency(snapshot.capital_in_use))
    table.add_row("Cash Available", _colored(_format_currency(snapshot.cash_available), snapshot.cash_available))
    table.add_row("Percent Used", _format_pct(snapshot.percent_used))
    table.add_row("", "")
    table.add_row("Open Trades", str(snapshot.open_count))
    table.add_row("Potential Premium", _format_currency(snapshot.potential_premium))
    if snapshot.open_avg_days is not None:
        table.add_row("Avg Days Open", f"{float(snapshot.open_avg_days):.1f}")
    table.add_row("Expiring Soon", str(snapshot.expiring_soon_count))
    if snapshot.next_expiration is not None:
        nxt = snapshot.next_expiration
        table.add_row("Next Expiration", f"{nxt.day.isoformat()} ({nxt.contracts} × {nxt.top_ticker})")
    if snapshot.biggest is not None:
        big = snapshot.biggest
        table.add_row("Biggest Position", f"{big.ticker} {_format_currency(big.collateral)}")
    return table


def _create_realized_table(mtd: PnLSeries, ytd: PnLSeries, trailing: PnLSeries) -> Table:
    table = Table(title="📈 Realized P&L", box=None, padding=(0, 1))
    table.add_column("Window", style="cyan")
    table.add_column("From")
    table.add_column("Total", justify="right")
    for label, series in (("Month to date", mtd), ("Year to date", ytd), ("Trailing", trailing)):
        table.add_row(label, series.start.isoformat(), _colored(_format_currency(series.total), series.total))
    return table


def _create_exposure_table(snapshot_exposures: list, title: str) -> Table | None:
    if not snapshot_exposures:
        return None
    table = Table(title=title, box=None, padding=(0, 1))
    table.add_column("Ticker", style="cyan")
    table.add_column("Collateral", justify="right")
    table.add_column("Weight", justify="right")
    for exposure in snapshot_exposures:
        table.add_row(exposure.ticker, _format_currency(exposure.collateral), _format_pct(exposure.weight_pct))
    return table


def display_portfolio_snapshot(snapshot: PortfolioSnapshot, console: Console | None = None) -> None:
    """Print a portfolio snapshot as Rich tables."""
    if console is None:
        console = Console()

    console.print()
    console.print(_create_capital_table(snapshot))
    console.print()
    console.print(_create_realized_table(snapshot.mtd_series, snapshot.ytd_series, snapshot.trailing_series))
    console.print()

    exposure_table = _create_exposure_table(snapshot.top_tickers, "🎯 Top Tickers")
    if exposure_table:
        console.print(exposure_table)
        console.print()

    if snapshot.next_expirations:
        table = Table(title="📅 Upcoming Expirations", box=None, padding=(0, 1))
        table.add_column("Date", style="cyan")
        table.add_column("Ticker")
        table.add_column("Type")
        table.add_column("Strike", justify="right")
        table.add_column("Contracts", justify="right")
        for item in snapshot.next_expirations:
            table.add_row(
                item.expiration_date.isoformat(),
                item.ticker,
                item.type.value,
                _format_currency(item.strike_price),
                str(item.contracts),
            )
        console.print(table)
        console.print()

    perf = snapshot.performance
    if perf.closed_count:
        console.print(
            Panel(
                f"Closed: {perf.closed_count}\n"
                f"Win Rate: {_format_pct(perf.win_rate * 100)}\n"
                f"Avg P/L: {_format_pct(perf.avg_pl_percent)}\n"
                f"Avg Days: {float(perf.avg_days_in_trade):.1f}",
                title="💼 Closed Trades",
                border_style="cyan",
            )
        )
        console.print()


def display_account_summary(summary: AccountSummary, console: Console | None = None) -> None:
    """Print an account summary: one row per portfolio plus totals."""
    if console is None:
        console = Console()

    table = Table(title=f"📊 Account {summary.user_id} ({summary.as_of.isoformat()})", box=None, padding=(0, 1))
    table.add_column("Portfolio", style="cyan")
    table.add_column("Capital", justify="right")
    table.add_column("In Use", justify="right")
    table.add_column("Cash", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("MTD", justify="right")
    table.add_column("Open", justify="right")

    for snapshot in summary.per_portfolio.values():
        table.add_row(
            snapshot.name or snapshot.portfolio_id,
            _format_currency(snapshot.current_capital),
            _format_currency(snapshot.capital_in_use),
            _format_currency(snapshot.cash_available),
            _format_pct(snapshot.percent_used),
            _colored(_format_currency(snapshot.realized_mtd), snapshot.realized_mtd),
            str(snapshot.open_count),
        )

    totals = summary.totals
    table.add_row(
        "[bold]Total[/bold]",
        _format_currency(totals.current_capital),
        _format_currency(totals.capital_in_use),
        _format_currency(totals.cash_available),
        _format_pct(totals.percent_used),
        _colored(_format_currency(totals.realized_mtd), totals.realized_mtd),
        str(totals.open_count),
    )

    console.print()
    console.print(table)
    console.print()
    console.print(_create_realized_table(summary.mtd_series, summary.ytd_series, summary.trailing_series))
    console.print()

    exposure_table = _create_exposure_table(summary.top_tickers, "🎯 Top Tickers")
    if exposure_table:
        console.print(exposure_table)
        console.print()

    if summary.next_expiration is not None:
        nxt = summary.next_expiration
        text = Text()
        text.append("Next expiration: ", style="bold")
        text.append(f"{nxt.day.isoformat()} ({nxt.contracts} contracts, mostly {nxt.top_ticker})", style="cyan")
        console.print(text)
        console.print()


def display_closed_trades(report: ClosedTradesReport, console: Console | None = None) -> None:
    """Print a closed-trade report as a Rich table."""
    if console is None:
        console = Console()

    table = Table(
        title=f"🏁 Closed {report.start.date().isoformat()} → {report.end.date().isoformat()} ({report.count})",
        box=None,
        padding=(0, 1),
    )
    table.add_column("Closed", style="cyan")
    table.add_column("Ticker")
    table.add_column("Type")
    table.add_column("Strike", justify="right")
    table.add_column("Qty", justify="right")
    table.add_column("Captured", justify="right")
    table.add_column("P/L", justify="right")
    table.add_column("Days", justify="right")

    for row in report.rows:
        captured = row.captured
        amount = row.realized_pnl if row.kind == "STOCK_LOT" and row.realized_pnl is not None else captured.amount
        amount_text = _colored(_format_currency(amount), amount)
        if captured.is_estimate and row.kind == "TRADE":
            amount_text += " [dim]est[/dim]"
        table.add_row(
            row.sort_key.date().isoformat(),
            row.ticker,
            row.type,
            _format_currency(row.strike_price) if row.kind == "TRADE" else "—",
            str(row.contracts_initial if row.kind == "TRADE" else row.shares_closed),
            amount_text,
            _colored(_format_pct(row.effective_percent), row.effective_percent),
            str(row.holding_days),
        )

    console.print()
    console.print(table)
    console.print()
