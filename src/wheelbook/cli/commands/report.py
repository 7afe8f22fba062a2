"""Closed-trade report commands."""

import json
import sys
from datetime import datetime

import click
from rich.console import Console

from wheelbook.errors import WheelbookError
from wheelbook.services.persistence import Database
from wheelbook.services.reporting import ClosedTradesReporter, display_closed_trades, report_to_csv, report_to_dict
from wheelbook.system.config import SystemConfig


@click.group("report")
def report_group():
    """Reports over closed trades and share lots"""
    pass


@report_group.command("closed")
@click.option("--portfolio", "-p", "portfolio_ids", multiple=True, help="Portfolio id (repeatable)")
@click.option("--user", "user_id", help="Owner; all of this user's portfolios when no --portfolio is given")
@click.option(
    "--start",
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]),
    help="Range start, inclusive (default: end minus the configured lookback)",
)
@click.option(
    "--end",
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]),
    help="Range end, exclusive (default: now)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "csv", "json"], case_sensitive=False),
    default="table",
    show_default=True,
)
@click.option("--no-lots", is_flag=True, help="Leave closed share lots out of the report")
@click.pass_obj
def closed_command(
    config: SystemConfig,
    portfolio_ids: tuple[str, ...],
    user_id: str | None,
    start: datetime | None,
    end: datetime | None,
    output_format: str,
    no_lots: bool,
):
    """
    List trades closed within a date range.

    Dates without a time are taken as UTC midnight.

    \b
    Examples:
        # Last 30 days, every portfolio of a user
        wheelbook report closed --user alice

        # One portfolio, a quarter, as CSV
        wheelbook report closed -p 3f0c... --start 2026-01-01 --end 2026-04-01 --format csv
    """
    console = Console()
    try:
        reporter = ClosedTradesReporter(Database.from_config(config.database), config.reporting)
        report = reporter.get_closed_trades_report(
            list(portfolio_ids) or None,
            start=start,
            end=end,
            user_id=user_id,
            include_share_lots=not no_lots,
        )
    except WheelbookError as e:
        console.print(f"[bold red]✗ Report failed:[/bold red] {e}")
        sys.exit(1)

    fmt = output_format.lower()
    if fmt == "csv":
        click.echo(report_to_csv(report), nl=False)
    elif fmt == "json":
        click.echo(json.dumps(report_to_dict(report), indent=2))
    else:
        display_closed_trades(report, console=console)
