"""Portfolio snapshot and account summary commands - thin CLI orchestration layer."""

import json
import sys

import click
from rich.console import Console

from wheelbook.errors import WheelbookError
from wheelbook.services.metrics import MetricsService
from wheelbook.services.persistence import Database
from wheelbook.services.reporting import display_account_summary, display_portfolio_snapshot
from wheelbook.system.config import SystemConfig


@click.command("snapshot")
@click.argument("portfolio_id")
@click.option("--user", "user_id", help="Require the portfolio to belong to this user")
@click.option("--limit", type=int, help="Size of the upcoming expirations list (clamped to 1..10)")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of tables")
@click.pass_obj
def snapshot_command(config: SystemConfig, portfolio_id: str, user_id: str | None, limit: int | None, as_json: bool):
    """
    Show the accounting snapshot of one portfolio.

    \b
    Examples:
        wheelbook snapshot 3f0c...
        wheelbook snapshot 3f0c... --limit 5 --json
    """
    console = Console()
    try:
        service = MetricsService(Database.from_config(config.database), config.metrics)
        snapshot = service.get_portfolio_snapshot(portfolio_id, user_id=user_id, expirations_limit=limit)
    except WheelbookError as e:
        console.print(f"[bold red]✗ Snapshot failed:[/bold red] {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(snapshot.model_dump(mode="json"), indent=2))
    else:
        display_portfolio_snapshot(snapshot, console=console)


@click.command("summary")
@click.argument("user_id")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of tables")
@click.pass_obj
def summary_command(config: SystemConfig, user_id: str, as_json: bool):
    """
    Show all portfolios of a user reduced into one account summary.

    \b
    Example:
        wheelbook summary alice
    """
    console = Console()
    try:
        service = MetricsService(Database.from_config(config.database), config.metrics)
        summary = service.get_account_summary(user_id)
    except WheelbookError as e:
        console.print(f"[bold red]✗ Summary failed:[/bold red] {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(summary.model_dump(mode="json"), indent=2))
    else:
        display_account_summary(summary, console=console)
