"""Schema management command."""

import sys

import click
from rich.console import Console

from wheelbook.errors import WheelbookError
from wheelbook.services.persistence import Database
from wheelbook.system.config import SystemConfig

console = Console()


@click.command("init-db")
@click.pass_obj
def init_db_command(config: SystemConfig):
    """
    Create the wheelbook tables in the configured database.

    Existing tables are left untouched.

    \b
    Examples:
        wheelbook init-db
        wheelbook --db sqlite:///book.db init-db
    """
    try:
        Database.from_config(config.database).create_all()
        console.print(f"[bold green]✓ Schema ready:[/bold green] {config.database.url}")
    except WheelbookError as e:
        console.print(f"[bold red]✗ init-db failed:[/bold red] {e}")
        sys.exit(1)
