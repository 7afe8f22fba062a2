"""Commands __init__ - exports all commands and groups."""

from wheelbook.cli.commands.database import init_db_command
from wheelbook.cli.commands.metrics import snapshot_command, summary_command
from wheelbook.cli.commands.report import report_group

__all__ = ["init_db_command", "snapshot_command", "summary_command", "report_group"]
