"""wheelbook CLI main entry point."""

from pathlib import Path
from typing import Literal, cast

import click

from wheelbook import __version__
from wheelbook.cli.commands import init_db_command, report_group, snapshot_command, summary_command
from wheelbook.system import LoggerFactory
from wheelbook.system.config import reload_system_config


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="WHEELBOOK_CONFIG",
    help="Path to wheelbook.yaml (default: config/wheelbook.yaml)",
)
@click.option("--db", "db_url", envvar="WHEELBOOK_DB_URL", help="Override the SQLAlchemy database URL")
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override the configured logging level",
)
@click.pass_context
def main(ctx: click.Context, config_file: Path | None, db_url: str | None, log_level: str | None):
    """wheelbook - option-selling position book"""
    config = reload_system_config(config_file)
    if db_url:
        config.database.url = db_url
    if log_level:
        config.logging.level = cast(Literal["DEBUG", "INFO", "WARNING", "ERROR"], log_level.upper())
    LoggerFactory.configure(config.logging.to_logger_config())
    ctx.obj = config


# Register commands
main.add_command(init_db_command)
main.add_command(snapshot_command)
main.add_command(summary_command)
main.add_command(report_group)


if __name__ == "__main__":
    main()
