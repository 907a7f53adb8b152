"""
Studio Sync CLI entry point.

Main command group for the studio-sync CLI.
"""

import click

from studiosync import __version__
from studiosync.config import ConfigError, SyncConfig
from studiosync.logging_config import init_logging


@click.group()
@click.version_option(version=__version__, prog_name="studio-sync")
@click.option(
    "--log-level",
    default=None,
    help="Override the configured log level (DEBUG, INFO, WARNING, ERROR).",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """
    Studio Sync - keep a studio's ordered lists in sync.

    Reorders, moves and toggles are applied locally, persisted through the
    studio server and rolled back if the server rejects them.

    Use 'studio-sync COMMAND --help' for more information on a command.
    """
    ctx.ensure_object(dict)

    if log_level is None:
        try:
            log_level = SyncConfig().log_level
        except ConfigError:
            log_level = None
    init_logging(log_level)


# Import and register subcommands
from studiosync.cli.config import config  # noqa: E402
from studiosync.cli.lists import entities, groups, tasks  # noqa: E402

cli.add_command(config)
cli.add_command(groups)
cli.add_command(entities)
cli.add_command(tasks)


def main() -> None:
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
