"""
Config CLI commands.

Handles server, studio and reconciliation settings.
"""

import sys
from typing import Optional

import click

from studiosync.config import ConfigError, ConfigValidationError, SyncConfig
from studiosync.reconciler import BUSY_POLICIES


@click.group()
@click.pass_context
def config(ctx: click.Context) -> None:
    """
    Manage studio-sync configuration.

    Settings are stored in studio-sync.yaml in the user config directory;
    STUDIOSYNC_* environment variables take precedence.
    """
    ctx.ensure_object(dict)


def _load() -> SyncConfig:
    try:
        return SyncConfig()
    except ConfigError as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + str(e))
        sys.exit(1)


@config.command("set-server")
@click.argument("server_url")
@click.option("--studio", "-s", "studio_slug", required=True, help="Studio slug.")
@click.option("--api-key", default=None, help="API key for the studio server.")
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds.")
@click.option(
    "--busy-policy",
    type=click.Choice(sorted(BUSY_POLICIES)),
    default=None,
    help="What to do with a gesture while its group is still syncing.",
)
def set_server(
    server_url: str,
    studio_slug: str,
    api_key: Optional[str],
    timeout: Optional[float],
    busy_policy: Optional[str],
) -> None:
    """
    Set the studio server and studio.

    Example:

        studio-sync config set-server https://app.example.com --studio mi-estudio
    """
    sync_config = _load()
    sync_config.server_url = server_url.rstrip("/")
    sync_config.studio_slug = studio_slug
    if api_key is not None:
        sync_config.api_key = api_key
    if timeout is not None:
        sync_config.timeout_seconds = timeout
    if busy_policy is not None:
        sync_config.busy_policy = busy_policy

    try:
        sync_config.validate()
    except ConfigValidationError as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + str(e))
        sys.exit(1)

    sync_config.save()
    click.echo(click.style("Configuration saved: ", fg="green") + str(sync_config.config_path))


@config.command("show")
def show() -> None:
    """Display the effective configuration."""
    sync_config = _load()

    api_key = sync_config.api_key
    masked = f"{api_key[:4]}…" if api_key else "(not set)"

    click.echo(f"Config file:  {sync_config.config_path}")
    click.echo(f"Server URL:   {sync_config.server_url or '(not set)'}")
    click.echo(f"Studio:       {sync_config.studio_slug or '(not set)'}")
    click.echo(f"API key:      {masked}")
    click.echo(f"Timeout:      {sync_config.timeout_seconds}s")
    click.echo(f"Busy policy:  {sync_config.busy_policy}")
    click.echo(f"Log level:    {sync_config.log_level}")
