"""CLI command handler for listing the available plugins."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from kube_migrator.cli.common import cli, handle_exception
from kube_migrator.exceptions import PluginDiscoveryError
from kube_migrator.plugins.registry import EXPORT, REPLAY, PluginRegistry


@cli.command("plugins")
@click.option(
    "-p",
    "--plugins",
    required=True,
    type=click.Path(file_okay=False),
    help="Directory holding the export and replay plugins",
)
def plugins_cmd(plugins: str) -> None:
    """List the export and replay actions found in a plugin directory.

    Args:
        plugins: Plugin directory.
    """
    registry = PluginRegistry(Path(plugins))
    try:
        registry.discover_plugins()
    except PluginDiscoveryError as e:
        handle_exception(e)
        sys.exit(1)

    for kind, title in ((EXPORT, "Export actions"), (REPLAY, "Replay actions")):
        names = registry.names(kind)
        click.echo(f"{title}:")
        if not names:
            click.echo("  (none)")
        for name in names:
            click.echo(f"  {name}  [{registry.source_of(kind, name)}]")
