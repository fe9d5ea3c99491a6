"""CLI command handler for writing a default configuration file."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from kube_migrator.cli.common import cli
from kube_migrator.core.config import create_default_config
from kube_migrator.utils.logging import setup_logger


@cli.command("init-config")
@click.option(
    "--config",
    default="config.yaml",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Where to write the config file",
)
def init_config_cmd(config: str) -> None:
    """Write a config file holding the default settings.

    An existing file is never overwritten.
    """
    setup_logger()
    if not create_default_config(Path(config)):
        sys.exit(1)
