#!/usr/bin/env python3
"""
Main execution module for the Kubernetes workload migration tool.

This module provides the command-line interface entry point. Each
subcommand lives in its own module and registers itself on the shared
``cli`` group when imported.
"""

from __future__ import annotations

from kube_migrator.cli.common import cli, handle_exception
# Importing the subcommands registers them on the group
from kube_migrator.cli.config_cmd import init_config_cmd
from kube_migrator.cli.migrate_cmd import exec_cmd
from kube_migrator.cli.plugins_cmd import plugins_cmd

__all__ = [
    "cli",
    "exec_cmd",
    "handle_exception",
    "init_config_cmd",
    "main",
    "plugins_cmd",
]


def main() -> None:
    """Main entry point for the Kubernetes workload migration tool."""
    cli()


if __name__ == "__main__":
    main()
