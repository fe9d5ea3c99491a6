"""CLI command handler for the exec (migrate) workflow."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from kube_migrator.cli.common import cli, handle_exception
from kube_migrator.cli.report import create_output_directory, generate_report
from kube_migrator.constants import SHARED_KUBECONFIG_ENV
from kube_migrator.core.config import load_config
from kube_migrator.core.context import MigrationRequest, parse_namespaces
from kube_migrator.core.orchestrator import MigrationOrchestrator
from kube_migrator.exceptions import ConfigError, MigrationAbortedError
from kube_migrator.utils.logging import LOG_FORMATS, log_with_context, setup_logger

# Create logger instance
logger = logging.getLogger("kube_migrator")


def log_startup_info(
    source: str,
    destination: str,
    namespaces: tuple[str, ...],
    plugins: str,
    cache: str,
    plugins_kubeconfig: str,
    config: str,
) -> None:
    """Log the parameters of this run."""
    config_path = Path(config)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config

    log_with_context(logging.INFO, "Starting migration with the following parameters:")
    log_with_context(logging.INFO, f"- Source kubeconfig: {source}")
    log_with_context(logging.INFO, f"- Destination kubeconfig: {destination}")
    log_with_context(logging.INFO, f"- Namespaces: {', '.join(namespaces)}")
    log_with_context(logging.INFO, f"- Plugin directory: {plugins}")
    log_with_context(logging.INFO, f"- Cache directory: {cache}")
    log_with_context(logging.INFO, f"- Plugin kubeconfig: {plugins_kubeconfig}")
    log_with_context(logging.INFO, f"- Config: {config_path}")


# ---------------------------------------------------------------------------
# exec subcommand
# ---------------------------------------------------------------------------


@cli.command("exec")
@click.option(
    "-s",
    "--source",
    required=True,
    type=click.Path(dir_okay=False),
    help="Kubeconfig of the source cluster",
)
@click.option(
    "-d",
    "--destination",
    required=True,
    type=click.Path(dir_okay=False),
    help="Kubeconfig of the destination cluster",
)
@click.option(
    "-n",
    "--namespaces",
    required=True,
    help="Comma-separated list of namespaces to migrate",
)
@click.option(
    "-p",
    "--plugins",
    required=True,
    type=click.Path(file_okay=False),
    help="Directory holding the export and replay plugins",
)
@click.option(
    "-c",
    "--cache",
    required=True,
    type=click.Path(file_okay=False),
    help="Scratch directory for the transfer archive and run logs",
)
@click.option(
    "--plugins-kubeconfig",
    "plugins_kubeconfig",
    envvar=SHARED_KUBECONFIG_ENV,
    show_envvar=True,
    required=True,
    type=click.Path(dir_okay=False),
    help="Shared kubeconfig path the plugins read at startup",
)
@click.option(
    "--config",
    default="config.yaml",
    show_default=True,
    help="Path to config YAML",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose console logging (shows DEBUG level messages)",
)
@click.option(
    "--log-format",
    "log_format",
    type=click.Choice(LOG_FORMATS),
    default="text",
    show_default=True,
    help="Console and run log format",
)
def exec_cmd(
    source: str,
    destination: str,
    namespaces: str,
    plugins: str,
    cache: str,
    plugins_kubeconfig: str,
    config: str,
    verbose: bool,
    log_format: str,
) -> None:
    """Export namespaces from the source cluster and replay them on the destination.

    Args:
        source: Kubeconfig of the source cluster.
        destination: Kubeconfig of the destination cluster.
        namespaces: Comma-separated namespace list.
        plugins: Plugin directory.
        cache: Scratch directory.
        plugins_kubeconfig: Shared kubeconfig path read by plugins.
        config: Path to config YAML.
        verbose: Enable verbose console logging.
        log_format: ``text`` or ``json``.
    """
    namespace_list = parse_namespaces(namespaces)
    if not namespace_list:
        raise click.BadParameter(
            "at least one namespace is required", param_hint="'-n' / '--namespaces'"
        )

    # Create output directory early so all operations are logged to file
    output_dir = create_output_directory(cache)
    setup_logger(verbose, log_format, output_dir)

    log_startup_info(
        source, destination, namespace_list, plugins, cache, plugins_kubeconfig, config
    )
    log_with_context(logging.INFO, f"Output directory: {output_dir}")

    try:
        request = MigrationRequest.build(
            source_kubeconfig=source,
            destination_kubeconfig=destination,
            namespaces=namespace_list,
            plugin_dir=plugins,
            cache_dir=cache,
            shared_kubeconfig=plugins_kubeconfig,
            config=load_config(Path(config)),
        )
    except ConfigError as e:
        handle_exception(e)
        sys.exit(1)

    orchestrator = MigrationOrchestrator(request)
    try:
        result = orchestrator.run()
    except KeyboardInterrupt as e:
        handle_exception(e)
        sys.exit(1)

    generate_report(result, output_dir)

    if result.aborted:
        handle_exception(
            MigrationAbortedError(result.failed_step or "unknown", result.error)
        )
        sys.exit(1)

    click.echo(f"Migration {result.outcome.value}")
