"""Shared CLI infrastructure: the CLI group and the error handler."""

from __future__ import annotations

import logging

import click
from kubernetes.client.exceptions import ApiException

import kube_migrator
from kube_migrator.constants import (
    HTTP_CONFLICT,
    HTTP_FORBIDDEN,
    HTTP_NOT_FOUND,
    HTTP_UNAUTHORIZED,
)
from kube_migrator.exceptions import (
    ClusterConnectionError,
    MigrationAbortedError,
    MigratorError,
    PluginDiscoveryError,
)
from kube_migrator.utils.logging import log_with_context

# Create logger instance
logger = logging.getLogger("kube_migrator")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(version=kube_migrator.__version__, prog_name="kube-migrator")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Migrate namespaced workloads between two Kubernetes clusters.

    Args:
        ctx: The Click context (injected by ``@click.pass_context``).
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


def handle_api_error(e: ApiException) -> None:
    """Log a Kubernetes API error with a hint for the common statuses."""
    if e.status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
        log_with_context(logging.ERROR, f"Access denied by the API server: {e.reason}")
        log_with_context(
            logging.INFO,
            "Check that the kubeconfig user may list and create the migrated"
            " resources in the selected namespaces.",
        )
    elif e.status == HTTP_NOT_FOUND:
        log_with_context(logging.ERROR, f"API resource not found: {e.reason}")
    elif e.status == HTTP_CONFLICT:
        log_with_context(logging.ERROR, f"Conflict from the API server: {e.reason}")
    else:
        log_with_context(logging.ERROR, f"API error during migration: {e}")


def handle_exception(e: BaseException) -> None:
    """Handle different types of exceptions.

    Args:
        e: The exception to handle.
    """
    if isinstance(e, MigrationAbortedError):
        log_with_context(logging.ERROR, str(e), step=e.step)
        if isinstance(e.cause, ClusterConnectionError):
            log_with_context(
                logging.INFO,
                "Check that the kubeconfig is valid and the cluster is reachable,"
                " then run the migration again.",
            )
        elif isinstance(e.cause, PluginDiscoveryError):
            log_with_context(
                logging.INFO, "Fix the plugin directory and run the migration again."
            )
    elif isinstance(e, MigratorError):
        log_with_context(logging.ERROR, str(e))
    elif isinstance(e, ApiException):
        handle_api_error(e)
    elif isinstance(e, FileNotFoundError):
        log_with_context(logging.ERROR, f"File not found: {e}")
        log_with_context(
            logging.INFO,
            "Please check that all required files exist and paths are correct.",
        )
    elif isinstance(e, KeyboardInterrupt):
        log_with_context(logging.WARNING, "Migration interrupted by user.")
        log_with_context(
            logging.INFO,
            "The transfer medium has been removed. Resources already replayed"
            " remain on the destination cluster.",
        )
    else:
        log_with_context(logging.ERROR, f"Migration failed: {e}", exc_info=True)
