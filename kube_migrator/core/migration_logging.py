"""
Migration success/failure logging for the Kubernetes workload migration tool.

Kept apart from ``orchestrator.py`` so the orchestrator stays focused on
control flow.  Each function takes the finished ``MigrationResult``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kube_migrator.core.state import MigrationOutcome
from kube_migrator.types import ReplayOutcome, ReplaySeverity
from kube_migrator.utils.logging import log_with_context

if TYPE_CHECKING:
    from kube_migrator.core.orchestrator import MigrationResult


def log_replay_outcome(outcome: ReplayOutcome) -> None:
    """Log every replay warning and error, grouped by scope.

    Empty partitions log nothing.

    Args:
        outcome: The outcome returned by the replay phase.
    """
    for severity, level in (
        (ReplaySeverity.WARNING, logging.WARNING),
        (ReplaySeverity.ERROR, logging.ERROR),
    ):
        for scope, issues in outcome.by_scope(severity).items():
            if not issues:
                continue
            log_with_context(
                level,
                f"Replay {severity.value}s ({scope.value}): {len(issues)}",
                phase="replay",
                scope=scope.value,
                count=len(issues),
            )
            for issue in issues:
                log_with_context(
                    level,
                    f"  {issue}",
                    phase="replay",
                    scope=scope.value,
                    resource=issue.resource,
                    namespace=issue.namespace,
                )


def log_migration_success(result: MigrationResult) -> None:
    """Log the summary of a run that reached ``done``.

    A run that replayed with errors still reaches ``done``; the header
    names the outcome so those errors are not mistaken for a crash.

    Args:
        result: The finished run.
    """
    duration = result.duration
    outcome = result.outcome
    level = logging.INFO
    if outcome is not MigrationOutcome.COMPLETED_SUCCESSFULLY:
        level = logging.WARNING

    log_with_context(
        level,
        f"MIGRATION {outcome.value.upper()}",
        outcome=outcome.value,
    )
    log_with_context(
        logging.INFO,
        f"Duration: {duration / 60:.1f} minutes ({duration:.1f} seconds)",
        duration_seconds=duration,
    )

    if result.descriptor is not None:
        log_with_context(
            logging.INFO,
            f"Export {result.descriptor.name}: {result.descriptor.items_exported}"
            f" items from namespaces {', '.join(result.descriptor.included_namespaces)}",
            stat="items_exported",
            count=result.descriptor.items_exported,
        )

    replay = result.replay_outcome
    if replay is not None:
        log_with_context(
            logging.INFO,
            f"Items replayed: {replay.items_replayed}",
            stat="items_replayed",
            count=replay.items_replayed,
        )
        if replay.has_warnings:
            log_with_context(
                logging.WARNING,
                f"Replay warnings: {len(replay.warnings)}",
                stat="warnings",
                count=len(replay.warnings),
            )
        if replay.has_errors:
            log_with_context(
                logging.WARNING,
                f"Replay errors: {len(replay.errors)}",
                stat="errors",
                count=len(replay.errors),
            )
        if replay.has_errors or replay.has_warnings:
            log_with_context(
                logging.INFO,
                "Some resources did not replay cleanly. Check the run log and"
                " the migration report for details.",
            )


def log_migration_failure(result: MigrationResult) -> None:
    """Log the summary of an aborted run.

    Args:
        result: The finished run; ``failed_step`` and ``error`` are set.
    """
    error = result.error
    duration = result.duration

    if isinstance(error, KeyboardInterrupt):
        log_with_context(
            logging.WARNING,
            "MIGRATION INTERRUPTED BY USER",
            outcome="interrupted",
            step=result.failed_step,
        )
    else:
        log_with_context(
            logging.ERROR,
            "MIGRATION ABORTED",
            outcome="aborted",
            step=result.failed_step,
            exception_type=type(error).__name__ if error else None,
        )
        log_with_context(
            logging.ERROR,
            f"Failed step: {result.failed_step}: {error}",
            step=result.failed_step,
        )

    log_with_context(
        logging.INFO,
        f"Duration before abort: {duration / 60:.1f} minutes ({duration:.1f} seconds)",
        duration_seconds=duration,
    )
    log_with_context(
        logging.INFO,
        "Phases reached: "
        + " -> ".join(phase.value for phase in result.state.history),
    )
    if result.descriptor is None:
        log_with_context(
            logging.INFO, "Nothing was replayed to the destination cluster."
        )
