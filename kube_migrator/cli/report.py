"""
Report generation for migration runs.
"""

from __future__ import annotations

import datetime
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from kube_migrator.core.orchestrator import MigrationResult
from kube_migrator.types import ReplayOutcome, ReplaySeverity
from kube_migrator.utils.logging import log_with_context

REPORT_FILE_NAME = "migration_report.yaml"


def create_output_directory(cache_dir: str | Path) -> str:
    """Create the timestamped output directory for this run.

    Args:
        cache_dir: The scratch directory given on the command line.

    Returns:
        The path of the new ``<cache>/runs/run_<timestamp>`` directory.
    """
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    run_output_dir = os.path.join(str(cache_dir), "runs", f"run_{timestamp}")
    os.makedirs(run_output_dir, exist_ok=True)
    return run_output_dir


def _issues_by_scope(
    outcome: ReplayOutcome, severity: ReplaySeverity
) -> dict[str, list[dict[str, Any]]]:
    return {
        scope.value: [
            {
                "message": issue.message,
                "resource": issue.resource,
                "namespace": issue.namespace,
            }
            for issue in issues
        ]
        for scope, issues in outcome.by_scope(severity).items()
    }


def build_report(result: MigrationResult) -> dict[str, Any]:
    """Build the report contents for a finished run."""
    replay: dict[str, Any] | None = None
    if result.replay_outcome is not None:
        replay = {
            "items_replayed": result.replay_outcome.items_replayed,
            "warnings": _issues_by_scope(result.replay_outcome, ReplaySeverity.WARNING),
            "errors": _issues_by_scope(result.replay_outcome, ReplaySeverity.ERROR),
        }

    return {
        "timestamp": datetime.datetime.now().isoformat(),
        "outcome": result.outcome.value,
        "final_phase": result.state.phase.value,
        "phase_history": [phase.value for phase in result.state.history],
        "failed_step": result.failed_step,
        "error": str(result.error) if result.error is not None else None,
        "export": result.descriptor.to_dict() if result.descriptor else None,
        "replay": replay,
        "duration_seconds": round(result.duration, 3),
    }


def generate_report(result: MigrationResult, output_dir: str | Path) -> str:
    """Write the YAML migration report into ``output_dir``.

    Returns:
        Path of the written report.
    """
    report_path = os.path.join(str(output_dir), REPORT_FILE_NAME)
    with open(report_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(build_report(result), f, default_flow_style=False, sort_keys=False)

    log_with_context(logging.INFO, f"Migration report saved to {report_path}")
    return report_path
