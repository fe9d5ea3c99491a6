"""
Migration orchestrator.

Sequences one migration run:

    allocate medium -> publish source credential -> export
        -> publish destination credential -> rewind medium -> replay

and records each step in a :class:`MigrationState`.  A fatal error at any
step moves the run to ``ABORTED``; per-resource replay problems do not.
The transfer medium is deleted on every exit path.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from kube_migrator.core.context import MigrationRequest
from kube_migrator.core.medium import TransferMedium
from kube_migrator.core.migration_logging import (
    log_migration_failure,
    log_migration_success,
    log_replay_outcome,
)
from kube_migrator.core.state import (
    MigrationOutcome,
    MigrationPhase,
    MigrationState,
    classify_outcome,
)
from kube_migrator.exceptions import MigratorError
from kube_migrator.services.credential_bridge import publish_credentials
from kube_migrator.services.export_driver import ExportPhaseDriver
from kube_migrator.services.replay_driver import ReplayPhaseDriver
from kube_migrator.types import ExportDescriptor, ReplayOutcome
from kube_migrator.utils.logging import log_with_context

# Step names, as reported when a run aborts
STEP_ALLOCATE_MEDIUM = "allocate transfer medium"
STEP_PUBLISH_SOURCE = "publish source credential"
STEP_EXPORT = "export"
STEP_PUBLISH_DESTINATION = "publish destination credential"
STEP_REWIND_MEDIUM = "rewind transfer medium"
STEP_REPLAY = "replay"


@dataclass
class MigrationResult:
    """Everything the caller needs to report on a finished run."""

    state: MigrationState
    outcome: MigrationOutcome = MigrationOutcome.ABORTED
    descriptor: ExportDescriptor | None = None
    replay_outcome: ReplayOutcome | None = None
    failed_step: str | None = None
    error: BaseException | None = None
    duration: float = 0.0
    medium_path: Path | None = field(default=None, repr=False)

    @property
    def aborted(self) -> bool:
        return self.outcome.is_failure


class MigrationOrchestrator:
    """Drives a single migration from the source to the destination cluster."""

    def __init__(
        self,
        request: MigrationRequest,
        export_driver: ExportPhaseDriver | None = None,
        replay_driver: ReplayPhaseDriver | None = None,
        publish: Callable[[Path, Path], None] = publish_credentials,
        medium_factory: Callable[[Path], TransferMedium] = TransferMedium.allocate,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.request = request
        self.export_driver = export_driver or ExportPhaseDriver(
            config=request.config, shared_kubeconfig=request.shared_kubeconfig
        )
        self.replay_driver = replay_driver or ReplayPhaseDriver(
            config=request.config, shared_kubeconfig=request.shared_kubeconfig
        )
        self.publish = publish
        self.medium_factory = medium_factory
        self._clock = clock
        self.state = MigrationState()

    def _enter(self, phase: MigrationPhase, **context: Any) -> None:
        self.state.advance(phase)
        log_with_context(
            logging.DEBUG, f"Entered phase {phase.value}", phase=phase.value, **context
        )

    def run(self) -> MigrationResult:
        """Run the migration to completion.

        Fatal errors do not propagate; they are recorded in the returned
        result.  ``KeyboardInterrupt`` is re-raised once the medium has been
        removed.

        Returns:
            The final state, outcome and collected results of the run.
        """
        request = self.request
        result = MigrationResult(state=self.state)
        medium: TransferMedium | None = None
        step = STEP_ALLOCATE_MEDIUM
        start = self._clock()

        try:
            medium = self.medium_factory(request.cache_dir)
            result.medium_path = medium.path
            self._enter(MigrationPhase.MEDIUM_READY)

            step = STEP_PUBLISH_SOURCE
            self.publish(request.source.kubeconfig, request.shared_kubeconfig)
            log_with_context(
                logging.INFO,
                f"Published source credential to {request.shared_kubeconfig}",
                cluster=request.source.role.value,
            )

            step = STEP_EXPORT
            result.descriptor = self.export_driver.run_export(
                request.source,
                request.plugin_dir,
                request.namespaces,
                medium.writer,
                excluded_resources=request.export_excluded_resources,
            )
            medium.mark_written()
            self._enter(MigrationPhase.EXPORTED, export=result.descriptor.name)

            step = STEP_PUBLISH_DESTINATION
            self.publish(request.destination.kubeconfig, request.shared_kubeconfig)
            log_with_context(
                logging.INFO,
                f"Published destination credential to {request.shared_kubeconfig}",
                cluster=request.destination.role.value,
            )
            self._enter(MigrationPhase.CREDENTIAL_SWITCHED)

            step = STEP_REWIND_MEDIUM
            source = medium.rewind()

            step = STEP_REPLAY
            result.replay_outcome = self.replay_driver.run_replay(
                request.destination,
                request.plugin_dir,
                source,
                result.descriptor,
                excluded_resources=request.replay_excluded_resources,
                priorities=request.replay_priorities,
            )
            self._enter(MigrationPhase.REPLAYED)

            result.outcome = classify_outcome(result.replay_outcome)
            self._enter(MigrationPhase.DONE, outcome=result.outcome.value)
        except KeyboardInterrupt as e:
            self.state.abort(step, e)
            result.duration = self._clock() - start
            self._finish(result, medium)
            raise
        except Exception as e:
            if not isinstance(e, MigratorError):
                log_with_context(
                    logging.DEBUG, f"Unexpected error during {step}", exc_info=True
                )
            self.state.abort(step, e)

        result.duration = self._clock() - start
        self._finish(result, medium)
        return result

    def _finish(self, result: MigrationResult, medium: TransferMedium | None) -> None:
        if medium is not None:
            try:
                medium.discard()
            except MigratorError as e:
                log_with_context(logging.ERROR, str(e), step="cleanup")

        if self.state.phase is MigrationPhase.ABORTED:
            result.outcome = MigrationOutcome.ABORTED
            result.failed_step = self.state.failed_step
            result.error = self.state.error
            log_migration_failure(result)
            return

        if result.replay_outcome is not None:
            log_replay_outcome(result.replay_outcome)
        log_migration_success(result)
