"""
Migration state for a single orchestrator run.

The orchestrator walks a fixed sequence of phases; any non-terminal phase
may instead fall through to ``ABORTED``.  MigrationState records the
current phase, the path taken to reach it, and where a failure occurred.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from kube_migrator.types import ReplayOutcome


class MigrationPhase(str, Enum):
    """Phases of the orchestrator state machine."""

    INIT = "init"
    MEDIUM_READY = "medium_ready"
    EXPORTED = "exported"
    CREDENTIAL_SWITCHED = "credential_switched"
    REPLAYED = "replayed"
    DONE = "done"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (MigrationPhase.DONE, MigrationPhase.ABORTED)


ALLOWED_TRANSITIONS: dict[MigrationPhase, frozenset[MigrationPhase]] = {
    MigrationPhase.INIT: frozenset({MigrationPhase.MEDIUM_READY}),
    MigrationPhase.MEDIUM_READY: frozenset({MigrationPhase.EXPORTED}),
    MigrationPhase.EXPORTED: frozenset({MigrationPhase.CREDENTIAL_SWITCHED}),
    MigrationPhase.CREDENTIAL_SWITCHED: frozenset({MigrationPhase.REPLAYED}),
    MigrationPhase.REPLAYED: frozenset({MigrationPhase.DONE}),
    MigrationPhase.DONE: frozenset(),
    MigrationPhase.ABORTED: frozenset(),
}


class MigrationOutcome(str, Enum):
    """Final, operator-facing classification of a run."""

    COMPLETED_SUCCESSFULLY = "completed successfully"
    COMPLETED_WITH_WARNINGS = "completed with warnings"
    COMPLETED_WITH_ERRORS = "completed with errors"
    ABORTED = "aborted"

    @property
    def is_failure(self) -> bool:
        """Only an aborted run is a tooling failure; replay errors are not."""
        return self is MigrationOutcome.ABORTED


def classify_outcome(outcome: ReplayOutcome) -> MigrationOutcome:
    """Classify a finished replay: errors beat warnings beat a clean run."""
    if outcome.has_errors:
        return MigrationOutcome.COMPLETED_WITH_ERRORS
    if outcome.has_warnings:
        return MigrationOutcome.COMPLETED_WITH_WARNINGS
    return MigrationOutcome.COMPLETED_SUCCESSFULLY


@dataclass
class MigrationState:
    """Holds the mutable phase tracking for a migration run."""

    phase: MigrationPhase = MigrationPhase.INIT
    history: list[MigrationPhase] = field(
        default_factory=lambda: [MigrationPhase.INIT]
    )
    failed_step: str | None = None
    error: BaseException | None = None

    def advance(self, target: MigrationPhase) -> None:
        """Move to ``target``.

        Raises:
            ValueError: If the transition is not part of the state machine.
        """
        if target is MigrationPhase.ABORTED:
            raise ValueError("Use abort() to enter the aborted phase")
        if target not in ALLOWED_TRANSITIONS[self.phase]:
            raise ValueError(
                f"Illegal transition {self.phase.value} -> {target.value}"
            )
        self.phase = target
        self.history.append(target)

    def abort(self, step: str, error: BaseException) -> None:
        """Enter ``ABORTED`` from any non-terminal phase, recording the failing step."""
        if self.phase.is_terminal:
            raise ValueError(f"Cannot abort from terminal phase {self.phase.value}")
        self.phase = MigrationPhase.ABORTED
        self.history.append(MigrationPhase.ABORTED)
        self.failed_step = step
        self.error = error

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal
