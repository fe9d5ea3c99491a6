"""Shared type definitions for the Kubernetes workload migration tool.

Value objects flowing through the migration pipeline: cluster endpoints,
the descriptor produced by the export phase, the parameters handed to the
replay engine, and the partitioned outcome of a replay run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from kube_migrator.constants import DESTINATION_CLIENT_NAME, SOURCE_CLIENT_NAME

# ---------------------------------------------------------------------------
# Cluster identity
# ---------------------------------------------------------------------------


class ClusterRole(str, Enum):
    """Which side of the migration a cluster sits on."""

    SOURCE = "source"
    DESTINATION = "destination"


@dataclass(frozen=True)
class ClusterEndpoint:
    """A kubeconfig reference plus the role the cluster plays in the run."""

    kubeconfig: Path
    role: ClusterRole
    context: str | None = None

    @property
    def client_name(self) -> str:
        """Logical client identity used for the user agent."""
        if self.role is ClusterRole.SOURCE:
            return SOURCE_CLIENT_NAME
        return DESTINATION_CLIENT_NAME


# ---------------------------------------------------------------------------
# Phase parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExportDescriptor:
    """Identifies one export run and mirrors the parameters it used."""

    name: str
    included_namespaces: tuple[str, ...]
    excluded_resources: tuple[str, ...]
    snapshot_volumes: bool = False
    default_volumes_to_fs_backup: bool = False
    created_at: str | None = None
    items_exported: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "included_namespaces": list(self.included_namespaces),
            "excluded_resources": list(self.excluded_resources),
            "snapshot_volumes": self.snapshot_volumes,
            "default_volumes_to_fs_backup": self.default_volumes_to_fs_backup,
            "created_at": self.created_at,
            "items_exported": self.items_exported,
        }


@dataclass(frozen=True)
class ReplayParameters:
    """Parameters handed to the replay engine for a single run."""

    name: str
    export_name: str
    included_namespaces: tuple[str, ...]
    excluded_resources: tuple[str, ...]
    priorities: tuple[str, ...]
    restore_volumes: bool = False


# ---------------------------------------------------------------------------
# Replay outcome
# ---------------------------------------------------------------------------


class ReplaySeverity(str, Enum):
    """How serious a per-resource replay problem is."""

    WARNING = "warning"
    ERROR = "error"


class ReplayScope(str, Enum):
    """Where a per-resource replay problem was raised."""

    CLUSTER = "cluster"
    NAMESPACE = "namespace"
    PLUGIN = "plugin"


@dataclass(frozen=True)
class ReplayIssue:
    """A single warning or error produced while replaying one resource."""

    severity: ReplaySeverity
    scope: ReplayScope
    message: str
    resource: str | None = None
    namespace: str | None = None

    def __str__(self) -> str:
        location = self.namespace or self.scope.value
        if self.resource:
            return f"[{location}] {self.resource}: {self.message}"
        return f"[{location}] {self.message}"


@dataclass
class ReplayOutcome:
    """Ordered collection of replay issues, partitioned on demand.

    Items that replayed cleanly leave no trace here; ``items_replayed``
    counts them separately.
    """

    issues: list[ReplayIssue] = field(default_factory=list)
    items_replayed: int = 0

    def add(
        self,
        severity: ReplaySeverity,
        scope: ReplayScope,
        message: str,
        resource: str | None = None,
        namespace: str | None = None,
    ) -> ReplayIssue:
        issue = ReplayIssue(severity, scope, message, resource, namespace)
        self.issues.append(issue)
        return issue

    def warn(self, scope: ReplayScope, message: str, **kwargs: Any) -> ReplayIssue:
        return self.add(ReplaySeverity.WARNING, scope, message, **kwargs)

    def error(self, scope: ReplayScope, message: str, **kwargs: Any) -> ReplayIssue:
        return self.add(ReplaySeverity.ERROR, scope, message, **kwargs)

    @property
    def warnings(self) -> list[ReplayIssue]:
        return [i for i in self.issues if i.severity is ReplaySeverity.WARNING]

    @property
    def errors(self) -> list[ReplayIssue]:
        return [i for i in self.issues if i.severity is ReplaySeverity.ERROR]

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def by_scope(self, severity: ReplaySeverity) -> dict[ReplayScope, list[ReplayIssue]]:
        """Partition issues of one severity by scope.

        Every scope is present in the result, empty or not.
        """
        partition: dict[ReplayScope, list[ReplayIssue]] = {
            scope: [] for scope in ReplayScope
        }
        for issue in self.issues:
            if issue.severity is severity:
                partition[issue.scope].append(issue)
        return partition
