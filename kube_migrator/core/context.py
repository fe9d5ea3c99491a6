"""Immutable migration request.

MigrationRequest is a frozen dataclass that holds everything a migration
run needs: both cluster endpoints, the namespace set chosen by the
operator, the local directories, and the fixed migration policy.  It is
created once at orchestration start and read-only thereafter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from kube_migrator.constants import (
    DEFAULT_RESTORE_PRIORITIES,
    EXPORT_EXCLUDED_RESOURCES,
    NON_RESTORABLE_RESOURCES,
)
from kube_migrator.core.config import MigrationConfig
from kube_migrator.exceptions import ConfigError
from kube_migrator.types import ClusterEndpoint, ClusterRole


def parse_namespaces(value: str) -> tuple[str, ...]:
    """Split a comma-separated namespace list, dropping blanks and duplicates."""
    seen: dict[str, None] = {}
    for part in value.split(","):
        name = part.strip()
        if name:
            seen.setdefault(name, None)
    return tuple(seen)


@dataclass(frozen=True)
class MigrationRequest:
    """Immutable request for a migration run. Created once, shared everywhere."""

    source: ClusterEndpoint
    destination: ClusterEndpoint
    namespaces: tuple[str, ...]

    # Local filesystem
    plugin_dir: Path
    cache_dir: Path
    shared_kubeconfig: Path

    config: MigrationConfig = field(default_factory=MigrationConfig)

    # Fixed policy
    export_excluded_resources: tuple[str, ...] = EXPORT_EXCLUDED_RESOURCES
    replay_excluded_resources: tuple[str, ...] = NON_RESTORABLE_RESOURCES
    replay_priorities: tuple[str, ...] = DEFAULT_RESTORE_PRIORITIES

    def __post_init__(self) -> None:
        """Validate invariants after initialization."""
        if not self.namespaces:
            raise ConfigError("At least one namespace must be given")
        if self.source.role is not ClusterRole.SOURCE:
            raise ConfigError("source endpoint must have the source role")
        if self.destination.role is not ClusterRole.DESTINATION:
            raise ConfigError("destination endpoint must have the destination role")

    @classmethod
    def build(
        cls,
        source_kubeconfig: str | Path,
        destination_kubeconfig: str | Path,
        namespaces: str | tuple[str, ...],
        plugin_dir: str | Path,
        cache_dir: str | Path,
        shared_kubeconfig: str | Path,
        config: MigrationConfig | None = None,
    ) -> MigrationRequest:
        """Assemble a request from raw CLI-style values."""
        config = config or MigrationConfig()
        if isinstance(namespaces, str):
            namespaces = parse_namespaces(namespaces)
        return cls(
            source=ClusterEndpoint(
                Path(source_kubeconfig), ClusterRole.SOURCE, config.source_context
            ),
            destination=ClusterEndpoint(
                Path(destination_kubeconfig),
                ClusterRole.DESTINATION,
                config.destination_context,
            ),
            namespaces=tuple(namespaces),
            plugin_dir=Path(plugin_dir),
            cache_dir=Path(cache_dir),
            shared_kubeconfig=Path(shared_kubeconfig),
            config=config,
        )
