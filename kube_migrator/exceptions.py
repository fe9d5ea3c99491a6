"""Custom exception hierarchy for the Kubernetes workload migration tool."""

from __future__ import annotations


class MigratorError(Exception):
    """Base exception for all migration-related errors."""


class ConfigError(MigratorError):
    """Raised when configuration is invalid or missing."""


class ClusterConnectionError(MigratorError, ConnectionError):
    """Raised when a kubeconfig cannot be loaded or the API server is unreachable."""


class DiscoveryError(ClusterConnectionError):
    """Raised when the API resource types of a cluster cannot be discovered."""


class PluginDiscoveryError(MigratorError):
    """Raised when the plugin registry fails to load or start its extensions."""


class TransferMediumError(MigratorError, OSError):
    """Raised when the intermediate export archive cannot be allocated, rewound or read."""


class CredentialPublishError(MigratorError, OSError):
    """Raised when a kubeconfig cannot be copied to the shared plugin location."""


class ExportEngineError(MigratorError):
    """Raised when the export run against the source cluster fails."""


class ReplayStartError(MigratorError):
    """Raised when the replay engine cannot begin processing the export archive."""


class MigrationAbortedError(MigratorError):
    """Raised when the migration is aborted at a given step."""

    def __init__(self, step: str, cause: BaseException | None = None) -> None:
        message = f"Migration aborted during {step}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.step = step
        self.cause = cause
