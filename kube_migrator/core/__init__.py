"""Core migration logic including configuration and orchestration."""

__all__ = [
    "config",
    "context",
    "medium",
    "migration_logging",
    "orchestrator",
    "state",
]
