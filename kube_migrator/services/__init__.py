"""Cluster-facing services: clients, discovery, credential bridging and the export/replay phases."""

__all__ = [
    "client_factory",
    "credential_bridge",
    "discovery",
    "export_driver",
    "exporter",
    "importer",
    "replay_driver",
]
