"""
Export phase driver.

Wires the client factory, plugin registry, discovery and export engine for
the source cluster and runs exactly one export into the caller's sink.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, BinaryIO, Callable

from kube_migrator.constants import EXPORT_EXCLUDED_RESOURCES
from kube_migrator.core.config import MigrationConfig
from kube_migrator.plugins.actions import PluginContext
from kube_migrator.plugins.registry import PluginManager, PluginRegistry
from kube_migrator.services.client_factory import open_clients
from kube_migrator.services.discovery import build_discovery_snapshot
from kube_migrator.services.exporter import ExportEngine
from kube_migrator.types import ClusterEndpoint, ExportDescriptor
from kube_migrator.utils.logging import get_logger, log_with_context


def export_name(now: datetime.datetime | None = None) -> str:
    """Name of a new export, unique per second."""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return f"migration-{now.strftime('%Y%m%d%H%M%S')}"


class ExportPhaseDriver:
    """Runs the export phase against one cluster.

    Every collaborator is injectable so tests can substitute fakes for the
    cluster, discovery and engine.
    """

    def __init__(
        self,
        config: MigrationConfig | None = None,
        shared_kubeconfig: Path | None = None,
        client_factory: Callable[..., Any] = open_clients,
        discovery_factory: Callable[[Any], Any] = build_discovery_snapshot,
        registry_factory: Callable[[Path], PluginRegistry] = PluginRegistry,
        engine_factory: Callable[..., ExportEngine] = ExportEngine,
    ) -> None:
        self.config = config or MigrationConfig()
        self.shared_kubeconfig = shared_kubeconfig
        self.client_factory = client_factory
        self.discovery_factory = discovery_factory
        self.registry_factory = registry_factory
        self.engine_factory = engine_factory

    def run_export(
        self,
        endpoint: ClusterEndpoint,
        plugin_dir: Path,
        namespaces: tuple[str, ...],
        sink: BinaryIO,
        excluded_resources: tuple[str, ...] = EXPORT_EXCLUDED_RESOURCES,
    ) -> ExportDescriptor:
        """Export ``namespaces`` from the cluster at ``endpoint`` into ``sink``.

        Args:
            endpoint: The source cluster.
            plugin_dir: Directory holding the plugin modules.
            namespaces: Namespaces to export; nothing outside them is written.
            sink: Writable stream receiving the archive.
            excluded_resources: Resource names never exported.

        Returns:
            The descriptor of the export that was written.

        Raises:
            ClusterConnectionError: If the cluster cannot be reached.
            PluginDiscoveryError: If the plugins cannot be loaded or started.
            ExportEngineError: If the export fails at any point.
        """
        clients = self.client_factory(endpoint, self.config)
        try:
            registry = self.registry_factory(plugin_dir)
            registry.discover_plugins()
            context = PluginContext(
                kubeconfig=self.shared_kubeconfig or endpoint.kubeconfig,
                role=endpoint.role,
                logger=get_logger(),
            )
            with PluginManager(registry, context) as plugins:
                actions = plugins.get_export_actions()
                discovery = self.discovery_factory(clients)

                now = datetime.datetime.now(datetime.timezone.utc)
                descriptor = ExportDescriptor(
                    name=export_name(now),
                    included_namespaces=tuple(namespaces),
                    excluded_resources=tuple(excluded_resources),
                    snapshot_volumes=False,
                    default_volumes_to_fs_backup=False,
                    created_at=now.isoformat(),
                )
                log_with_context(
                    logging.INFO,
                    f"Starting export {descriptor.name} of namespaces"
                    f" {', '.join(descriptor.included_namespaces)}",
                    phase="export",
                    cluster=endpoint.role.value,
                )
                engine = self.engine_factory(clients.dynamic, discovery)
                count = engine.export(descriptor, sink, actions)
        finally:
            clients.close()

        return replace(descriptor, items_exported=count)
