"""
Replay phase driver.

Wires the client factory, plugin registry, discovery and replay engine for
the destination cluster and replays one export archive.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, BinaryIO, Callable

from kube_migrator.constants import DEFAULT_RESTORE_PRIORITIES, NON_RESTORABLE_RESOURCES
from kube_migrator.core.config import MigrationConfig
from kube_migrator.plugins.actions import PluginContext
from kube_migrator.plugins.registry import PluginManager, PluginRegistry
from kube_migrator.services.client_factory import open_clients
from kube_migrator.services.discovery import build_discovery_snapshot
from kube_migrator.services.importer import ReplayEngine
from kube_migrator.types import (
    ClusterEndpoint,
    ExportDescriptor,
    ReplayOutcome,
    ReplayParameters,
)
from kube_migrator.utils.logging import get_logger, log_with_context


class ReplayPhaseDriver:
    """Runs the replay phase against one cluster."""

    def __init__(
        self,
        config: MigrationConfig | None = None,
        shared_kubeconfig: Path | None = None,
        client_factory: Callable[..., Any] = open_clients,
        discovery_factory: Callable[[Any], Any] = build_discovery_snapshot,
        registry_factory: Callable[[Path], PluginRegistry] = PluginRegistry,
        engine_factory: Callable[..., ReplayEngine] = ReplayEngine,
    ) -> None:
        self.config = config or MigrationConfig()
        self.shared_kubeconfig = shared_kubeconfig
        self.client_factory = client_factory
        self.discovery_factory = discovery_factory
        self.registry_factory = registry_factory
        self.engine_factory = engine_factory

    def build_parameters(
        self,
        descriptor: ExportDescriptor,
        excluded_resources: tuple[str, ...] = NON_RESTORABLE_RESOURCES,
        priorities: tuple[str, ...] = DEFAULT_RESTORE_PRIORITIES,
    ) -> ReplayParameters:
        return ReplayParameters(
            name=f"{descriptor.name}-replay",
            export_name=descriptor.name,
            included_namespaces=descriptor.included_namespaces,
            excluded_resources=tuple(excluded_resources),
            priorities=tuple(priorities),
            restore_volumes=False,
        )

    def run_replay(
        self,
        endpoint: ClusterEndpoint,
        plugin_dir: Path,
        source: BinaryIO,
        descriptor: ExportDescriptor,
        excluded_resources: tuple[str, ...] = NON_RESTORABLE_RESOURCES,
        priorities: tuple[str, ...] = DEFAULT_RESTORE_PRIORITIES,
    ) -> ReplayOutcome:
        """Replay the archive in ``source`` onto the cluster at ``endpoint``.

        Per-resource failures are returned in the outcome; only problems
        that stop the replay from starting are raised.

        Raises:
            ClusterConnectionError: If the cluster cannot be reached.
            PluginDiscoveryError: If the plugins cannot be loaded or started.
            ReplayStartError: If the archive cannot be read.
        """
        params = self.build_parameters(descriptor, excluded_resources, priorities)
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
                actions = plugins.get_replay_actions()
                discovery = self.discovery_factory(clients)
                log_with_context(
                    logging.INFO,
                    f"Starting replay {params.name} of export {params.export_name}",
                    phase="replay",
                    cluster=endpoint.role.value,
                )
                engine = self.engine_factory(
                    clients.core, clients.dynamic, discovery, self.config
                )
                return engine.replay(params, source, actions)
        finally:
            clients.close()
