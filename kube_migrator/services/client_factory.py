"""
Cluster client factory.

Every component obtains its Kubernetes clients through ``open_clients``
so kubeconfig handling lives in one place and can be substituted in tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from kubernetes import client
from kubernetes import config as kube_config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic import DynamicClient
from urllib3.exceptions import HTTPError as Urllib3HTTPError

import kube_migrator
from kube_migrator.core.config import MigrationConfig
from kube_migrator.exceptions import ClusterConnectionError
from kube_migrator.types import ClusterEndpoint
from kube_migrator.utils.logging import log_with_context


@dataclass
class ClusterClients:
    """Typed clients bound to one cluster."""

    endpoint: ClusterEndpoint
    api_client: client.ApiClient
    core: client.CoreV1Api
    dynamic: DynamicClient
    migration_api: client.CustomObjectsApi
    rest_config: client.Configuration

    def close(self) -> None:
        self.api_client.close()


def build_rest_config(
    endpoint: ClusterEndpoint, config: MigrationConfig
) -> client.Configuration:
    """Load the endpoint's kubeconfig into a private client configuration.

    Raises:
        ClusterConnectionError: If the kubeconfig is missing or invalid.
    """
    rest_config = client.Configuration()
    try:
        kube_config.load_kube_config(
            config_file=str(endpoint.kubeconfig),
            context=endpoint.context,
            client_configuration=rest_config,
            persist_config=False,
        )
    except (ConfigException, OSError, TypeError, ValueError) as e:
        raise ClusterConnectionError(
            f"Failed to load kubeconfig {endpoint.kubeconfig} for the"
            f" {endpoint.role.value} cluster: {e}"
        ) from e
    rest_config.retries = config.client_retries
    return rest_config


def open_clients(
    endpoint: ClusterEndpoint, config: MigrationConfig | None = None
) -> ClusterClients:
    """Build the core, dynamic and migration-API clients for one cluster.

    The API server is queried once so an unreachable cluster fails here
    rather than halfway through a phase.

    Args:
        endpoint: The cluster to connect to.
        config: Client tuning; defaults are used when omitted.

    Returns:
        ClusterClients bound to the endpoint.

    Raises:
        ClusterConnectionError: If the kubeconfig cannot be loaded or the
            API server is unreachable.
    """
    config = config or MigrationConfig()
    rest_config = build_rest_config(endpoint, config)

    api_client = client.ApiClient(configuration=rest_config)
    api_client.user_agent = (
        f"kube-migrator/{kube_migrator.__version__} ({endpoint.client_name})"
    )

    try:
        version = client.VersionApi(api_client).get_code(
            _request_timeout=config.request_timeout_seconds
        )
        dynamic = DynamicClient(api_client)
    except (ApiException, Urllib3HTTPError, OSError) as e:
        api_client.close()
        raise ClusterConnectionError(
            f"Failed to reach the {endpoint.role.value} cluster API server"
            f" at {rest_config.host}: {e}"
        ) from e

    log_with_context(
        logging.DEBUG,
        f"Connected to {rest_config.host} (Kubernetes {version.git_version})",
        cluster=endpoint.role.value,
    )

    return ClusterClients(
        endpoint=endpoint,
        api_client=api_client,
        core=client.CoreV1Api(api_client),
        dynamic=dynamic,
        migration_api=client.CustomObjectsApi(api_client),
        rest_config=rest_config,
    )
