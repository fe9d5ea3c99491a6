"""Unit test configuration and shared fixtures.

The fake cluster below stands in for a Kubernetes API server.  It serves
the same call shapes the dynamic client and ``CoreV1Api`` expose, and it
raises the real ``kubernetes`` exception types, so the export and replay
engines run unmodified against it.
"""

from __future__ import annotations

import copy
import io
import logging
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import (
    ConflictError,
    NotFoundError,
    ResourceNotFoundError,
)

from kube_migrator.core.config import MigrationConfig
from kube_migrator.services.discovery import APIResource, DiscoverySnapshot
from kube_migrator.services.exporter import ExportEngine
from kube_migrator.types import ClusterEndpoint, ClusterRole, ExportDescriptor

VERBS = ("create", "delete", "get", "list", "watch")

# ---------------------------------------------------------------------------
# Fake API server
# ---------------------------------------------------------------------------


def default_resources() -> list[APIResource]:
    """Resource types served by a freshly built fake cluster."""
    return [
        APIResource("", "v1", "namespaces", "Namespace", False, VERBS),
        APIResource("", "v1", "nodes", "Node", False, VERBS),
        APIResource("", "v1", "persistentvolumes", "PersistentVolume", False, VERBS),
        APIResource("", "v1", "configmaps", "ConfigMap", True, VERBS),
        APIResource("", "v1", "events", "Event", True, VERBS),
        APIResource(
            "", "v1", "persistentvolumeclaims", "PersistentVolumeClaim", True, VERBS
        ),
        APIResource("", "v1", "pods", "Pod", True, VERBS),
        APIResource("", "v1", "secrets", "Secret", True, VERBS),
        APIResource("", "v1", "serviceaccounts", "ServiceAccount", True, VERBS),
        APIResource("", "v1", "services", "Service", True, VERBS),
        APIResource("", "v1", "bindings", "Binding", True, ("create",)),
        APIResource("apps", "v1", "deployments", "Deployment", True, VERBS),
        APIResource("apps", "v1", "replicasets", "ReplicaSet", True, VERBS),
        APIResource("events.k8s.io", "v1", "events", "Event", True, VERBS),
        APIResource(
            "apiextensions.k8s.io",
            "v1",
            "customresourcedefinitions",
            "CustomResourceDefinition",
            False,
            VERBS,
        ),
    ]


def api_error(status: int, reason: str) -> ApiException:
    return ApiException(status=status, reason=reason)


class FakeResult:
    """What a dynamic client call returns: something with ``to_dict()``."""

    def __init__(self, data: dict[str, Any]) -> None:
        self._data = data

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)


class FakeResourceApi:
    """One resource type, as returned by ``dynamic.resources.get``."""

    def __init__(self, cluster: FakeCluster, resource: APIResource) -> None:
        self.cluster = cluster
        self.resource = resource

    def _key(self, name: str, namespace: str | None) -> tuple:
        ns = namespace if self.resource.namespaced else None
        return (self.resource.group_version, self.resource.kind, ns, name)

    def get(self, name: str | None = None, namespace: str | None = None) -> FakeResult:
        if self.resource.canonical_name in self.cluster.list_failures:
            raise self.cluster.list_failures[self.resource.canonical_name]
        if name is not None:
            obj = self.cluster.objects.get(self._key(name, namespace))
            if obj is None:
                raise NotFoundError(api_error(404, "Not Found"))
            return FakeResult(obj)
        items = [
            obj
            for (gv, kind, ns, _), obj in sorted(
                self.cluster.objects.items(), key=lambda kv: str(kv[0])
            )
            if gv == self.resource.group_version
            and kind == self.resource.kind
            and (namespace is None or ns == namespace)
        ]
        return FakeResult({"items": items})

    def create(self, body: dict[str, Any], namespace: str | None = None) -> FakeResult:
        name = body["metadata"]["name"]
        self.cluster.create_calls.append(
            (self.resource.canonical_name, namespace, name)
        )
        rejection = self.cluster.rejections.get((self.resource.canonical_name, name))
        if rejection is not None:
            raise rejection
        key = self._key(name, namespace)
        if key in self.cluster.objects:
            raise ConflictError(api_error(409, "Conflict"))
        obj = copy.deepcopy(body)
        if self.resource.namespaced:
            obj["metadata"]["namespace"] = namespace
        self.cluster.objects[key] = obj
        if self.resource.canonical_name == "namespaces":
            self.cluster.namespace_created(name)
        return FakeResult(obj)


class FakeResources:
    def __init__(self, cluster: FakeCluster) -> None:
        self.cluster = cluster

    def get(self, api_version: str | None = None, kind: str | None = None):
        for resource in self.cluster.resources:
            if resource.group_version == api_version and resource.kind == kind:
                return FakeResourceApi(self.cluster, resource)
        raise ResourceNotFoundError(f"No matches found for {api_version}/{kind}")


class FakeCoreV1:
    """The namespace calls of ``CoreV1Api``."""

    def __init__(self, cluster: FakeCluster) -> None:
        self.cluster = cluster

    def read_namespace(self, name: str):
        obj = self.cluster.namespace(name)
        if obj is None:
            raise api_error(404, "Not Found")
        phase = self.cluster.namespace_phases.get(name)
        if phase is not None and isinstance(phase, list):
            current = phase.pop(0) if phase else None
            if current is None:
                self.cluster.delete_namespace(name)
                raise api_error(404, "Not Found")
            return SimpleNamespace(status=SimpleNamespace(phase=current))
        return SimpleNamespace(status=SimpleNamespace(phase=phase or "Active"))

    def create_namespace(self, body: dict[str, Any]):
        name = body["metadata"]["name"]
        if self.cluster.namespace(name) is not None:
            raise api_error(409, "AlreadyExists")
        self.cluster.namespace_creates.append(copy.deepcopy(body))
        self.cluster.objects[("v1", "Namespace", None, name)] = copy.deepcopy(body)
        self.cluster.namespace_created(name)
        return body


class FakeClients:
    """Stands in for ``ClusterClients``."""

    def __init__(self, cluster: FakeCluster, endpoint: ClusterEndpoint) -> None:
        self.cluster = cluster
        self.endpoint = endpoint
        self.core = cluster.core
        self.dynamic = cluster.dynamic
        self.api_client = MagicMock()
        self.migration_api = MagicMock()
        self.rest_config = MagicMock()
        self.closed = False

    def close(self) -> None:
        self.closed = True
        self.cluster.closed_clients += 1


class FakeCluster:
    """In-memory Kubernetes API server holding plain object dicts."""

    def __init__(
        self,
        resources: list[APIResource] | None = None,
        root_ca: str | None = None,
    ) -> None:
        self.resources = resources if resources is not None else default_resources()
        self.objects: dict[tuple, dict[str, Any]] = {}
        self.create_calls: list[tuple[str, str | None, str]] = []
        self.namespace_creates: list[dict[str, Any]] = []
        self.rejections: dict[tuple[str, str], Exception] = {}
        self.list_failures: dict[str, Exception] = {}
        self.namespace_phases: dict[str, Any] = {}
        # When set, every new namespace gets a kube-root-ca.crt ConfigMap
        self.root_ca = root_ca
        self.opened: list[ClusterEndpoint] = []
        self.closed_clients = 0
        self.core = FakeCoreV1(self)
        self.dynamic = SimpleNamespace(resources=FakeResources(self))

    # -- seeding -------------------------------------------------------

    def add(self, api_version: str, kind: str, obj: dict[str, Any]) -> None:
        metadata = obj["metadata"]
        self.objects[(api_version, kind, metadata.get("namespace"), metadata["name"])] = (
            copy.deepcopy(obj)
        )

    def add_namespace(self, name: str, **metadata: Any) -> None:
        self.add("v1", "Namespace", {"metadata": {"name": name, **metadata}})
        self.namespace_created(name)

    def namespace_created(self, name: str) -> None:
        if self.root_ca is not None:
            self.add(
                "v1",
                "ConfigMap",
                {
                    "metadata": {"name": "kube-root-ca.crt", "namespace": name},
                    "data": {"ca.crt": self.root_ca},
                },
            )

    def namespace(self, name: str) -> dict[str, Any] | None:
        return self.objects.get(("v1", "Namespace", None, name))

    def delete_namespace(self, name: str) -> None:
        self.objects.pop(("v1", "Namespace", None, name), None)

    def get(
        self, api_version: str, kind: str, name: str, namespace: str | None = None
    ) -> dict[str, Any] | None:
        return self.objects.get((api_version, kind, namespace, name))

    def created(self, canonical: str) -> list[tuple[str | None, str]]:
        return [(ns, name) for res, ns, name in self.create_calls if res == canonical]

    # -- collaborator factories ----------------------------------------

    def snapshot(self) -> DiscoverySnapshot:
        return DiscoverySnapshot(self.resources, loader=lambda: list(self.resources))

    def client_factory(self, endpoint: ClusterEndpoint, config: Any = None) -> FakeClients:
        self.opened.append(endpoint)
        return FakeClients(self, endpoint)

    def discovery_factory(self, clients: Any) -> DiscoverySnapshot:
        return self.snapshot()


@pytest.fixture()
def source_cluster():
    """A fake cluster to export from."""
    return FakeCluster()


@pytest.fixture()
def destination_cluster():
    """An empty fake cluster to replay into."""
    return FakeCluster()


@pytest.fixture()
def webapp_cluster(sample_configmap, sample_pod):
    """A fake source cluster with one ConfigMap and one Pod in ``webapp``."""
    cluster = FakeCluster()
    cluster.add_namespace("webapp", labels={"team": "web"})
    cluster.add("v1", "ConfigMap", sample_configmap)
    cluster.add("v1", "Pod", sample_pod)
    return cluster


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_descriptor(
    namespaces: tuple[str, ...] = ("webapp",),
    excluded: tuple[str, ...] = ("persistentvolumeclaims", "persistentvolumes"),
    name: str = "migration-20240101000000",
) -> ExportDescriptor:
    return ExportDescriptor(
        name=name, included_namespaces=namespaces, excluded_resources=excluded
    )


def export_archive(
    cluster: FakeCluster,
    namespaces: tuple[str, ...] = ("webapp",),
    excluded: tuple[str, ...] = ("persistentvolumeclaims", "persistentvolumes"),
) -> io.BytesIO:
    """Export ``cluster`` into an in-memory archive, rewound for reading."""
    sink = io.BytesIO()
    ExportEngine(cluster.dynamic, cluster.snapshot()).export(
        make_descriptor(namespaces, excluded), sink
    )
    sink.seek(0)
    return sink


@pytest.fixture()
def endpoints(kubeconfig_files):
    """Source and destination endpoints backed by real files."""
    source, destination = kubeconfig_files
    return (
        ClusterEndpoint(source, ClusterRole.SOURCE),
        ClusterEndpoint(destination, ClusterRole.DESTINATION),
    )


@pytest.fixture()
def quiet_config():
    """Config with progress bars disabled."""
    return MigrationConfig(show_progress=False)


@pytest.fixture()
def plugin_dir(tmp_path):
    """An empty plugin directory."""
    path = tmp_path / "plugins"
    path.mkdir()
    return path


@pytest.fixture(autouse=True)
def _clean_logger():
    """Remove handlers from the kube_migrator logger around each test."""
    logger = logging.getLogger("kube_migrator")
    saved = logger.handlers[:]
    yield
    for handler in logger.handlers[:]:
        if handler not in saved:
            handler.close()
        logger.removeHandler(handler)
    for handler in saved:
        logger.addHandler(handler)
