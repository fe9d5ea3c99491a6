"""
API resource discovery for a single cluster.

Resource names are handled in the same canonical form the export archive
uses: ``<plural>`` for the core group and ``<plural>.<group>`` otherwise
(``configmaps``, ``replicasets.apps``, ``events.events.k8s.io``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from kube_migrator.exceptions import DiscoveryError
from kube_migrator.utils.logging import log_with_context

if TYPE_CHECKING:
    from kube_migrator.services.client_factory import ClusterClients


@dataclass(frozen=True)
class APIResource:
    """One resource type served by a cluster."""

    group: str
    version: str
    name: str
    kind: str
    namespaced: bool
    verbs: tuple[str, ...] = ()

    @property
    def group_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def canonical_name(self) -> str:
        return canonical_key(self.name, self.group)

    def supports(self, verb: str) -> bool:
        return verb in self.verbs


def canonical_key(name: str, group: str) -> str:
    """Canonical resource name for a plural name and API group."""
    return f"{name}.{group}" if group else name


class DiscoverySnapshot:
    """Point-in-time list of the API resource types served by a cluster."""

    def __init__(
        self,
        resources: Iterable[APIResource],
        loader: Any = None,
    ) -> None:
        self._resources: list[APIResource] = list(resources)
        self._loader = loader

    @property
    def resources(self) -> list[APIResource]:
        return list(self._resources)

    def refresh(self) -> None:
        """Re-read the cluster's resource types, e.g. after CRDs were created."""
        if self._loader is None:
            return
        self._resources = list(self._loader())
        log_with_context(
            logging.DEBUG, f"Refreshed discovery: {len(self._resources)} resource types"
        )

    def find(self, canonical: str) -> APIResource | None:
        for resource in self._resources:
            if resource.canonical_name == canonical:
                return resource
        return None

    def canonical(self, name: str) -> str:
        """Resolve a user or policy resource name to its canonical form.

        Qualified names (``plural.group``) are returned as given.  A bare
        plural resolves to the core group when the core group serves it,
        otherwise to the first group that does; names the cluster does not
        serve are returned unchanged.
        """
        name = name.strip().lower()
        if "." in name:
            return name
        matches = [r for r in self._resources if r.name == name]
        for resource in matches:
            if not resource.group:
                return resource.canonical_name
        if matches:
            return matches[0].canonical_name
        return name

    def canonical_set(self, names: Iterable[str]) -> set[str]:
        return {self.canonical(n) for n in names}

    def __len__(self) -> int:
        return len(self._resources)


def _get_json(api_client: Any, path: str) -> dict[str, Any]:
    return api_client.call_api(
        path,
        "GET",
        response_type="object",
        auth_settings=["BearerToken"],
        _return_http_data_only=True,
    )


def _parse_resource_list(
    data: dict[str, Any], group: str, version: str
) -> list[APIResource]:
    resources = []
    for item in data.get("resources", []):
        name = item.get("name", "")
        # Subresources such as pods/log are not exportable objects
        if not name or "/" in name:
            continue
        resources.append(
            APIResource(
                group=group,
                version=version,
                name=name,
                kind=item.get("kind", ""),
                namespaced=bool(item.get("namespaced", False)),
                verbs=tuple(item.get("verbs", ())),
            )
        )
    return resources


def load_api_resources(api_client: Any) -> list[APIResource]:
    """Read the core group and the preferred version of every named group.

    A failing aggregated group is skipped with a warning, because one
    unavailable extension API server should not block a migration.

    Raises:
        DiscoveryError: If the core group or the group list cannot be read.
    """
    try:
        resources = _parse_resource_list(_get_json(api_client, "/api/v1"), "", "v1")
        groups = _get_json(api_client, "/apis").get("groups", [])
    except (ApiException, Urllib3HTTPError, OSError) as e:
        raise DiscoveryError(f"Failed to discover API resources: {e}") from e

    for group in groups:
        preferred = group.get("preferredVersion") or (group.get("versions") or [{}])[0]
        group_version = preferred.get("groupVersion")
        if not group_version:
            continue
        try:
            data = _get_json(api_client, f"/apis/{group_version}")
        except (ApiException, Urllib3HTTPError, OSError) as e:
            log_with_context(
                logging.WARNING,
                f"Skipping API group {group_version}, discovery failed: {e}",
            )
            continue
        resources.extend(
            _parse_resource_list(data, group["name"], preferred.get("version", ""))
        )
    return resources


def build_discovery_snapshot(clients: ClusterClients) -> DiscoverySnapshot:
    """Build a discovery snapshot for the cluster behind ``clients``.

    Raises:
        DiscoveryError: If the cluster's resource types cannot be listed.
    """

    def loader() -> list[APIResource]:
        return load_api_resources(clients.api_client)

    snapshot = DiscoverySnapshot(loader(), loader=loader)
    log_with_context(
        logging.INFO,
        f"Discovered {len(snapshot)} resource types",
        cluster=clients.endpoint.role.value,
    )
    return snapshot
