"""
Export engine: serialises the source cluster's objects into a tar archive.

Archive layout::

    metadata/version
    metadata/export.json
    resources/<resource>/namespaces/<namespace>/<name>.json
    resources/<resource>/cluster/<name>.json

``<resource>`` is the canonical resource name (``configmaps``,
``replicasets.apps``).  The only cluster-scoped objects written are the
included namespaces themselves.
"""

from __future__ import annotations

import io
import json
import logging
import tarfile
import time
from typing import Any, BinaryIO, Iterable

from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import (
    DynamicApiError,
    NotFoundError,
    ResourceNotFoundError,
)
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from kube_migrator.constants import (
    ARCHIVE_CLUSTER_DIR,
    ARCHIVE_DESCRIPTOR_PATH,
    ARCHIVE_FORMAT_VERSION,
    ARCHIVE_NAMESPACED_DIR,
    ARCHIVE_RESOURCES_DIR,
    ARCHIVE_VERSION_PATH,
)
from kube_migrator.exceptions import ExportEngineError
from kube_migrator.plugins.actions import ExportItemAction
from kube_migrator.services.discovery import APIResource, DiscoverySnapshot
from kube_migrator.types import ExportDescriptor
from kube_migrator.utils.logging import log_with_context


def item_path(resource: str, name: str, namespace: str | None = None) -> str:
    """Archive path of one exported object."""
    if namespace:
        return (
            f"{ARCHIVE_RESOURCES_DIR}/{resource}/{ARCHIVE_NAMESPACED_DIR}"
            f"/{namespace}/{name}.json"
        )
    return f"{ARCHIVE_RESOURCES_DIR}/{resource}/{ARCHIVE_CLUSTER_DIR}/{name}.json"


def _add_bytes(tar: tarfile.TarFile, path: str, data: bytes) -> None:
    info = tarfile.TarInfo(name=path)
    info.size = len(data)
    info.mtime = int(time.time())
    info.mode = 0o644
    tar.addfile(info, io.BytesIO(data))


class ExportEngine:
    """Lists objects through the dynamic client and writes them to an archive."""

    def __init__(self, dynamic: Any, discovery: DiscoverySnapshot) -> None:
        self.dynamic = dynamic
        self.discovery = discovery

    def export(
        self,
        descriptor: ExportDescriptor,
        sink: BinaryIO,
        actions: Iterable[ExportItemAction] = (),
    ) -> int:
        """Write every object in scope of ``descriptor`` into ``sink``.

        Returns:
            Number of objects written.

        Raises:
            ExportEngineError: On any listing, plugin or write failure; a
                partial archive must never be replayed.
        """
        actions = list(actions)
        excluded = self.discovery.canonical_set(descriptor.excluded_resources)
        count = 0
        try:
            with tarfile.open(fileobj=sink, mode="w:gz") as tar:
                _add_bytes(tar, ARCHIVE_VERSION_PATH, ARCHIVE_FORMAT_VERSION.encode())
                _add_bytes(
                    tar,
                    ARCHIVE_DESCRIPTOR_PATH,
                    json.dumps(descriptor.to_dict(), indent=2).encode(),
                )
                for resource in sorted(
                    self.discovery.resources, key=lambda r: r.canonical_name
                ):
                    if not resource.supports("list"):
                        continue
                    if resource.canonical_name in excluded:
                        log_with_context(
                            logging.INFO,
                            f"Skipping excluded resource {resource.canonical_name}",
                            phase="export",
                        )
                        continue
                    count += self._export_resource(
                        tar, resource, descriptor.included_namespaces, actions
                    )
        except ExportEngineError:
            raise
        except (tarfile.TarError, OSError) as e:
            raise ExportEngineError(f"Failed to write export archive: {e}") from e

        log_with_context(
            logging.INFO, f"Exported {count} items", phase="export", count=count
        )
        return count

    def _export_resource(
        self,
        tar: tarfile.TarFile,
        resource: APIResource,
        namespaces: tuple[str, ...],
        actions: list[ExportItemAction],
    ) -> int:
        canonical = resource.canonical_name
        if not resource.namespaced and canonical != "namespaces":
            return 0

        try:
            api = self.dynamic.resources.get(
                api_version=resource.group_version, kind=resource.kind
            )
            if resource.namespaced:
                items = []
                for namespace in namespaces:
                    items.extend(api.get(namespace=namespace).to_dict().get("items", []))
            else:
                items = self._get_namespaces(api, namespaces)
        except (ResourceNotFoundError, DynamicApiError, ApiException, Urllib3HTTPError) as e:
            raise ExportEngineError(f"Failed to list {canonical}: {e}") from e

        written = 0
        for item in items:
            item["apiVersion"] = resource.group_version
            item["kind"] = resource.kind
            item.get("metadata", {}).pop("managedFields", None)

            for action in actions:
                namespace = item["metadata"].get("namespace")
                if not action.applies_to().matches(canonical, namespace):
                    continue
                try:
                    item = action.execute(item, canonical)
                except Exception as e:
                    raise ExportEngineError(
                        f"Export action {action.name} failed on {canonical}"
                        f" {item['metadata'].get('name')}: {e}"
                    ) from e
                if item is None:
                    break
            if item is None:
                continue

            metadata = item["metadata"]
            path = item_path(canonical, metadata["name"], metadata.get("namespace"))
            _add_bytes(tar, path, json.dumps(item, sort_keys=True).encode())
            written += 1

        if written:
            log_with_context(
                logging.DEBUG,
                f"Exported {written} {canonical}",
                phase="export",
                resource=canonical,
            )
        return written

    def _get_namespaces(self, api: Any, namespaces: tuple[str, ...]) -> list[dict[str, Any]]:
        items = []
        for namespace in namespaces:
            try:
                items.append(api.get(name=namespace).to_dict())
            except NotFoundError:
                log_with_context(
                    logging.WARNING,
                    f"Namespace {namespace} does not exist on the source cluster",
                    phase="export",
                    namespace=namespace,
                )
        return items
