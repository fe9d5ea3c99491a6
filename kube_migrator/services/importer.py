"""
Replay engine: recreates the objects of an export archive on the destination.

Resource-level problems never raise.  They are collected into the
returned :class:`ReplayOutcome` as warnings or errors, so the caller can
tell "the replay could not start" (an exception) apart from "some
resources did not replay cleanly" (a populated outcome).
"""

from __future__ import annotations

import copy
import json
import logging
import tarfile
import time
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Iterable

from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import (
    ConflictError,
    DynamicApiError,
    ResourceNotFoundError,
)
from tqdm import tqdm
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from kube_migrator.constants import (
    ARCHIVE_CLUSTER_DIR,
    ARCHIVE_FORMAT_VERSION,
    ARCHIVE_NAMESPACED_DIR,
    ARCHIVE_RESOURCES_DIR,
    ARCHIVE_VERSION_PATH,
    EXPORT_NAME_LABEL,
    HTTP_CONFLICT,
    HTTP_NOT_FOUND,
    NAMESPACE_POLL_INTERVAL_SECONDS,
    REPLAY_NAME_LABEL,
    SERVER_METADATA_FIELDS,
)
from kube_migrator.core.config import MigrationConfig
from kube_migrator.exceptions import ReplayStartError
from kube_migrator.plugins.actions import ReplayItemAction
from kube_migrator.services.discovery import DiscoverySnapshot
from kube_migrator.types import ReplayOutcome, ReplayParameters, ReplayScope
from kube_migrator.utils.logging import log_with_context

CRD_RESOURCE = "customresourcedefinitions.apiextensions.k8s.io"


@dataclass(frozen=True)
class ArchiveEntry:
    """One object stored in the export archive."""

    resource: str
    name: str
    namespace: str | None
    member: tarfile.TarInfo

    @property
    def scope(self) -> ReplayScope:
        return ReplayScope.NAMESPACE if self.namespace else ReplayScope.CLUSTER

    @property
    def ref(self) -> str:
        return f"{self.resource}/{self.name}"


def _api_error_message(e: Exception) -> str:
    """Best-effort human message from a Kubernetes API error."""
    body = getattr(e, "body", None)
    if body:
        try:
            message = json.loads(body).get("message")
            if message:
                return message
        except (TypeError, ValueError, AttributeError):
            pass
    status = getattr(e, "status", None)
    reason = getattr(e, "reason", None)
    if status or reason:
        return f"{status} {reason}"
    return str(e)


def _comparable(obj: dict[str, Any]) -> dict[str, Any]:
    return {
        k: v
        for k, v in obj.items()
        if k not in ("apiVersion", "kind", "metadata", "status")
    }


def order_resources(
    resources: Iterable[str],
    priorities: Iterable[str],
    excluded: set[str],
) -> list[str]:
    """Order archive resources for replay.

    Prioritised resources come first, in priority order; every other
    resource follows alphabetically.  Excluded resources are left out.
    """
    present = set(resources)
    ordered: list[str] = []
    for resource in priorities:
        if resource in present and resource not in ordered:
            ordered.append(resource)
    ordered.extend(sorted(present - set(ordered)))
    return [r for r in ordered if r not in excluded]


class ReplayEngine:
    """Creates archived objects through the destination's dynamic client."""

    def __init__(
        self,
        core: Any,
        dynamic: Any,
        discovery: DiscoverySnapshot,
        config: MigrationConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.core = core
        self.dynamic = dynamic
        self.discovery = discovery
        self.config = config or MigrationConfig()
        self._clock = clock
        self._sleep = sleep
        self._namespace_errors: dict[str, str | None] = {}

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    def _open_archive(
        self, source: BinaryIO
    ) -> tuple[tarfile.TarFile, dict[str, list[ArchiveEntry]]]:
        try:
            tar = tarfile.open(fileobj=source, mode="r:gz")
            members = tar.getmembers()
        except (tarfile.TarError, OSError, EOFError) as e:
            raise ReplayStartError(f"Cannot read export archive: {e}") from e

        try:
            version_file = tar.extractfile(ARCHIVE_VERSION_PATH)
            version = version_file.read().decode().strip() if version_file else None
        except (KeyError, tarfile.TarError, OSError, UnicodeDecodeError):
            version = None
        if version != ARCHIVE_FORMAT_VERSION:
            tar.close()
            raise ReplayStartError(
                f"Unsupported export archive version {version!r},"
                f" expected {ARCHIVE_FORMAT_VERSION!r}"
            )

        index: dict[str, list[ArchiveEntry]] = {}
        for member in members:
            if not member.isfile():
                continue
            parts = member.name.split("/")
            if parts[0] != ARCHIVE_RESOURCES_DIR or not parts[-1].endswith(".json"):
                continue
            name = parts[-1][: -len(".json")]
            if len(parts) == 5 and parts[2] == ARCHIVE_NAMESPACED_DIR:
                entry = ArchiveEntry(parts[1], name, parts[3], member)
            elif len(parts) == 4 and parts[2] == ARCHIVE_CLUSTER_DIR:
                entry = ArchiveEntry(parts[1], name, None, member)
            else:
                log_with_context(
                    logging.DEBUG, f"Ignoring unexpected archive entry {member.name}"
                )
                continue
            index.setdefault(entry.resource, []).append(entry)

        for entries in index.values():
            entries.sort(key=lambda e: (e.namespace or "", e.name))
        return tar, index

    @staticmethod
    def _load(tar: tarfile.TarFile, entry: ArchiveEntry) -> dict[str, Any]:
        data = tar.extractfile(entry.member)
        if data is None:
            raise ValueError(f"{entry.member.name} is not a regular file")
        obj = json.loads(data.read())
        if not isinstance(obj, dict):
            raise ValueError(f"{entry.member.name} does not hold a JSON object")
        metadata = obj.get("metadata")
        if not isinstance(metadata, dict) or not metadata.get("name"):
            raise ValueError(f"{entry.member.name} has no metadata.name")
        if not isinstance(metadata.get("labels") or {}, dict):
            raise ValueError(f"{entry.member.name} has malformed metadata.labels")
        return obj

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def replay(
        self,
        params: ReplayParameters,
        source: BinaryIO,
        actions: Iterable[ReplayItemAction] = (),
    ) -> ReplayOutcome:
        """Replay every archived object in priority order.

        Raises:
            ReplayStartError: If the archive cannot be opened or has an
                unsupported format.  Nothing else raises.
        """
        actions = list(actions)
        outcome = ReplayOutcome()
        tar, index = self._open_archive(source)

        priorities = [self.discovery.canonical(p) for p in params.priorities]
        excluded = self.discovery.canonical_set(params.excluded_resources)
        for resource in sorted(set(index) & excluded):
            log_with_context(
                logging.INFO,
                f"Skipping excluded resource {resource}",
                phase="replay",
                resource=resource,
            )

        deadline = self._clock() + self.config.replay_timeout_minutes * 60
        self._namespace_errors = {}

        with tar:
            for resource in order_resources(index, priorities, excluded):
                entries = index[resource]
                for entry in tqdm(
                    entries,
                    desc=f"Replaying {resource}",
                    disable=not self.config.show_progress,
                    leave=False,
                ):
                    if self._clock() > deadline:
                        outcome.error(
                            ReplayScope.CLUSTER,
                            f"Replay timed out after"
                            f" {self.config.replay_timeout_minutes} minutes",
                        )
                        return outcome
                    self._replay_entry(tar, index, entry, params, actions, outcome)
                if resource == CRD_RESOURCE:
                    self.discovery.refresh()

        log_with_context(
            logging.INFO,
            f"Replayed {outcome.items_replayed} items with"
            f" {len(outcome.warnings)} warnings and {len(outcome.errors)} errors",
            phase="replay",
        )
        return outcome

    def _prepare(self, obj: dict[str, Any], params: ReplayParameters) -> dict[str, Any]:
        obj = copy.deepcopy(obj)
        obj.pop("status", None)
        metadata = obj.setdefault("metadata", {})
        for key in SERVER_METADATA_FIELDS:
            metadata.pop(key, None)
        labels = metadata.get("labels") or {}
        labels[EXPORT_NAME_LABEL] = params.export_name
        labels[REPLAY_NAME_LABEL] = params.name
        metadata["labels"] = labels
        return obj

    def _replay_entry(
        self,
        tar: tarfile.TarFile,
        index: dict[str, list[ArchiveEntry]],
        entry: ArchiveEntry,
        params: ReplayParameters,
        actions: list[ReplayItemAction],
        outcome: ReplayOutcome,
    ) -> None:
        where = {"resource": entry.ref, "namespace": entry.namespace}

        try:
            obj = self._load(tar, entry)
        except (ValueError, tarfile.TarError, OSError) as e:
            outcome.error(entry.scope, f"Cannot read archived object: {e}", **where)
            return

        if entry.namespace:
            problem = self._ensure_namespace(tar, index, entry.namespace, params)
            if problem:
                outcome.error(entry.scope, problem, **where)
                return

        item = self._prepare(obj, params)
        for action in actions:
            if not action.applies_to().matches(entry.resource, entry.namespace):
                continue
            try:
                result = action.execute(item, entry.resource)
            except Exception as e:
                outcome.error(
                    ReplayScope.PLUGIN, f"Replay action {action.name} failed: {e}", **where
                )
                return
            for message in result.messages:
                outcome.warn(ReplayScope.PLUGIN, f"{action.name}: {message}", **where)
            if result.skip:
                log_with_context(
                    logging.INFO,
                    f"Skipping {entry.ref} as requested by {action.name}",
                    phase="replay",
                    **where,
                )
                return
            item = result.item

        try:
            api = self.dynamic.resources.get(
                api_version=item.get("apiVersion"), kind=item.get("kind")
            )
        except ResourceNotFoundError:
            outcome.warn(
                entry.scope,
                f"Resource type {entry.resource} is not served by the destination cluster",
                **where,
            )
            return

        try:
            api.create(body=item, namespace=entry.namespace)
        except ConflictError:
            self._handle_conflict(api, entry, item, outcome)
            return
        except (DynamicApiError, ApiException, Urllib3HTTPError) as e:
            outcome.error(
                entry.scope, f"Error replaying: {_api_error_message(e)}", **where
            )
            return

        outcome.items_replayed += 1
        log_with_context(
            logging.DEBUG, f"Replayed {entry.ref}", phase="replay", **where
        )

    def _handle_conflict(
        self,
        api: Any,
        entry: ArchiveEntry,
        item: dict[str, Any],
        outcome: ReplayOutcome,
    ) -> None:
        where = {"resource": entry.ref, "namespace": entry.namespace}
        if entry.resource == "namespaces":
            log_with_context(
                logging.DEBUG, f"Namespace {entry.name} already exists", phase="replay"
            )
            return
        try:
            existing = api.get(name=entry.name, namespace=entry.namespace).to_dict()
        except (DynamicApiError, ApiException, Urllib3HTTPError) as e:
            outcome.error(
                entry.scope,
                f"Already exists and could not be compared: {_api_error_message(e)}",
                **where,
            )
            return
        if _comparable(existing) == _comparable(item):
            outcome.warn(
                entry.scope,
                "Already exists; the in-cluster version matches the exported version",
                **where,
            )
        else:
            outcome.error(
                entry.scope,
                "Already exists and the in-cluster version is different"
                " from the exported version",
                **where,
            )

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    def _ensure_namespace(
        self,
        tar: tarfile.TarFile,
        index: dict[str, list[ArchiveEntry]],
        namespace: str,
        params: ReplayParameters,
    ) -> str | None:
        """Make sure ``namespace`` exists and is usable.

        Returns:
            None when the namespace is ready, otherwise a problem description.
            The result is cached per namespace.
        """
        if namespace in self._namespace_errors:
            return self._namespace_errors[namespace]
        problem = self._prepare_namespace(tar, index, namespace, params)
        self._namespace_errors[namespace] = problem
        return problem

    def _read_namespace_phase(self, namespace: str) -> str | None:
        """Phase of an existing namespace, or None if it does not exist."""
        try:
            existing = self.core.read_namespace(namespace)
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                return None
            raise
        status = getattr(existing, "status", None)
        return getattr(status, "phase", None) or "Active"

    def _prepare_namespace(
        self,
        tar: tarfile.TarFile,
        index: dict[str, list[ArchiveEntry]],
        namespace: str,
        params: ReplayParameters,
    ) -> str | None:
        try:
            phase = self._read_namespace_phase(namespace)
            if phase == "Terminating":
                phase = self._wait_for_namespace_deletion(namespace)
                if phase is not None:
                    return (
                        f"Namespace {namespace} is still terminating after"
                        f" {self.config.resource_timeout_minutes} minutes"
                    )
            if phase is not None:
                return None

            body: dict[str, Any] = {
                "apiVersion": "v1",
                "kind": "Namespace",
                "metadata": {"name": namespace},
            }
            for entry in index.get("namespaces", []):
                if entry.name == namespace:
                    try:
                        body = self._prepare(self._load(tar, entry), params)
                    except (ValueError, tarfile.TarError, OSError) as e:
                        log_with_context(
                            logging.WARNING,
                            f"Cannot read archived namespace {namespace}, creating"
                            f" it without labels or annotations: {e}",
                            phase="replay",
                            namespace=namespace,
                        )
                    body.pop("spec", None)
                    break
            self.core.create_namespace(body=body)
            log_with_context(
                logging.INFO,
                f"Created namespace {namespace}",
                phase="replay",
                namespace=namespace,
            )
        except ApiException as e:
            if e.status == HTTP_CONFLICT:
                return None
            return f"Cannot prepare namespace {namespace}: {_api_error_message(e)}"
        except Urllib3HTTPError as e:
            return f"Cannot prepare namespace {namespace}: {e}"
        return None

    def _wait_for_namespace_deletion(self, namespace: str) -> str | None:
        deadline = self._clock() + self.config.resource_timeout_minutes * 60
        phase: str | None = "Terminating"
        log_with_context(
            logging.INFO,
            f"Waiting for terminating namespace {namespace} to be deleted",
            phase="replay",
            namespace=namespace,
        )
        while phase is not None and self._clock() < deadline:
            self._sleep(NAMESPACE_POLL_INTERVAL_SECONDS)
            phase = self._read_namespace_phase(namespace)
        return phase
