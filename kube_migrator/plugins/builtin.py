"""Built-in item actions.

The export action leaves out objects that the destination cluster's own
controllers create.  The replay actions strip the parts of an exported
object that were assigned by the source cluster and would be rejected, or
be wrong, on the destination.
"""

from __future__ import annotations

import copy
from typing import Any

from kube_migrator.plugins.actions import (
    ExportItemAction,
    ReplayActionResult,
    ReplayItemAction,
    ResourceSelector,
)

# Published into every namespace by the root CA controller
ROOT_CA_CONFIGMAP = "kube-root-ca.crt"

SERVICE_ACCOUNT_TOKEN_TYPE = "kubernetes.io/service-account-token"

# Volumes injected by the source cluster for service account tokens
_TOKEN_VOLUME_PREFIXES = ("kube-api-access-", "default-token-")


def _is_token_volume(name: str) -> bool:
    return name.startswith(_TOKEN_VOLUME_PREFIXES)


class ControllerManagedAction(ExportItemAction):
    """Leaves out objects the destination regenerates for itself.

    The root CA ConfigMap and service account token Secrets hold
    credentials of the source cluster.  The destination's controllers
    create their own copies once the namespace and service accounts exist.
    """

    def applies_to(self) -> ResourceSelector:
        return ResourceSelector(included_resources=("configmaps", "secrets"))

    def execute(self, item: dict[str, Any], resource: str) -> dict[str, Any] | None:
        if resource == "configmaps":
            if item.get("metadata", {}).get("name") == ROOT_CA_CONFIGMAP:
                return None
        elif item.get("type") == SERVICE_ACCOUNT_TOKEN_TYPE:
            return None
        return item


class PodAction(ReplayItemAction):
    """Unbinds a pod from its source node and drops injected token volumes."""

    def applies_to(self) -> ResourceSelector:
        return ResourceSelector(included_resources=("pods",))

    def execute(self, item: dict[str, Any], resource: str) -> ReplayActionResult:
        item = copy.deepcopy(item)
        spec = item.setdefault("spec", {})
        spec.pop("nodeName", None)
        spec.pop("priority", None)

        volumes = spec.get("volumes") or []
        dropped = {v.get("name", "") for v in volumes if _is_token_volume(v.get("name", ""))}
        if dropped:
            spec["volumes"] = [v for v in volumes if v.get("name") not in dropped]
            for key in ("containers", "initContainers", "ephemeralContainers"):
                for container in spec.get(key) or []:
                    mounts = container.get("volumeMounts")
                    if mounts:
                        container["volumeMounts"] = [
                            m for m in mounts if m.get("name") not in dropped
                        ]
        return ReplayActionResult(item)


class ServiceAction(ReplayItemAction):
    """Clears cluster IPs allocated by the source cluster."""

    def applies_to(self) -> ResourceSelector:
        return ResourceSelector(included_resources=("services",))

    def execute(self, item: dict[str, Any], resource: str) -> ReplayActionResult:
        item = copy.deepcopy(item)
        spec = item.setdefault("spec", {})
        # Headless services keep their "None" cluster IP
        if spec.get("clusterIP") != "None":
            spec.pop("clusterIP", None)
            spec.pop("clusterIPs", None)
        spec.pop("healthCheckNodePort", None)
        return ReplayActionResult(item)


class ServiceAccountAction(ReplayItemAction):
    """Drops references to token secrets the source cluster generated."""

    def applies_to(self) -> ResourceSelector:
        return ResourceSelector(included_resources=("serviceaccounts",))

    def execute(self, item: dict[str, Any], resource: str) -> ReplayActionResult:
        item = copy.deepcopy(item)
        name = item.get("metadata", {}).get("name", "")
        secrets = item.get("secrets")
        if secrets:
            prefix = f"{name}-token-"
            kept = [s for s in secrets if not s.get("name", "").startswith(prefix)]
            if kept:
                item["secrets"] = kept
            else:
                item.pop("secrets")
        return ReplayActionResult(item)


def register(registrar: Any) -> None:
    registrar.register_export_action(
        "kube-migrator/controller-managed", ControllerManagedAction
    )
    registrar.register_replay_action("kube-migrator/pod", PodAction)
    registrar.register_replay_action("kube-migrator/service", ServiceAction)
    registrar.register_replay_action(
        "kube-migrator/serviceaccount", ServiceAccountAction
    )
