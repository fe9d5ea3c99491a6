"""Item action interfaces implemented by plugins.

A plugin module registers factories for export and replay item actions.
The manager instantiates each factory with a :class:`PluginContext` at the
start of a phase and calls ``close()`` on every instance when the phase
ends, whatever its outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from kube_migrator.types import ClusterRole


@dataclass(frozen=True)
class PluginContext:
    """What a plugin receives at startup."""

    kubeconfig: Path
    role: ClusterRole
    logger: logging.Logger


@dataclass(frozen=True)
class ResourceSelector:
    """Which items an action applies to.

    Empty ``included_*`` tuples mean "all".  Resource names are canonical
    (``pods``, ``deployments.apps``).
    """

    included_resources: tuple[str, ...] = ()
    excluded_resources: tuple[str, ...] = ()
    included_namespaces: tuple[str, ...] = ()

    def matches(self, resource: str, namespace: str | None) -> bool:
        if resource in self.excluded_resources:
            return False
        if self.included_resources and resource not in self.included_resources:
            return False
        if self.included_namespaces:
            return namespace is not None and namespace in self.included_namespaces
        return True


@dataclass
class ReplayActionResult:
    """Result of running one replay action on one item."""

    item: dict[str, Any]
    skip: bool = False
    messages: list[str] = field(default_factory=list)


class ItemAction:
    """Common base for export and replay item actions."""

    name = "unnamed"

    def __init__(self, context: PluginContext) -> None:
        self.context = context

    def applies_to(self) -> ResourceSelector:
        return ResourceSelector()

    def close(self) -> None:
        """Release anything acquired at startup."""


class ExportItemAction(ItemAction):
    """Transforms or drops an item before it is written to the archive."""

    def execute(self, item: dict[str, Any], resource: str) -> dict[str, Any] | None:
        """Return the item to export, or ``None`` to leave it out."""
        return item


class ReplayItemAction(ItemAction):
    """Transforms or skips an item before it is created on the destination."""

    def execute(self, item: dict[str, Any], resource: str) -> ReplayActionResult:
        return ReplayActionResult(item)


ActionFactory = Callable[[PluginContext], ItemAction]
