"""
Plugin registry and manager.

Plugins are Python modules found in the plugin directory, or installed
packages advertising a ``kube_migrator.plugins`` entry point.  Each plugin
exposes ``register(registrar)`` and uses the registrar to add named export
and replay item action factories.  The built-in actions are always
registered first.
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from importlib import metadata
from pathlib import Path
from types import ModuleType
from typing import Any, Callable

from kube_migrator.constants import PLUGIN_ENTRY_POINT_GROUP
from kube_migrator.exceptions import PluginDiscoveryError
from kube_migrator.plugins.actions import (
    ActionFactory,
    ExportItemAction,
    ItemAction,
    PluginContext,
    ReplayItemAction,
)
from kube_migrator.plugins.builtin import register as register_builtin
from kube_migrator.utils.logging import log_with_context

EXPORT = "export"
REPLAY = "replay"


class PluginRegistrar:
    """Handed to each plugin's ``register`` function."""

    def __init__(self, registry: PluginRegistry, source: str) -> None:
        self._registry = registry
        self.source = source

    def register_export_action(self, name: str, factory: ActionFactory) -> None:
        self._registry.add(EXPORT, name, factory, self.source)

    def register_replay_action(self, name: str, factory: ActionFactory) -> None:
        self._registry.add(REPLAY, name, factory, self.source)


class PluginRegistry:
    """Holds the action factories discovered from a plugin directory."""

    def __init__(self, plugin_dir: Path, use_entry_points: bool = True) -> None:
        self.plugin_dir = Path(plugin_dir)
        self.use_entry_points = use_entry_points
        self._factories: dict[str, dict[str, ActionFactory]] = {EXPORT: {}, REPLAY: {}}
        self._sources: dict[tuple[str, str], str] = {}
        self._discovered = False

    def add(self, kind: str, name: str, factory: ActionFactory, source: str) -> None:
        if name in self._factories[kind]:
            raise PluginDiscoveryError(
                f"Duplicate {kind} action {name!r} registered by {source}"
                f" (already registered by {self._sources[(kind, name)]})"
            )
        if not callable(factory):
            raise PluginDiscoveryError(
                f"{kind} action {name!r} from {source} is not callable"
            )
        self._factories[kind][name] = factory
        self._sources[(kind, name)] = source
        log_with_context(
            logging.DEBUG, f"Registered {kind} action {name} from {source}"
        )

    def discover_plugins(self) -> None:
        """Register the built-in actions and load every plugin.

        Raises:
            PluginDiscoveryError: If the plugin directory is missing, or a
                plugin fails to import or register.
        """
        if self._discovered:
            return
        if not self.plugin_dir.is_dir():
            raise PluginDiscoveryError(
                f"Plugin directory {self.plugin_dir} does not exist"
            )

        register_builtin(PluginRegistrar(self, "kube-migrator"))

        for path in sorted(self.plugin_dir.glob("*.py")):
            if path.name.startswith("_"):
                continue
            self._register_module(_load_module(path), str(path))

        if self.use_entry_points:
            for entry_point in metadata.entry_points(group=PLUGIN_ENTRY_POINT_GROUP):
                try:
                    plugin = entry_point.load()
                except Exception as e:
                    raise PluginDiscoveryError(
                        f"Failed to load plugin entry point {entry_point.name}: {e}"
                    ) from e
                self._register_callable(plugin, f"entry point {entry_point.name}")

        self._discovered = True
        log_with_context(
            logging.INFO,
            f"Discovered {len(self._factories[EXPORT])} export and"
            f" {len(self._factories[REPLAY])} replay actions",
        )

    def _register_module(self, module: ModuleType, source: str) -> None:
        register = getattr(module, "register", None)
        if register is None:
            raise PluginDiscoveryError(f"Plugin {source} does not define register()")
        self._register_callable(register, source)

    def _register_callable(self, register: Callable[..., Any], source: str) -> None:
        if isinstance(register, ModuleType):
            self._register_module(register, source)
            return
        try:
            register(PluginRegistrar(self, source))
        except PluginDiscoveryError:
            raise
        except Exception as e:
            raise PluginDiscoveryError(f"Plugin {source} failed to register: {e}") from e

    def names(self, kind: str) -> list[str]:
        return list(self._factories[kind])

    def factories(self, kind: str) -> dict[str, ActionFactory]:
        if not self._discovered:
            raise PluginDiscoveryError("Plugins have not been discovered yet")
        return dict(self._factories[kind])

    def source_of(self, kind: str, name: str) -> str:
        return self._sources[(kind, name)]


def _load_module(path: Path) -> ModuleType:
    module_name = f"kube_migrator_plugin_{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise PluginDiscoveryError(f"Cannot load plugin {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        del sys.modules[module_name]
        raise PluginDiscoveryError(f"Failed to import plugin {path}: {e}") from e
    return module


class PluginManager:
    """Starts action instances for one phase and releases them afterwards.

    Use as a context manager so ``cleanup_clients`` runs on every exit path.
    """

    def __init__(self, registry: PluginRegistry, context: PluginContext) -> None:
        self.registry = registry
        self.context = context
        self._instances: list[ItemAction] = []

    def __enter__(self) -> PluginManager:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cleanup_clients()

    def _start(self, kind: str, expected: type) -> list[Any]:
        actions = []
        for name, factory in self.registry.factories(kind).items():
            try:
                action = factory(self.context)
            except Exception as e:
                raise PluginDiscoveryError(
                    f"Failed to start {kind} action {name}: {e}"
                ) from e
            self._instances.append(action)
            if not isinstance(action, expected):
                raise PluginDiscoveryError(
                    f"{kind} action {name} is not a {expected.__name__}"
                )
            action.name = name
            actions.append(action)
        return actions

    def get_export_actions(self) -> list[ExportItemAction]:
        return self._start(EXPORT, ExportItemAction)

    def get_replay_actions(self) -> list[ReplayItemAction]:
        return self._start(REPLAY, ReplayItemAction)

    def cleanup_clients(self) -> None:
        """Close every started action; failures are logged, not raised."""
        while self._instances:
            action = self._instances.pop()
            try:
                action.close()
            except Exception as e:
                log_with_context(
                    logging.WARNING,
                    f"Failed to clean up plugin action {action.name}: {e}",
                )
