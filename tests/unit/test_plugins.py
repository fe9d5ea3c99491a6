"""Unit tests for the plugin registry, manager and built-in actions."""

import logging
import sys
import textwrap
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from kube_migrator.exceptions import PluginDiscoveryError
from kube_migrator.plugins.actions import (
    ExportItemAction,
    PluginContext,
    ReplayActionResult,
    ReplayItemAction,
    ResourceSelector,
)
from kube_migrator.plugins.builtin import (
    ControllerManagedAction,
    PodAction,
    ServiceAccountAction,
    ServiceAction,
)
from kube_migrator.plugins.registry import (
    EXPORT,
    REPLAY,
    PluginManager,
    PluginRegistry,
)
from kube_migrator.types import ClusterRole

BUILTIN_EXPORT = ["kube-migrator/controller-managed"]

BUILTIN_REPLAY = [
    "kube-migrator/pod",
    "kube-migrator/service",
    "kube-migrator/serviceaccount",
]

PLUGIN_SOURCE = textwrap.dedent(
    """
    from kube_migrator.plugins.actions import (
        ExportItemAction,
        ReplayActionResult,
        ReplayItemAction,
        ResourceSelector,
    )

    CLOSED = []


    class StripSecrets(ExportItemAction):
        def applies_to(self):
            return ResourceSelector(included_resources=("secrets",))

        def execute(self, item, resource):
            return None

        def close(self):
            CLOSED.append(self.name)


    class Tag(ReplayItemAction):
        def execute(self, item, resource):
            item["metadata"].setdefault("annotations", {})["tagged"] = str(
                self.context.kubeconfig
            )
            return ReplayActionResult(item)

        def close(self):
            CLOSED.append(self.name)


    def register(registrar):
        registrar.register_export_action("example.com/strip-secrets", StripSecrets)
        registrar.register_replay_action("example.com/tag", Tag)
    """
)


def _context(kubeconfig=Path("/shared/kubeconfig")):
    return PluginContext(kubeconfig, ClusterRole.SOURCE, logging.getLogger("kube_migrator"))


def _write(plugin_dir, name, source):
    (plugin_dir / name).write_text(source)


class TestResourceSelector:
    def test_empty_matches_everything(self):
        assert ResourceSelector().matches("pods", "webapp")
        assert ResourceSelector().matches("namespaces", None)

    def test_included_and_excluded_resources(self):
        selector = ResourceSelector(
            included_resources=("pods", "services"), excluded_resources=("services",)
        )
        assert selector.matches("pods", "webapp")
        assert not selector.matches("services", "webapp")
        assert not selector.matches("configmaps", "webapp")

    def test_included_namespaces_skip_cluster_scoped(self):
        selector = ResourceSelector(included_namespaces=("webapp",))
        assert selector.matches("pods", "webapp")
        assert not selector.matches("pods", "other")
        assert not selector.matches("namespaces", None)


class TestPluginRegistry:
    def test_builtins_only(self, plugin_dir):
        registry = PluginRegistry(plugin_dir, use_entry_points=False)
        registry.discover_plugins()
        assert registry.names(EXPORT) == BUILTIN_EXPORT
        assert registry.names(REPLAY) == BUILTIN_REPLAY
        assert registry.source_of(REPLAY, "kube-migrator/pod") == "kube-migrator"

    def test_loads_directory_plugins(self, plugin_dir):
        _write(plugin_dir, "example.py", PLUGIN_SOURCE)
        _write(plugin_dir, "_helper.py", "raise RuntimeError('must not be imported')")
        _write(plugin_dir, "notes.txt", "ignored")

        registry = PluginRegistry(plugin_dir, use_entry_points=False)
        registry.discover_plugins()

        assert registry.names(EXPORT) == [*BUILTIN_EXPORT, "example.com/strip-secrets"]
        assert registry.names(REPLAY) == [*BUILTIN_REPLAY, "example.com/tag"]
        assert registry.source_of(EXPORT, "example.com/strip-secrets").endswith(
            "example.py"
        )

    def test_missing_directory_raises(self, tmp_path):
        registry = PluginRegistry(tmp_path / "absent", use_entry_points=False)
        with pytest.raises(PluginDiscoveryError, match="does not exist"):
            registry.discover_plugins()

    def test_import_error_raises(self, plugin_dir):
        _write(plugin_dir, "broken.py", "import definitely_not_a_module\n")
        with pytest.raises(PluginDiscoveryError, match="Failed to import plugin"):
            PluginRegistry(plugin_dir, use_entry_points=False).discover_plugins()

    def test_missing_register_raises(self, plugin_dir):
        _write(plugin_dir, "empty.py", "VALUE = 1\n")
        with pytest.raises(PluginDiscoveryError, match="does not define register"):
            PluginRegistry(plugin_dir, use_entry_points=False).discover_plugins()

    def test_duplicate_name_raises(self, plugin_dir):
        _write(
            plugin_dir,
            "dup.py",
            "def register(registrar):\n"
            "    registrar.register_replay_action('kube-migrator/pod', object)\n",
        )
        with pytest.raises(PluginDiscoveryError, match="Duplicate replay action"):
            PluginRegistry(plugin_dir, use_entry_points=False).discover_plugins()

    def test_register_failure_raises(self, plugin_dir):
        _write(plugin_dir, "bad.py", "def register(registrar):\n    raise ValueError('nope')\n")
        with pytest.raises(PluginDiscoveryError, match="failed to register: nope"):
            PluginRegistry(plugin_dir, use_entry_points=False).discover_plugins()

    def test_non_callable_factory_raises(self, plugin_dir):
        _write(
            plugin_dir,
            "bad.py",
            "def register(registrar):\n"
            "    registrar.register_export_action('x/y', 42)\n",
        )
        with pytest.raises(PluginDiscoveryError, match="not callable"):
            PluginRegistry(plugin_dir, use_entry_points=False).discover_plugins()

    def test_factories_before_discovery_raise(self, plugin_dir):
        with pytest.raises(PluginDiscoveryError, match="not been discovered"):
            PluginRegistry(plugin_dir).factories(EXPORT)

    def test_entry_points_are_loaded(self, plugin_dir):
        def register(registrar):
            registrar.register_export_action("pkg/noop", ExportItemAction)

        entry_point = MagicMock()
        entry_point.name = "pkg"
        entry_point.load.return_value = register

        with patch(
            "kube_migrator.plugins.registry.metadata.entry_points",
            return_value=[entry_point],
        ) as mock_entry_points:
            registry = PluginRegistry(plugin_dir)
            registry.discover_plugins()

        mock_entry_points.assert_called_once_with(group="kube_migrator.plugins")
        assert registry.names(EXPORT) == [*BUILTIN_EXPORT, "pkg/noop"]
        assert registry.source_of(EXPORT, "pkg/noop") == "entry point pkg"

    def test_entry_point_load_failure_raises(self, plugin_dir):
        entry_point = MagicMock()
        entry_point.name = "pkg"
        entry_point.load.side_effect = ImportError("missing dependency")
        with patch(
            "kube_migrator.plugins.registry.metadata.entry_points",
            return_value=[entry_point],
        ):
            with pytest.raises(PluginDiscoveryError, match="entry point pkg"):
                PluginRegistry(plugin_dir).discover_plugins()


class TestPluginManager:
    def test_starts_and_cleans_up_actions(self, plugin_dir):
        _write(plugin_dir, "example.py", PLUGIN_SOURCE)
        registry = PluginRegistry(plugin_dir, use_entry_points=False)
        registry.discover_plugins()

        with PluginManager(registry, _context()) as manager:
            export_actions = manager.get_export_actions()
            replay_actions = manager.get_replay_actions()

        assert [a.name for a in export_actions] == [
            *BUILTIN_EXPORT,
            "example.com/strip-secrets",
        ]
        assert [a.name for a in replay_actions] == [*BUILTIN_REPLAY, "example.com/tag"]
        assert replay_actions[-1].context.kubeconfig == Path("/shared/kubeconfig")

        closed = sys.modules[type(export_actions[-1]).__module__].CLOSED
        assert sorted(closed) == ["example.com/strip-secrets", "example.com/tag"]

    def test_cleanup_runs_when_phase_fails(self, plugin_dir):
        registry = PluginRegistry(plugin_dir, use_entry_points=False)
        registry.discover_plugins()
        closed = []

        with pytest.raises(RuntimeError):
            with PluginManager(registry, _context()) as manager:
                for action in manager.get_replay_actions():
                    action.close = lambda a=action: closed.append(a.name)
                raise RuntimeError("export failed")

        assert sorted(closed) == BUILTIN_REPLAY

    def test_factory_failure_raises(self, plugin_dir):
        def broken(context):
            raise RuntimeError("cannot reach cluster")

        registry = PluginRegistry(plugin_dir, use_entry_points=False)
        registry.discover_plugins()
        registry.add(EXPORT, "x/broken", broken, "test")

        with PluginManager(registry, _context()) as manager:
            with pytest.raises(PluginDiscoveryError, match="Failed to start export action"):
                manager.get_export_actions()

    def test_wrong_action_type_raises(self, plugin_dir):
        registry = PluginRegistry(plugin_dir, use_entry_points=False)
        registry.discover_plugins()
        registry.add(EXPORT, "x/replay-as-export", ReplayItemAction, "test")

        with PluginManager(registry, _context()) as manager:
            with pytest.raises(PluginDiscoveryError, match="is not a ExportItemAction"):
                manager.get_export_actions()

    def test_close_failure_is_logged(self, plugin_dir, caplog):
        class Flaky(ExportItemAction):
            def close(self):
                raise RuntimeError("socket already closed")

        registry = PluginRegistry(plugin_dir, use_entry_points=False)
        registry.discover_plugins()
        registry.add(EXPORT, "x/flaky", Flaky, "test")

        with PluginManager(registry, _context()) as manager:
            manager.get_export_actions()

        assert "Failed to clean up plugin action x/flaky" in caplog.text


class TestBuiltinActions:
    def test_pod_action_unbinds_node_and_drops_token_volume(self, sample_pod):
        result = PodAction(_context()).execute(sample_pod, "pods")

        spec = result.item["spec"]
        assert "nodeName" not in spec
        assert "priority" not in spec
        assert [v["name"] for v in spec["volumes"]] == ["config"]
        assert [m["name"] for m in spec["containers"][0]["volumeMounts"]] == ["config"]
        assert sample_pod["spec"]["nodeName"] == "node-a"

    def test_pod_action_selector(self):
        assert PodAction(_context()).applies_to().matches("pods", "webapp")
        assert not PodAction(_context()).applies_to().matches("services", "webapp")

    def test_service_action_clears_cluster_ip(self):
        item = {
            "metadata": {"name": "web"},
            "spec": {
                "clusterIP": "10.96.0.15",
                "clusterIPs": ["10.96.0.15"],
                "healthCheckNodePort": 30123,
                "ports": [{"port": 80}],
            },
        }
        spec = ServiceAction(_context()).execute(item, "services").item["spec"]
        assert spec == {"ports": [{"port": 80}]}

    def test_service_action_keeps_headless(self):
        item = {"metadata": {"name": "db"}, "spec": {"clusterIP": "None"}}
        spec = ServiceAction(_context()).execute(item, "services").item["spec"]
        assert spec["clusterIP"] == "None"

    def test_service_account_action_drops_token_secrets(self):
        item = {
            "metadata": {"name": "builder"},
            "secrets": [{"name": "builder-token-abcde"}, {"name": "registry-creds"}],
        }
        result = ServiceAccountAction(_context()).execute(item, "serviceaccounts")
        assert result.item["secrets"] == [{"name": "registry-creds"}]

    def test_service_account_action_removes_empty_secret_list(self):
        item = {"metadata": {"name": "default"}, "secrets": [{"name": "default-token-x"}]}
        result = ServiceAccountAction(_context()).execute(item, "serviceaccounts")
        assert "secrets" not in result.item

    def test_default_replay_action_is_passthrough(self):
        item = {"metadata": {"name": "a"}}
        result = ReplayItemAction(_context()).execute(item, "configmaps")
        assert result == ReplayActionResult(item)

    def test_controller_managed_action_drops_root_ca(self):
        item = {
            "metadata": {"name": "kube-root-ca.crt", "namespace": "webapp"},
            "data": {"ca.crt": "SOURCE-CA"},
        }
        assert ControllerManagedAction(_context()).execute(item, "configmaps") is None

    def test_controller_managed_action_drops_token_secrets(self):
        item = {
            "metadata": {"name": "builder-token-abcde", "namespace": "webapp"},
            "type": "kubernetes.io/service-account-token",
        }
        assert ControllerManagedAction(_context()).execute(item, "secrets") is None

    def test_controller_managed_action_keeps_user_objects(self, sample_configmap):
        action = ControllerManagedAction(_context())
        secret = {"metadata": {"name": "db-password"}, "type": "Opaque"}
        assert action.execute(sample_configmap, "configmaps") is sample_configmap
        assert action.execute(secret, "secrets") is secret
        assert not action.applies_to().matches("pods", "webapp")
