"""Shared test fixtures for the kube_migrator test suite."""

import pytest


@pytest.fixture()
def sample_configmap():
    """Return a ConfigMap as the API server would list it."""
    return {
        "metadata": {
            "name": "app-settings",
            "namespace": "webapp",
            "uid": "0f1a6c1e-1111-4c1b-9a55-000000000001",
            "resourceVersion": "1234",
            "creationTimestamp": "2024-01-01T00:00:00Z",
            "managedFields": [{"manager": "kubectl"}],
            "labels": {"app": "web"},
        },
        "data": {"LOG_LEVEL": "info"},
    }


@pytest.fixture()
def sample_pod():
    """Return a Pod bound to a node, with an injected token volume."""
    return {
        "metadata": {
            "name": "web-0",
            "namespace": "webapp",
            "uid": "0f1a6c1e-1111-4c1b-9a55-000000000002",
            "resourceVersion": "1240",
            "labels": {"app": "web"},
        },
        "spec": {
            "nodeName": "node-a",
            "priority": 0,
            "serviceAccountName": "default",
            "containers": [
                {
                    "name": "web",
                    "image": "nginx:1.25",
                    "volumeMounts": [
                        {"name": "kube-api-access-x7k2p", "mountPath": "/var/run/secrets"},
                        {"name": "config", "mountPath": "/etc/web"},
                    ],
                }
            ],
            "volumes": [
                {"name": "kube-api-access-x7k2p", "projected": {"sources": []}},
                {"name": "config", "configMap": {"name": "app-settings"}},
            ],
        },
        "status": {"phase": "Running", "podIP": "10.0.0.12"},
    }


@pytest.fixture()
def kubeconfig_files(tmp_path):
    """Create distinct source and destination kubeconfig files.

    Returns a ``(source, destination)`` tuple of paths.
    """
    source = tmp_path / "source.kubeconfig"
    destination = tmp_path / "destination.kubeconfig"
    source.write_text("apiVersion: v1\nkind: Config\ncurrent-context: source\n")
    destination.write_text(
        "apiVersion: v1\nkind: Config\ncurrent-context: destination\n"
    )
    return source, destination
