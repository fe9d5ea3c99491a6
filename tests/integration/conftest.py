"""Integration test configuration.

These tests need two reachable clusters and are skipped by default.  Set
KUBE_MIGRATOR_SOURCE_KUBECONFIG and KUBE_MIGRATOR_DESTINATION_KUBECONFIG
to kubeconfig files for disposable clusters to enable them.
"""

import os

import pytest

SOURCE_ENV = "KUBE_MIGRATOR_SOURCE_KUBECONFIG"
DESTINATION_ENV = "KUBE_MIGRATOR_DESTINATION_KUBECONFIG"

skip_no_clusters = pytest.mark.skipif(
    not (os.environ.get(SOURCE_ENV) and os.environ.get(DESTINATION_ENV)),
    reason=f"Integration tests require {SOURCE_ENV} and {DESTINATION_ENV} env vars",
)


@pytest.fixture()
def cluster_kubeconfigs():
    """Return the ``(source, destination)`` kubeconfig paths."""
    return os.environ[SOURCE_ENV], os.environ[DESTINATION_ENV]
