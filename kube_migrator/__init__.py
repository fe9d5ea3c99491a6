#!/usr/bin/env python3
"""
Kubernetes workload migration tool
"""

__version__ = "0.1.0"

from kube_migrator.core.config import load_config
from kube_migrator.core.context import MigrationRequest

# Import the main classes and functions for easier access
from kube_migrator.core.orchestrator import MigrationOrchestrator, MigrationResult
from kube_migrator.services.credential_bridge import publish_credentials
from kube_migrator.types import ClusterEndpoint, ClusterRole, ReplayOutcome
