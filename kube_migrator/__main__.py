#!/usr/bin/env python3
"""
Main execution module for the Kubernetes workload migration tool
"""

from kube_migrator.cli.commands import main

if __name__ == "__main__":
    main()
