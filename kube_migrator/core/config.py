"""
Configuration module for the Kubernetes workload migration tool.

This module provides functions for loading tunable settings from a YAML
file and creating a default configuration. The migration policy itself
(excluded resources, replay priorities) is fixed and lives in
``kube_migrator.constants``; only client and engine tuning is configurable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from kube_migrator.exceptions import ConfigError
from kube_migrator.utils.logging import log_with_context


@dataclass
class MigrationConfig:
    """Typed configuration for the migration tool.

    All fields default to the recommended settings.
    """

    # Cluster clients
    client_retries: int = 3
    request_timeout_seconds: int = 60
    source_context: str | None = None
    destination_context: str | None = None

    # Replay engine
    replay_timeout_minutes: int = 240
    resource_timeout_minutes: int = 10
    show_progress: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationConfig:
        """Create a MigrationConfig from a raw config dictionary.

        Raises:
            ConfigError: If a key is unknown or a value has the wrong type.
        """
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        defaults = cls()
        values: dict[str, Any] = {}
        for name, value in data.items():
            default = getattr(defaults, name)
            if value is None:
                values[name] = default
                continue
            if isinstance(default, bool):
                if not isinstance(value, bool):
                    raise ConfigError(f"{name} must be true or false, got {value!r}")
            elif isinstance(default, int):
                if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                    raise ConfigError(
                        f"{name} must be a positive integer, got {value!r}"
                    )
            elif not isinstance(value, str):
                raise ConfigError(f"{name} must be a string, got {value!r}")
            values[name] = value
        return cls(**values)


def load_config(config_path: Path) -> MigrationConfig:
    """
    Load configuration from YAML file and apply default values.

    If the file doesn't exist or can't be read, a warning is logged and the
    default settings are used. A file that parses but holds invalid values
    is an error.

    Args:
        config_path: Path to the config YAML file

    Returns:
        MigrationConfig with all necessary defaults applied

    Raises:
        ConfigError: If the file content is not a mapping or holds invalid values
    """
    raw: Any = {}

    if config_path.exists():
        try:
            with open(config_path) as f:
                loaded_config = yaml.safe_load(f)
                # Handle None result from empty file
                if loaded_config is not None:
                    raw = loaded_config
            log_with_context(logging.INFO, f"Loaded configuration from {config_path}")
        except (yaml.YAMLError, OSError) as e:
            log_with_context(
                logging.WARNING, f"Failed to load config file {config_path}: {e}"
            )
            raw = {}
    else:
        log_with_context(
            logging.WARNING,
            f"Config file {config_path} not found, using default settings",
        )

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    return MigrationConfig.from_dict(raw)


def create_default_config(output_path: Path) -> bool:
    """
    Create a default configuration file with the recommended settings.

    The function will not overwrite an existing configuration file.

    Args:
        output_path: Path where the default config should be saved

    Returns:
        True if the config file was created successfully, False otherwise
    """
    if output_path.exists():
        log_with_context(
            logging.WARNING,
            f"Config file {output_path} already exists, not overwriting",
        )
        return False

    defaults = MigrationConfig()
    default_config = {
        "client_retries": defaults.client_retries,
        "request_timeout_seconds": defaults.request_timeout_seconds,
        "replay_timeout_minutes": defaults.replay_timeout_minutes,
        "resource_timeout_minutes": defaults.resource_timeout_minutes,
        "show_progress": defaults.show_progress,
    }

    try:
        with open(output_path, "w") as f:
            f.write("# kube-migrator configuration\n")
            f.write(
                "# source_context / destination_context select a kubeconfig context\n"
            )
            yaml.safe_dump(default_config, f, default_flow_style=False)
        log_with_context(logging.INFO, f"Created default config file at {output_path}")
        return True
    except OSError as e:
        log_with_context(logging.ERROR, f"Failed to create default config file: {e}")
        return False
