"""Command-line interface for the migration tool."""

__all__ = [
    "commands",
    "common",
    "config_cmd",
    "migrate_cmd",
    "plugins_cmd",
    "report",
]
