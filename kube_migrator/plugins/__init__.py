"""Item action plugins: registry, manager and the built-in replay actions."""

__all__ = [
    "actions",
    "builtin",
    "registry",
]
