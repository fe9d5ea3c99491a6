"""Credential bridge: point out-of-process plugins at the active cluster."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from kube_migrator.exceptions import CredentialPublishError
from kube_migrator.utils.logging import log_with_context


def publish_credentials(source: Path, shared: Path) -> None:
    """Atomically replace ``shared`` with a byte-for-byte copy of ``source``.

    The copy is written beside the target and renamed over it, so a plugin
    reading ``shared`` sees either the old or the new kubeconfig in full.
    Repeated calls with the same source converge to the same state.

    Args:
        source: Kubeconfig of the cluster about to be acted on.
        shared: Well-known path read by plugins at their startup.

    Raises:
        CredentialPublishError: If the source is unreadable or the target
            cannot be written.
    """
    source = Path(source)
    shared = Path(shared)
    tmp = shared.with_name(shared.name + ".tmp")
    try:
        shared.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        shutil.copyfile(source, tmp)
        os.replace(tmp, shared)
    except OSError as e:
        try:
            tmp.unlink(missing_ok=True)
        except OSError:
            pass
        raise CredentialPublishError(
            f"Failed to copy kubeconfig {source} to {shared}: {e}"
        ) from e

    log_with_context(
        logging.DEBUG, f"Published kubeconfig {source} to {shared}", step="credentials"
    )
