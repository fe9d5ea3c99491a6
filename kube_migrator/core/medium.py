"""Transfer medium: the local archive bridging the export and replay phases."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import BinaryIO

from kube_migrator.constants import MEDIUM_PREFIX, MEDIUM_SUFFIX
from kube_migrator.exceptions import TransferMediumError
from kube_migrator.utils.logging import log_with_context


class TransferMedium:
    """A single seekable archive file, owned by the orchestrator.

    The file is written once by the export phase, rewound exactly once,
    then read once by the replay phase.  ``discard`` removes it and may be
    called any number of times.
    """

    def __init__(self, stream: BinaryIO, path: Path) -> None:
        self._stream = stream
        self.path = path
        self._written = False
        self._rewound = False
        self._discarded = False

    @classmethod
    def allocate(cls, cache_dir: Path) -> TransferMedium:
        """Create an empty archive file in ``cache_dir``.

        Raises:
            TransferMediumError: If the directory or file cannot be created.
        """
        try:
            cache_dir.mkdir(parents=True, exist_ok=True)
            stream = tempfile.NamedTemporaryFile(
                mode="w+b",
                dir=cache_dir,
                prefix=MEDIUM_PREFIX,
                suffix=MEDIUM_SUFFIX,
                delete=False,
            )
        except OSError as e:
            raise TransferMediumError(
                f"Cannot allocate transfer medium in {cache_dir}: {e}"
            ) from e
        medium = cls(stream, Path(stream.name))
        log_with_context(
            logging.INFO, f"Created {medium.path} for saving Kubernetes artifacts"
        )
        return medium

    @property
    def writer(self) -> BinaryIO:
        """Stream the export phase writes into."""
        if self._written or self._discarded:
            raise TransferMediumError(f"{self.path} is not open for writing")
        return self._stream

    def mark_written(self) -> None:
        """Record that the export phase finished successfully."""
        try:
            self._stream.flush()
        except (OSError, ValueError) as e:
            raise TransferMediumError(f"Cannot flush {self.path}: {e}") from e
        self._written = True

    def rewind(self) -> BinaryIO:
        """Seek to the start of the archive and return the stream for reading.

        Raises:
            TransferMediumError: If the export has not completed, the medium
                was already rewound, or the seek fails.
        """
        if not self._written:
            raise TransferMediumError(
                f"{self.path} cannot be read before the export phase succeeds"
            )
        if self._rewound:
            raise TransferMediumError(f"{self.path} has already been rewound")
        try:
            self._stream.seek(0)
        except (OSError, ValueError) as e:
            raise TransferMediumError(
                f"Failed to set offset for replay on {self.path}: {e}"
            ) from e
        self._rewound = True
        return self._stream

    def discard(self) -> None:
        """Close and delete the archive. Safe to call repeatedly."""
        if self._discarded:
            return
        self._discarded = True
        try:
            self._stream.close()
        except OSError as e:
            log_with_context(logging.WARNING, f"Failed to close {self.path}: {e}")
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise TransferMediumError(f"Failed to remove {self.path}: {e}") from e
        log_with_context(logging.INFO, f"Removed artifacts {self.path}")
