"""Process-scoped scratch directory for decoded attachments."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from types import TracebackType

import structlog

logger = structlog.get_logger()

DEFAULT_PREFIX = "imap-print-"


class ScratchDirectory:
    """Create a private temp directory on enter, remove it wholesale on exit.

    Removal never targets the system-wide temp root, even if the created
    path somehow degenerates to it.
    """

    def __init__(self, prefix: str = DEFAULT_PREFIX, parent: Path | None = None) -> None:
        self._prefix = prefix
        self._parent = parent
        self._path: Path | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    def __enter__(self) -> Path:
        self._path = Path(tempfile.mkdtemp(prefix=self._prefix, dir=self._parent))
        logger.debug("scratch_dir_created", path=str(self._path))
        return self._path

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.remove()

    def remove(self) -> None:
        if self._path is None:
            return
        path, self._path = self._path, None

        if is_temp_root(path):
            logger.warning("scratch_dir_removal_refused", path=str(path))
            return

        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("scratch_dir_removal_failed", path=str(path), error=str(exc))
            return
        logger.debug("scratch_dir_removed", path=str(path))


def is_temp_root(path: Path) -> bool:
    """True if *path* is the OS-wide default temp directory."""
    return path.resolve() == Path(tempfile.gettempdir()).resolve()
