"""Write Serializer — exclusive table lock plus temp-file-then-atomic-replace.

Invariants:
    - Every mutation of a table file happens inside locked(): one writer per table at a time
    - Lock acquisition waits at most `timeout` seconds, then raises LockTimeoutError
    - write() never touches the original until the new content is fully on disk;
      os.replace swaps it in atomically, so readers see the old file or the new one
    - On write failure the temp file is removed, the original is untouched, WriteError raised
    - The lock is released on success and on failure
    - Different tables use different lock files and never contend

Design Decisions:
    - filelock for the advisory lock: bounded wait, cross-process, separate lock file so
      the data file can be replaced while the lock is held
    - Temp file lives in the table's directory so os.replace stays on one filesystem
"""

import logging
import os
import stat
import tempfile
import time
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Iterator

from filelock import FileLock, Timeout

from hoistdb.core.errors import ErrorContext, LockTimeoutError, WriteError

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644


class TableWriteSerializer:
    """Serializes writers of one table file."""

    def __init__(self, path: Path, timeout: float, context: ErrorContext | None = None):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.timeout = timeout
        self._context = context or ErrorContext()

    def _ensure_directory(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(
                f"Unable to create table directory {self.path.parent}: {e}",
                extra={"error_code": "WRITE_ERROR", "path": str(self.path.parent)},
            )
            raise WriteError(
                f"Unable to create directory '{self.path.parent}': {e.strerror or e}",
                str(self.path.parent), self._context,
            ) from e

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the table's exclusive lock for the duration of the block."""
        self._ensure_directory()
        lock = FileLock(str(self.lock_path), timeout=self.timeout)
        started = time.monotonic()
        try:
            lock.acquire()
        except Timeout as e:
            logger.error(
                f"Lock timeout on {self.lock_path}",
                extra={"error_code": "LOCK_TIMEOUT", "path": str(self.lock_path)},
            )
            raise LockTimeoutError(str(self.lock_path), self.timeout, self._context) from e
        except OSError as e:
            logger.error(
                f"Unable to open lock file {self.lock_path}: {e}",
                extra={"error_code": "WRITE_ERROR", "path": str(self.lock_path)},
            )
            raise WriteError(
                f"Table '{self.path.name}' is not writable: {e.strerror or e}",
                str(self.lock_path), self._context,
            ) from e
        logger.debug(
            f"Acquired {self.lock_path.name}",
            extra={"duration_ms": round((time.monotonic() - started) * 1000, 2)},
        )
        try:
            yield
        finally:
            lock.release()

    def write(self, payload: str) -> None:
        """Atomically replace the table file with `payload`. Call inside locked()."""
        self._ensure_directory()
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, self._target_mode())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None:
                with suppress(FileNotFoundError):
                    os.unlink(tmp_path)
            logger.error(
                f"Failed to write table file {self.path}: {e}",
                extra={"error_code": "WRITE_ERROR", "path": str(self.path)},
            )
            raise WriteError(
                f"Failed to write table file '{self.path}': {e.strerror or e}",
                str(self.path), self._context,
            ) from e

    def _target_mode(self) -> int:
        try:
            return stat.S_IMODE(self.path.stat().st_mode)
        except FileNotFoundError:
            return DEFAULT_FILE_MODE
