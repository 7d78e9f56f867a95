"""Cross-platform advisory file locking and atomic file replacement.

- Unix/Linux/macOS: fcntl.flock
- Windows: msvcrt.locking

Usage:
    with FileLock(path.with_name(path.name + ".lock"), timeout=5.0):
        ...  # critical section shared with other processes
"""

import logging
import os
import platform
import tempfile
import time
from pathlib import Path
from typing import IO, Optional, Union

from askcli.core.exceptions import ResourceUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0
POLL_INTERVAL_SECONDS = 0.01

_IS_WINDOWS = platform.system() == "Windows"


class LockAcquisitionError(OSError):
    """The lock is currently held by someone else."""


def _try_lock(file_handle: IO) -> None:
    """Takes an exclusive non-blocking lock or raises LockAcquisitionError."""
    if _IS_WINDOWS:
        import msvcrt

        try:
            file_handle.seek(0)
            msvcrt.locking(file_handle.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError as e:
            # errno 13 (EACCES) / 36 (EDEADLOCK): held by another process
            if e.errno in (13, 36):
                raise LockAcquisitionError(f"Lock is held by another process: {file_handle.name}") from e
            raise
    else:
        import fcntl

        try:
            fcntl.flock(file_handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise LockAcquisitionError(f"Lock is held by another process: {file_handle.name}") from e


def _unlock(file_handle: IO) -> None:
    if _IS_WINDOWS:
        import msvcrt

        file_handle.seek(0)
        msvcrt.locking(file_handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)


class FileLock:
    """Exclusive advisory lock on a file, acquired with a bounded wait.

    The lock belongs to the open file description, so two FileLock objects on
    the same path exclude each other even inside one process. The OS drops the
    lock when the holding process dies.
    """

    def __init__(self, path: Union[str, Path], timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        """
        Args:
            path: Lock file path; created (with parents) if missing.
            timeout: Maximum seconds to wait; 0 waits indefinitely.
        """
        self.path = Path(path)
        self.timeout = timeout
        self._handle: Optional[IO] = None

    @property
    def is_locked(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        """Blocks until the lock is held.

        Raises:
            ResourceUnavailableError: If the lock is not obtained within `timeout`.
            OSError: If the lock file cannot be opened.
        """
        if self._handle is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a+b")
        start = time.monotonic()
        while True:
            try:
                _try_lock(handle)
                break
            except LockAcquisitionError:
                if self.timeout > 0 and time.monotonic() - start >= self.timeout:
                    handle.close()
                    raise ResourceUnavailableError(
                        f"Timeout after {self.timeout:.1f}s acquiring lock on: {self.path}"
                    )
                time.sleep(POLL_INTERVAL_SECONDS)
            except OSError:
                handle.close()
                raise
        self._handle = handle
        logger.debug(f"Acquired lock on {self.path}")

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            _unlock(self._handle)
        except OSError as e:
            logger.warning(f"Failed to release lock on {self.path}: {e}")
        finally:
            self._handle.close()
            self._handle = None
        logger.debug(f"Released lock on {self.path}")

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def atomic_write_text(path: Union[str, Path], data: str) -> None:
    """Replaces `path` with `data` so readers never see a partial write.

    Writes to a uniquely named temporary file in the same directory and
    renames it over the target with os.replace.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_name, path)
    except BaseException:
        try:
            os.unlink(temp_name)
        except OSError:
            pass  # already renamed or never created
        raise
