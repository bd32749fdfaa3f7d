"""
Vault Storage: Durable persistence of the encrypted blob.

``FileStorage`` writes atomically (temp file → fsync → os.replace → fsync
directory), so a crash leaves either the old or the new blob on disk, never
a truncated one. Writers in different processes are serialized by an
advisory lock file (``<path>.lock``).

Other backends (e.g. a remote secret manager) plug in by implementing
``VaultStorage``.
"""
import os
import abc
import logging
import tempfile
import threading
from pathlib import Path
from contextlib import contextmanager
from collections.abc import Iterator
from typing import Optional, Union

from filelock import FileLock, Timeout

from .exceptions import ConcurrentModificationError

logger = logging.getLogger("config_vault")

DEFAULT_LOCK_TIMEOUT = 10.0


class VaultStorage(abc.ABC):
    """Persistence backend for the sealed vault blob."""

    @property
    @abc.abstractmethod
    def location(self) -> str:
        """Printable description of where the blob lives."""

    @abc.abstractmethod
    def load(self) -> Optional[bytes]:
        """Return the persisted blob, or None if nothing was saved yet."""

    @abc.abstractmethod
    def save(self, data: bytes) -> None:
        """Durably replace the persisted blob."""

    @abc.abstractmethod
    def lock(self) -> Iterator[None]:
        """Context manager held across a load-modify-save cycle.

        Raises:
            ConcurrentModificationError: If the lock is not acquired in time.
        """


class FileStorage(VaultStorage):
    """Single-file backend with atomic replace and an advisory lock."""

    def __init__(
        self,
        path: Union[str, os.PathLike],
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        file_mode: int = 0o600,
    ):
        self.path = Path(path)
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        self.lock_timeout = lock_timeout
        self.file_mode = file_mode
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._filelock = FileLock(str(self.lock_path))

    def __repr__(self) -> str:
        return f"<FileStorage path={str(self.path)!r}>"

    @property
    def location(self) -> str:
        return str(self.path)

    @contextmanager
    def lock(self) -> Iterator[None]:
        try:
            self._filelock.acquire(timeout=self.lock_timeout)
        except Timeout:
            raise ConcurrentModificationError(
                f"Could not lock vault within {self.lock_timeout}s",
                {"location": self.location},
            ) from None
        try:
            yield
        finally:
            self._filelock.release()

    def load(self) -> Optional[bytes]:
        try:
            with open(self.path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def save(self, data: bytes) -> None:
        dir_name = self.path.parent
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=dir_name,
        )
        try:
            with os.fdopen(fd, "wb") as tmp_file:
                tmp_file.write(data)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())
            os.chmod(tmp_path, self.file_mode)
            os.replace(tmp_path, self.path)
        except BaseException:
            # Clean up temp file on failure
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        self._fsync_dir(dir_name)
        logger.debug("Vault blob written to %s (%d bytes)", self.path, len(data))

    @staticmethod
    def _fsync_dir(dir_name: Path) -> None:
        """Persist the rename itself; not supported on every platform."""
        if not hasattr(os, "O_DIRECTORY"):
            return
        dir_fd = os.open(dir_name, os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)


class MemoryStorage(VaultStorage):
    """In-process backend; the blob lives in memory only."""

    def __init__(self, data: Optional[bytes] = None, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        self._data = data
        self.lock_timeout = lock_timeout
        self._lock = threading.RLock()

    @property
    def location(self) -> str:
        return f"memory:{id(self):#x}"

    @contextmanager
    def lock(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise ConcurrentModificationError(
                f"Could not lock vault within {self.lock_timeout}s",
                {"location": self.location},
            )
        try:
            yield
        finally:
            self._lock.release()

    def load(self) -> Optional[bytes]:
        return self._data

    def save(self, data: bytes) -> None:
        self._data = bytes(data)
