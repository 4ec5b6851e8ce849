"""Cross-process coordination over the shared registry, lockfile and artifact directory.

Every process (and every batch inside one process) that resolves against the same coordination
directory takes an exclusive advisory lock on ``.coordination.lock`` first. While the lock is held
the holder may read and rewrite ``registry.json`` and ``depfetch.lock`` and download into the
install directory.
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
import threading
import time
from pathlib import Path
from typing import IO, TypeVar

from .errors import CoordinationError
from .lockfile import Lockfile
from .registry import Registry

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)

LOCK_FILE = ".coordination.lock"
REGISTRY_FILE = "registry.json"
LOCKFILE_FILE = "depfetch.lock"
WINDOWS_RETRY_DELAY = 0.1

# One per lock path; batches inside one process take this before the OS lock.
_THREAD_LOCKS: dict[Path, threading.Lock] = {}
_THREAD_LOCKS_GUARD = threading.Lock()

T = TypeVar("T", Registry, Lockfile)


def _thread_lock(path: Path) -> threading.Lock:
    with _THREAD_LOCKS_GUARD:
        return _THREAD_LOCKS.setdefault(path, threading.Lock())


def _lock_file(handle: IO[bytes], *, blocking: bool) -> bool:
    """Take the OS-level exclusive lock; returns False if `blocking` is off and the lock is busy."""
    if sys.platform == "win32":
        handle.seek(0)
        while True:
            try:
                msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
            except OSError:
                if not blocking:
                    return False
                time.sleep(WINDOWS_RETRY_DELAY)
            else:
                return True
    flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
    try:
        fcntl.flock(handle.fileno(), flags)
    except BlockingIOError:
        return False
    return True


def _unlock_file(handle: IO[bytes]) -> None:
    if sys.platform == "win32":
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


class CoordinationLock:
    """An exclusive lock on a coordination directory, held until `release` or the end of a `with` block."""

    def __init__(self, path: Path, handle: IO[bytes], thread_lock: threading.Lock) -> None:
        self.path = path
        self._handle: IO[bytes] | None = handle
        self._thread_lock = thread_lock

    @classmethod
    def acquire(cls, directory: Path | str, *, blocking: bool = True) -> CoordinationLock:
        """Lock `directory`, creating it if needed.

        Args:
            directory: the coordination directory
            blocking: wait for the lock; otherwise fail at once if it is held elsewhere

        Raises:
            CoordinationError: if the directory or lock file cannot be created, or if `blocking`
                is off and the lock is held

        """
        lock = cls._acquire(Path(directory), blocking=blocking)
        if lock is None:
            msg = f"Coordination lock {Path(directory) / LOCK_FILE} is held by another resolver"
            raise CoordinationError(msg)
        return lock

    @classmethod
    def try_acquire(cls, directory: Path | str) -> CoordinationLock | None:
        """Lock `directory` without waiting; None if the lock is held elsewhere."""
        return cls._acquire(Path(directory), blocking=False)

    @classmethod
    def _acquire(cls, directory: Path, *, blocking: bool) -> CoordinationLock | None:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Cannot create coordination directory {directory}: {e}"
            raise CoordinationError(msg) from e
        path = (directory / LOCK_FILE).resolve()

        thread_lock = _thread_lock(path)
        if not thread_lock.acquire(blocking=blocking):
            return None
        try:
            handle = path.open("a+b")
        except OSError as e:
            thread_lock.release()
            msg = f"Cannot open coordination lock {path}: {e}"
            raise CoordinationError(msg) from e
        try:
            locked = _lock_file(handle, blocking=blocking)
        except OSError as e:
            handle.close()
            thread_lock.release()
            msg = f"Cannot lock {path}: {e}"
            raise CoordinationError(msg) from e
        if not locked:
            handle.close()
            thread_lock.release()
            return None
        logger.debug("Acquired coordination lock %s", path)
        return cls(path, handle, thread_lock)

    @property
    def held(self) -> bool:
        return self._handle is not None

    def release(self) -> None:
        """Unlock, then close the lock file. Safe to call more than once."""
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            _unlock_file(handle)
        finally:
            try:
                handle.close()
            finally:
                self._thread_lock.release()
                logger.debug("Released coordination lock %s", self.path)

    def __enter__(self) -> CoordinationLock:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.release()

    def __del__(self) -> None:
        if self._handle is not None:
            logger.warning("Coordination lock %s was never released", self.path)


def atomic_write_text(path: Path, text: str) -> None:
    """Write `text` to a temporary file beside `path` and rename it into place."""
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", text=True)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


class Coordinator:
    """Loads and saves the registry and lockfile of one coordination directory.

    A coordinator without a lock is read-only: it is what a non-blocking caller gets when another
    resolver holds the directory.
    """

    def __init__(self, directory: Path | str, lock: CoordinationLock | None = None) -> None:
        self.directory = Path(directory)
        self.lock = lock

    @classmethod
    def open(cls, directory: Path | str, *, blocking: bool = True) -> Coordinator:
        """Lock `directory` and return a coordinator for it.

        With `blocking` off and the directory busy, the coordinator is returned unlocked.

        Raises:
            CoordinationError: if the directory cannot be created or locked

        """
        if blocking:
            return cls(directory, CoordinationLock.acquire(directory))
        lock = CoordinationLock.try_acquire(directory)
        if lock is None:
            logger.warning("%s is busy, continuing without coordination", directory)
        return cls(directory, lock)

    @property
    def coordinated(self) -> bool:
        return self.lock is not None and self.lock.held

    @property
    def registry_path(self) -> Path:
        return self.directory / REGISTRY_FILE

    @property
    def lockfile_path(self) -> Path:
        return self.directory / LOCKFILE_FILE

    def _load(self, path: Path, kind: type[T]) -> T:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return kind()
        except UnicodeDecodeError as e:
            logger.warning("%s is not valid UTF-8, starting from an empty one: %s", path, e)
            return kind()
        except OSError as e:
            msg = f"Cannot read {path}: {e}"
            raise CoordinationError(msg) from e
        try:
            return kind.from_json(text)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("%s is corrupt, starting from an empty one: %s", path, e)
            return kind()

    def _save(self, path: Path, text: str) -> None:
        if not self.coordinated:
            msg = f"Refusing to write {path} without holding the coordination lock"
            raise CoordinationError(msg)
        try:
            atomic_write_text(path, text)
        except OSError as e:
            msg = f"Cannot write {path}: {e}"
            raise CoordinationError(msg) from e

    def load_registry(self) -> Registry:
        """Load the registry; a missing or unreadable file gives an empty one."""
        return self._load(self.registry_path, Registry)

    def save_registry(self, registry: Registry) -> None:
        self._save(self.registry_path, registry.to_json())

    def load_lockfile(self) -> Lockfile:
        """Load the lockfile; a missing or unreadable file gives an empty one."""
        return self._load(self.lockfile_path, Lockfile)

    def save_lockfile(self, lockfile: Lockfile) -> None:
        self._save(self.lockfile_path, lockfile.to_json())

    def close(self) -> None:
        if self.lock is not None:
            self.lock.release()

    def __enter__(self) -> Coordinator:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
