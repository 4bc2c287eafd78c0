"""
Render Locks

Non-blocking exclusive locks keyed by integer. Both backends share the
try_acquire / release contract; release is a no-op for keys not held.
"""

import fcntl
import os
from pathlib import Path
from threading import Lock
from typing import IO, Dict, Set


class FileAdvisoryLock:
    """
    flock-based lock on <locks_dir>/render_<key>.lock.

    Holds across processes on one host. flock binds to the open file, so
    two acquisitions in the same process also exclude each other.
    """

    def __init__(self, locks_dir):
        self.locks_dir = Path(locks_dir)
        self.locks_dir.mkdir(parents=True, exist_ok=True)
        self._handles: Dict[int, IO[str]] = {}
        self._guard = Lock()

    def _path(self, key: int) -> Path:
        return self.locks_dir / f"render_{key}.lock"

    def try_acquire(self, key: int) -> bool:
        with self._guard:
            if key in self._handles:
                return False

            handle = open(self._path(key), 'a+')
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                handle.close()
                return False

            handle.seek(0)
            handle.truncate()
            handle.write(str(os.getpid()))
            handle.flush()
            self._handles[key] = handle
            return True

    def release(self, key: int) -> None:
        with self._guard:
            handle = self._handles.pop(key, None)
        if handle is None:
            return
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()

    def held(self) -> Set[int]:
        with self._guard:
            return set(self._handles)


class InMemoryLockTable:
    """Process-local lock table for single-process deployments"""

    def __init__(self):
        self._held: Set[int] = set()
        self._guard = Lock()

    def try_acquire(self, key: int) -> bool:
        with self._guard:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def release(self, key: int) -> None:
        with self._guard:
            self._held.discard(key)

    def held(self) -> Set[int]:
        with self._guard:
            return set(self._held)


def lock_from_config(config):
    """Build the lock backend named by jobs.lock_backend"""
    backend = config.jobs.lock_backend
    if backend == "file":
        return FileAdvisoryLock(config.paths.locks)
    if backend == "memory":
        return InMemoryLockTable()
    raise ValueError(f"Unknown lock backend: {backend}")
