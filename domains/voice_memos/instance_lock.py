"""
One running instance per data directory.

The API server and the headless watcher share the ledger and the watch
folder. Two of them running at once would both transcribe the same new
file, so each takes an exclusive lock on ``<data_dir>/instance.lock``
before building its pipeline.
"""

from pathlib import Path

import filelock
from loguru import logger

from domains.voice_memos.errors import InstanceLockedError

LOCK_FILENAME = "instance.lock"


class InstanceLock:
    """Exclusive, non-blocking lock on a data directory."""

    def __init__(self, data_dir: Path, log=None):
        self.path = Path(data_dir).expanduser() / LOCK_FILENAME
        self.log = log or logger.bind(component="instance_lock")
        self._lock = filelock.FileLock(self.path, timeout=0, thread_local=False)

    @property
    def is_locked(self) -> bool:
        return self._lock.is_locked

    def acquire(self) -> "InstanceLock":
        """
        Take the lock.

        Raises:
            InstanceLockedError: If another instance holds it
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._lock.acquire()
        except filelock.Timeout as e:
            raise InstanceLockedError(
                f"Another instance is already running for {self.path.parent}"
            ) from e

        self.log.debug(f"Acquired instance lock {self.path}")
        return self

    def release(self):
        """Release the lock. Safe to call more than once."""
        if self._lock.is_locked:
            self._lock.release()
            self.log.debug(f"Released instance lock {self.path}")
