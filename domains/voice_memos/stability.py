"""
File stability detection.

A recording that is still being copied or flushed by another process keeps
growing between polls. A file is considered finished once its size reads
the same, non-zero value across consecutive polls separated by a fixed
interval.
"""

import os
import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger


@dataclass(frozen=True)
class StableFileInfo:
    """Size and modification time observed for a file."""

    path: str
    size: int
    mtime: float


def read_file_info(path: str) -> StableFileInfo:
    """
    Read current size and mtime of ``path``.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    st = os.stat(path)
    return StableFileInfo(path=path, size=st.st_size, mtime=st.st_mtime)


class FileStabilityProbe:
    """Polls a file until its size stops changing."""

    def __init__(
        self,
        wait_interval: float = 2.0,
        required_stable_checks: int = 2,
        max_attempts: int = 8,
        sleep: Callable[[float], None] = time.sleep,
        stat: Callable[[str], StableFileInfo] = read_file_info,
        log=None,
    ):
        """
        Initialize stability probe.

        Args:
            wait_interval: Seconds between polls
            required_stable_checks: Consecutive equal non-zero reads needed
            max_attempts: Hard ceiling on the number of polls
            sleep: Sleep function (injected by tests)
            stat: Metadata reader (injected by tests)
            log: Logger handle
        """
        self.wait_interval = wait_interval
        self.required_stable_checks = required_stable_checks
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._stat = stat
        self.log = log or logger.bind(component="stability")

    def wait_for_stable(self, path: str) -> Optional[StableFileInfo]:
        """
        Wait until ``path`` stops growing.

        Missing files are polled again, since they may still be moving into
        place. Other ``OSError`` subclasses (permissions) propagate.

        Args:
            path: File to observe

        Returns:
            The stable file info, or None if attempts ran out
        """
        last_size = 0
        stable_count = 0

        for attempt in range(1, self.max_attempts + 1):
            try:
                info = self._stat(path)
            except FileNotFoundError:
                self.log.debug(f"Not present yet (attempt {attempt}): {path}")
                self._pause(attempt)
                continue

            if info.size == last_size and info.size > 0:
                stable_count += 1
            else:
                stable_count = 0
                last_size = info.size

            if stable_count >= self.required_stable_checks:
                self.log.debug(f"Stable after {attempt} polls: {path} ({info.size} bytes)")
                return info

            self._pause(attempt)

        self.log.info(f"File did not stabilize after {self.max_attempts} polls: {path}")
        return None

    def _pause(self, attempt: int):
        if attempt < self.max_attempts:
            self._sleep(self.wait_interval)
