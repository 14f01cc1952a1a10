"""
Directory watcher for the voice memo folder.

Uses the watchdog library for cross-platform file system event monitoring.
Every relevant event is forwarded as a bare "folder changed" signal; the
ingestion queue rescans the folder and diffs against what it has already
seen, so bursts of events collapse into cheap, idempotent rescans.
"""

import os
import threading
from pathlib import Path
from typing import Callable, Optional

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

# Event types that carry no change to the folder contents
IGNORED_EVENT_TYPES = {"opened", "closed_no_write"}


class WatcherOpenError(OSError):
    """Raised when a directory cannot be opened for watching."""


class FolderChangeHandler(FileSystemEventHandler):
    """Forwards change events to a single callback."""

    def __init__(self, on_change: Callable[[], None], log=None):
        """
        Initialize event handler.

        Args:
            on_change: Called once per relevant event
            log: Logger handle
        """
        super().__init__()
        self.on_change = on_change
        self.log = log or logger.bind(component="watcher")

    def on_any_event(self, event: FileSystemEvent):
        """Handle every event type uniformly."""
        if event.event_type in IGNORED_EVENT_TYPES:
            return

        self.log.debug(f"Change: {event.event_type} {event.src_path}")
        self.on_change()


class DirectoryWatcher:
    """Watches one directory and signals changes."""

    def __init__(self, recursive: bool = False, observer_factory=Observer, log=None):
        """
        Initialize directory watcher.

        Args:
            recursive: Also deliver events from subdirectories
            observer_factory: watchdog observer class (polling observer in tests)
            log: Logger handle
        """
        self.recursive = recursive
        self.observer_factory = observer_factory
        self.log = log or logger.bind(component="watcher")
        self.directory: Optional[Path] = None
        self._observer = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    @property
    def is_healthy(self) -> bool:
        """Whether the observer and all of its emitters are still running."""
        observer = self._observer
        if observer is None:
            return False
        return observer.is_alive() and all(emitter.is_alive() for emitter in observer.emitters)

    def start(self, directory: Path, on_change: Callable[[], None]):
        """
        Start watching ``directory``.

        Args:
            directory: Directory to watch
            on_change: Called for each change event, from the observer thread

        Raises:
            WatcherOpenError: If the directory cannot be opened
        """
        directory = Path(directory)

        with self._lock:
            if self._observer is not None:
                raise WatcherOpenError(f"Watcher already running for {self.directory}")

            if not directory.is_dir():
                raise WatcherOpenError(f"Not a directory: {directory}")

            try:
                with os.scandir(directory):
                    pass
            except OSError as e:
                raise WatcherOpenError(f"Cannot open {directory}: {e}") from e

            observer = self.observer_factory()
            try:
                observer.schedule(
                    FolderChangeHandler(on_change, self.log),
                    str(directory),
                    recursive=self.recursive,
                )
                observer.daemon = True
                observer.start()
            except OSError as e:
                raise WatcherOpenError(f"Cannot watch {directory}: {e}") from e

            self._observer = observer
            self.directory = directory

        self.log.success(f"Started watching: {directory}")

    def stop(self):
        """Stop watching. Safe to call more than once."""
        with self._lock:
            observer, self._observer = self._observer, None

        if observer is None:
            return

        observer.stop()
        observer.join(timeout=5)
        self.log.info(f"Stopped watching: {self.directory}")
