"""
Serialized ingestion queue.

One consumer thread owns every piece of mutable queue state (pending paths,
the known-seen set, the active flag). Everything else talks to it by posting
messages onto its channel: the watcher posts "folder changed", the worker
pool posts "worker finished", the service posts start/stop. Because a single
thread applies the messages in order, rescans and drains never interleave.

At most one file is processed at a time. When a worker finishes, its
completion message re-enters the channel and triggers the next drain, so
progress never grows the call stack.
"""

import queue
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Deque, List, Optional, Set

from loguru import logger


@dataclass
class QueueStatus:
    """Point-in-time view of the queue."""

    watching: bool
    folder: Optional[str]
    active_path: Optional[str]
    pending: List[str] = field(default_factory=list)
    known_count: int = 0


@dataclass
class _StartSession:
    folder: Path
    result: Future


@dataclass
class _StopSession:
    result: Future


@dataclass
class _FolderChanged:
    pass


@dataclass
class _WorkerFinished:
    session: int
    path: str
    outcome: Future


@dataclass
class _Snapshot:
    result: Future


class _Shutdown:
    pass


class IngestionQueue:
    """Pending-path queue with a single in-flight worker."""

    def __init__(
        self,
        process_file: Callable[[str], object],
        list_files: Callable[[Path], List[str]],
        on_folder_lost: Optional[Callable[[Path], None]] = None,
        log=None,
    ):
        """
        Initialize the queue and start its consumer thread.

        Args:
            process_file: Per-file pipeline, run on the worker thread
            list_files: Lists candidate files in a folder, sorted
            on_folder_lost: Called on the queue thread when a rescan finds the
                watch folder missing. Must not block on the queue.
            log: Logger handle
        """
        self.process_file = process_file
        self.list_files = list_files
        self.on_folder_lost = on_folder_lost
        self.log = log or logger.bind(component="queue")

        self._channel: "queue.Queue[object]" = queue.Queue()
        self._post_lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()

        # Owned by the consumer thread
        self._folder: Optional[Path] = None
        self._watching = False
        self._session = 0
        self._pending: Deque[str] = deque()
        self._pending_set: Set[str] = set()
        self._known: Set[str] = set()
        self._active_path: Optional[str] = None
        self._in_flight = 0

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingest-worker")
        self._thread = threading.Thread(target=self._run, name="ingest-queue", daemon=True)
        self._thread.start()

    # Public API ----------------------------------------------------------------------

    def start_session(self, folder: Path, timeout: Optional[float] = None) -> int:
        """
        Begin a watch session on ``folder``.

        Files already present become the baseline: they are remembered as
        seen and never enqueued.

        Args:
            folder: Watch folder
            timeout: Seconds to wait for the baseline snapshot

        Returns:
            Number of files in the baseline
        """
        result: Future = Future()
        self._post(_StartSession(Path(folder), result))
        return result.result(timeout)

    def stop_session(self, timeout: Optional[float] = None):
        """
        End the watch session.

        Pending paths and the known-seen set are cleared and no new file
        starts afterwards. A file already being processed runs to completion.
        """
        result: Future = Future()
        self._post(_StopSession(result))
        result.result(timeout)

    def notify_changed(self):
        """Signal that the folder changed. Safe to call from any thread."""
        self._post(_FolderChanged())

    def status(self, timeout: Optional[float] = None) -> QueueStatus:
        """Take a snapshot of the queue state."""
        result: Future = Future()
        self._post(_Snapshot(result))
        return result.result(timeout)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until nothing is queued or in flight.

        Returns:
            True if the queue became idle, False on timeout
        """
        return self._idle.wait(timeout)

    def close(self, wait: bool = True):
        """Stop the consumer thread and the worker pool."""
        self._post(_Shutdown())
        if wait:
            self._thread.join()
        self._executor.shutdown(wait=wait)

    # Consumer thread -----------------------------------------------------------------

    def _post(self, message: object):
        with self._post_lock:
            self._idle.clear()
            self._channel.put(message)

    def _run(self):
        while True:
            message = self._channel.get()
            try:
                if isinstance(message, _Shutdown):
                    return
                self._dispatch(message)
            except Exception as e:
                self.log.error(f"Queue message {type(message).__name__} failed: {e}")
            finally:
                self._channel.task_done()
                self._update_idle()

    def _dispatch(self, message: object):
        if isinstance(message, _FolderChanged):
            self._scan_and_enqueue()
        elif isinstance(message, _WorkerFinished):
            self._on_worker_finished(message)
        elif isinstance(message, _StartSession):
            self._on_start(message)
        elif isinstance(message, _StopSession):
            self._on_stop()
            message.result.set_result(None)
        elif isinstance(message, _Snapshot):
            message.result.set_result(
                QueueStatus(
                    watching=self._watching,
                    folder=str(self._folder) if self._folder else None,
                    active_path=self._active_path,
                    pending=list(self._pending),
                    known_count=len(self._known),
                )
            )

    def _update_idle(self):
        with self._post_lock:
            if self._channel.empty() and self._in_flight == 0 and not self._pending:
                self._idle.set()

    def _on_start(self, message: _StartSession):
        try:
            baseline = set(self.list_files(message.folder))
        except OSError as e:
            self.log.error(f"Cannot list {message.folder}: {e}")
            message.result.set_exception(e)
            return

        self._session += 1
        self._folder = message.folder
        self._known = baseline
        self._pending.clear()
        self._pending_set.clear()
        self._active_path = None
        self._watching = True

        self.log.info(f"Baseline captured: {len(baseline)} existing audio files (will ignore)")
        message.result.set_result(len(baseline))

    def _on_stop(self):
        dropped = len(self._pending)
        self._watching = False
        self._session += 1
        self._pending.clear()
        self._pending_set.clear()
        self._known.clear()
        self._active_path = None
        self.log.info(f"Queue stopped ({dropped} pending dropped)")

    def _scan_and_enqueue(self):
        if not self._watching or self._folder is None:
            return

        if not self._folder.is_dir():
            self.log.warning(f"Watch folder is gone: {self._folder}")
            if self.on_folder_lost is not None:
                self.on_folder_lost(self._folder)
            return

        try:
            paths = self.list_files(self._folder)
        except OSError as e:
            self.log.warning(f"Rescan of {self._folder} failed: {e}")
            return

        for path in paths:
            if path in self._known:
                continue
            self._known.add(path)
            if path not in self._pending_set:
                self._pending_set.add(path)
                self._pending.append(path)
                self.log.info(f"Enqueued: {path}")

        self._drain()

    def _drain(self):
        if not self._watching or self._active_path is not None or not self._pending:
            return

        path = self._pending.popleft()
        self._pending_set.discard(path)
        self._active_path = path
        self._in_flight += 1

        session = self._session
        outcome = self._executor.submit(self.process_file, path)
        outcome.add_done_callback(lambda f: self._post(_WorkerFinished(session, path, f)))

    def _on_worker_finished(self, message: _WorkerFinished):
        self._in_flight -= 1

        error = message.outcome.exception()
        if error is not None:
            self.log.error(f"Worker crashed on {message.path}: {error}")

        if message.session != self._session:
            return

        self._active_path = None
        self._drain()
