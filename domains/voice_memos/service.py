"""
Composition root for the voice memo pipeline.

Builds the store, collaborators, worker, queue and watcher from settings
and owns the watch session lifecycle (idle <-> watching). Handles are
passed explicitly to each component; nothing here is a module global.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path
from typing import List, Optional

from loguru import logger

from app.utils.config import Settings
from domains.voice_memos.access import AccessGrant, acquire_access_grant
from domains.voice_memos.alerts import AlertBoard
from domains.voice_memos.errors import (
    AccessDeniedError,
    AccessError,
    NoteErrorKind,
    StaleAccessGrantError,
    WatchSetupError,
)
from domains.voice_memos.ingestion_queue import IngestionQueue
from domains.voice_memos.instance_lock import InstanceLock
from domains.voice_memos.notes import NotesClient, NoteTarget
from domains.voice_memos.preferences import PreferencesStore
from domains.voice_memos.retry import RetryPolicy
from domains.voice_memos.scanner import AudioFileFilter, list_audio_files
from domains.voice_memos.stability import FileStabilityProbe
from domains.voice_memos.store import DedupeStore, ProcessedRecord
from domains.voice_memos.transcriber import Transcriber, WhisperTranscriber
from domains.voice_memos.watcher import DirectoryWatcher, WatcherOpenError
from domains.voice_memos.worker import IngestionWorker

SESSION_TIMEOUT = 30  # seconds to wait for the queue thread on start/stop


class ServiceState(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"


@dataclass
class ServiceStatus:
    state: ServiceState
    folder: Optional[str]
    active_path: Optional[str]
    pending: List[str] = field(default_factory=list)
    known_count: int = 0


class IngestionService:
    """Owns one watch session at a time."""

    def __init__(
        self,
        settings: Settings,
        store: DedupeStore,
        preferences: PreferencesStore,
        transcriber: Transcriber,
        notes: NoteTarget,
        alerts: Optional[AlertBoard] = None,
        probe: Optional[FileStabilityProbe] = None,
        watcher: Optional[DirectoryWatcher] = None,
        instance_lock: Optional[InstanceLock] = None,
        log=None,
    ):
        self.settings = settings
        self.store = store
        self.preferences = preferences
        self.transcriber = transcriber
        self.notes = notes
        self.alerts = alerts or AlertBoard()
        self.log = log or logger.bind(component="service")
        self.audio_filter = AudioFileFilter.from_settings(settings)

        self.probe = probe or FileStabilityProbe(
            wait_interval=settings.stability_wait_interval,
            required_stable_checks=settings.required_stable_checks,
            max_attempts=settings.max_stability_attempts,
            log=self.log.bind(component="stability"),
        )
        self.worker = IngestionWorker(
            store=store,
            probe=self.probe,
            transcriber=transcriber,
            notes=notes,
            alerts=self.alerts,
            template_provider=lambda: self.preferences.current.note_template,
            audio_filter=self.audio_filter,
            locale=settings.locale,
            log=self.log.bind(component="worker"),
        )
        self.queue = IngestionQueue(
            process_file=self.worker.handle_file,
            list_files=partial(list_audio_files, audio_filter=self.audio_filter),
            on_folder_lost=self._on_folder_lost,
            log=self.log.bind(component="queue"),
        )
        self.watcher = watcher or DirectoryWatcher(
            recursive=settings.watch_recursive,
            log=self.log.bind(component="watcher"),
        )

        self.state = ServiceState.IDLE
        self.grant: Optional[AccessGrant] = None
        self.instance_lock = instance_lock
        self._lock = threading.Lock()
        self._monitor_stop = threading.Event()

    @property
    def watching(self) -> bool:
        return self.state == ServiceState.WATCHING

    def start(self) -> AccessGrant:
        """
        Start watching the saved folder.

        Returns:
            The access grant held for this session

        Raises:
            WatchSetupError: If any setup step fails; state stays idle
        """
        with self._lock:
            if self.state == ServiceState.WATCHING:
                return self.grant

            try:
                grant = self._start_session()
            except WatchSetupError as e:
                self.log.error(f"Failed to start watching: {e}")
                self.alerts.post(str(e))
                raise

            self.grant = grant
            self.state = ServiceState.WATCHING
            self._start_monitor()
            self.log.success(f"Started watching: {grant.folder}")
            return grant

    def _start_session(self) -> AccessGrant:
        reference = self.preferences.current.folder_reference()
        if reference is None:
            raise WatchSetupError("Select watch folder first.")

        try:
            grant = acquire_access_grant(reference)
        except StaleAccessGrantError as e:
            raise WatchSetupError(str(e), hint="Select the watch folder again.") from e
        except AccessDeniedError as e:
            raise WatchSetupError(
                str(e), hint="Grant read access (Full Disk Access) to this app/Terminal."
            ) from e
        except AccessError as e:
            raise WatchSetupError(str(e)) from e

        if not self.transcriber.request_authorization():
            raise WatchSetupError(
                "Speech recognition permission denied.",
                hint="Allow speech recognition, or check that the transcription engine is installed.",
            )

        try:
            self.queue.start_session(grant.folder, timeout=SESSION_TIMEOUT)
        except OSError as e:
            raise WatchSetupError(f"Cannot list folder {grant.folder}: {e}") from e

        try:
            self.watcher.start(grant.folder, self.queue.notify_changed)
        except WatcherOpenError as e:
            self.queue.stop_session(timeout=SESSION_TIMEOUT)
            raise WatchSetupError(f"Failed to start watcher: {e}") from e

        # Pick up anything created between the baseline and the subscription
        self.queue.notify_changed()
        return grant

    def stop(self):
        """Stop watching. The file in flight, if any, finishes on its own."""
        with self._lock:
            self._monitor_stop.set()
            self.watcher.stop()
            if self.state == ServiceState.WATCHING:
                self.queue.stop_session(timeout=SESSION_TIMEOUT)
            self.state = ServiceState.IDLE
            self.grant = None
        self.log.info("Stopped watching")

    def verify_session(self) -> bool:
        """
        Check that the watch folder and its watcher are still usable.

        A folder that was removed, replaced or made unreadable, or a watcher
        whose event source died, ends the session: state returns to idle and
        an alert asks the user to select the folder again.

        Returns:
            True if the session is still watching
        """
        with self._lock:
            if self.state != ServiceState.WATCHING:
                return False
            try:
                self.grant.revalidate()
                if not self.watcher.is_healthy:
                    raise WatcherOpenError(f"Watcher stopped for {self.grant.folder}")
            except (AccessError, WatcherOpenError) as e:
                self._end_lost_session(e)
                return False
        return True

    def _end_lost_session(self, error: Exception):
        # Caller holds self._lock
        self._monitor_stop.set()
        self.watcher.stop()
        self.queue.stop_session(timeout=SESSION_TIMEOUT)
        self.state = ServiceState.IDLE
        self.grant = None

        setup_error = WatchSetupError(
            f"Watch folder is no longer available: {error}",
            hint="Select the watch folder again.",
        )
        self.log.error(f"Watch session ended: {setup_error}")
        self.alerts.post(str(setup_error))

    def _on_folder_lost(self, folder: Path):
        # Runs on the queue thread, which stop_session waits on
        self.log.warning(f"Rescan found {folder} missing, verifying session")
        threading.Thread(target=self.verify_session, name="watch-verify", daemon=True).start()

    def _start_monitor(self):
        self._monitor_stop = threading.Event()
        threading.Thread(
            target=self._monitor_session,
            args=(self._monitor_stop,),
            name="watch-monitor",
            daemon=True,
        ).start()

    def _monitor_session(self, stop_event: threading.Event):
        while not stop_event.wait(self.settings.folder_check_interval):
            if not self.verify_session():
                return

    def toggle(self) -> ServiceState:
        if self.watching:
            self.stop()
        else:
            self.start()
        return self.state

    def status(self) -> ServiceStatus:
        self.verify_session()
        queue_status = self.queue.status(timeout=SESSION_TIMEOUT)
        return ServiceStatus(
            state=self.state,
            folder=queue_status.folder if self.watching else None,
            active_path=queue_status.active_path,
            pending=queue_status.pending,
            known_count=queue_status.known_count,
        )

    def select_folder(self, folder: Path):
        """Remember a new watch folder; takes effect at the next start."""
        return self.preferences.select_folder(folder)

    def request_transcription_permission(self) -> bool:
        """Ask the transcriber for permission and post the answer as an alert."""
        granted = self.transcriber.request_authorization()
        if granted:
            self.log.info("Speech permission granted")
            self.alerts.post("Speech recognition permission is granted.")
        else:
            self.log.error("Speech permission denied")
            self.alerts.post(
                "Speech recognition permission is denied. Allow speech recognition for this app."
            )
        return granted

    def recent_results(self, limit: Optional[int] = None) -> List[ProcessedRecord]:
        if limit is None:
            limit = self.preferences.current.recent_results_limit
        return self.store.recent_results(limit)

    def clear_results(self) -> int:
        return self.store.clear_all()

    def close(self):
        """Stop the session and release the queue, the ledger and the instance lock."""
        self.stop()
        self.queue.close()
        self.store.close()
        if self.instance_lock is not None:
            self.instance_lock.release()


def build_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.note_retry_attempts,
        cap=settings.note_retry_cap,
        base_delays={
            NoteErrorKind.TARGET_NOT_RUNNING: settings.note_retry_base_not_running,
            NoteErrorKind.TARGET_HANDLER_FAILED: settings.note_retry_base_handler_failed,
        },
    )


def build_service(
    settings: Settings,
    transcriber: Optional[Transcriber] = None,
    notes: Optional[NoteTarget] = None,
) -> IngestionService:
    """
    Build a service with the default collaborators.

    Args:
        settings: Application settings
        transcriber: Override for the transcription collaborator
        notes: Override for the note-creation collaborator

    Returns:
        IngestionService in the idle state

    Raises:
        InstanceLockedError: If another instance owns the data directory
    """
    log = logger.bind(component="service")

    instance_lock = InstanceLock(settings.data_dir, log=log.bind(component="instance_lock")).acquire()
    try:
        return _build_with_lock(settings, transcriber, notes, instance_lock, log)
    except Exception:
        instance_lock.release()
        raise


def _build_with_lock(settings, transcriber, notes, instance_lock, log) -> IngestionService:
    store = DedupeStore(
        settings.ledger_path,
        legacy_path=settings.legacy_ledger_path,
        log=log.bind(component="store"),
    )
    preferences = PreferencesStore(
        settings.preferences_path,
        default_recent_limit=settings.recent_results_limit,
        log=log.bind(component="preferences"),
    )
    transcriber = transcriber or WhisperTranscriber(
        model_size=settings.whisper_model,
        device=settings.whisper_device,
        log=log.bind(component="transcriber"),
    )
    notes = notes or NotesClient(
        folder_name=settings.notes_folder_name,
        bundle_id=settings.notes_bundle_id,
        process_name=settings.notes_process_name,
        launch_timeout=settings.notes_launch_timeout,
        policy=build_retry_policy(settings),
        log=log.bind(component="notes"),
    )

    return IngestionService(
        settings=settings,
        store=store,
        preferences=preferences,
        transcriber=transcriber,
        notes=notes,
        instance_lock=instance_lock,
        log=log,
    )
