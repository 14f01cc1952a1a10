"""
Per-file ingestion pipeline.

stability wait -> zero-byte check -> fingerprint -> dedupe check ->
transcribe -> render note -> create note -> record outcome.

This is the single place that decides whether a problem is skipped
silently, recorded as a failure, or shown to the user.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable

from loguru import logger

from domains.voice_memos.alerts import AlertBoard
from domains.voice_memos.fingerprint import compute_fingerprint
from domains.voice_memos.notes import NoteTarget
from domains.voice_memos.scanner import AudioFileFilter
from domains.voice_memos.stability import FileStabilityProbe, StableFileInfo, read_file_info
from domains.voice_memos.store import DedupeStore, ProcessingStatus
from domains.voice_memos.template import render_note
from domains.voice_memos.transcriber import Transcriber


class FileOutcome(str, Enum):
    """What ``handle_file`` did with a path."""

    UNSUPPORTED = "unsupported"
    UNSTABLE = "unstable"
    EMPTY = "empty"
    DUPLICATE = "duplicate"
    VANISHED = "vanished"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class IngestionWorker:
    """Turns one audio file into one note, at most once per fingerprint."""

    def __init__(
        self,
        store: DedupeStore,
        probe: FileStabilityProbe,
        transcriber: Transcriber,
        notes: NoteTarget,
        alerts: AlertBoard,
        template_provider: Callable[[], str],
        audio_filter: AudioFileFilter,
        locale: str = "ja-JP",
        now: Callable[[], datetime] = datetime.now,
        stat: Callable[[str], StableFileInfo] = read_file_info,
        log=None,
    ):
        """
        Initialize ingestion worker.

        Args:
            store: Dedupe ledger
            probe: Stability probe
            transcriber: Transcription collaborator
            notes: Note-creation collaborator
            alerts: Board for user-visible alerts
            template_provider: Returns the current note template
            audio_filter: Supported-extension filter
            locale: Transcription locale
            now: Clock used for template dates
            stat: Metadata reader for the failure fingerprint
            log: Logger handle
        """
        self.store = store
        self.probe = probe
        self.transcriber = transcriber
        self.notes = notes
        self.alerts = alerts
        self.template_provider = template_provider
        self.audio_filter = audio_filter
        self.locale = locale
        self._now = now
        self._stat = stat
        self.log = log or logger.bind(component="worker")

    def handle_file(self, path: str) -> FileOutcome:
        """
        Process one file.

        Args:
            path: Absolute path of a candidate audio file

        Returns:
            FileOutcome describing what happened
        """
        if not self.audio_filter.is_supported(path):
            return FileOutcome.UNSUPPORTED

        try:
            stable = self.probe.wait_for_stable(path)
            if stable is None:
                self.log.info(f"Skip unstable or missing file: {path}")
                return FileOutcome.UNSTABLE

            if stable.size == 0:
                self.log.info(f"Skip zero-byte file: {path}")
                return FileOutcome.EMPTY

            fingerprint = compute_fingerprint(stable.path, stable.size, stable.mtime)
            if self.store.is_processed(fingerprint):
                self.log.info(f"Already processed, skip: {stable.path}")
                return FileOutcome.DUPLICATE

            self.log.info(f"Start transcription: {Path(stable.path).name}")
            transcript = self.transcriber.transcribe(stable.path, self.locale)

            note = render_note(self.template_provider(), transcript, stable.path, now=self._now())
            self.notes.create_note(note.title, note.body)

            self.store.mark_processed(
                fingerprint, stable.path, stable.size, stable.mtime, ProcessingStatus.SUCCESS
            )
            self.log.success(f"Note created for: {Path(stable.path).name}")
            return FileOutcome.SUCCEEDED

        except FileNotFoundError as e:
            self.log.warning(f"File vanished while processing, skip: {path} ({e})")
            return FileOutcome.VANISHED

        except Exception as e:
            self.log.error(f"Failed to process {path}: {e}")
            self._record_failure(path, str(e))
            self.alerts.post(f"Processing failed: {e}")
            return FileOutcome.FAILED

    def _record_failure(self, path: str, message: str):
        try:
            info = self._stat(path)
        except OSError as e:
            self.log.warning(f"Cannot re-read {path} to record failure: {e}")
            return

        fingerprint = compute_fingerprint(info.path, info.size, info.mtime)
        self.store.mark_processed(
            fingerprint, info.path, info.size, info.mtime, ProcessingStatus.FAILED, message
        )
