"""
Durable dedupe ledger.

Maps a file fingerprint to the outcome of its last processing attempt.
Backed by SQLite so it survives watcher restarts and application relaunch.

Provides:
- Point lookup and last-write-wins upsert keyed by fingerprint
- Bounded newest-first listing of recent results
- Bulk clear
- One-time import of the legacy JSON ledger (``{"items": {fp: status}}``)

All access goes through a single connection guarded by one lock, so the
store is safe to share between the queue thread, the worker thread and the
API without external locking.
"""

import json
import sqlite3
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS processed_files (
    fingerprint     TEXT PRIMARY KEY,
    path            TEXT NOT NULL,
    size_bytes      INTEGER NOT NULL DEFAULT 0,
    mtime_seconds   REAL NOT NULL DEFAULT 0,
    status          TEXT NOT NULL,
    error_message   TEXT,
    processed_at    REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_processed_files_processed_at
    ON processed_files (processed_at DESC);

CREATE TABLE IF NOT EXISTS store_meta (
    key     TEXT PRIMARY KEY,
    value   TEXT NOT NULL
);
"""

LEGACY_IMPORT_KEY = "legacy_import_completed_at"

# Spacing between synthetic timestamps assigned to imported legacy entries
LEGACY_TIMESTAMP_STEP = 0.001


class ProcessingStatus(str, Enum):
    """Outcome of one processing attempt."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessedRecord:
    """One row of the dedupe ledger."""

    fingerprint: str
    path: str
    size_bytes: int
    mtime_seconds: float
    status: ProcessingStatus
    error_message: Optional[str]
    processed_at: float

    @property
    def processed_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.processed_at, tz=timezone.utc)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ProcessedRecord":
        return cls(
            fingerprint=row["fingerprint"],
            path=row["path"],
            size_bytes=row["size_bytes"],
            mtime_seconds=row["mtime_seconds"],
            status=ProcessingStatus(row["status"]),
            error_message=row["error_message"],
            processed_at=row["processed_at"],
        )


class DedupeStore:
    """SQLite-backed ledger of processed fingerprints."""

    def __init__(
        self,
        db_path: Path,
        legacy_path: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
        log=None,
    ):
        """
        Open (or create) the ledger.

        Args:
            db_path: SQLite database file, or ``:memory:``
            legacy_path: Legacy JSON ledger imported once on first open
            clock: Time source for ``processed_at`` stamps
            log: Logger handle
        """
        self.db_path = db_path
        self.legacy_path = legacy_path
        self._clock = clock
        self.log = log or logger.bind(component="store")
        self._lock = threading.Lock()

        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            if str(db_path) != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()

        if legacy_path is not None and not self.legacy_import_done():
            self.import_legacy(legacy_path)

    def close(self):
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()

    def is_processed(self, fingerprint: str) -> bool:
        """Check whether any outcome has been recorded for ``fingerprint``."""
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM processed_files WHERE fingerprint = ?",
                (fingerprint,),
            ).fetchone()
        return row is not None

    def get(self, fingerprint: str) -> Optional[ProcessedRecord]:
        """Fetch the record for ``fingerprint`` if present."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM processed_files WHERE fingerprint = ?",
                (fingerprint,),
            ).fetchone()
        return ProcessedRecord.from_row(row) if row else None

    def mark_processed(
        self,
        fingerprint: str,
        path: str,
        size: int,
        mtime: float,
        status: ProcessingStatus,
        error_message: Optional[str] = None,
    ) -> ProcessedRecord:
        """
        Record the outcome of a processing attempt (last write wins).

        Args:
            fingerprint: Dedupe key
            path: Absolute file path
            size: File size in bytes
            mtime: Modification time in seconds
            status: Attempt outcome
            error_message: Failure detail for ``failed`` records

        Returns:
            The stored record
        """
        status = ProcessingStatus(status)
        processed_at = self._clock()

        with self._lock:
            self._conn.execute(
                """
                INSERT INTO processed_files
                    (fingerprint, path, size_bytes, mtime_seconds, status, error_message, processed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(fingerprint) DO UPDATE SET
                    path = excluded.path,
                    size_bytes = excluded.size_bytes,
                    mtime_seconds = excluded.mtime_seconds,
                    status = excluded.status,
                    error_message = excluded.error_message,
                    processed_at = excluded.processed_at
                """,
                (fingerprint, path, int(size), float(mtime), status.value, error_message, processed_at),
            )
            self._conn.commit()

        self.log.debug(f"Recorded {status.value} for {path} ({fingerprint[:8]}...)")
        return ProcessedRecord(
            fingerprint=fingerprint,
            path=path,
            size_bytes=int(size),
            mtime_seconds=float(mtime),
            status=status,
            error_message=error_message,
            processed_at=processed_at,
        )

    def recent_results(self, limit: int = 20) -> List[ProcessedRecord]:
        """
        List the most recent records, newest first.

        Args:
            limit: Maximum number of records to return

        Returns:
            List of records
        """
        if limit <= 0:
            return []

        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM processed_files
                ORDER BY processed_at DESC, rowid DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [ProcessedRecord.from_row(row) for row in rows]

    def count(self) -> int:
        """Count stored records."""
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM processed_files").fetchone()
        return row["n"]

    def clear_all(self) -> int:
        """
        Remove every record.

        Returns:
            Number of records deleted
        """
        with self._lock:
            cursor = self._conn.execute("DELETE FROM processed_files")
            self._conn.commit()
        self.log.info(f"Cleared {cursor.rowcount} processed records")
        return cursor.rowcount

    def legacy_import_done(self) -> bool:
        """Check whether the one-time legacy import already ran."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM store_meta WHERE key = ?",
                (LEGACY_IMPORT_KEY,),
            ).fetchone()
        return row is not None

    def import_legacy(self, legacy_path: Path) -> int:
        """
        Import a legacy ``{"items": {fingerprint: status}}`` ledger.

        Entries get synthetic, strictly decreasing timestamps older than
        anything recorded afterwards, so ``recent_results`` lists them in file
        order. Fingerprints already present are left untouched, which makes
        repeated imports a no-op.

        Args:
            legacy_path: Path to the legacy JSON file

        Returns:
            Number of newly imported records
        """
        legacy_path = Path(legacy_path)
        if not legacy_path.is_file():
            self._mark_legacy_import_done()
            return 0

        try:
            data = json.loads(legacy_path.read_text(encoding="utf-8"))
            items = data.get("items", {})
            if not isinstance(items, dict):
                raise ValueError("'items' is not an object")
        except (OSError, ValueError, AttributeError) as e:
            self.log.warning(f"Skipping unreadable legacy ledger {legacy_path}: {e}")
            self._mark_legacy_import_done()
            return 0

        base = self._clock()
        imported = 0

        with self._lock:
            for index, (fingerprint, raw_status) in enumerate(items.items()):
                try:
                    status = ProcessingStatus(raw_status)
                except ValueError:
                    self.log.warning(f"Skipping legacy entry {fingerprint[:8]}... with status {raw_status!r}")
                    continue

                cursor = self._conn.execute(
                    """
                    INSERT OR IGNORE INTO processed_files
                        (fingerprint, path, size_bytes, mtime_seconds, status, error_message, processed_at)
                    VALUES (?, '', 0, 0, ?, NULL, ?)
                    """,
                    (fingerprint, status.value, base - (index + 1) * LEGACY_TIMESTAMP_STEP),
                )
                imported += cursor.rowcount

            self._conn.execute(
                "INSERT OR REPLACE INTO store_meta (key, value) VALUES (?, ?)",
                (LEGACY_IMPORT_KEY, repr(base)),
            )
            self._conn.commit()

        self.log.info(f"Imported {imported}/{len(items)} legacy records from {legacy_path}")
        return imported

    def _mark_legacy_import_done(self):
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO store_meta (key, value) VALUES (?, ?)",
                (LEGACY_IMPORT_KEY, repr(self._clock())),
            )
            self._conn.commit()
