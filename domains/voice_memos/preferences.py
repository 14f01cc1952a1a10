"""
Persisted user preferences: watch folder, note template, display limit.

Stored as a small JSON document next to the ledger and rewritten
atomically on every change.
"""

import json
import threading
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from domains.voice_memos.access import FolderReference
from domains.voice_memos.template import DEFAULT_TEMPLATE


class Preferences(BaseModel):
    """User-facing configuration surface."""

    watch_folder: Optional[FolderReference] = None
    watch_folder_path: Optional[str] = None
    note_template: str = DEFAULT_TEMPLATE
    recent_results_limit: int = Field(default=20, ge=1, le=500)

    def folder_reference(self) -> Optional[FolderReference]:
        """Saved reference, falling back to the plain path."""
        if self.watch_folder is not None:
            return self.watch_folder
        if self.watch_folder_path:
            return FolderReference(path=self.watch_folder_path)
        return None


class PreferencesStore:
    """Loads and saves ``Preferences``."""

    def __init__(self, path: Path, default_recent_limit: int = 20, log=None):
        self.path = Path(path)
        self.default_recent_limit = default_recent_limit
        self.log = log or logger.bind(component="preferences")
        self._lock = threading.Lock()
        self._current = self._load()

    @property
    def current(self) -> Preferences:
        with self._lock:
            return self._current.model_copy(deep=True)

    def _load(self) -> Preferences:
        if not self.path.is_file():
            return Preferences(recent_results_limit=self.default_recent_limit)

        try:
            return Preferences.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (OSError, ValueError, ValidationError) as e:
            # Corrupted preferences - start fresh
            self.log.warning(f"Ignoring unreadable preferences {self.path}: {e}")
            return Preferences(recent_results_limit=self.default_recent_limit)

    def _save(self, prefs: Preferences):
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(prefs.model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
        self._current = prefs

    def _update(self, **changes) -> Preferences:
        with self._lock:
            updated = self._current.model_copy(update=changes)
            Preferences.model_validate(updated.model_dump())
            self._save(updated)
            return updated.model_copy(deep=True)

    def select_folder(self, folder: Path) -> Preferences:
        """
        Remember ``folder`` as the watch folder.

        The plain path is always saved as a fallback; the device/inode
        reference is added when the folder can be stat'ed.
        """
        folder = Path(folder).expanduser().absolute()
        try:
            reference: Optional[FolderReference] = FolderReference.capture(folder)
        except OSError as e:
            self.log.error(f"Failed to save folder reference: {e}")
            reference = None

        self.log.info(f"Selected watch folder: {folder}")
        return self._update(watch_folder=reference, watch_folder_path=str(folder))

    def set_template(self, template: str) -> Preferences:
        return self._update(note_template=template)

    def reset_template(self) -> Preferences:
        """Restore the default note template."""
        return self._update(note_template=DEFAULT_TEMPLATE)

    def set_recent_limit(self, limit: int) -> Preferences:
        return self._update(recent_results_limit=limit)
