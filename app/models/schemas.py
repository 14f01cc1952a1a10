"""
Pydantic models for the Voice Memo Transcriber API.

Shared data models across the control endpoints.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from domains.voice_memos.store import ProcessedRecord


# =====================================================
# Ledger Models
# =====================================================

class ProcessedRecordOut(BaseModel):
    """One dedupe ledger row."""
    fingerprint: str
    path: str
    size_bytes: int
    mtime_seconds: float
    status: str
    error_message: Optional[str] = None
    processed_at: datetime

    @classmethod
    def from_record(cls, record: ProcessedRecord) -> "ProcessedRecordOut":
        return cls(
            fingerprint=record.fingerprint,
            path=record.path,
            size_bytes=record.size_bytes,
            mtime_seconds=record.mtime_seconds,
            status=record.status.value,
            error_message=record.error_message,
            processed_at=record.processed_at_datetime,
        )


class RecentResults(BaseModel):
    """Newest-first list of ledger rows."""
    results: List[ProcessedRecordOut]
    total: int


class ClearResponse(BaseModel):
    deleted_count: int


# =====================================================
# Watch Session Models
# =====================================================

class WatchStatus(BaseModel):
    """Watch session state."""
    state: str
    folder: Optional[str] = None
    selected_folder: Optional[str] = None
    active_path: Optional[str] = None
    pending: List[str] = []
    known_count: int = 0


class FolderSelection(BaseModel):
    """Watch folder selection request."""
    path: str = Field(..., min_length=1)


class FolderSelectionResponse(BaseModel):
    path: str
    pinned: bool


# =====================================================
# Configuration Models
# =====================================================

class TemplateBody(BaseModel):
    """Note template; placeholders: {date} {time} {transcribed_text} {original_audio} {filename}."""
    template: str


class RecentLimitBody(BaseModel):
    limit: int = Field(..., ge=1, le=500)


# =====================================================
# Alert Models
# =====================================================

class AlertOut(BaseModel):
    message: str
    created_at: datetime


class AlertList(BaseModel):
    alerts: List[AlertOut]


class PermissionResponse(BaseModel):
    granted: bool
