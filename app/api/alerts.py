"""
User-visible alerts and permission requests.
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_service
from app.models.schemas import AlertList, AlertOut, PermissionResponse
from domains.voice_memos.service import IngestionService

router = APIRouter()


@router.get("/alerts", response_model=AlertList)
def read_alerts(service: IngestionService = Depends(get_service)):
    """
    Return pending alerts. Each alert is delivered once.
    """
    return AlertList(
        alerts=[AlertOut(message=a.message, created_at=a.created_at) for a in service.alerts.drain()]
    )


@router.post("/permissions/transcription", response_model=PermissionResponse)
def request_transcription_permission(service: IngestionService = Depends(get_service)):
    """Ask the transcription engine for permission; the answer is also posted as an alert."""
    return PermissionResponse(granted=service.request_transcription_permission())
