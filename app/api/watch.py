"""
Watch session endpoints.

Includes:
- Watch folder selection
- Start / stop / toggle of the watch session
- Session status (pending queue, file in flight)
"""

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from app.api.deps import get_service
from app.models.schemas import FolderSelection, FolderSelectionResponse, WatchStatus
from domains.voice_memos.errors import WatchSetupError
from domains.voice_memos.service import IngestionService

router = APIRouter()


def _status(service: IngestionService) -> WatchStatus:
    status = service.status()
    reference = service.preferences.current.folder_reference()
    return WatchStatus(
        state=status.state.value,
        folder=status.folder,
        selected_folder=reference.path if reference else None,
        active_path=status.active_path,
        pending=status.pending,
        known_count=status.known_count,
    )


@router.get("/status", response_model=WatchStatus)
def get_watch_status(service: IngestionService = Depends(get_service)):
    """
    Get the current watch session state.

    Returns:
        Watch status
    """
    return _status(service)


@router.put("/folder", response_model=FolderSelectionResponse)
def select_watch_folder(selection: FolderSelection, service: IngestionService = Depends(get_service)):
    """
    Select the folder to watch. Takes effect at the next start.

    Args:
        selection: Folder path

    Returns:
        Saved folder and whether it is pinned to a specific directory
    """
    prefs = service.select_folder(selection.path)
    reference = prefs.folder_reference()
    return FolderSelectionResponse(path=reference.path, pinned=reference.is_opaque)


@router.post("/start", response_model=WatchStatus)
def start_watching(service: IngestionService = Depends(get_service)):
    """
    Start watching the selected folder.

    Files already in the folder are ignored; only new recordings are processed.
    """
    try:
        service.start()
    except WatchSetupError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _status(service)


@router.post("/stop", response_model=WatchStatus)
def stop_watching(service: IngestionService = Depends(get_service)):
    """Stop watching. A file already being processed is allowed to finish."""
    service.stop()
    return _status(service)


@router.post("/toggle", response_model=WatchStatus)
def toggle_watching(service: IngestionService = Depends(get_service)):
    """Start if idle, stop if watching."""
    logger.info(f"Watch toggle requested (watching={service.watching})")
    try:
        service.toggle()
    except WatchSetupError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _status(service)
