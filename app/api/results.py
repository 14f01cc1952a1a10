"""
Processed results endpoints.

Exposes the dedupe ledger: recent outcomes, bulk clear and the display
limit used when no explicit limit is given.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from loguru import logger

from app.api.deps import get_service
from app.models.schemas import ClearResponse, ProcessedRecordOut, RecentLimitBody, RecentResults
from domains.voice_memos.service import IngestionService

router = APIRouter()


@router.get("", response_model=RecentResults)
def list_recent_results(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    service: IngestionService = Depends(get_service),
):
    """
    List recent processing outcomes, newest first.

    Args:
        limit: Maximum number of results (defaults to the saved display limit)
    """
    records = service.recent_results(limit)
    return RecentResults(
        results=[ProcessedRecordOut.from_record(r) for r in records],
        total=service.store.count(),
    )


@router.delete("", response_model=ClearResponse)
def clear_results(service: IngestionService = Depends(get_service)):
    """Remove every processed record."""
    logger.info("Clear of processed results requested")
    return ClearResponse(deleted_count=service.clear_results())


@router.put("/limit", response_model=RecentLimitBody)
def set_recent_limit(body: RecentLimitBody, service: IngestionService = Depends(get_service)):
    """Change the default number of recent results shown."""
    prefs = service.preferences.set_recent_limit(body.limit)
    return RecentLimitBody(limit=prefs.recent_results_limit)
