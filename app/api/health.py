"""
Health check endpoint.
"""

import sqlite3

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel
from datetime import datetime

from app.api.deps import get_service
from app.utils.config import get_settings
from domains.voice_memos.service import IngestionService

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    ledger_available: bool
    watching: bool
    version: str


@router.get("/health", response_model=HealthResponse)
def health_check(service: IngestionService = Depends(get_service)):
    """
    Health check endpoint.

    Verifies:
    - API is running
    - Dedupe ledger is readable
    """
    settings = get_settings()
    ledger_available = False

    try:
        service.store.count()
        ledger_available = True
    except sqlite3.Error as e:
        logger.warning(f"Ledger check failed: {e}")

    return HealthResponse(
        status="healthy" if ledger_available else "degraded",
        timestamp=datetime.now(),
        ledger_available=ledger_available,
        watching=service.watching,
        version=settings.api_version
    )
