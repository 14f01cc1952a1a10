"""
Shared endpoint dependencies.
"""

from fastapi import Request

from domains.voice_memos.service import IngestionService


def get_service(request: Request) -> IngestionService:
    """Return the ingestion service built during application startup."""
    return request.app.state.service
