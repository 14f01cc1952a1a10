"""
Voice Memo Transcriber - Main FastAPI Application

Local control surface for the voice memo ingestion pipeline:
- Watch folder selection and watch session start/stop
- Recent processing results (dedupe ledger)
- Note template configuration
- One-shot alerts and permission requests
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from app.api import alerts, health, results, template, watch
from app.utils.config import Settings, get_settings
from app.utils.logging_setup import configure_logging
from domains.voice_memos.errors import InstanceLockedError
from domains.voice_memos.service import IngestionService, build_service


def create_app(settings: Optional[Settings] = None, service: Optional[IngestionService] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings override (defaults to environment settings)
        service: Prebuilt ingestion service; built at startup when omitted

    Returns:
        FastAPI app
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        if service is None:
            configure_logging(settings)
        logger.info(f"Starting {settings.api_title} v{settings.api_version}")

        try:
            app.state.service = service or build_service(settings)
        except InstanceLockedError as e:
            logger.error(f"Cannot start: {e}")
            raise
        logger.success(f"Dedupe ledger ready at {app.state.service.store.db_path}")

        yield

        # Cleanup
        logger.info("Shutting down application...")
        app.state.service.close()
        logger.success("Application shut down complete")

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="Transcribes new voice memos from a watched folder into notes",
        lifespan=lifespan
    )

    # Exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.log_level == "DEBUG" else "An error occurred"
            }
        )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(watch.router, prefix="/watch", tags=["Watch"])
    app.include_router(results.router, prefix="/results", tags=["Results"])
    app.include_router(template.router, prefix="/template", tags=["Template"])
    app.include_router(alerts.router, tags=["Alerts"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
            "health": "/health"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower()
    )
