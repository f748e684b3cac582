"""
Health Routes - System Health Check

Provides health check endpoint for monitoring server status.
Reports whether the browser page is open and a capture is running.
"""

from fastapi import APIRouter
import logging
from routes import get_deps

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.api_route("/health", methods=["GET", "HEAD"])
async def health_check():
    """
    Health check endpoint

    Supports both GET and HEAD methods for Docker health checks.
    """
    deps = get_deps()

    browser_status = "disconnected"
    if deps.page is not None:
        browser_status = "closed" if deps.page.is_closed() else "ready"

    capturing = bool(deps.orchestrator and deps.orchestrator.is_capturing)

    return {
        "status": "ok",
        "version": "0.1.0",
        "message": "Evidence Stitcher is running",
        "browser_status": browser_status,
        "capturing": capturing,
    }
