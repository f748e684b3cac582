"""
Capture Routes - Full-Page Evidence Capture

Provides endpoints for driving the capture engine:
- Start a capture of a URL (one at a time)
- Poll progress of the running capture
- Cancel the running capture
- Fetch the last capture result
"""

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Optional
import logging

from capture_config import CaptureConfig
from capture_models import CaptureResult, CaptureStage
from routes import get_deps
from utils.error_handler import (
    CaptureInProgressError,
    create_success_response,
    get_user_friendly_message,
    handle_api_error,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["capture"])


# Request Models
class CaptureRequest(BaseModel):
    url: str
    config: Optional[CaptureConfig] = None


# =============================================================================
# CAPTURE
# =============================================================================

@router.post("/capture")
async def start_capture(request: CaptureRequest):
    """
    Navigate to the URL and capture the full page.

    Returns the capture result (camelCase JSON). Partial evidence from a
    cancelled capture is returned with success=false.
    """
    deps = get_deps()

    if deps.capture_lock.locked():
        logger.warning(f"[API] Capture of {request.url} rejected, another capture is running")
        busy = CaptureResult(
            success=False,
            stage=CaptureStage.FAILED,
            error=get_user_friendly_message(CaptureInProgressError(request.url)),
            error_code="CAPTURE_IN_PROGRESS",
        )
        return JSONResponse(status_code=409, content=busy.to_json())

    async with deps.capture_lock:
        try:
            if not request.url.startswith(("http://", "https://")):
                raise ValueError(f"Only http and https URLs can be captured: {request.url}")

            if deps.page is not None:
                logger.info(f"[API] Navigating to {request.url}")
                await deps.page.goto(
                    request.url,
                    wait_until="load",
                    timeout=deps.defaults.NAVIGATION_TIMEOUT,
                )

            orchestrator = deps.orchestrator_factory(request.config)
            deps.orchestrator = orchestrator
            result = await orchestrator.capture()
        except Exception as e:
            logger.error(f"[API] Capture of {request.url} failed: {e}")
            return handle_api_error(e)

    deps.last_result = result
    logger.info(f"[API] Capture of {request.url} finished: success={result.success}, stage={result.stage}")
    return result.to_json()


@router.get("/capture/status")
async def get_capture_status():
    """Progress of the running (or most recent) capture"""
    deps = get_deps()
    orchestrator = deps.orchestrator

    progress = None
    if orchestrator is not None and orchestrator.last_progress is not None:
        progress = orchestrator.last_progress.model_dump(by_alias=True, exclude_none=True, mode="json")

    return create_success_response(data={
        "capturing": bool(orchestrator and orchestrator.is_capturing),
        "progress": progress,
        "hasResult": deps.last_result is not None,
    })


@router.post("/capture/cancel")
async def cancel_capture():
    """Request cooperative cancellation of the running capture"""
    deps = get_deps()
    orchestrator = deps.orchestrator

    if orchestrator is None or not orchestrator.is_capturing:
        raise HTTPException(status_code=409, detail="No capture in progress")

    orchestrator.cancel()
    logger.info("[API] Capture cancellation requested")
    return create_success_response(message="Cancellation requested")


@router.get("/capture/result")
async def get_last_result():
    """Full result of the most recent capture"""
    deps = get_deps()
    if deps.last_result is None:
        raise HTTPException(status_code=404, detail="No capture result available")
    return deps.last_result.to_json()
