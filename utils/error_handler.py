"""
Centralized Error Handling Module for Evidence Stitcher

Provides the capture error taxonomy, consistent API error responses,
logging, and user-friendly messages.
"""

import logging
import traceback
from typing import Dict, Any, Optional
from fastapi import status
from fastapi.responses import JSONResponse

# Configure logging
logger = logging.getLogger("evidence_stitcher")


# =============================================================================
# ERROR HINTS - User-friendly troubleshooting suggestions
# =============================================================================

ERROR_HINTS = {
    "capture_in_progress": {
        "message": "A capture is already running",
        "hint": "Wait for the current capture to finish or cancel it before starting a new one.",
        "docs": "/docs/capture-sessions"
    },
    "viewport_capture": {
        "message": "Failed to capture the visible viewport",
        "hint": "The browser tab may be hidden, minimized or rate limited. Keep the page visible and retry.",
        "docs": "/docs/viewport-capture"
    },
    "environment": {
        "message": "Capture environment unavailable",
        "hint": "The browser page was closed or the capture primitive is not available. Restart the capture service.",
        "docs": "/docs/environment"
    },
    "timeout": {
        "message": "Capture step timed out",
        "hint": "Slow pages may need a larger pageLoadTimeout or viewportTimeout in the capture config.",
        "docs": "/docs/configuration"
    },
    "cancelled": {
        "message": "Capture cancelled",
        "hint": "The capture was cancelled by the user. Partial evidence, if any, is attached to the result.",
        "docs": "/docs/cancellation"
    },
    "hashing": {
        "message": "Failed to compute content hash",
        "hint": "Very large pages can exceed hashTimeout. Increase it or lower maxCaptureHeight.",
        "docs": "/docs/integrity"
    },
    "stitching": {
        "message": "Failed to stitch viewport tiles",
        "hint": "The final image may exceed available memory. Lower maxCaptureHeight and retry.",
        "docs": "/docs/stitching"
    },
    "lockdown": {
        "message": "Failed to isolate the page before capture",
        "hint": "Another tool may be controlling the page. Close other automation sessions and retry.",
        "docs": "/docs/lockdown"
    },
    "navigation_failed": {
        "message": "Failed to open the requested page",
        "hint": "Check that the URL is reachable from the capture host and uses http or https.",
        "docs": "/docs/navigation"
    },
}


def get_error_with_hint(error_type: str, original_message: str = "") -> dict:
    """
    Get error message with troubleshooting hint.

    Args:
        error_type: Key from ERROR_HINTS dictionary
        original_message: Original error message to include

    Returns:
        Dict with error, hint, and optional docs link
    """
    hint_info = ERROR_HINTS.get(error_type, {})
    return {
        "error": original_message or hint_info.get("message", "Unknown error"),
        "hint": hint_info.get("hint", ""),
        "docs": hint_info.get("docs", "")
    }


def classify_error(error_message: str) -> str:
    """
    Classify an error message to determine the appropriate hint type.

    Args:
        error_message: The error message to classify

    Returns:
        Error type key for ERROR_HINTS lookup
    """
    msg = error_message.lower()

    if "already" in msg and ("capturing" in msg or "in progress" in msg):
        return "capture_in_progress"

    if "cancel" in msg:
        return "cancelled"

    if "timeout" in msg or "timed out" in msg:
        return "timeout"

    if "hash" in msg:
        return "hashing"

    if "stitch" in msg or "canvas" in msg:
        return "stitching"

    if "lockdown" in msg:
        return "lockdown"

    if "viewport" in msg or "screenshot" in msg:
        return "viewport_capture"

    if "closed" in msg or "unavailable" in msg or "not available" in msg:
        return "environment"

    if "navigat" in msg or "net::" in msg:
        return "navigation_failed"

    # Default - no specific hint
    return ""


class EvidenceStitcherError(Exception):
    """Base exception for all Evidence Stitcher errors"""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class CaptureInProgressError(EvidenceStitcherError):
    """Raised by callers that need an exception for an already running session"""

    def __init__(self, url: Optional[str] = None):
        super().__init__(
            "Capture already in progress", code="CAPTURE_IN_PROGRESS", details={"url": url}
        )


class ViewportCaptureError(EvidenceStitcherError):
    """Raised when a viewport capture keeps failing after all retries"""

    def __init__(self, message: str, scroll_y: Optional[int] = None, attempts: int = 0):
        super().__init__(
            message,
            code="VIEWPORT_CAPTURE_ERROR",
            details={"scroll_y": scroll_y, "attempts": attempts},
        )


class CaptureTimeoutError(EvidenceStitcherError):
    """Raised when a single bounded wait exceeds its timeout"""

    def __init__(self, message: str, timeout_ms: Optional[int] = None):
        super().__init__(
            message, code="CAPTURE_TIMEOUT", details={"timeout_ms": timeout_ms}
        )


class CaptureEnvironmentError(EvidenceStitcherError):
    """Raised when the capture primitive or image canvas is unavailable"""

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(
            message, code="CAPTURE_ENVIRONMENT_ERROR", details={"resource": resource}
        )


class CaptureCancelledError(EvidenceStitcherError):
    """Raised when a cancellation token is observed"""

    def __init__(self, tiles_captured: int = 0):
        super().__init__(
            "Capture cancelled by user",
            code="CAPTURE_CANCELLED",
            details={"tiles_captured": tiles_captured},
        )


class HashGenerationError(EvidenceStitcherError):
    """Raised when a content hash cannot be computed"""

    def __init__(self, message: str, content_type: Optional[str] = None):
        super().__init__(
            message, code="HASH_GENERATION_ERROR", details={"content_type": content_type}
        )


class HashTimeoutError(HashGenerationError):
    """Raised when hashing exceeds the configured hash timeout"""

    def __init__(self, timeout_ms: int, content_type: Optional[str] = None):
        super().__init__(
            f"Hash generation timed out after {timeout_ms}ms", content_type=content_type
        )
        self.code = "HASH_TIMEOUT"
        self.details["timeout_ms"] = timeout_ms


class StickyHandlingError(EvidenceStitcherError):
    """Raised when sticky element handling is misused"""

    def __init__(self, message: str):
        super().__init__(message, code="STICKY_HANDLING_ERROR")


class IntegrityChainError(EvidenceStitcherError):
    """Raised when integrity snapshots are taken out of order"""

    def __init__(self, message: str):
        super().__init__(message, code="INTEGRITY_CHAIN_ERROR")


class StitchingError(EvidenceStitcherError):
    """Raised when tiles cannot be composited"""

    def __init__(self, message: str, tiles: Optional[int] = None):
        super().__init__(message, code="STITCHING_ERROR", details={"tiles": tiles})


class LockdownError(EvidenceStitcherError):
    """Raised when the page lockdown collaborator refuses to activate"""

    def __init__(self, message: str):
        super().__init__(message, code="LOCKDOWN_ERROR")


def create_error_response(
    error: Exception,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    include_traceback: bool = False,
) -> JSONResponse:
    """
    Create a standardized error response

    Args:
        error: The exception that occurred
        status_code: HTTP status code
        include_traceback: Include full traceback in response (debug only)

    Returns:
        JSONResponse with error details
    """
    error_response = {
        "success": False,
        "error": {"message": str(error), "type": error.__class__.__name__},
    }

    if isinstance(error, EvidenceStitcherError):
        error_response["error"]["code"] = error.code
        error_response["error"]["details"] = error.details

    hint_type = classify_error(str(error))
    if hint_type:
        error_response["error"]["hint"] = get_error_with_hint(hint_type)["hint"]

    # Add traceback if requested (debug mode only)
    if include_traceback:
        error_response["error"]["traceback"] = traceback.format_exc()

    logger.error(f"{error.__class__.__name__}: {error}", exc_info=True)

    return JSONResponse(status_code=status_code, content=error_response)


def handle_api_error(error: Exception) -> JSONResponse:
    """
    Handle API errors with appropriate status codes

    Args:
        error: The exception to handle

    Returns:
        JSONResponse with appropriate status code
    """
    if isinstance(error, CaptureInProgressError):
        return create_error_response(error, status.HTTP_409_CONFLICT)

    elif isinstance(error, ValueError):
        return create_error_response(error, status.HTTP_400_BAD_REQUEST)

    elif isinstance(error, (CaptureEnvironmentError, LockdownError)):
        return create_error_response(error, status.HTTP_503_SERVICE_UNAVAILABLE)

    elif isinstance(error, (CaptureTimeoutError, HashTimeoutError)):
        return create_error_response(error, status.HTTP_504_GATEWAY_TIMEOUT)

    else:
        return create_error_response(error, status.HTTP_500_INTERNAL_SERVER_ERROR)


def get_user_friendly_message(error: Exception) -> str:
    """
    Get a user-friendly error message for frontend display

    Args:
        error: The exception

    Returns:
        User-friendly error message
    """
    if isinstance(error, CaptureInProgressError):
        return "A capture is already running. Please wait for it to finish."

    elif isinstance(error, ViewportCaptureError):
        return "Could not capture the visible part of the page after several attempts."

    elif isinstance(error, CaptureEnvironmentError):
        return "The browser capture environment is not available. Please reload the page and try again."

    elif isinstance(error, CaptureCancelledError):
        return "The capture was cancelled."

    elif isinstance(error, HashTimeoutError):
        return "Computing the evidence hash took too long. Try capturing a shorter page."

    elif isinstance(error, CaptureTimeoutError):
        return f"The page took too long to respond: {error.message}"

    elif isinstance(error, StitchingError):
        return f"Failed to assemble the full-page image: {error.message}"

    elif isinstance(error, LockdownError):
        return f"Could not isolate the page before capture: {error.message}"

    else:
        return f"An unexpected error occurred: {str(error)}"


def create_success_response(
    data: Any = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a standardized success response

    Args:
        data: The response data payload
        message: Optional success message

    Returns:
        Dict with success response format: {success: True, data: ..., message: ...}
    """
    response = {"success": True}

    if data is not None:
        response["data"] = data

    if message is not None:
        response["message"] = message

    return response


# Context manager for error handling
class ErrorContext:
    """
    Context manager for error handling

    Usage:
        with ErrorContext("stitching tiles", raise_as=StitchingError):
            # code that might fail
            pass
    """

    def __init__(self, operation: str, raise_as: type = EvidenceStitcherError):
        self.operation = operation
        self.raise_as = raise_as

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            logger.error(f"Error during {self.operation}: {exc_val}", exc_info=True)
            # Re-raise as EvidenceStitcherError
            if not isinstance(exc_val, EvidenceStitcherError):
                raise self.raise_as(f"Failed {self.operation}: {exc_val}") from exc_val
        return False  # Don't suppress exception
