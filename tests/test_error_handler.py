"""Tests for the error taxonomy and API error responses."""

import json

import pytest

from capture_config import AppDefaults, CaptureConfig, CaptureDelays, load_defaults_from_env
from utils.error_handler import (
    CaptureCancelledError,
    CaptureEnvironmentError,
    CaptureInProgressError,
    CaptureTimeoutError,
    ErrorContext,
    HashTimeoutError,
    StitchingError,
    ViewportCaptureError,
    classify_error,
    get_user_friendly_message,
    handle_api_error,
)


class TestClassifyError:
    @pytest.mark.parametrize("message, expected", [
        ("Capture already in progress", "capture_in_progress"),
        ("Capture cancelled by user", "cancelled"),
        ("Viewport capture timed out after 30000ms", "timeout"),
        ("Hash generation failed", "hashing"),
        ("Canvas unavailable for 800x900000px image", "stitching"),
        ("Viewport capture failed after 3 attempts", "viewport_capture"),
        ("Page was closed during capture", "environment"),
        ("net::ERR_NAME_NOT_RESOLVED", "navigation_failed"),
        ("something odd", ""),
    ])
    def test_classify(self, message, expected):
        assert classify_error(message) == expected


class TestHandleApiError:
    @pytest.mark.parametrize("error, status_code", [
        (CaptureInProgressError("https://example.com"), 409),
        (ValueError("bad url"), 400),
        (CaptureEnvironmentError("Page was closed"), 503),
        (CaptureTimeoutError("slow", timeout_ms=100), 504),
        (HashTimeoutError(5000), 504),
        (StitchingError("boom"), 500),
    ])
    def test_status_codes(self, error, status_code):
        assert handle_api_error(error).status_code == status_code

    def test_body(self):
        response = handle_api_error(ViewportCaptureError("Viewport capture failed", scroll_y=600, attempts=3))
        body = json.loads(response.body)

        assert body["success"] is False
        assert body["error"]["code"] == "VIEWPORT_CAPTURE_ERROR"
        assert body["error"]["details"] == {"scroll_y": 600, "attempts": 3}
        assert "hint" in body["error"]


class TestMessages:
    def test_cancelled(self):
        assert get_user_friendly_message(CaptureCancelledError()) == "The capture was cancelled."

    def test_unknown(self):
        assert get_user_friendly_message(KeyError("x")).startswith("An unexpected error occurred")


class TestErrorContext:
    def test_wraps_foreign_errors(self):
        with pytest.raises(StitchingError) as exc_info:
            with ErrorContext("encoding", raise_as=StitchingError):
                raise OSError("disk full")
        assert "Failed encoding" in str(exc_info.value)

    def test_keeps_own_errors(self):
        with pytest.raises(CaptureEnvironmentError):
            with ErrorContext("encoding", raise_as=StitchingError):
                raise CaptureEnvironmentError("no canvas")


class TestConfig:
    def test_defaults(self):
        config = CaptureConfig()
        assert config.format == "png"
        assert config.max_capture_height == 120000
        assert config.infinite_scroll_max_height == 60000
        assert config.delays.max_capture_retries == 3

    def test_immediate_delays_keep_retries(self):
        delays = CaptureDelays.immediate()
        assert delays.render_after_scroll == 0
        assert delays.min_between_captures == 0
        assert delays.max_capture_retries == 3
        assert delays.stability_checks_required == 3

    def test_camel_case_aliases(self):
        config = CaptureConfig.model_validate({"viewportTimeout": 100, "hideOverlays": True})
        assert config.viewport_timeout == 100
        assert config.hide_overlays is True

    def test_defaults_from_env(self, monkeypatch):
        monkeypatch.setenv("SERVER_PORT", "8080")
        monkeypatch.setenv("BROWSER_HEADLESS", "false")
        defaults = load_defaults_from_env()

        assert defaults.SERVER_PORT == 8080
        assert defaults.BROWSER_HEADLESS is False
        assert defaults.VIEWPORT_WIDTH == AppDefaults.VIEWPORT_WIDTH
