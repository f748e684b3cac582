"""Shared fixtures for the capture engine tests."""

import pytest

from capture_config import CaptureConfig, CaptureDelays
from capture_models import CaptureSession
from ss_modules.timing import CancellationToken, now_ms


@pytest.fixture
def fast_config():
    """Default policy with every wait zeroed"""
    return CaptureConfig(delays=CaptureDelays.immediate())


@pytest.fixture
def session():
    return CaptureSession(
        url="https://example.com/article",
        title="Example",
        started_at=0.0,
        started_at_ms=now_ms(),
        cancel_token=CancellationToken(),
    )
