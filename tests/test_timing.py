"""Tests for timing helpers: rate limiting, lazy timeouts, stability, progress."""

import pytest

from capture_config import CaptureDelays
from capture_models import CaptureStage
from ss_modules.timing import (
    CancellationToken,
    CaptureRateLimiter,
    ProgressTracker,
    calculate_lazy_timeout,
    wait_for_stability,
)
from tests.fakes import FakeClock, FakePage
from utils.error_handler import CaptureCancelledError


class TestLazyTimeout:
    @pytest.mark.parametrize("effective_type, expected", [
        ("4g", 3000),
        ("3g", 12000),
        ("2g", 20000),
        ("slow-2g", 24000),
        (None, 8000),
        ("wifi", 8000),
    ])
    def test_scaled_by_connection(self, effective_type, expected):
        assert calculate_lazy_timeout(8000, effective_type) == expected

    def test_fast_connection_never_raises_base(self):
        assert calculate_lazy_timeout(1000, "4g") == 1000


class TestCancellationToken:
    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()

        token.cancel()
        assert token.is_cancelled is True
        with pytest.raises(CaptureCancelledError) as exc_info:
            token.raise_if_cancelled(tiles_captured=4)
        assert exc_info.value.details["tiles_captured"] == 4


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_first_call_does_not_wait(self, monkeypatch):
        slept = []

        async def fake_sleep(ms):
            slept.append(ms)

        monkeypatch.setattr("ss_modules.timing.sleep_ms", fake_sleep)
        await CaptureRateLimiter(600, FakeClock()).wait()
        assert slept == []

    @pytest.mark.asyncio
    async def test_waits_remaining_interval(self, monkeypatch):
        slept = []

        async def fake_sleep(ms):
            slept.append(ms)

        monkeypatch.setattr("ss_modules.timing.sleep_ms", fake_sleep)
        clock = FakeClock()
        limiter = CaptureRateLimiter(600, clock)
        limiter.mark()
        clock.advance(0.2)
        await limiter.wait()

        assert slept == [pytest.approx(400)]

    @pytest.mark.asyncio
    async def test_no_wait_after_interval(self, monkeypatch):
        slept = []

        async def fake_sleep(ms):
            slept.append(ms)

        monkeypatch.setattr("ss_modules.timing.sleep_ms", fake_sleep)
        clock = FakeClock()
        limiter = CaptureRateLimiter(600, clock)
        limiter.mark()
        clock.advance(1.0)
        await limiter.wait()

        assert slept == []


class TestStability:
    @pytest.mark.asyncio
    async def test_stable_page(self):
        delays = CaptureDelays(stability_check_interval=0, max_stability_wait=5000)
        assert await wait_for_stability(FakePage(), delays) is True

    @pytest.mark.asyncio
    async def test_gives_up_when_height_keeps_changing(self):
        clock = FakeClock()
        page = FakePage()
        original = page.get_page_height

        async def growing():
            page.page_height += 100
            clock.advance(1)
            return await original()

        page.get_page_height = growing
        delays = CaptureDelays(stability_check_interval=0, max_stability_wait=3000)
        assert await wait_for_stability(page, delays, clock) is False

    @pytest.mark.asyncio
    async def test_zero_wait_returns_immediately(self):
        assert await wait_for_stability(FakePage(), CaptureDelays.immediate()) is False


class TestProgressTracker:
    @pytest.mark.asyncio
    async def test_percent_never_decreases(self):
        tracker = ProgressTracker()
        await tracker.report(CaptureStage.CAPTURING, 40, "a")
        progress = await tracker.report(CaptureStage.FAILED, 10, "b")

        assert progress.percent == 40
        assert tracker.last is progress

    @pytest.mark.asyncio
    async def test_percent_clamped(self):
        progress = await ProgressTracker().report(CaptureStage.HASHING, 150, "done")
        assert progress.percent == 100
