"""
Timing helpers for the capture loop: delays, cancellation, rate limiting,
adaptive lazy-image timeouts, height stability and progress reporting.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Optional

from capture_config import CaptureDelays
from capture_models import CaptureProgress, CaptureStage
from utils.error_handler import CaptureCancelledError

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Wall clock in epoch milliseconds"""
    return int(time.time() * 1000)


async def sleep_ms(ms: float):
    if ms > 0:
        await asyncio.sleep(ms / 1000)


class CancellationToken:
    """Cooperative cancellation flag, polled by the capture loop"""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self, tiles_captured: int = 0):
        if self._cancelled:
            raise CaptureCancelledError(tiles_captured=tiles_captured)


class CaptureRateLimiter:
    """Keeps at least `min_interval_ms` between two capture requests"""

    def __init__(self, min_interval_ms: int, clock: Callable[[], float] = time.monotonic):
        self.min_interval_ms = min_interval_ms
        self.clock = clock
        self.last_capture_at: Optional[float] = None

    async def wait(self):
        if self.last_capture_at is None:
            return
        elapsed_ms = (self.clock() - self.last_capture_at) * 1000
        remaining = self.min_interval_ms - elapsed_ms
        if remaining > 0:
            logger.debug(f"[RateLimiter] Waiting {remaining:.0f}ms before next capture")
            await sleep_ms(remaining)

    def mark(self):
        self.last_capture_at = self.clock()


def calculate_lazy_timeout(base_timeout_ms: int, effective_type: Optional[str]) -> int:
    """Scale the lazy-image wait by the reported connection speed"""
    if effective_type == "4g":
        return min(base_timeout_ms, 3000)
    if effective_type == "3g":
        return round(base_timeout_ms * 1.5)
    if effective_type == "2g":
        return round(base_timeout_ms * 2.5)
    if effective_type == "slow-2g":
        return round(base_timeout_ms * 3)
    return base_timeout_ms


async def wait_for_stability(page, delays: CaptureDelays, clock: Callable[[], float] = time.monotonic) -> bool:
    """
    Poll document height until it stops changing.

    Stable means `stability_checks_required` consecutive identical readings.
    Gives up after `max_stability_wait` ms and returns False.
    """
    deadline = clock() + delays.max_stability_wait / 1000
    last_height = await page.get_page_height()
    unchanged = 0

    while unchanged < delays.stability_checks_required:
        if clock() >= deadline:
            logger.info(f"[Stability] Height still changing after {delays.max_stability_wait}ms (last={last_height}px)")
            return False
        await sleep_ms(delays.stability_check_interval)
        height = await page.get_page_height()
        if height == last_height:
            unchanged += 1
        else:
            unchanged = 0
            last_height = height

    return True


class ProgressTracker:
    """
    Forwards progress to the sink while keeping percent monotonic.

    The sink may be a plain function or a coroutine function. Sink failures
    are logged and never interrupt the capture.
    """

    def __init__(self, callback: Optional[Callable[[CaptureProgress], Any]] = None):
        self.callback = callback
        self.percent = 0
        self.last: Optional[CaptureProgress] = None

    async def report(
        self,
        stage: CaptureStage,
        percent: int,
        message: str,
        current_tile: Optional[int] = None,
        total_tiles: Optional[int] = None,
    ) -> CaptureProgress:
        self.percent = max(self.percent, min(100, percent))
        progress = CaptureProgress(
            stage=stage,
            percent=self.percent,
            message=message,
            current_tile=current_tile,
            total_tiles=total_tiles,
        )
        self.last = progress

        if self.callback is not None:
            try:
                outcome = self.callback(progress)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(f"[Progress] Progress callback failed: {e}")

        return progress
