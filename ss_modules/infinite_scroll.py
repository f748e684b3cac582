"""
Infinite scroll detection.

Force-scrolls forward a few viewports in small steps, so intersection-based
lazy loaders fire, then measures how much the document grew.
"""

import logging
import time
from typing import Callable

from capture_config import CaptureConfig
from capture_models import InfiniteScrollResult
from ss_modules.timing import sleep_ms, wait_for_stability, calculate_lazy_timeout

logger = logging.getLogger(__name__)


class InfiniteScrollDetector:
    """Classifies a page as fixed-length or infinitely growing"""

    def __init__(self, page, config: CaptureConfig, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            page: PageInspector for the page under capture
            config: capture configuration (threshold, viewports, delays)
            clock: monotonic clock used by the stability wait
        """
        self.page = page
        self.config = config
        self.delays = config.delays
        self.clock = clock

    @staticmethod
    def growth_ratio(initial_height: int, final_height: int) -> float:
        if initial_height <= 0:
            return 0.0
        return (final_height - initial_height) / initial_height

    async def detect(self) -> InfiniteScrollResult:
        """
        Probe the page for infinite scroll.

        Always leaves the page scrolled to the top, even if probing fails.
        """
        threshold = self.config.infinite_scroll_growth_threshold
        try:
            initial_height = await self.page.get_page_height()
            _, viewport_height = await self.page.get_viewport_size()

            target = min(viewport_height * self.config.infinite_scroll_detection_viewports, initial_height)
            steps = max(1, self.delays.detection_steps)
            logger.info(
                f"[InfiniteScrollDetector] Probing: initial={initial_height}px, target={target}px in {steps} steps"
            )

            for step in range(1, steps + 1):
                await self.page.scroll_to(round(target * step / steps))
                await sleep_ms(self.delays.detection_step_pause)

            lazy_timeout = calculate_lazy_timeout(
                self.delays.lazy_images_timeout, await self.page.get_connection_type()
            )
            pending = await self.page.wait_for_lazy_images(lazy_timeout)
            if pending:
                logger.debug(f"[InfiniteScrollDetector] {pending} images still loading after {lazy_timeout}ms")

            await sleep_ms(self.delays.detection_settle)
            await wait_for_stability(self.page, self.delays, self.clock)

            final_height = await self.page.get_page_height()
            ratio = self.growth_ratio(initial_height, final_height)
            is_infinite = ratio > threshold

            logger.info(
                f"[InfiniteScrollDetector] initial={initial_height}px final={final_height}px "
                f"growth={ratio:.1%} infinite={is_infinite}"
            )

            return InfiniteScrollResult(
                is_infinite=is_infinite,
                initial_height=initial_height,
                final_height=final_height,
                growth_ratio=ratio,
            )
        finally:
            await self.page.scroll_to(0)
            await self.page.wait_for_render()
