"""
Viewport planning: which scroll offsets to visit and how much of the page
to capture.
"""

import logging
import math

from capture_config import CaptureConfig
from capture_models import TruncationReason, ViewportPlan

logger = logging.getLogger(__name__)


class ViewportPlanner:
    """
    Produces the ordered list of scroll offsets for a capture.

    Offsets step by one full viewport height from 0, so consecutive tiles
    abut without overlap. Sticky elements are neutralized before tiles 1..n
    are taken, which is what makes overlap trimming unnecessary.
    """

    def effective_max_height(self, policy: CaptureConfig, infinite_scroll: bool) -> int:
        return policy.infinite_scroll_max_height if infinite_scroll else policy.max_capture_height

    def plan(
        self,
        total_height: int,
        viewport_height: int,
        policy: CaptureConfig,
        infinite_scroll: bool = False,
    ) -> ViewportPlan:
        if viewport_height <= 0:
            raise ValueError(f"viewport_height must be positive, got {viewport_height}")

        total_height = max(0, int(total_height))
        max_height = self.effective_max_height(policy, infinite_scroll)
        capped_height = min(total_height, max_height)

        truncation_reason = None
        if capped_height < total_height:
            truncation_reason = (
                TruncationReason.INFINITE_SCROLL_DETECTED
                if infinite_scroll
                else TruncationReason.MAX_HEIGHT_EXCEEDED
            )
            logger.info(
                f"[ViewportPlanner] Page {total_height}px capped to {capped_height}px ({truncation_reason.value})"
            )

        if capped_height == 0:
            # Empty document still yields the top viewport
            offsets = [0]
        else:
            count = math.ceil(capped_height / viewport_height)
            offsets = [i * viewport_height for i in range(count)]

        logger.debug(f"[ViewportPlanner] {len(offsets)} viewports of {viewport_height}px for {capped_height}px")

        return ViewportPlan(
            offsets=offsets,
            capped_height=capped_height,
            truncation_reason=truncation_reason,
        )
