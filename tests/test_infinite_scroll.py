"""Tests for InfiniteScrollDetector."""

import pytest

from ss_modules.infinite_scroll import InfiniteScrollDetector
from tests.fakes import FakePage


class TestGrowthRatio:
    def test_growth(self):
        assert InfiniteScrollDetector.growth_ratio(1000, 1500) == 0.5

    def test_no_growth(self):
        assert InfiniteScrollDetector.growth_ratio(1000, 1000) == 0.0

    def test_zero_initial_height(self):
        assert InfiniteScrollDetector.growth_ratio(0, 500) == 0.0


class TestDetect:
    """Detection probes the page and always returns to the top."""

    @pytest.mark.asyncio
    async def test_static_page_is_not_infinite(self, fast_config):
        page = FakePage(page_height=3000)
        result = await InfiniteScrollDetector(page, fast_config).detect()

        assert result.is_infinite is False
        assert result.initial_height == 3000
        assert result.final_height == 3000
        assert page.scroll_y == 0

    @pytest.mark.asyncio
    async def test_growing_page_is_infinite(self, fast_config):
        page = FakePage(page_height=3000, grows_to=4000)
        result = await InfiniteScrollDetector(page, fast_config).detect()

        assert result.is_infinite is True
        assert result.growth_ratio == pytest.approx(1 / 3)
        assert page.scroll_y == 0

    @pytest.mark.asyncio
    async def test_growth_at_threshold_is_not_infinite(self, fast_config):
        page = FakePage(page_height=2000, grows_to=2300)
        result = await InfiniteScrollDetector(page, fast_config).detect()

        assert result.growth_ratio == pytest.approx(0.15)
        assert result.is_infinite is False

    @pytest.mark.asyncio
    async def test_probe_scrolls_in_steps(self, fast_config):
        page = FakePage(page_height=10000, viewport=(800, 600))
        await InfiniteScrollDetector(page, fast_config).detect()

        # 5 steps towards 5 viewports, then back to the top
        assert page.scroll_history == [600, 1200, 1800, 2400, 3000, 0]

    @pytest.mark.asyncio
    async def test_returns_to_top_when_probe_fails(self, fast_config):
        page = FakePage(page_height=3000)
        page.scroll_y = 900

        async def broken(timeout_ms):
            raise RuntimeError("page crashed")

        page.wait_for_lazy_images = broken

        with pytest.raises(RuntimeError):
            await InfiniteScrollDetector(page, fast_config).detect()
        assert page.scroll_y == 0
