"""
Evidence Stitcher - Page Capabilities

Narrow async interfaces the capture engine needs from a live page:
- ViewportCaptureProvider: rasterize the currently visible viewport
- PageInspector: query and mutate layout, scroll, wait for content

playwright_bridge.py implements both on a Playwright page; tests use
in-memory fakes.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from capture_models import DomElement, ElementRect, FixedElement, PageInfo


class ViewportCaptureProvider(ABC):
    """Returns the on-screen raster as encoded image bytes"""

    @abstractmethod
    async def capture(self) -> bytes:
        """
        Capture the visible viewport.

        Raises:
            CaptureEnvironmentError: capture primitive unavailable (not retried)
            Exception: any other failure is treated as transient
        """


class PageInspector(ABC):
    """DOM query/mutation capability used by the capture engine"""

    # =========================================================================
    # Fixed / sticky elements
    # =========================================================================

    @abstractmethod
    async def query_fixed_elements(self) -> List[FixedElement]:
        """Elements whose computed position is fixed or sticky, in document order"""

    @abstractmethod
    async def get_bounding_rect(self, element_id: str) -> ElementRect:
        """Current viewport-relative rect of an element"""

    @abstractmethod
    async def matches(self, element_id: str, selectors: List[str]) -> bool:
        """True if the element matches any of the CSS selectors"""

    @abstractmethod
    async def snapshot_style(self, element_id: str) -> Dict[str, Optional[str]]:
        """
        Snapshot everything needed to undo a style change.

        Must contain the raw inline `style` attribute under "style_attribute"
        (None when the attribute is absent) plus computed values for
        diagnostics.
        """

    @abstractmethod
    async def set_position(self, element_id: str, rect: ElementRect, z_index: int) -> None:
        """Pin the element with inline absolute positioning at `rect` (document coordinates)"""

    @abstractmethod
    async def hide(self, element_id: str) -> None:
        """Hide the element with inline visibility:hidden"""

    @abstractmethod
    async def restore(self, element_id: str, snapshot: Dict[str, Optional[str]]) -> None:
        """Put the element's inline style back exactly as snapshotted"""

    @abstractmethod
    async def capture_element(self, element_id: str) -> Optional[bytes]:
        """PNG raster of the element at its current on-screen position"""

    # =========================================================================
    # Scrolling and geometry
    # =========================================================================

    @abstractmethod
    async def scroll_to(self, y: int, smooth: bool = False) -> None:
        pass

    @abstractmethod
    async def get_scroll_position(self) -> int:
        pass

    @abstractmethod
    async def get_viewport_size(self) -> Tuple[int, int]:
        """(width, height) in CSS pixels"""

    @abstractmethod
    async def get_page_height(self) -> int:
        """Max of all document/body scroll, offset and client heights"""

    @abstractmethod
    async def lock_overflow(self) -> Dict[str, Any]:
        """Set body overflow-y visible and html overflow hidden; return previous values"""

    @abstractmethod
    async def restore_overflow(self, state: Dict[str, Any]) -> None:
        pass

    # =========================================================================
    # Waiting
    # =========================================================================

    @abstractmethod
    async def wait_for_render(self) -> None:
        """Resolve after the next painted frame"""

    @abstractmethod
    async def wait_for_lazy_images(self, timeout_ms: int) -> int:
        """Wait for in-viewport images to load; return how many were still pending"""

    @abstractmethod
    async def wait_for_resources(self, timeout_ms: int) -> Dict[str, bool]:
        """Wait for document ready, images and fonts; report which finished in time"""

    # =========================================================================
    # Page data
    # =========================================================================

    @abstractmethod
    async def get_dom_elements(self, include_invisible: bool = False) -> List[DomElement]:
        pass

    @abstractmethod
    async def get_connection_type(self) -> Optional[str]:
        """Network Information API effectiveType (4g, 3g, 2g, slow-2g) if known"""

    @abstractmethod
    async def get_page_info(self) -> PageInfo:
        pass

    @abstractmethod
    async def get_html(self) -> str:
        pass
