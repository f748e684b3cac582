"""
Evidence Stitcher - Screenshot Stitcher
Composites viewport tiles into one full-page raster:
1. Tiles are drawn at their scroll offset scaled by device pixel ratio
2. The header/footer captured once are composited at the top/bottom
3. The result is encoded losslessly (PNG) unless configured otherwise

Sticky elements are neutralized before tiles 1..n are captured, so tiles
abut exactly and need no overlap detection or edge blending.
"""

import io
import logging
import time
from typing import List, Optional

from PIL import Image, ImageDraw

from capture_models import ElementCapture, StickyHandlingResult, StitchResult, ViewportTile
from utils.error_handler import CaptureEnvironmentError, ErrorContext, StitchingError

logger = logging.getLogger(__name__)

PIL_FORMATS = {"png": "PNG", "jpeg": "JPEG", "webp": "WEBP"}


class ScreenshotStitcher:
    """
    Stitches viewport tiles together into a full-page screenshot
    """

    def __init__(self, image_format: str = "png", quality: int = 100, max_height_before_split: int = 50000):
        """
        Initialize screenshot stitcher

        Args:
            image_format: png, jpeg or webp
            quality: encoder quality for lossy formats
            max_height_before_split: final heights above this are logged as a warning
        """
        self.image_format = image_format
        self.quality = quality
        self.max_height_before_split = max_height_before_split

        # Composition styling for header/footer overlays
        self.overlay_alpha = 0.95  # Slight transparency keeps the composition auditable
        self.separator_color = (0, 0, 0, round(255 * 0.1))  # rgba(0,0,0,0.1)
        self.separator_width = 1

    def stitch(self, tiles: List[ViewportTile], sticky_result: Optional[StickyHandlingResult] = None) -> StitchResult:
        """
        Stitch tiles (ordered by scroll offset) into one image.

        Args:
            tiles: captured viewport tiles
            sticky_result: sticky handling outcome with optional header/footer rasters

        Returns:
            StitchResult with encoded bytes and physical pixel dimensions
        """
        if not tiles:
            raise StitchingError("No viewport tiles to stitch", tiles=0)

        start_time = time.time()

        # Single tile: nothing to composite
        if len(tiles) == 1:
            with ErrorContext("decoding single tile", raise_as=StitchingError):
                with Image.open(io.BytesIO(tiles[0].image_bytes)) as img:
                    width, height = img.size
            logger.info(f"[ScreenshotStitcher] Single tile {width}x{height}px returned unchanged")
            return StitchResult(image_bytes=tiles[0].image_bytes, width=width, height=height)

        with ErrorContext("decoding tiles", raise_as=StitchingError):
            images = [self._open(tile.image_bytes) for tile in tiles]

        first = tiles[0]
        dpr = images[0].width / first.width if first.width else 1.0
        last = tiles[-1]
        width = images[0].width
        total_height = round((last.scroll_offset_y + last.height) * dpr)

        logger.info(
            f"[ScreenshotStitcher] Stitching {len(tiles)} tiles -> {width}x{total_height}px (dpr={dpr:.2f})"
        )
        if total_height > self.max_height_before_split:
            logger.warning(
                f"[ScreenshotStitcher] Final image height {total_height}px exceeds "
                f"{self.max_height_before_split}px; some viewers may not open it"
            )

        canvas = self._new_canvas(width, total_height)

        for i, (tile, img) in enumerate(zip(tiles, images)):
            dest_y = round(tile.scroll_offset_y * dpr)
            canvas.paste(img.convert("RGB"), (0, dest_y))
            logger.debug(f"  Tile {i}: offset={tile.scroll_offset_y}px -> y={dest_y}px")

        if sticky_result is not None:
            if sticky_result.header_capture is not None:
                canvas = self._composite(canvas, sticky_result.header_capture, dpr, at_bottom=False)
            if sticky_result.footer_capture is not None:
                canvas = self._composite(canvas, sticky_result.footer_capture, dpr, at_bottom=True)

        with ErrorContext("encoding stitched image", raise_as=StitchingError):
            image_bytes = self._encode(canvas)

        logger.info(
            f"[ScreenshotStitcher] Stitched {width}x{total_height}px, {len(image_bytes)} bytes "
            f"in {int((time.time() - start_time) * 1000)}ms"
        )
        return StitchResult(image_bytes=image_bytes, width=width, height=total_height)

    def _open(self, image_bytes: bytes) -> Image.Image:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
        return img

    def _new_canvas(self, width: int, height: int) -> Image.Image:
        try:
            return Image.new("RGB", (width, height), (255, 255, 255))
        except (MemoryError, ValueError) as e:
            raise CaptureEnvironmentError(
                f"Canvas unavailable for {width}x{height}px image: {e}", resource="canvas"
            ) from e

    def _composite(self, canvas: Image.Image, capture: ElementCapture, dpr: float, at_bottom: bool) -> Image.Image:
        """Overlay a header/footer raster with slight transparency and a separator line"""
        try:
            overlay_img = self._open(capture.image_bytes).convert("RGBA")
        except (OSError, ValueError) as e:
            logger.warning(f"[ScreenshotStitcher] Skipping {capture.classification} composition: {e}")
            return canvas

        alpha = overlay_img.getchannel("A").point(lambda a: round(a * self.overlay_alpha))
        overlay_img.putalpha(alpha)

        x = round(capture.rect.left * dpr)
        y = canvas.height - overlay_img.height if at_bottom else 0
        y = max(0, y)

        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        layer.paste(overlay_img, (x, y))

        draw = ImageDraw.Draw(layer)
        line_y = y - 1 if at_bottom else y + overlay_img.height
        line_y = min(max(0, line_y), canvas.height - 1)
        draw.line([(0, line_y), (canvas.width, line_y)], fill=self.separator_color, width=self.separator_width)

        composed = Image.alpha_composite(canvas.convert("RGBA"), layer).convert("RGB")
        logger.info(
            f"[ScreenshotStitcher] Composited {capture.classification} {overlay_img.width}x{overlay_img.height}px at y={y}"
        )
        return composed

    def _encode(self, canvas: Image.Image) -> bytes:
        pil_format = PIL_FORMATS.get(self.image_format, "PNG")
        buffer = io.BytesIO()
        if pil_format == "PNG":
            canvas.save(buffer, format=pil_format)
        else:
            canvas.save(buffer, format=pil_format, quality=self.quality)
        return buffer.getvalue()
