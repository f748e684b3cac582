"""
Evidence Stitcher - Capture Orchestrator

Drives one full-page capture through its stages:
initializing -> lockdown -> waiting_resources -> capturing -> stitching -> hashing

Later stages (timestamp, uploading, opening_preview, complete) belong to
downstream collaborators that consume the CaptureResult and keep reporting
through the same progress callback.
"""

import asyncio
import base64
import io
import logging
import time
import traceback
import uuid
from typing import Any, Callable, Optional, Tuple

from PIL import Image

from capture_config import CaptureConfig
from capture_models import (
    CaptureMetadata,
    CaptureProgress,
    CaptureResult,
    CaptureScope,
    CaptureSession,
    CaptureStage,
    DualModeCapture,
    DualModeComparison,
    EnhancedCapture,
    InfiniteScrollResult,
    PageInfo,
    RawCapture,
    StitchResult,
    TruncationReason,
    ViewportPlan,
    ViewportTile,
)
from hash_service import HashService
from screenshot_stitcher import ScreenshotStitcher
from ss_modules.compare import top_viewport_similarity
from ss_modules.infinite_scroll import InfiniteScrollDetector
from ss_modules.integrity import IntegrityHashChain
from ss_modules.planner import ViewportPlanner
from ss_modules.sticky import StickyElementHandler
from ss_modules.timing import (
    CancellationToken,
    CaptureRateLimiter,
    ProgressTracker,
    calculate_lazy_timeout,
    now_ms,
    sleep_ms,
    wait_for_stability,
)
from utils.error_handler import (
    CaptureCancelledError,
    CaptureEnvironmentError,
    CaptureTimeoutError,
    EvidenceStitcherError,
    LockdownError,
    StickyHandlingError,
    ViewportCaptureError,
    get_user_friendly_message,
)

logger = logging.getLogger(__name__)

TRUNCATION_LABELS = {
    TruncationReason.INFINITE_SCROLL_DETECTED.value: "infinite scroll page",
    TruncationReason.MAX_HEIGHT_EXCEEDED.value: "height limit exceeded",
    TruncationReason.TIMEOUT.value: "time limit reached",
    TruncationReason.CANCELLED.value: "cancelled",
}


class CaptureOrchestrator:
    """
    Full-page capture state machine.

    One orchestrator serves one page. Sessions are mutually exclusive: a
    capture requested while another runs is rejected with a typed result.
    """

    def __init__(
        self,
        page,
        capture_provider,
        config: Optional[CaptureConfig] = None,
        hash_service: Optional[HashService] = None,
        lockdown=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            page: PageInspector for the page under capture
            capture_provider: ViewportCaptureProvider returning the visible raster
            config: capture options (defaults apply when omitted)
            hash_service: hashing backend (built from config.hash_timeout when omitted)
            lockdown: optional collaborator with async activate()/deactivate()
            clock: monotonic clock in seconds
        """
        self.page = page
        self.capture_provider = capture_provider
        self.config = config or CaptureConfig()
        self.delays = self.config.delays
        self.hash_service = hash_service or HashService(self.config.hash_timeout)
        self.lockdown = lockdown
        self.clock = clock

        self.planner = ViewportPlanner()
        self.detector = InfiniteScrollDetector(page, self.config, clock)
        self.sticky_handler = StickyElementHandler(page, hide_overlays=self.config.hide_overlays)
        self.integrity = IntegrityHashChain(page, self.hash_service)
        self.stitcher = ScreenshotStitcher(
            image_format=self.config.format,
            quality=self.config.quality,
            max_height_before_split=self.config.max_height_before_split,
        )

        self.is_capturing = False
        self.progress = ProgressTracker()
        self._session: Optional[CaptureSession] = None

    @property
    def last_progress(self) -> Optional[CaptureProgress]:
        return self.progress.last

    def cancel(self) -> bool:
        """Request cooperative cancellation of the running session"""
        if self._session is None:
            return False
        self._session.cancel_token.cancel()
        logger.info("[CaptureOrchestrator] Cancellation requested")
        return True

    async def capture(self, progress_callback: Optional[Callable[[CaptureProgress], Any]] = None) -> CaptureResult:
        """
        Capture the full page.

        Returns:
            CaptureResult. Failures are reported in the result (success=False)
            after the page has been restored; nothing is raised.
        """
        if self.is_capturing:
            logger.warning("[CaptureOrchestrator] Capture already in progress, rejecting new request")
            return CaptureResult(
                success=False,
                stage=CaptureStage.FAILED,
                error="Capture already in progress",
                error_code="CAPTURE_IN_PROGRESS",
            )

        self.is_capturing = True
        tracker = ProgressTracker(progress_callback)
        self.progress = tracker
        session = CaptureSession(
            url="",
            title="",
            started_at=self.clock(),
            started_at_ms=now_ms(),
            cancel_token=CancellationToken(),
        )
        session.rate_limiter = CaptureRateLimiter(self.delays.min_between_captures, self.clock)
        self._session = session
        lockdown_active = False

        try:
            info = await self.page.get_page_info()
            session.url, session.title = info.url, info.title
            session.original_scroll = await self.page.get_scroll_position()
            logger.info(f"[CaptureOrchestrator] Starting capture of {session.url}")
            await self._set_stage(session, tracker, CaptureStage.INITIALIZING, 0, "Preparing capture...")

            # === STEP 1: Lockdown ===
            logger.info("  STEP 1: Isolating page...")
            await self._set_stage(session, tracker, CaptureStage.LOCKDOWN, 5, "Isolating page...")
            if self.lockdown is not None:
                activated = await self.lockdown.activate()
                if activated is False:
                    raise LockdownError("Lockdown collaborator refused to activate")
                lockdown_active = True

            # === STEP 2: Original state hash, before anything is touched ===
            logger.info("  STEP 2: Hashing original DOM state...")
            await self.integrity.snapshot_before(session)

            # === STEP 3: Resources ===
            logger.info("  STEP 3: Waiting for resources...")
            await self._set_stage(session, tracker, CaptureStage.WAITING_RESOURCES, 10, "Loading resources...")
            await self._wait_for_resources()

            # === STEP 4: Raw capture for dual mode ===
            if self.config.format == "png":
                logger.info("  STEP 4: Capturing raw viewport...")
                await self._capture_raw(session)

            # === STEP 5: Viewports ===
            logger.info("  STEP 5: Capturing viewports...")
            await self._set_stage(session, tracker, CaptureStage.CAPTURING, 20, "Detecting page length...")
            await self._capture_all_viewports(session, tracker)

            if not session.tiles:
                session.cancel_token.raise_if_cancelled(tiles_captured=0)
                raise ViewportCaptureError("No viewport was captured")

            # === STEP 6: Stitch ===
            logger.info(f"  STEP 6: Stitching {len(session.tiles)} tiles...")
            await self._set_stage(session, tracker, CaptureStage.STITCHING, 65, "Processing image...")
            stitched = await asyncio.to_thread(self.stitcher.stitch, session.tiles, session.sticky_result)
            enhanced_at = now_ms()

            # === STEP 7: Hashes ===
            logger.info("  STEP 7: Hashing...")
            await self._set_stage(session, tracker, CaptureStage.HASHING, 75, "Generating SHA-256 hashes...")
            result = await self._build_result(session, info, stitched, enhanced_at)

            cancelled = session.scope.truncation_reason == TruncationReason.CANCELLED.value
            if cancelled:
                session.stage = CaptureStage.CANCELLED
                result.success = False
                result.stage = CaptureStage.CANCELLED
                result.error = get_user_friendly_message(CaptureCancelledError(len(session.tiles)))
                result.error_code = "CAPTURE_CANCELLED"
                await tracker.report(CaptureStage.CANCELLED, tracker.percent, self._completion_message(session.scope))
            else:
                await tracker.report(CaptureStage.HASHING, 75, self._completion_message(session.scope))

            result.duration_ms = self._elapsed_ms(session)
            logger.info(
                f"[CaptureOrchestrator] Capture finished: {result.width}x{result.height}px, "
                f"{len(session.tiles)} tiles, hash={result.image_hash[:16]}..., {result.duration_ms}ms"
            )
            return result

        except CaptureCancelledError as e:
            session.stage = CaptureStage.CANCELLED
            logger.info(f"[CaptureOrchestrator] Capture cancelled after {self._elapsed_ms(session)}ms")
            await tracker.report(CaptureStage.CANCELLED, tracker.percent, "Capture cancelled")
            return self._failure_result(session, e, CaptureStage.CANCELLED)

        except Exception as e:
            session.stage = CaptureStage.FAILED
            logger.error(f"[CaptureOrchestrator] Capture failed: {e}", exc_info=True)
            await tracker.report(CaptureStage.FAILED, tracker.percent, get_user_friendly_message(e))
            return self._failure_result(session, e, CaptureStage.FAILED)

        finally:
            await self._cleanup(session)
            if lockdown_active:
                try:
                    await self.lockdown.deactivate()
                except Exception as e:
                    logger.warning(f"[CaptureOrchestrator] Lockdown deactivation failed: {e}")
            self.is_capturing = False
            self._session = None
            logger.info(f"[CaptureOrchestrator] Cleanup complete ({self._elapsed_ms(session)}ms total)")

    # =========================================================================
    # Stages
    # =========================================================================

    async def _set_stage(self, session, tracker, stage: CaptureStage, percent: int, message: str):
        session.stage = stage
        await tracker.report(stage, percent, message)

    async def _wait_for_resources(self):
        timeout_ms = self.config.page_load_timeout
        try:
            status = await asyncio.wait_for(
                self.page.wait_for_resources(timeout_ms),
                timeout=timeout_ms / 1000 + 1,
            )
            logger.info(f"[CaptureOrchestrator] Resources: {status}")
        except asyncio.TimeoutError:
            logger.warning(f"[CaptureOrchestrator] Resources not ready after {timeout_ms}ms, continuing")

        stable = await wait_for_stability(self.page, self.delays, self.clock)
        logger.debug(f"[CaptureOrchestrator] Layout stable: {stable}")

    async def _capture_raw(self, session: CaptureSession):
        """Top viewport before any DOM change. Failure only disables dual mode."""
        try:
            await self.page.scroll_to(0)
            await self.page.wait_for_render()
            image_bytes, _ = await self._capture_with_retry(session, 0)
            captured_at = now_ms()
            with Image.open(io.BytesIO(image_bytes)) as img:
                width, height = img.size
            session.raw_image_bytes = image_bytes
            session.raw_capture = RawCapture(
                image_data=base64.b64encode(image_bytes).decode("utf-8"),
                hash=await self.hash_service.hash_bytes(image_bytes),
                captured_at=captured_at,
                modifications=[],
                width=width,
                height=height,
            )
            logger.info(f"[CaptureOrchestrator] Raw capture {width}x{height}px, hash={session.raw_capture.hash[:16]}...")
        except CaptureEnvironmentError:
            raise
        except (EvidenceStitcherError, OSError) as e:
            logger.warning(f"[CaptureOrchestrator] Raw capture failed, dual mode disabled: {e}")

    async def _capture_all_viewports(self, session: CaptureSession, tracker: ProgressTracker):
        detection = await self.detector.detect()
        session.infinite_scroll = detection

        viewport_width, viewport_height = await self.page.get_viewport_size()
        session.viewport_width, session.viewport_height = viewport_width, viewport_height
        full_height = await self.page.get_page_height()

        plan = self.planner.plan(full_height, viewport_height, self.config, detection.is_infinite)
        timeout_ms = (
            self.config.max_capture_time_ms_infinite_scroll
            if detection.is_infinite
            else self.config.max_capture_time_ms
        )
        lazy_timeout = calculate_lazy_timeout(
            self.delays.lazy_images_timeout, await self.page.get_connection_type()
        )
        total = len(plan.offsets)
        logger.info(
            f"[CaptureOrchestrator] Page {full_height}px, viewport {viewport_width}x{viewport_height}, "
            f"{total} tiles planned (capped={plan.capped_height}px, timeout={timeout_ms}ms)"
        )

        stop_reason = None
        session.overflow_state = await self.page.lock_overflow()
        try:
            for i, offset in enumerate(plan.offsets):
                if session.cancel_token.is_cancelled:
                    logger.info(f"[CaptureOrchestrator] Cancelled at tile {i}/{total}")
                    stop_reason = TruncationReason.CANCELLED
                    break

                # Tile 0 is taken regardless of the session timeout
                elapsed_ms = self._elapsed_ms(session)
                if i > 0 and elapsed_ms > timeout_ms:
                    logger.warning(
                        f"[CaptureOrchestrator] Session timeout ({elapsed_ms}ms > {timeout_ms}ms) at tile {i}/{total}"
                    )
                    stop_reason = TruncationReason.TIMEOUT
                    break

                # Tile 0 keeps the page's natural top, header included
                if i == 1:
                    await self._handle_sticky(session)

                await tracker.report(
                    CaptureStage.CAPTURING,
                    25 + (i * 30) // total,
                    f"Capturing viewport {i + 1} of {total}...",
                    current_tile=i + 1,
                    total_tiles=total,
                )
                tile = await self._capture_tile(session, offset, detection.is_infinite, lazy_timeout)
                if tile is not None:
                    session.tiles.append(tile)
        finally:
            await self._cleanup(session)

        session.scope = self._build_scope(session, plan, full_height, detection, stop_reason)
        logger.info(f"[CaptureOrchestrator] Scope: {session.scope.model_dump()}")

    async def _handle_sticky(self, session: CaptureSession):
        try:
            await self.sticky_handler.handle(session)
        except StickyHandlingError:
            raise
        except Exception as e:
            logger.warning(f"[CaptureOrchestrator] Sticky handling failed, continuing without it: {e}")

    async def _capture_tile(
        self,
        session: CaptureSession,
        offset: int,
        infinite: bool,
        lazy_timeout: int,
    ) -> Optional[ViewportTile]:
        await self.page.scroll_to(offset, smooth=True)
        await sleep_ms(self.delays.smooth_scroll_settle)
        await self.page.wait_for_render()
        await sleep_ms(self.delays.render_after_scroll)
        if infinite:
            await sleep_ms(self.delays.infinite_scroll_extra_delay)

        pending = await self.page.wait_for_lazy_images(lazy_timeout)
        if pending:
            logger.debug(f"  {pending} images still pending at offset {offset}px")

        actual_y = await self.page.get_scroll_position()
        if session.tiles and actual_y <= session.tiles[-1].scroll_offset_y:
            logger.warning(
                f"[CaptureOrchestrator] Scroll did not advance (requested {offset}px, at {actual_y}px), skipping tile"
            )
            return None

        image_bytes, raster_width = await self._capture_with_retry(session, actual_y)
        width = session.viewport_width
        return ViewportTile(
            scroll_offset_y=actual_y,
            image_bytes=image_bytes,
            width=width,
            height=session.viewport_height,
            captured_at_physical_dpr=raster_width / width if width else 1.0,
            captured_at=now_ms(),
        )

    async def _capture_with_retry(self, session: CaptureSession, scroll_y: int) -> Tuple[bytes, int]:
        """
        Call the capture provider with rate limiting, timeout and retries.

        Returns:
            (image_bytes, raster_width)
        """
        attempts = max(1, self.delays.max_capture_retries)
        timeout_ms = self.config.viewport_timeout
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            await session.rate_limiter.wait()
            try:
                image_bytes = await asyncio.wait_for(self.capture_provider.capture(), timeout=timeout_ms / 1000)
                with Image.open(io.BytesIO(image_bytes)) as img:
                    raster_width = img.width
            except CaptureEnvironmentError:
                raise
            except asyncio.TimeoutError:
                last_error = CaptureTimeoutError(f"Viewport capture timed out after {timeout_ms}ms", timeout_ms)
            except Exception as e:
                last_error = e
            else:
                if attempt > 1:
                    logger.info(f"  Capture at {scroll_y}px succeeded on attempt {attempt}")
                return image_bytes, raster_width
            finally:
                session.rate_limiter.mark()

            logger.warning(f"  Capture at {scroll_y}px failed (attempt {attempt}/{attempts}): {last_error}")
            if attempt < attempts:
                await sleep_ms(self.delays.capture_retry_delay)

        raise ViewportCaptureError(
            f"Viewport capture failed after {attempts} attempts: {last_error}",
            scroll_y=scroll_y,
            attempts=attempts,
        )

    async def _cleanup(self, session: CaptureSession):
        """Restore sticky elements, overflow and scroll. Idempotent."""
        try:
            await self.sticky_handler.restore(session)
        except Exception as e:
            logger.error(f"[CaptureOrchestrator] Sticky restore failed: {e}")

        if session.overflow_state is not None:
            try:
                await self.page.restore_overflow(session.overflow_state)
                session.overflow_state = None
            except Exception as e:
                logger.error(f"[CaptureOrchestrator] Overflow restore failed: {e}")

        try:
            await self.page.scroll_to(session.original_scroll)
        except Exception as e:
            logger.error(f"[CaptureOrchestrator] Scroll restore failed: {e}")

    # =========================================================================
    # Result assembly
    # =========================================================================

    def _build_scope(
        self,
        session: CaptureSession,
        plan: ViewportPlan,
        full_height: int,
        detection: InfiniteScrollResult,
        stop_reason: Optional[TruncationReason],
    ) -> CaptureScope:
        if stop_reason is None:
            captured_height = plan.capped_height
            reason = plan.truncation_reason
        else:
            covered = 0
            if session.tiles:
                last = session.tiles[-1]
                covered = last.scroll_offset_y + last.height
            captured_height = min(covered, plan.capped_height)
            reason = stop_reason

        return CaptureScope(
            total_page_height=full_height,
            captured_height=captured_height,
            was_truncated=reason is not None,
            truncation_reason=reason,
            infinite_scroll_detected=detection.is_infinite,
            scroll_height_growth_ratio=detection.growth_ratio,
        )

    async def _build_result(
        self,
        session: CaptureSession,
        info: PageInfo,
        stitched: StitchResult,
        enhanced_at: int,
    ) -> CaptureResult:
        image_hash = await self.hash_service.hash_bytes(stitched.image_bytes)
        image_data = base64.b64encode(stitched.image_bytes).decode("utf-8")
        logger.info(f"[CaptureOrchestrator] Image hash {image_hash[:16]}...")

        html_content = html_hash = None
        if self.config.collect_html:
            html_content = await self.page.get_html()
            html_hash = await self.hash_service.hash_text(html_content)

        metadata = metadata_hash = None
        if self.config.collect_metadata:
            metadata = self._build_metadata(session, info, stitched, html_hash, image_hash)
            metadata_hash = await self.hash_service.hash_json(metadata.model_dump(by_alias=True, mode="json"))

        # Page must be fully restored before the closing hash
        await self._cleanup(session)
        await self.integrity.snapshot_after(session)
        integrity_hashes = IntegrityHashChain.build(session, image_hash)

        dual_mode = None
        if session.raw_capture is not None:
            dual_mode = await self._build_dual_mode(session, stitched, image_data, image_hash, enhanced_at)

        return CaptureResult(
            success=True,
            stage=CaptureStage.HASHING,
            image_data=image_data,
            width=stitched.width,
            height=stitched.height,
            image_hash=image_hash,
            html_content=html_content,
            html_hash=html_hash,
            metadata=metadata,
            metadata_hash=metadata_hash,
            integrity_hashes=integrity_hashes,
            dual_mode_capture=dual_mode,
            capture_scope=session.scope,
        )

    def _build_metadata(self, session, info, stitched, html_hash, image_hash) -> CaptureMetadata:
        sticky = session.sticky_result
        return CaptureMetadata(
            capture_id=str(uuid.uuid4()),
            url=info.url,
            title=info.title,
            user_agent=info.user_agent,
            collected_at=now_ms(),
            viewport={"width": session.viewport_width, "height": session.viewport_height},
            page_size={"width": stitched.width, "height": stitched.height},
            viewports_captured=len(session.tiles),
            html_hash=html_hash,
            image_hash=image_hash,
            dom_modifications=list(session.dom_modifications),
            sticky_handling=sticky.model_dump(by_alias=True, mode="json") if sticky else None,
        )

    async def _build_dual_mode(self, session, stitched, image_data, image_hash, enhanced_at) -> DualModeCapture:
        raw = session.raw_capture
        enhanced = EnhancedCapture(
            image_data=image_data,
            hash=image_hash,
            captured_at=enhanced_at,
            modifications=list(session.dom_modifications),
            width=stitched.width,
            height=stitched.height,
        )
        similarity = await asyncio.to_thread(
            top_viewport_similarity, session.raw_image_bytes, stitched.image_bytes
        )
        comparison = DualModeComparison(
            both_available=True,
            raw_captured_first=raw.captured_at <= enhanced.captured_at,
            time_difference_ms=max(0, enhanced.captured_at - raw.captured_at),
            top_viewport_similarity=similarity,
        )
        logger.info(
            f"[CaptureOrchestrator] Dual mode: {len(enhanced.modifications)} modifications, "
            f"{comparison.time_difference_ms}ms apart, similarity={similarity}"
        )
        return DualModeCapture(raw=raw, enhanced=enhanced, comparison=comparison)

    def _failure_result(self, session: CaptureSession, error: Exception, stage: CaptureStage) -> CaptureResult:
        details = {
            "type": error.__class__.__name__,
            "message": str(error),
            "stage_reached": session.stage.value if isinstance(session.stage, CaptureStage) else session.stage,
            "traceback": traceback.format_exc(),
        }
        code = "UNKNOWN_ERROR"
        if isinstance(error, EvidenceStitcherError):
            code = error.code
            details["details"] = error.details

        return CaptureResult(
            success=False,
            stage=stage,
            error=get_user_friendly_message(error),
            error_code=code,
            error_details=details,
            duration_ms=self._elapsed_ms(session),
            capture_scope=session.scope,
        )

    def _completion_message(self, scope: CaptureScope) -> str:
        if not scope.was_truncated:
            return "Capture complete!"
        label = TRUNCATION_LABELS.get(scope.truncation_reason, scope.truncation_reason)
        return (
            f"Capture complete ({scope.captured_height:,}px of {scope.total_page_height:,}px - {label})"
        )

    def _elapsed_ms(self, session: CaptureSession) -> int:
        return int((self.clock() - session.started_at) * 1000)
