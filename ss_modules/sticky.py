"""
Sticky element handling.

Fixed and sticky elements would otherwise appear in every viewport tile.
The main header and footer are rastered once for composition; everything
else is re-anchored to absolute document coordinates (or hidden, for
overlays, when configured). Every change is recorded and reversible.
"""

import logging
import time
from typing import Dict, List

from capture_models import (
    CaptureSession,
    DOMModification,
    ElementCapture,
    ElementRect,
    FixedElement,
    ModificationType,
    StickyAction,
    StickyClassification,
    StickyElementRecord,
    StickyHandlingResult,
)
from ss_modules.classifier import ElementClassifier, default_action, get_justification
from ss_modules.timing import now_ms
from utils.error_handler import StickyHandlingError

logger = logging.getLogger(__name__)


class StickyElementHandler:
    """Discovers, classifies, neutralizes and restores fixed/sticky elements"""

    def __init__(self, page, hide_overlays: bool = False):
        """
        Args:
            page: PageInspector for the page under capture
            hide_overlays: hide cookie banners and widgets instead of re-anchoring them
        """
        self.page = page
        self.hide_overlays = hide_overlays
        self.classifier = ElementClassifier(page)

    async def handle(self, session: CaptureSession) -> StickyHandlingResult:
        """
        Neutralize all fixed/sticky elements once.

        Raises:
            StickyHandlingError: handle() already ran for this session without restore()
        """
        if session.sticky_active:
            raise StickyHandlingError("Sticky elements already handled; call restore() first")

        start_time = time.time()
        result = StickyHandlingResult(timestamp=now_ms())
        session.sticky_result = result
        session.sticky_active = True

        original_scroll = await self.page.get_scroll_position()
        try:
            # Classification needs scroll-independent coordinates
            await self.page.scroll_to(0)
            await self.page.wait_for_render()
            scroll_y = await self.page.get_scroll_position()
            viewport_width, viewport_height = await self.page.get_viewport_size()

            elements = await self.page.query_fixed_elements()
            logger.info(f"[StickyElementHandler] Found {len(elements)} fixed/sticky elements")

            for element in elements:
                try:
                    await self._process_element(session, result, element, scroll_y, viewport_width, viewport_height)
                except Exception as e:
                    logger.warning(f"[StickyElementHandler] Failed to process {element.selector}: {e}")
        finally:
            await self.page.scroll_to(original_scroll)

        result.elements_by_type = self._count_by_type(result.records)
        result.processing_time_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"[StickyElementHandler] Processed {len(result.records)} elements in {result.processing_time_ms}ms "
            f"(header={result.header_captured}, footer={result.footer_captured}, by_type={result.elements_by_type})"
        )
        return result

    async def _process_element(
        self,
        session: CaptureSession,
        result: StickyHandlingResult,
        element: FixedElement,
        scroll_y: int,
        viewport_width: int,
        viewport_height: int,
    ):
        rect = await self.page.get_bounding_rect(element.element_id)
        element = element.model_copy(update={"rect": rect})
        snapshot = await self.page.snapshot_style(element.element_id)
        classification = await self.classifier.classify(element, viewport_width, viewport_height)

        action = default_action(classification, self.hide_overlays)
        composition = None
        if classification == StickyClassification.HEADER and result.header_capture is None:
            composition = await self._capture_once(element, classification)
            if composition is not None:
                result.header_capture = composition
                action = StickyAction.CAPTURED_ONCE
        elif classification == StickyClassification.FOOTER and result.footer_capture is None:
            composition = await self._capture_once(element, classification)
            if composition is not None:
                result.footer_capture = composition
                action = StickyAction.CAPTURED_ONCE

        record = StickyElementRecord(
            element_id=element.element_id,
            selector=element.selector,
            classification=classification,
            action=action,
            original_style_snapshot=snapshot,
            bounding_rect=rect,
            z_index=element.z_index,
            justification=get_justification(classification.value, action.value),
            timestamp=now_ms(),
        )
        # Recorded before mutating so restore() covers a partially applied change
        session.sticky_records.append(record)
        result.records.append(record)

        if action == StickyAction.HIDDEN:
            await self.page.hide(element.element_id)
            self._record_modification(session, record, ModificationType.HIDE, "visibility",
                                      snapshot.get("visibility"), "hidden")
        else:
            document_rect = ElementRect(
                top=rect.top + scroll_y,
                left=rect.left,
                width=rect.width,
                height=rect.height,
            )
            await self.page.set_position(element.element_id, document_rect, element.z_index)
            self._record_modification(session, record, ModificationType.REPOSITION, "position",
                                      snapshot.get("position"), "absolute")

        logger.debug(f"[StickyElementHandler] {element.selector}: {classification.value} -> {action.value}")

    async def _capture_once(self, element: FixedElement, classification: StickyClassification):
        try:
            image_bytes = await self.page.capture_element(element.element_id)
        except Exception as e:
            logger.warning(f"[StickyElementHandler] {classification.value} capture failed: {e}")
            return None

        if not image_bytes:
            return None

        return ElementCapture(
            classification=classification,
            selector=element.selector,
            image_bytes=image_bytes,
            rect=element.rect,
        )

    def _record_modification(self, session, record, mod_type, style_property, original_value, new_value):
        session.dom_modifications.append(DOMModification(
            type=mod_type,
            selector=record.selector,
            style_property=style_property,
            original_value=original_value,
            new_value=new_value,
            timestamp=now_ms(),
            forensic_reason=record.justification,
        ))

    async def restore(self, session: CaptureSession) -> int:
        """
        Undo every recorded change, newest first.

        Safe after partial failure and safe to call more than once.

        Returns:
            Number of elements restored
        """
        restored = 0
        for record in reversed(session.sticky_records):
            try:
                await self.page.restore(record.element_id, record.original_style_snapshot)
                restored += 1
            except Exception as e:
                logger.warning(f"[StickyElementHandler] Failed to restore {record.selector}: {e}")

        if session.sticky_records:
            logger.info(f"[StickyElementHandler] Restored {restored}/{len(session.sticky_records)} elements")

        session.sticky_records = []
        session.sticky_active = False
        return restored

    @staticmethod
    def _count_by_type(records: List[StickyElementRecord]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for record in records:
            counts[record.classification] = counts.get(record.classification, 0) + 1
        return counts
