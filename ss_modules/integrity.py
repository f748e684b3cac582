"""
Integrity hash chain.

Hashes a DOM structure signature before the page is touched and again after
everything has been restored. Equal hashes show the page was handed back in
its original layout.
"""

import logging
from typing import List

from capture_models import (
    CaptureSession,
    DomElement,
    IntegrityHashes,
    OriginalStateHash,
    RestoredStateHash,
)
from ss_modules.timing import now_ms
from utils.error_handler import IntegrityChainError

logger = logging.getLogger(__name__)

TEXT_LIMIT = 100


def element_signature(element: DomElement) -> str:
    """tag|id|classes|top|left|width|height|text[:100]"""
    rect = element.rect
    return "|".join([
        element.tag_name.upper(),
        element.html_id,
        element.class_name,
        str(round(rect.top)),
        str(round(rect.left)),
        str(round(rect.width)),
        str(round(rect.height)),
        element.text.strip()[:TEXT_LIMIT],
    ])


def visible_signature(element: DomElement) -> str:
    rect = element.rect
    return "|".join([
        element.tag_name.upper(),
        element.html_id,
        str(round(rect.top)),
        str(round(rect.left)),
        str(round(rect.width)),
        str(round(rect.height)),
    ])


class IntegrityHashChain:
    """Before/after DOM structure hashes for one capture session"""

    def __init__(self, page, hash_service, include_invisible: bool = False):
        self.page = page
        self.hash_service = hash_service
        self.include_invisible = include_invisible

    async def dom_structure_hash(self) -> str:
        elements = await self.page.get_dom_elements(self.include_invisible)
        return await self.hash_service.hash_signature(element_signature(e) for e in elements)

    async def visible_elements_hash(self) -> str:
        elements: List[DomElement] = await self.page.get_dom_elements(False)
        return await self.hash_service.hash_signature(
            visible_signature(e) for e in elements if e.in_viewport
        )

    async def snapshot_before(self, session: CaptureSession) -> OriginalStateHash:
        """Hash the pristine page. Must run before any modification."""
        original = OriginalStateHash(
            dom_structure_hash=await self.dom_structure_hash(),
            visible_elements_hash=await self.visible_elements_hash(),
            timestamp=now_ms(),
        )
        session.original_state = original
        logger.info(
            f"[IntegrityHashChain] Original state: dom={original.dom_structure_hash[:16]}... "
            f"visible={original.visible_elements_hash[:16]}..."
        )
        return original

    async def snapshot_after(self, session: CaptureSession) -> RestoredStateHash:
        """
        Hash the page after restoration.

        Raises:
            IntegrityChainError: no original snapshot, or sticky elements not restored yet
        """
        if session.original_state is None:
            raise IntegrityChainError("snapshot_after() called before snapshot_before()")
        if session.sticky_active:
            raise IntegrityChainError("snapshot_after() called before sticky elements were restored")

        dom_hash = await self.dom_structure_hash()
        restored = RestoredStateHash(
            dom_structure_hash=dom_hash,
            timestamp=now_ms(),
            matches_original=dom_hash == session.original_state.dom_structure_hash,
        )
        session.restored_state = restored

        if restored.matches_original:
            logger.info(f"[IntegrityHashChain] Restored state matches original ({dom_hash[:16]}...)")
        else:
            # Independent page activity can cause this; not an engine failure
            logger.warning(
                f"[IntegrityHashChain] Restored state differs: original="
                f"{session.original_state.dom_structure_hash[:16]}... restored={dom_hash[:16]}..."
            )
        return restored

    @staticmethod
    def build(session: CaptureSession, image_hash: str) -> IntegrityHashes:
        if session.original_state is None or session.restored_state is None:
            raise IntegrityChainError("Both snapshots are required to build integrity hashes")
        return IntegrityHashes(
            original_state=session.original_state,
            captured_image=image_hash,
            restored_state=session.restored_state,
            integrity_verified=(
                session.original_state.dom_structure_hash == session.restored_state.dom_structure_hash
            ),
        )
