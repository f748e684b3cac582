"""Tests for StickyElementHandler - neutralize and restore fixed elements."""

import pytest

from capture_models import ModificationType, StickyAction, StickyClassification
from hash_service import HashService
from ss_modules.integrity import IntegrityHashChain
from ss_modules.sticky import StickyElementHandler
from tests.fakes import FakePage, chat_widget, cookie_element, footer_element, header_element
from utils.error_handler import StickyHandlingError


@pytest.fixture
def page():
    return FakePage(
        page_height=3000,
        elements=[header_element(), footer_element(), cookie_element(), chat_widget()],
    )


class TestHandle:
    """handle() classifies, records and mutates every fixed element."""

    @pytest.mark.asyncio
    async def test_header_and_footer_captured_once(self, page, session):
        result = await StickyElementHandler(page).handle(session)

        assert result.header_captured is True
        assert result.footer_captured is True
        actions = {r.element_id: r.action for r in result.records}
        assert actions["es-0"] == StickyAction.CAPTURED_ONCE
        assert actions["es-1"] == StickyAction.CAPTURED_ONCE
        assert actions["es-2"] == StickyAction.REPOSITIONED
        assert actions["es-3"] == StickyAction.REPOSITIONED

    @pytest.mark.asyncio
    async def test_counts_by_type(self, page, session):
        result = await StickyElementHandler(page).handle(session)
        assert result.elements_by_type == {
            StickyClassification.HEADER.value: 1,
            StickyClassification.FOOTER.value: 1,
            StickyClassification.COOKIE_BANNER.value: 1,
            StickyClassification.WIDGET.value: 1,
        }

    @pytest.mark.asyncio
    async def test_hide_overlays(self, page, session):
        result = await StickyElementHandler(page, hide_overlays=True).handle(session)
        actions = {r.element_id: r.action for r in result.records}

        assert actions["es-2"] == StickyAction.HIDDEN
        assert actions["es-3"] == StickyAction.HIDDEN
        assert "visibility: hidden" in page.elements["es-3"].style

    @pytest.mark.asyncio
    async def test_repositions_to_document_coordinates(self, page, session):
        await StickyElementHandler(page).handle(session)
        # Header sat at the top of the viewport, scroll was 0
        assert "position: absolute" in page.elements["es-0"].style
        assert "top: 0.0px" in page.elements["es-0"].style
        assert "top: 550.0px" in page.elements["es-1"].style

    @pytest.mark.asyncio
    async def test_every_change_logged_with_justification(self, page, session):
        await StickyElementHandler(page, hide_overlays=True).handle(session)

        assert len(session.dom_modifications) == 4
        types = [m.type for m in session.dom_modifications]
        assert types.count(ModificationType.REPOSITION) == 2
        assert types.count(ModificationType.HIDE) == 2
        assert all(m.forensic_reason for m in session.dom_modifications)

    @pytest.mark.asyncio
    async def test_modification_serialises_property_name(self, page, session):
        await StickyElementHandler(page).handle(session)
        payload = session.dom_modifications[0].model_dump(by_alias=True)
        assert payload["property"] == "position"
        assert payload["forensicReason"]

    @pytest.mark.asyncio
    async def test_header_falls_back_to_reposition_when_capture_fails(self, page, session):
        page.element_capture_fails = True
        result = await StickyElementHandler(page).handle(session)

        assert result.header_captured is False
        assert result.footer_captured is False
        header = next(r for r in result.records if r.element_id == "es-0")
        assert header.action == StickyAction.REPOSITIONED

    @pytest.mark.asyncio
    async def test_scroll_restored(self, page, session):
        page.scroll_y = 1200
        await StickyElementHandler(page).handle(session)
        assert page.scroll_y == 1200

    @pytest.mark.asyncio
    async def test_second_handle_rejected(self, page, session):
        handler = StickyElementHandler(page)
        await handler.handle(session)

        with pytest.raises(StickyHandlingError):
            await handler.handle(session)

    @pytest.mark.asyncio
    async def test_handle_again_after_restore(self, page, session):
        handler = StickyElementHandler(page)
        await handler.handle(session)
        await handler.restore(session)

        result = await handler.handle(session)
        assert len(result.records) == 4


class TestRestore:
    """restore() puts every inline style back exactly."""

    @pytest.mark.asyncio
    async def test_styles_restored(self, page, session):
        page.elements["es-2"].style = "color: red;"
        before = {k: e.style for k, e in page.elements.items()}

        handler = StickyElementHandler(page, hide_overlays=True)
        await handler.handle(session)
        restored = await handler.restore(session)

        assert restored == 4
        assert {k: e.style for k, e in page.elements.items()} == before
        assert session.sticky_active is False
        assert session.sticky_result is not None

    @pytest.mark.asyncio
    async def test_restore_is_idempotent(self, page, session):
        handler = StickyElementHandler(page)
        await handler.handle(session)
        await handler.restore(session)

        assert await handler.restore(session) == 0

    @pytest.mark.asyncio
    async def test_dom_hash_matches_after_restore(self, page, session):
        chain = IntegrityHashChain(page, HashService())
        before = await chain.dom_structure_hash()

        handler = StickyElementHandler(page, hide_overlays=True)
        await handler.handle(session)
        during = await chain.dom_structure_hash()
        await handler.restore(session)
        after = await chain.dom_structure_hash()

        assert after == before
        assert during != before

    @pytest.mark.asyncio
    async def test_restore_continues_past_failures(self, page, session):
        handler = StickyElementHandler(page)
        await handler.handle(session)

        original_restore = page.restore

        async def flaky_restore(element_id, snapshot):
            if element_id == "es-1":
                raise RuntimeError("detached")
            await original_restore(element_id, snapshot)

        page.restore = flaky_restore
        restored = await handler.restore(session)

        assert restored == 3
        assert page.elements["es-0"].style is None
