"""Tests for the integrity hash chain."""

import pytest

from capture_models import DomElement, ElementRect
from hash_service import HashService
from ss_modules.integrity import IntegrityHashChain, element_signature
from tests.fakes import FakePage, header_element
from utils.error_handler import IntegrityChainError


@pytest.fixture
def page():
    return FakePage(page_height=1800, elements=[header_element()])


@pytest.fixture
def chain(page):
    return IntegrityHashChain(page, HashService())


class TestSignature:
    def test_format(self):
        element = DomElement(
            tag_name="div",
            html_id="main",
            class_name="content wide",
            text="  Hello world  ",
            rect=ElementRect(top=10.4, left=0.6, width=799.5, height=100),
        )
        assert element_signature(element) == "DIV|main|content wide|10|1|800|100|Hello world"

    def test_text_truncated(self):
        element = DomElement(tag_name="p", text="x" * 500)
        assert element_signature(element).endswith("|" + "x" * 100)


class TestChain:
    @pytest.mark.asyncio
    async def test_unchanged_page_verifies(self, chain, session):
        await chain.snapshot_before(session)
        await chain.snapshot_after(session)
        hashes = IntegrityHashChain.build(session, "ab" * 32)

        assert hashes.integrity_verified is True
        assert hashes.restored_state.matches_original is True
        assert hashes.captured_image == "ab" * 32
        assert hashes.original_state.captured_before == "any-modification"

    @pytest.mark.asyncio
    async def test_changed_page_does_not_verify(self, chain, page, session):
        await chain.snapshot_before(session)
        page.page_height = 2400  # New section appended by the page itself
        restored = await chain.snapshot_after(session)

        assert restored.matches_original is False
        assert IntegrityHashChain.build(session, "ab" * 32).integrity_verified is False

    @pytest.mark.asyncio
    async def test_after_without_before(self, chain, session):
        with pytest.raises(IntegrityChainError):
            await chain.snapshot_after(session)

    @pytest.mark.asyncio
    async def test_after_while_sticky_active(self, chain, session):
        await chain.snapshot_before(session)
        session.sticky_active = True
        with pytest.raises(IntegrityChainError):
            await chain.snapshot_after(session)

    @pytest.mark.asyncio
    async def test_visible_hash_depends_on_scroll(self, chain, page):
        top = await chain.visible_elements_hash()
        page.scroll_y = 1200
        bottom = await chain.visible_elements_hash()
        assert top != bottom

    @pytest.mark.asyncio
    async def test_build_requires_both_snapshots(self, chain, session):
        await chain.snapshot_before(session)
        with pytest.raises(IntegrityChainError):
            IntegrityHashChain.build(session, "ab" * 32)
