"""Tests for fixed/sticky element classification."""

import pytest

from capture_models import ElementRect, FixedElement, StickyAction, StickyClassification
from ss_modules.classifier import (
    ElementClassifier,
    default_action,
    get_justification,
    is_cookie_banner,
    is_widget_shape,
)
from tests.fakes import FakeElement, FakePage, chat_widget, cookie_element, header_element


def fixed(element: FakeElement) -> FixedElement:
    return FixedElement(
        element_id=element.element_id,
        tag_name=element.tag_name,
        selector=element.tag_name,
        html_id=element.html_id,
        class_name=element.class_name,
        text=element.text,
        z_index=element.z_index,
        has_bottom_offset=element.has_bottom_offset,
        has_right_offset=element.has_right_offset,
        rect=element.rect,
    )


async def classify(element: FakeElement) -> StickyClassification:
    page = FakePage(elements=[element])
    return await ElementClassifier(page).classify(fixed(element), 800, 600)


class TestClassify:
    """First matching rule wins."""

    @pytest.mark.asyncio
    async def test_header_by_tag(self):
        assert await classify(header_element()) == StickyClassification.HEADER

    @pytest.mark.asyncio
    async def test_header_by_shape(self):
        element = FakeElement("es-0", "div", ElementRect(top=0, left=0, width=800, height=80))
        assert await classify(element) == StickyClassification.HEADER

    @pytest.mark.asyncio
    async def test_footer_by_shape(self):
        element = FakeElement("es-0", "div", ElementRect(top=520, left=0, width=800, height=80))
        assert await classify(element) == StickyClassification.FOOTER

    @pytest.mark.asyncio
    async def test_cookie_banner_by_keyword(self):
        assert await classify(cookie_element()) == StickyClassification.COOKIE_BANNER

    @pytest.mark.asyncio
    async def test_cookie_keyword_beats_header_shape(self):
        element = FakeElement(
            "es-0", "div", ElementRect(top=0, left=0, width=800, height=80), text="Accept all cookies"
        )
        assert await classify(element) == StickyClassification.COOKIE_BANNER

    @pytest.mark.asyncio
    async def test_known_widget(self):
        assert await classify(chat_widget()) == StickyClassification.WIDGET

    @pytest.mark.asyncio
    async def test_sidebar_by_shape(self):
        element = FakeElement("es-0", "div", ElementRect(top=100, left=0, width=200, height=450))
        assert await classify(element) == StickyClassification.SIDEBAR

    @pytest.mark.asyncio
    async def test_other(self):
        element = FakeElement("es-0", "div", ElementRect(top=200, left=300, width=200, height=100))
        assert await classify(element) == StickyClassification.OTHER


class TestHeuristics:
    def test_cookie_keyword_in_class(self):
        element = fixed(FakeElement("es-0", "div", ElementRect(), class_name="gdpr-bar"))
        assert is_cookie_banner(element) is True

    def test_cookie_keyword_deep_in_text(self):
        text = "We use tracking technologies to improve your visit. " * 8 + "Accept all"
        element = fixed(FakeElement("es-0", "div", ElementRect(), text=text))
        assert is_cookie_banner(element) is True

    def test_high_z_index_is_widget(self):
        element = fixed(FakeElement("es-0", "div", ElementRect(width=10, height=10), z_index=9500))
        assert is_widget_shape(element, 800, 600) is True

    def test_small_corner_element_is_widget(self):
        element = fixed(FakeElement("es-0", "div", ElementRect(top=450, left=700, width=80, height=80)))
        assert is_widget_shape(element, 800, 600) is True


class TestActions:
    def test_overlays_repositioned_by_default(self):
        assert default_action(StickyClassification.COOKIE_BANNER, False) == StickyAction.REPOSITIONED

    def test_overlays_hidden_when_configured(self):
        assert default_action(StickyClassification.WIDGET, True) == StickyAction.HIDDEN
        assert default_action(StickyClassification.COOKIE_BANNER, True) == StickyAction.HIDDEN

    def test_sidebar_never_hidden(self):
        assert default_action(StickyClassification.SIDEBAR, True) == StickyAction.REPOSITIONED

    def test_justification_known_pair(self):
        assert "composited once at the top" in get_justification("header", "captured-once")

    def test_justification_fallback(self):
        assert get_justification("sidebar", "hidden") == "Element sidebar processed with action hidden"
