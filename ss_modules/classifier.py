"""
Fixed/sticky element classification.

Selector lists and geometric heuristics that decide whether a fixed element
is a header, footer, cookie banner, third-party widget or sidebar.
"""

import logging
from typing import List

from capture_models import FixedElement, StickyAction, StickyClassification

logger = logging.getLogger(__name__)

# Third-party overlays that are never part of the page's main content
KNOWN_WIDGET_SELECTORS = {
    "chat": [
        "#intercom-container", "#intercom-frame", "[data-intercom]",
        "#hubspot-messages-iframe-container", ".hs-messages-widget",
        "#drift-widget", "#drift-frame-controller",
        "#crisp-chatbox", ".crisp-client", "[data-crisp-chatbox]",
        "#tawk-bubble-container", "#tawk-widget-container",
        "#zendesk-chat", "#webWidget", "[data-zd-web-widget]",
        "#freshchat-container", ".fc-widget-normal",
        "#tidio-chat", "#tidio-chat-iframe",
        "#livechat-compact-container", "#livechat-full",
    ],
    "cookie": [
        "#onetrust-consent-sdk", "#onetrust-banner-sdk",
        "#CybotCookiebotDialog", "#CybotCookiebotDialogBody",
        ".cc-window", ".cc-banner", "[data-cookieconsent]",
        "#cookie-law-info-bar", "#cookie-notice",
        "#gdpr-consent", "#gdpr-consent-tool",
        '[class*="cookie-consent"]', '[class*="cookie-banner"]',
        '[class*="cookie-notice"]', '[id*="cookie-banner"]',
        ".truste-consent-track", "#truste-consent-track",
    ],
    "fab": [
        ".fab", ".floating-action-button",
        '[class*="scroll-to-top"]', '[class*="back-to-top"]',
        "#back-to-top", ".back-to-top", ".scroll-top",
        '[class*="btn-float"]', '[class*="floating-btn"]',
    ],
    "social": [
        ".addthis-smartlayers", "#at-share-dock",
        ".sharethis-sticky-share-buttons",
        '[class*="social-share-fixed"]',
    ],
    "whatsapp": [
        "#whatsapp-button", ".whatsapp-button", ".whatsapp-float",
        '[class*="whatsapp-btn"]', '[class*="whatsapp-button"]',
        '[class*="whatsapp-float"]', '[class*="whatsapp-widget"]',
        "#wh-widget", ".wh-widget",
        "#qlwapp", ".qlwapp", ".qlwapp-button",
        "#joinchat", ".joinchat", ".joinchat__button",
        "#wabutton", ".wabutton",
        ".wa-float-btn", ".wa-float-btn-container",
        "[data-whatsapp]", "[data-wa-button]",
        'a[href*="wa.me"]', 'a[href*="whatsapp.com"]',
    ],
    "accessibility": [
        "#userway", ".userway", ".userway-s", "#userway-s",
        "[data-userway]", ".uwy-open-icon", ".uwy-icon",
        "#accessibe", ".accessibe", ".acsbIcon", "#acsbMenuBtn",
        "#vlibras", "[vw]", ".vw-plugin-top-wrapper",
        "#equalweb", ".equalweb-button",
    ],
}

ALL_WIDGET_SELECTORS: List[str] = [sel for group in KNOWN_WIDGET_SELECTORS.values() for sel in group]

HEADER_SELECTORS = [
    "header", "nav", '[role="navigation"]', '[role="banner"]',
    "#header", "#nav", "#navbar", "#navigation",
    ".header", ".navbar", ".nav-bar", ".navigation",
    '[class*="header-fixed"]', '[class*="navbar-fixed"]',
    '[class*="sticky-header"]', '[class*="sticky-nav"]',
]

FOOTER_SELECTORS = [
    "footer", '[role="contentinfo"]', ".footer", "#footer",
    ".site-footer", ".page-footer", ".main-footer",
]

SIDEBAR_SELECTORS = [
    "aside", '[role="complementary"]', ".sidebar", "#sidebar",
    ".side-nav", ".side-menu", ".left-panel", ".right-panel",
]

COOKIE_KEYWORDS = [
    "cookie", "consent", "gdpr", "privacy", "accept",
    "policy", "banner", "notice", "compliance",
]

# Forensic justification per classification:action
JUSTIFICATIONS = {
    "header:captured-once": "Main header captured separately and composited once at the top of the final image",
    "header:repositioned": "Additional header anchored to its document position to avoid duplication in every tile",
    "footer:captured-once": "Main footer captured separately and composited once at the bottom of the final image",
    "footer:repositioned": "Additional footer anchored to its document position to avoid duplication in every tile",
    "cookie-banner:hidden": "Cookie/consent banner hidden; not part of the page's main content",
    "cookie-banner:repositioned": "Cookie/consent banner anchored to its document position so it appears once",
    "widget:hidden": "Floating third-party widget hidden; auxiliary element not essential to the content",
    "widget:repositioned": "Floating widget anchored to its document position so it appears once",
    "sidebar:repositioned": "Fixed sidebar anchored to its document position for a clean capture of the content",
    "other:repositioned": "Generic fixed/sticky element anchored to its document position to avoid repetition",
}


def get_justification(classification: str, action: str) -> str:
    key = f"{classification}:{action}"
    return JUSTIFICATIONS.get(key, f"Element {classification} processed with action {action}")


def is_cookie_banner(element: FixedElement) -> bool:
    haystacks = (element.text.lower(), element.class_name.lower(), element.html_id.lower())
    return any(keyword in haystack for keyword in COOKIE_KEYWORDS for haystack in haystacks)


def is_header_shape(element: FixedElement, viewport_width: int) -> bool:
    rect = element.rect
    return (
        abs(rect.top) <= 10
        and rect.width >= viewport_width * 0.8
        and 40 <= rect.height <= 200
    )


def is_footer_shape(element: FixedElement, viewport_width: int, viewport_height: int) -> bool:
    rect = element.rect
    return (
        rect.bottom >= viewport_height - 10
        and rect.width >= viewport_width * 0.8
        and 40 <= rect.height <= 300
    )


def is_sidebar_shape(element: FixedElement, viewport_width: int, viewport_height: int) -> bool:
    rect = element.rect
    return (
        rect.width < viewport_width * 0.3
        and rect.height >= viewport_height * 0.5
        and (rect.left <= 10 or rect.right >= viewport_width - 10)
    )


def is_widget_shape(element: FixedElement, viewport_width: int, viewport_height: int) -> bool:
    rect = element.rect
    if element.z_index > 9000:
        return True

    is_small = rect.area < viewport_width * viewport_height * 0.15
    in_lower_area = rect.top > viewport_height * 0.6
    in_corner = rect.right > viewport_width * 0.8 or rect.left < viewport_width * 0.2
    if is_small and in_lower_area and in_corner:
        return True

    return is_small and element.has_bottom_offset and element.has_right_offset


class ElementClassifier:
    """Classifies fixed elements; selector checks go through the page inspector"""

    def __init__(self, page):
        self.page = page

    async def classify(self, element: FixedElement, viewport_width: int, viewport_height: int) -> StickyClassification:
        """First matching rule wins"""
        if is_cookie_banner(element):
            return StickyClassification.COOKIE_BANNER

        if await self.page.matches(element.element_id, ALL_WIDGET_SELECTORS):
            return StickyClassification.WIDGET

        if (await self.page.matches(element.element_id, HEADER_SELECTORS)
                or is_header_shape(element, viewport_width)):
            return StickyClassification.HEADER

        if (await self.page.matches(element.element_id, FOOTER_SELECTORS)
                or is_footer_shape(element, viewport_width, viewport_height)):
            return StickyClassification.FOOTER

        if (await self.page.matches(element.element_id, SIDEBAR_SELECTORS)
                or is_sidebar_shape(element, viewport_width, viewport_height)):
            return StickyClassification.SIDEBAR

        if is_widget_shape(element, viewport_width, viewport_height):
            return StickyClassification.WIDGET

        return StickyClassification.OTHER


def default_action(classification: StickyClassification, hide_overlays: bool) -> StickyAction:
    """Action for elements that are not the first header/footer"""
    if hide_overlays and classification in (StickyClassification.COOKIE_BANNER, StickyClassification.WIDGET):
        return StickyAction.HIDDEN
    return StickyAction.REPOSITIONED
