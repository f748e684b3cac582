"""
Evidence Stitcher - Playwright Bridge

PageInspector and ViewportCaptureProvider over a Playwright async Page.

Fixed/sticky elements are kept in a page-side registry
(window.__evidenceStitcherRegistry) and addressed by index, so discovery
never writes marker attributes into the DOM being hashed.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from capture_models import DomElement, ElementRect, FixedElement, PageInfo
from page_inspector import PageInspector, ViewportCaptureProvider
from utils.error_handler import CaptureEnvironmentError

logger = logging.getLogger(__name__)

REGISTRY = "window.__evidenceStitcherRegistry"

QUERY_FIXED_ELEMENTS_JS = """
() => {
    const registry = [];
    window.__evidenceStitcherRegistry = registry;

    const selectorFor = (el) => {
        if (el.id) return '#' + CSS.escape(el.id);
        const tag = el.tagName.toLowerCase();
        const classes = (typeof el.className === 'string' ? el.className : '')
            .trim().split(/\\s+/).filter(Boolean).slice(0, 3);
        if (classes.length) return tag + '.' + classes.map(c => CSS.escape(c)).join('.');
        const parent = el.parentElement;
        if (parent) {
            const siblings = Array.from(parent.children).filter(s => s.tagName === el.tagName);
            if (siblings.length > 1) return tag + ':nth-of-type(' + (siblings.indexOf(el) + 1) + ')';
        }
        return tag;
    };

    const found = [];
    for (const el of document.querySelectorAll('body *')) {
        const style = getComputedStyle(el);
        if (style.position !== 'fixed' && style.position !== 'sticky') continue;
        if (style.display === 'none') continue;
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 || rect.height === 0) continue;

        const index = registry.length;
        registry.push(el);
        const z = parseInt(style.zIndex, 10);
        found.push({
            elementId: 'es-' + index,
            tagName: el.tagName.toLowerCase(),
            selector: selectorFor(el),
            htmlId: el.id || '',
            className: typeof el.className === 'string' ? el.className : '',
            text: el.textContent || '',
            position: style.position,
            zIndex: isNaN(z) ? 0 : z,
            hasBottomOffset: style.bottom !== 'auto' && el.style.bottom !== '',
            hasRightOffset: style.right !== 'auto' && el.style.right !== '',
            rect: {top: rect.top, left: rect.left, width: rect.width, height: rect.height},
        });
    }
    return found;
}
"""

BOUNDING_RECT_JS = f"""
(index) => {{
    const el = {REGISTRY}[index];
    const r = el.getBoundingClientRect();
    return {{top: r.top, left: r.left, width: r.width, height: r.height}};
}}
"""

MATCHES_JS = f"""
([index, selectors]) => {{
    const el = {REGISTRY}[index];
    return selectors.some(s => {{
        try {{ return el.matches(s) || !!el.closest(s); }} catch (e) {{ return false; }}
    }});
}}
"""

SNAPSHOT_STYLE_JS = f"""
(index) => {{
    const el = {REGISTRY}[index];
    const cs = getComputedStyle(el);
    return {{
        style_attribute: el.getAttribute('style'),
        position: cs.position,
        top: cs.top,
        left: cs.left,
        bottom: cs.bottom,
        right: cs.right,
        width: cs.width,
        height: cs.height,
        visibility: cs.visibility,
        z_index: cs.zIndex,
        transform: cs.transform,
    }};
}}
"""

SET_POSITION_JS = f"""
([index, rect, zIndex]) => {{
    const s = {REGISTRY}[index].style;
    s.setProperty('position', 'absolute', 'important');
    s.setProperty('top', rect.top + 'px', 'important');
    s.setProperty('left', rect.left + 'px', 'important');
    s.setProperty('width', rect.width + 'px', 'important');
    s.setProperty('height', rect.height + 'px', 'important');
    s.setProperty('bottom', 'auto', 'important');
    s.setProperty('right', 'auto', 'important');
    s.setProperty('margin', '0', 'important');
    s.setProperty('transform', 'none', 'important');
    s.setProperty('z-index', String(zIndex), 'important');
}}
"""

HIDE_JS = f"(index) => {REGISTRY}[index].style.setProperty('visibility', 'hidden', 'important')"

RESTORE_JS = f"""
([index, styleAttribute]) => {{
    const el = {REGISTRY}[index];
    if (styleAttribute === null) el.removeAttribute('style');
    else el.setAttribute('style', styleAttribute);
}}
"""

PAGE_HEIGHT_JS = """
() => Math.max(
    document.body ? document.body.scrollHeight : 0,
    document.body ? document.body.offsetHeight : 0,
    document.documentElement.clientHeight,
    document.documentElement.scrollHeight,
    document.documentElement.offsetHeight
)
"""

RENDER_JS = "() => new Promise(r => requestAnimationFrame(() => requestAnimationFrame(() => r(true))))"

LAZY_IMAGES_JS = """
(timeoutMs) => new Promise(resolve => {
    const pending = Array.from(document.images).filter(img => {
        const r = img.getBoundingClientRect();
        const inView = r.bottom > 0 && r.top < window.innerHeight;
        return inView && !img.complete;
    });
    if (!pending.length) return resolve(0);
    let left = pending.length;
    const done = () => { left -= 1; if (left <= 0) resolve(0); };
    pending.forEach(img => {
        img.addEventListener('load', done, {once: true});
        img.addEventListener('error', done, {once: true});
    });
    setTimeout(() => resolve(pending.filter(img => !img.complete).length), timeoutMs);
})
"""

RESOURCES_JS = """
async (timeoutMs) => {
    const withTimeout = (p) => Promise.race([
        p.then(() => true, () => true),
        new Promise(r => setTimeout(() => r(false), timeoutMs)),
    ]);
    const ready = document.readyState === 'complete'
        ? Promise.resolve()
        : new Promise(r => window.addEventListener('load', r, {once: true}));
    const images = Promise.all(Array.from(document.images)
        .filter(img => !img.complete)
        .map(img => new Promise(r => {
            img.addEventListener('load', r, {once: true});
            img.addEventListener('error', r, {once: true});
        })));
    const fonts = document.fonts ? document.fonts.ready : Promise.resolve();
    const [documentReady, imagesLoaded, fontsLoaded] = await Promise.all([
        withTimeout(ready), withTimeout(images), withTimeout(fonts),
    ]);
    return {document: documentReady, images: imagesLoaded, fonts: fontsLoaded};
}
"""

DOM_ELEMENTS_JS = """
(includeInvisible) => {
    const out = [];
    const vh = window.innerHeight, vw = window.innerWidth;
    for (const el of document.querySelectorAll('body *')) {
        const cs = getComputedStyle(el);
        const visible = cs.display !== 'none' && cs.visibility !== 'hidden' && cs.opacity !== '0';
        if (!visible && !includeInvisible) continue;
        const r = el.getBoundingClientRect();
        out.push({
            tagName: el.tagName,
            htmlId: el.id || '',
            className: typeof el.className === 'string' ? el.className : '',
            text: (el.textContent || '').trim().slice(0, 100),
            rect: {
                top: r.top + window.scrollY,
                left: r.left + window.scrollX,
                width: r.width,
                height: r.height,
            },
            visible: visible,
            inViewport: r.bottom > 0 && r.right > 0 && r.top < vh && r.left < vw,
        });
    }
    return out;
}
"""

LOCK_OVERFLOW_JS = """
() => {
    const state = {
        bodyOverflowY: document.body.style.overflowY,
        htmlOverflow: document.documentElement.style.overflow,
    };
    document.body.style.overflowY = 'visible';
    document.documentElement.style.overflow = 'hidden';
    return state;
}
"""

RESTORE_OVERFLOW_JS = """
(state) => {
    document.body.style.overflowY = state.bodyOverflowY || '';
    document.documentElement.style.overflow = state.htmlOverflow || '';
}
"""


def _index(element_id: str) -> int:
    """es-<n> -> n"""
    try:
        return int(element_id.rsplit("-", 1)[1])
    except (IndexError, ValueError) as e:
        raise ValueError(f"Unknown element handle: {element_id}") from e


class PlaywrightPageInspector(PageInspector):
    """Runs the capture engine's DOM queries and mutations through page.evaluate()"""

    def __init__(self, page: Page):
        self.page = page

    async def query_fixed_elements(self) -> List[FixedElement]:
        raw = await self.page.evaluate(QUERY_FIXED_ELEMENTS_JS)
        return [FixedElement.model_validate(item) for item in raw]

    async def get_bounding_rect(self, element_id: str) -> ElementRect:
        return ElementRect.model_validate(await self.page.evaluate(BOUNDING_RECT_JS, _index(element_id)))

    async def matches(self, element_id: str, selectors: List[str]) -> bool:
        return bool(await self.page.evaluate(MATCHES_JS, [_index(element_id), selectors]))

    async def snapshot_style(self, element_id: str) -> Dict[str, Optional[str]]:
        return await self.page.evaluate(SNAPSHOT_STYLE_JS, _index(element_id))

    async def set_position(self, element_id: str, rect: ElementRect, z_index: int) -> None:
        await self.page.evaluate(SET_POSITION_JS, [_index(element_id), rect.model_dump(), z_index])

    async def hide(self, element_id: str) -> None:
        await self.page.evaluate(HIDE_JS, _index(element_id))

    async def restore(self, element_id: str, snapshot: Dict[str, Optional[str]]) -> None:
        await self.page.evaluate(RESTORE_JS, [_index(element_id), snapshot.get("style_attribute")])

    async def capture_element(self, element_id: str) -> Optional[bytes]:
        rect = await self.get_bounding_rect(element_id)
        if rect.width <= 0 or rect.height <= 0:
            return None
        return await self.page.screenshot(
            type="png",
            clip={"x": rect.left, "y": max(0, rect.top), "width": rect.width, "height": rect.height},
            animations="disabled",
        )

    async def scroll_to(self, y: int, smooth: bool = False) -> None:
        behavior = "smooth" if smooth else "instant"
        await self.page.evaluate(
            "([y, behavior]) => window.scrollTo({top: y, left: 0, behavior: behavior})", [y, behavior]
        )

    async def get_scroll_position(self) -> int:
        return round(await self.page.evaluate("() => window.scrollY"))

    async def get_viewport_size(self) -> Tuple[int, int]:
        size = self.page.viewport_size
        if size:
            return size["width"], size["height"]
        width, height = await self.page.evaluate("() => [window.innerWidth, window.innerHeight]")
        return width, height

    async def get_page_height(self) -> int:
        return int(await self.page.evaluate(PAGE_HEIGHT_JS))

    async def lock_overflow(self) -> Dict[str, Any]:
        return await self.page.evaluate(LOCK_OVERFLOW_JS)

    async def restore_overflow(self, state: Dict[str, Any]) -> None:
        await self.page.evaluate(RESTORE_OVERFLOW_JS, state)

    async def wait_for_render(self) -> None:
        await self.page.evaluate(RENDER_JS)

    async def wait_for_lazy_images(self, timeout_ms: int) -> int:
        return int(await self.page.evaluate(LAZY_IMAGES_JS, timeout_ms))

    async def wait_for_resources(self, timeout_ms: int) -> Dict[str, bool]:
        return await self.page.evaluate(RESOURCES_JS, timeout_ms)

    async def get_dom_elements(self, include_invisible: bool = False) -> List[DomElement]:
        raw = await self.page.evaluate(DOM_ELEMENTS_JS, include_invisible)
        return [DomElement.model_validate(item) for item in raw]

    async def get_connection_type(self) -> Optional[str]:
        return await self.page.evaluate(
            "() => (navigator.connection && navigator.connection.effectiveType) || null"
        )

    async def get_page_info(self) -> PageInfo:
        user_agent = await self.page.evaluate("() => navigator.userAgent")
        return PageInfo(url=self.page.url, title=await self.page.title(), user_agent=user_agent)

    async def get_html(self) -> str:
        return await self.page.content()


class PlaywrightViewportCapture(ViewportCaptureProvider):
    """Viewport-only PNG screenshots of a Playwright page"""

    def __init__(self, page: Page):
        self.page = page

    async def capture(self) -> bytes:
        if self.page.is_closed():
            raise CaptureEnvironmentError("Page was closed during capture", resource="page")
        try:
            return await self.page.screenshot(type="png", full_page=False, animations="disabled")
        except PlaywrightError as e:
            if self.page.is_closed():
                raise CaptureEnvironmentError(f"Page was closed during capture: {e}", resource="page") from e
            raise
