"""
Headless page rendering with the auto-expand heuristic.

One call to PageRenderer.render opens exactly one tab in the supplied browser
context, reveals lazy/disclosure content by scrolling and clicking, and
returns the visible text and links along with any price cards in the layout.
The tab is closed on every exit path.
"""

from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from playwright.async_api import (
    BrowserContext,
    ElementHandle,
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from site_digest.extraction.normalizer import clean_text
from site_digest.extraction.pricing import build_pricing_cards
from site_digest.models.digest import RenderedPage
from site_digest.utils.config import BrowserConfig
from site_digest.utils.errors import InteractionError, RenderError
from site_digest.utils.logging_config import get_logger

logger = get_logger()

# Expandable UI affordances, tried in this order
CLICK_SELECTORS: Tuple[str, ...] = (
    "button",
    "[role='button']",
    "[aria-expanded='false']",
    "details summary",
    ".accordion button",
    ".accordion-header",
    ".tabs button",
    ".tab",
    ".dropdown-toggle",
    ".menu-toggle",
)

_BODY_TEXT_JS = "() => document.body ? document.body.innerText : ''"
_ANCHOR_HREFS_JS = "els => els.map(a => a.href).filter(h => typeof h === 'string' && h.length > 0)"
_SCROLL_JS = "dy => window.scrollBy(0, dy)"

# Dialogs, banners and popups often sit outside the main flow of innerText
OVERLAY_SELECTORS: Tuple[str, ...] = (
    "[role='dialog']",
    "[role='alertdialog']",
    "[class*='modal']",
    "[class*='popup']",
    "[class*='overlay']",
    "[class*='banner']",
    "[class*='tooltip']",
    "[class*='notification']",
)

_OVERLAY_TEXTS_JS = """
els => els
  .map(el => (el.innerText || el.textContent || '').trim())
  .filter(t => t.length > 0)
"""

# Walk price-looking text nodes up to their card container and return the raw block
_PRICING_CARDS_JS = r"""
() => {
  const norm = s => (s || '').replace(/\s+/g, ' ').trim();
  const text = el => norm(el ? (el.innerText || el.textContent) : '');
  const visible = el => {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    return rect.width > 0 && rect.height > 0 && style.display !== 'none' && style.visibility !== 'hidden';
  };
  const money = /\d{1,3}(?:[ \u00a0.]\d{3})*(?:[.,]\d{1,2})?\s*(лв\.?|лева|bgn|eur|евро|€|\$)/i;
  const onRequest = /по договаряне/i;
  const titleOf = root => {
    const t = text(root.querySelector("h1,h2,h3,h4,[class*='title'],strong,b"));
    if (t && t.length <= 80) return t;
    const lines = (root.innerText || '').split('\n').map(norm);
    return lines.find(l => l.length >= 3 && l.length <= 80) || '';
  };
  const cardOf = start => {
    let el = start;
    for (let i = 0; i < 8 && el; i++) {
      const cls = typeof el.className === 'string' ? el.className : '';
      const tag = (el.tagName || '').toLowerCase();
      const looksCard = /card|pricing|package|plan|tier|column/i.test(cls) || tag === 'article' || tag === 'section';
      if (looksCard && text(el).length >= 60 && (titleOf(el) || el.querySelectorAll('li').length >= 3)) return el;
      el = el.parentElement;
    }
    return null;
  };
  const roots = [];
  const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT, null);
  let node;
  while ((node = walker.nextNode())) {
    const t = norm(node.textContent);
    if (!t || !(money.test(t) || onRequest.test(t))) continue;
    const parent = node.parentElement;
    if (!parent || !visible(parent)) continue;
    const root = cardOf(parent);
    if (!root || !visible(root) || roots.includes(root)) continue;
    roots.push(root);
  }
  return roots.map(root => ({
    title: titleOf(root),
    text: text(root),
    badge: text(root.querySelector("[class*='badge'],[class*='label'],[class*='tag']")),
    features: Array.from(root.querySelectorAll('li')).map(text),
  }));
}
"""


class PageRenderer:
    """Drives one browser tab per URL and extracts visible text + links"""

    def __init__(self, config: Optional[BrowserConfig] = None,
                 click_selectors: Tuple[str, ...] = CLICK_SELECTORS):
        self.config = config or BrowserConfig()
        self.click_selectors = click_selectors

    async def render(self, context: BrowserContext, url: str) -> RenderedPage:
        """Render url in a fresh tab. Raises RenderError on navigation or browser failure."""
        async with self._open_tab(context, url) as page:
            try:
                await self._navigate(page, url)
                # Where navigation landed; clicks below may still move the tab elsewhere
                landed_url = page.url if isinstance(page.url, str) and page.url.startswith("http") else url
                await self.auto_expand(page)
                title, text, links = await self._extract(page, url)
                text = merge_overlay_text(text, await self._overlay_texts(page))
                pricing_cards = build_pricing_cards(await self._pricing_card_blocks(page), landed_url)
            except PlaywrightError as e:
                # browser crash or closed target outside the guarded steps
                raise RenderError(f"Browser failure: {e}", url=url) from e
        return RenderedPage(url=landed_url, title=title, text=text, links=links,
                            pricing_cards=tuple(pricing_cards))

    @asynccontextmanager
    async def _open_tab(self, context: BrowserContext, url: str) -> AsyncIterator[Page]:
        try:
            page = await context.new_page()
        except PlaywrightError as e:
            raise RenderError(f"Could not open tab: {e}", url=url) from e
        try:
            page.set_default_timeout(self.config.navigation_timeout_ms)
            yield page
        finally:
            with suppress(PlaywrightError):
                await page.close()

    async def _navigate(self, page: Page, url: str) -> None:
        # domcontentloaded, not networkidle: long-polling sites never go idle
        try:
            await page.goto(url, wait_until="domcontentloaded",
                            timeout=self.config.navigation_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise RenderError(f"Navigation timed out after {self.config.navigation_timeout_ms}ms", url=url) from e
        except PlaywrightError as e:
            raise RenderError(f"Navigation failed: {e}", url=url) from e
        await page.wait_for_timeout(self.config.initial_settle_ms)

    async def auto_expand(self, page: Page) -> int:
        """Scroll, click every expandable affordance, scroll again. Returns the number of clicks that landed."""
        await self._scroll(page, self.config.scroll_pulses, self.config.scroll_settle_ms)
        clicked = 0
        for selector in self.click_selectors:
            clicked += await self._click_all(page, selector)
        await self._scroll(page, self.config.final_scroll_pulses, self.config.final_scroll_settle_ms)
        logger.debug(f"Auto-expand clicked {clicked} element(s) on {page.url}", stage='RENDER')
        return clicked

    async def _scroll(self, page: Page, pulses: int, settle_ms: int) -> None:
        for _ in range(pulses):
            try:
                await page.evaluate(_SCROLL_JS, self.config.scroll_offset_px)
            except PlaywrightError as e:
                # a click may have started a navigation; extraction decides whether the page survived
                logger.debug(f"Scroll pulse failed: {e}", stage='RENDER')
            await page.wait_for_timeout(settle_ms)

    async def _click_all(self, page: Page, selector: str) -> int:
        try:
            handles: List[ElementHandle] = await page.query_selector_all(selector)
        except PlaywrightError as e:
            logger.debug(f"Selector {selector!r} could not be queried: {e}", stage='RENDER')
            return 0

        clicked = 0
        for handle in handles[: self.config.max_clicks_per_selector]:
            try:
                await self._click(page, handle)
                clicked += 1
            except InteractionError as e:
                logger.debug(f"Click on {selector!r} skipped: {e.message}", stage='RENDER')
        return clicked

    async def _click(self, page: Page, handle: ElementHandle) -> None:
        try:
            await handle.click(timeout=self.config.click_timeout_ms, delay=20, no_wait_after=True)
            await page.wait_for_timeout(self.config.click_settle_ms)
        except PlaywrightError as e:
            raise InteractionError(str(e).splitlines()[0] if str(e) else "click failed") from e

    async def _extract(self, page: Page, url: str) -> Tuple[str, str, List[str]]:
        try:
            title = await page.title()
            body_text = await page.evaluate(_BODY_TEXT_JS)
            links = await page.eval_on_selector_all("a[href]", _ANCHOR_HREFS_JS)
        except PlaywrightError as e:
            raise RenderError(f"Content extraction failed: {e}", url=url) from e
        return clean_text(title or ""), clean_text(body_text or ""), list(links or [])

    async def _overlay_texts(self, page: Page) -> List[str]:
        texts: List[str] = []
        for selector in OVERLAY_SELECTORS:
            try:
                texts.extend(await page.eval_on_selector_all(selector, _OVERLAY_TEXTS_JS) or [])
            except PlaywrightError as e:
                logger.debug(f"Overlay selector {selector!r} could not be read: {e}", stage='RENDER')
        return texts

    async def _pricing_card_blocks(self, page: Page) -> List[Dict[str, Any]]:
        try:
            blocks = await page.evaluate(_PRICING_CARDS_JS)
        except PlaywrightError as e:
            logger.debug(f"Pricing card scan failed on {page.url}: {e}", stage='RENDER')
            return []
        return list(blocks or [])


def merge_overlay_text(text: str, overlay_texts: List[str], min_chars: int = 10) -> str:
    """Append overlay lines that innerText did not already contain"""
    seen = {line.strip() for line in text.splitlines() if line.strip()}
    extra: List[str] = []
    for overlay in overlay_texts:
        cleaned = clean_text(str(overlay or ""))
        if len(cleaned) < min_chars:
            continue
        for line in cleaned.splitlines():
            line = line.strip()
            if line and line not in seen:
                seen.add(line)
                extra.append(line)
    if not extra:
        return text
    return "\n".join([text] + extra) if text else "\n".join(extra)
