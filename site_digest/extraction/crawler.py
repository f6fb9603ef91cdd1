"""
Bounded same-origin crawl: the root page plus a short list of prioritized
internal pages, rendered one at a time in a single shared browser context.
"""

import time
from typing import List, Optional

from playwright.async_api import (
    BrowserContext,
    Error as PlaywrightError,
    async_playwright,
)

from site_digest.extraction.links import prioritize_links
from site_digest.extraction.renderer import PageRenderer
from site_digest.models.digest import RawPage
from site_digest.utils.config import BrowserConfig, CrawlLimits
from site_digest.utils.errors import CrawlError, RenderError
from site_digest.utils.logging_config import get_logger

logger = get_logger()


async def crawl_site(root_url: str, max_pages: int,
                     renderer: Optional[PageRenderer] = None,
                     limits: Optional[CrawlLimits] = None,
                     browser_config: Optional[BrowserConfig] = None,
                     session_id: Optional[str] = None) -> List[RawPage]:
    """Crawl root_url and up to max_pages prioritized internal pages.

    The browser is launched for this crawl only and closed on every exit
    path. Raises CrawlError when the browser cannot start or the root page
    cannot be rendered.
    """
    limits = limits or CrawlLimits()
    browser_config = browser_config or BrowserConfig()
    renderer = renderer or PageRenderer(browser_config)

    start_time = time.time()
    logger.log_crawl_start(session_id or '-', root_url, max_pages)

    async with async_playwright() as pw:
        try:
            browser = await pw.chromium.launch(headless=browser_config.headless)
        except PlaywrightError as e:
            raise CrawlError(f"Could not launch browser: {e}", url=root_url) from e
        try:
            context = await browser.new_context(
                viewport={'width': browser_config.viewport_width,
                          'height': browser_config.viewport_height},
                user_agent=browser_config.user_agent,
            )
            try:
                pages = await crawl_with_context(context, root_url, max_pages,
                                                 renderer, limits, session_id)
            finally:
                try:
                    await context.close()
                except PlaywrightError as e:
                    logger.debug(f"Context close failed: {e}", stage='CRAWL')
        except PlaywrightError as e:
            raise CrawlError(f"Browser failure: {e}", url=root_url) from e
        finally:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.debug(f"Browser close failed: {e}", stage='CRAWL')

    logger.log_crawl_complete(session_id or '-', len(pages), time.time() - start_time)
    return pages


async def crawl_with_context(context: BrowserContext, root_url: str, max_pages: int,
                             renderer: PageRenderer, limits: CrawlLimits,
                             session_id: Optional[str] = None) -> List[RawPage]:
    """Root page first, then kept internal pages in visit order"""
    try:
        root = await renderer.render(context, root_url)
    except RenderError as e:
        raise CrawlError(f"Root page could not be rendered: {e.message}", url=root_url) from e

    pages = [root.to_raw_page()]

    # Links are resolved against wherever the root actually landed
    base_url = root.url or root_url
    cap = max(0, min(max_pages, limits.max_internal_pages))
    candidates = prioritize_links(
        base_url, [link for link in root.links if link not in (root_url, base_url)], cap
    )
    logger.info(f"Visiting {len(candidates)} internal page(s) of {base_url}",
                session_id=session_id, stage='CRAWL')

    for link in candidates:
        try:
            rendered = await renderer.render(context, link)
        except RenderError as e:
            logger.log_page_skipped(link, e.message, session_id=session_id)
            continue
        if len(rendered.text) <= limits.min_internal_page_chars:
            logger.log_page_skipped(link, f"only {len(rendered.text)} characters", session_id=session_id)
            continue
        pages.append(rendered.to_raw_page())

    return pages
