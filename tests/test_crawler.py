"""Tests for the site crawler: root/internal failure semantics and browser lifetime."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from site_digest.extraction.crawler import crawl_site, crawl_with_context
from site_digest.extraction.renderer import PageRenderer, _BODY_TEXT_JS
from site_digest.models.digest import RenderedPage
from site_digest.utils.config import BrowserConfig, CrawlLimits
from site_digest.utils.errors import CrawlError, RenderError

ROOT = "https://example.com/"
LONG_TEXT = "Useful business content. " * 40
SHORT_TEXT = "Coming soon"


def _renderer(pages):
    """Fake renderer serving RenderedPage (or raising) per URL, recording visit order."""
    renderer = MagicMock()
    renderer.visited = []

    async def _render(context, url):
        renderer.visited.append(url)
        outcome = pages[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    renderer.render = AsyncMock(side_effect=_render)
    return renderer


def _root(links, url=ROOT):
    return RenderedPage(url=url, title="Home", text=LONG_TEXT, links=links)


def _internal(url, text=LONG_TEXT):
    return RenderedPage(url=url, title=url.rsplit("/", 1)[-1], text=text, links=[])


class TestCrawlWithContext:
    async def test_root_then_internal_pages_in_prioritized_order(self):
        links = [ROOT + "contact", ROOT + "gallery", ROOT + "pricing", ROOT + "about"]
        renderer = _renderer({
            ROOT: _root(links),
            ROOT + "contact": _internal(ROOT + "contact"),
            ROOT + "pricing": _internal(ROOT + "pricing"),
            ROOT + "about": _internal(ROOT + "about"),
        })

        pages = await crawl_with_context(MagicMock(), ROOT, 12, renderer, CrawlLimits())

        assert [p.url for p in pages] == [ROOT, ROOT + "contact", ROOT + "pricing", ROOT + "about"]
        assert renderer.visited == [ROOT, ROOT + "contact", ROOT + "pricing", ROOT + "about"]

    async def test_root_failure_is_fatal(self):
        renderer = _renderer({ROOT: RenderError("Navigation timed out", url=ROOT)})

        with pytest.raises(CrawlError) as exc_info:
            await crawl_with_context(MagicMock(), ROOT, 12, renderer, CrawlLimits())
        assert exc_info.value.url == ROOT

    async def test_all_internal_failures_leave_root_only(self):
        links = [ROOT + "about", ROOT + "services"]
        renderer = _renderer({
            ROOT: _root(links),
            ROOT + "about": RenderError("net::ERR_CONNECTION_RESET"),
            ROOT + "services": RenderError("Navigation timed out"),
        })

        pages = await crawl_with_context(MagicMock(), ROOT, 12, renderer, CrawlLimits())

        assert [p.url for p in pages] == [ROOT]
        assert renderer.visited == [ROOT, ROOT + "about", ROOT + "services"]

    async def test_stub_pages_are_dropped(self):
        links = [ROOT + "about", ROOT + "menu"]
        renderer = _renderer({
            ROOT: _root(links),
            ROOT + "about": _internal(ROOT + "about", SHORT_TEXT),
            ROOT + "menu": _internal(ROOT + "menu", "x" * 501),
        })

        pages = await crawl_with_context(MagicMock(), ROOT, 12, renderer, CrawlLimits())
        assert [p.url for p in pages] == [ROOT, ROOT + "menu"]

    async def test_exactly_floor_length_is_dropped(self):
        renderer = _renderer({
            ROOT: _root([ROOT + "about"]),
            ROOT + "about": _internal(ROOT + "about", "x" * 500),
        })
        pages = await crawl_with_context(MagicMock(), ROOT, 12, renderer, CrawlLimits())
        assert len(pages) == 1

    async def test_max_pages_and_configured_cap(self):
        links = [f"{ROOT}services/{i}" for i in range(10)]
        pages_by_url = {ROOT: _root(links)}
        pages_by_url.update({link: _internal(link) for link in links})

        pages = await crawl_with_context(MagicMock(), ROOT, 4, _renderer(pages_by_url), CrawlLimits())
        assert len(pages) == 1 + 4

        limits = CrawlLimits(max_internal_pages=2)
        pages = await crawl_with_context(MagicMock(), ROOT, 50, _renderer(pages_by_url), limits)
        assert len(pages) == 1 + 2

    async def test_zero_max_pages_renders_root_only(self):
        renderer = _renderer({ROOT: _root([ROOT + "about"])})
        pages = await crawl_with_context(MagicMock(), ROOT, 0, renderer, CrawlLimits())
        assert [p.url for p in pages] == [ROOT]

    async def test_links_resolved_against_final_root_url(self):
        final_root = "https://www.example.com/"
        renderer = _renderer({
            ROOT: _root([final_root, final_root + "pricing", ROOT + "about"], url=final_root),
            final_root + "pricing": _internal(final_root + "pricing"),
        })

        pages = await crawl_with_context(MagicMock(), ROOT, 12, renderer, CrawlLimits())

        assert [p.url for p in pages] == [final_root, final_root + "pricing"]

    async def test_both_root_aliases_do_not_cost_an_internal_slot(self):
        requested = "https://example.com/uslugi"
        landed = "https://example.com/uslugi/"
        links = [landed, requested, ROOT + "about", ROOT + "contact"]
        renderer = _renderer({
            requested: _root(links, url=landed),
            ROOT + "about": _internal(ROOT + "about"),
            ROOT + "contact": _internal(ROOT + "contact"),
        })

        pages = await crawl_with_context(MagicMock(), requested, 2, renderer, CrawlLimits())

        assert [p.url for p in pages] == [landed, ROOT + "about", ROOT + "contact"]


def _browser_tab(text, links=(), clicked_url=None):
    """Mock tab that lands where goto() points it; its one button optionally navigates away."""
    page = MagicMock()
    page.url = "about:blank"
    page.set_default_timeout = MagicMock()
    page.wait_for_timeout = AsyncMock()
    page.title = AsyncMock(return_value="Page")
    page.close = AsyncMock()

    async def _goto(url, **kwargs):
        page.url = url

    async def _click(**kwargs):
        if clicked_url:
            page.url = clicked_url

    button = MagicMock()
    button.click = AsyncMock(side_effect=_click)
    page.goto = AsyncMock(side_effect=_goto)
    page.query_selector_all = AsyncMock(side_effect=lambda selector: [button] if selector == "button" else [])

    async def _eval_on_selector_all(selector, script):
        return list(links) if selector == "a[href]" else []

    page.eval_on_selector_all = AsyncMock(side_effect=_eval_on_selector_all)
    page.evaluate = AsyncMock(side_effect=lambda script, arg=None: text if script == _BODY_TEXT_JS else None)
    return page


class TestCrawlWithRealRenderer:
    async def test_off_site_click_on_root_keeps_internal_pages(self):
        tabs = [
            _browser_tab(LONG_TEXT, links=[ROOT + "pricing", ROOT + "about"],
                         clicked_url="https://www.facebook.com/sharer"),
            _browser_tab(LONG_TEXT),
            _browser_tab(LONG_TEXT),
        ]
        context = MagicMock()
        context.new_page = AsyncMock(side_effect=tabs)
        renderer = PageRenderer(BrowserConfig())

        pages = await crawl_with_context(context, ROOT, 12, renderer, CrawlLimits())

        assert [p.url for p in pages] == [ROOT, ROOT + "pricing", ROOT + "about"]
        tabs[0].query_selector_all.assert_awaited()


def _mock_playwright(browser=None, launch_error=None):
    """async_playwright() → context manager → playwright → chromium → browser → context."""
    context = MagicMock()
    context.close = AsyncMock()

    if browser is None:
        browser = MagicMock()
        browser.new_context = AsyncMock(return_value=context)
        browser.close = AsyncMock()

    pw = MagicMock()
    pw.chromium.launch = AsyncMock(return_value=browser, side_effect=launch_error)

    pw_cm = MagicMock()
    pw_cm.__aenter__ = AsyncMock(return_value=pw)
    pw_cm.__aexit__ = AsyncMock(return_value=False)
    return pw_cm, pw, browser, context


class TestCrawlSite:
    async def test_browser_and_context_closed_after_success(self):
        pw_cm, pw, browser, context = _mock_playwright()
        renderer = _renderer({ROOT: _root([])})

        with patch("site_digest.extraction.crawler.async_playwright", return_value=pw_cm):
            pages = await crawl_site(ROOT, 5, renderer=renderer)

        assert [p.url for p in pages] == [ROOT]
        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        assert browser.new_context.call_args.kwargs["viewport"] == {"width": 1280, "height": 720}

    async def test_browser_closed_when_root_fails(self):
        pw_cm, pw, browser, context = _mock_playwright()
        renderer = _renderer({ROOT: RenderError("boom", url=ROOT)})

        with patch("site_digest.extraction.crawler.async_playwright", return_value=pw_cm):
            with pytest.raises(CrawlError):
                await crawl_site(ROOT, 5, renderer=renderer)

        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()

    async def test_one_context_shared_by_all_pages(self):
        pw_cm, pw, browser, context = _mock_playwright()
        renderer = _renderer({
            ROOT: _root([ROOT + "about", ROOT + "pricing"]),
            ROOT + "about": _internal(ROOT + "about"),
            ROOT + "pricing": _internal(ROOT + "pricing"),
        })

        with patch("site_digest.extraction.crawler.async_playwright", return_value=pw_cm):
            await crawl_site(ROOT, 5, renderer=renderer)

        browser.new_context.assert_awaited_once()
        assert all(call.args[0] is context for call in renderer.render.call_args_list)

    async def test_launch_failure_is_a_crawl_error(self):
        pw_cm, pw, browser, context = _mock_playwright(launch_error=PlaywrightError("Executable doesn't exist"))

        with patch("site_digest.extraction.crawler.async_playwright", return_value=pw_cm):
            with pytest.raises(CrawlError):
                await crawl_site(ROOT, 5, renderer=_renderer({}))

        browser.close.assert_not_awaited()
