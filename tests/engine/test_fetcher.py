from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from listing_crawler.config import BrowserConfig
from listing_crawler.engine import BrowserSession, BrowserSessionFactory, PageFetcher, ProxyNode
from listing_crawler.errors import ExtractionError, FetchTimeoutError, NetworkError

CARD_PAGE = (
    '<div data-testid="serp-ia-card"><img alt="Tacos 1"><a href="/biz/t1">Tacos 1</a></div>'
    '<div data-testid="serp-ia-card"><img alt="Tacos 2"><a href="/biz/t2">Tacos 2</a></div>'
)


@dataclass
class FakeResponse:
    status: int


class FakePage:
    def __init__(self, html: str = CARD_PAGE, status: int = 200, error: Exception | None = None) -> None:
        self.html = html
        self.status = status
        self.error = error
        self.goto_calls: list[dict] = []
        self.waits: list[int] = []

    def goto(self, url: str, **kwargs) -> FakeResponse:
        self.goto_calls.append({"url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status)

    def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    def content(self) -> str:
        return self.html


class PageSession:
    def __init__(self, page: FakePage) -> None:
        self.node = None
        self.page = page
        self.opened = 0
        self.released = 0

    @contextmanager
    def isolated_page(self):
        self.opened += 1
        try:
            yield self.page
        finally:
            self.released += 1

    def close(self) -> None:
        return


def test_fetch_renders_and_extracts() -> None:
    page = FakePage()
    session = PageSession(page)
    fetcher = PageFetcher(BrowserConfig(settle_ms=150, timeout_ms=5000))
    records = fetcher.fetch("https://www.yelp.com/search?find_desc=tacos", session)
    assert [r.name for r in records] == ["Tacos 1", "Tacos 2"]
    assert page.goto_calls[0]["timeout"] == 5000
    assert page.goto_calls[0]["wait_until"] == "domcontentloaded"
    assert page.waits == [150]
    assert (session.opened, session.released) == (1, 1)


def test_explicit_timeout_wins() -> None:
    page = FakePage()
    PageFetcher(BrowserConfig(settle_ms=0)).fetch("https://example.com", PageSession(page), 1234)
    assert page.goto_calls[0]["timeout"] == 1234


def test_timeout_maps_to_fetch_timeout() -> None:
    session = PageSession(FakePage(error=PlaywrightTimeoutError("Timeout 60000ms exceeded")))
    with pytest.raises(FetchTimeoutError):
        PageFetcher().fetch("https://example.com", session)
    assert session.released == 1


def test_navigation_error_maps_to_network_error() -> None:
    session = PageSession(FakePage(error=PlaywrightError("net::ERR_PROXY_CONNECTION_FAILED")))
    with pytest.raises(NetworkError):
        PageFetcher().fetch("https://example.com", session)


@pytest.mark.parametrize("status", [403, 429, 503])
def test_blocking_status_is_network_error(status: int) -> None:
    with pytest.raises(NetworkError):
        PageFetcher().fetch("https://example.com", PageSession(FakePage(status=status)))


def test_blank_render_is_extraction_error() -> None:
    with pytest.raises(ExtractionError):
        PageFetcher(BrowserConfig(settle_ms=0)).fetch("https://example.com", PageSession(FakePage(html="")))


def test_session_factory_binds_node_without_launching() -> None:
    node = ProxyNode(hostname="us-east.example.net", latency=120.0, country="US")
    session = BrowserSessionFactory(BrowserConfig(headless=True)).open(node)
    assert session.node is node
    assert node.server == "us-east.example.net:443"
    # nothing launched yet, so closing is a no-op
    session.close()


class FakeContext:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.closed = False

    def new_page(self) -> FakePage:
        return self.page

    def close(self) -> None:
        self.closed = True


class FlakyBrowser:
    """Browser that serves ``healthy`` contexts and then dies."""

    def __init__(self, healthy: int = 1) -> None:
        self.healthy = healthy
        self.contexts: list[FakeContext] = []
        self.closed = False

    def new_context(self, **kwargs) -> FakeContext:
        if len(self.contexts) >= self.healthy:
            raise PlaywrightError("Browser has been closed")
        context = FakeContext(FakePage())
        self.contexts.append(context)
        return context

    def close(self) -> None:
        self.closed = True
        raise PlaywrightError("Target page, context or browser has been closed")


class FakePlaywright:
    def __init__(self) -> None:
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


def _started_session(browser: FlakyBrowser) -> tuple[BrowserSession, FakePlaywright]:
    session = BrowserSession(None, BrowserConfig(settle_ms=0))
    playwright = FakePlaywright()
    session._browser = browser
    session._playwright = playwright
    return session, playwright


def test_dead_browser_maps_to_network_error_and_is_discarded() -> None:
    browser = FlakyBrowser(healthy=1)
    session, playwright = _started_session(browser)
    fetcher = PageFetcher(BrowserConfig(settle_ms=0))

    records = fetcher.fetch("https://example.com/search", session)
    assert len(records) == 2
    assert browser.contexts[0].closed

    with pytest.raises(NetworkError):
        fetcher.fetch("https://example.com/search", session)
    assert browser.closed
    assert playwright.stopped
    assert session._browser is None
    assert session._playwright is None


def test_session_level_playwright_error_is_network_error() -> None:
    class BrokenSession:
        node = None

        @contextmanager
        def isolated_page(self):
            raise PlaywrightError("Target closed")
            yield  # pragma: no cover

        def close(self) -> None:
            return

    with pytest.raises(NetworkError):
        PageFetcher().fetch("https://example.com", BrokenSession())
