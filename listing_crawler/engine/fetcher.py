"""Playwright-backed render sessions and the page fetcher built on them."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Protocol

import structlog
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..config import BrowserConfig
from ..errors import FetchError, FetchTimeoutError, NetworkError
from .parser import ResultCardExtractor
from .records import ProxyNode, Record


class Session(Protocol):
    """Render context bound to at most one proxy node."""

    node: ProxyNode | None

    def isolated_page(self) -> Any:
        """Context manager yielding a fresh page that shares no state with others."""

    def close(self) -> None:
        """Tear the session down."""


class BrowserSession:
    """Chromium instance launched behind one egress node."""

    def __init__(self, node: ProxyNode | None, config: BrowserConfig | None = None) -> None:
        self.node = node
        self.config = config or BrowserConfig()
        self._playwright = None
        self._browser = None
        self._logger = structlog.get_logger("listing_crawler.fetcher")

    def _ensure_started(self) -> None:
        if self._browser is not None:
            return
        launch_kwargs: dict[str, Any] = {"headless": self.config.headless}
        if self.node is not None:
            launch_kwargs["proxy"] = {"server": self.node.server}
        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(**launch_kwargs)
        except PlaywrightError as exc:
            self._playwright.stop()
            self._playwright = None
            raise NetworkError(f"Browser launch failed: {exc}") from exc

    @contextmanager
    def isolated_page(self) -> Iterator[Any]:
        self._ensure_started()
        # Fresh context per attempt so cookies/storage of a failed attempt never leak
        try:
            context = self._browser.new_context(ignore_https_errors=True)
            page = context.new_page()
        except PlaywrightError as exc:
            self._discard()
            raise NetworkError(f"Browser unavailable: {exc}") from exc
        try:
            yield page
        finally:
            try:
                context.close()
            except PlaywrightError as exc:
                self._logger.warning("context_close_failed", error=str(exc))
                self._discard()

    def _discard(self) -> None:
        """Forget a browser that stopped responding; the next page relaunches it."""

        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        for closer in (getattr(browser, "close", None), getattr(playwright, "stop", None)):
            if closer is None:
                continue
            try:
                closer()
            except PlaywrightError as exc:
                self._logger.debug("browser_teardown_failed", error=str(exc))

    def close(self) -> None:
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None


class BrowserSessionFactory:
    """Open a render session for a node selected by the proxy manager."""

    def __init__(self, config: BrowserConfig | None = None) -> None:
        self.config = config or BrowserConfig()

    def open(self, node: ProxyNode | None) -> BrowserSession:
        return BrowserSession(node, self.config)


class PageFetcher:
    """Render one search page inside a session and extract its records."""

    def __init__(
        self,
        config: BrowserConfig | None = None,
        extractor: ResultCardExtractor | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config or BrowserConfig()
        self.extractor = extractor or ResultCardExtractor(self.config.card_selector)
        self.logger = logger or structlog.get_logger("listing_crawler.fetcher")

    def fetch(self, url: str, session: Session, timeout_ms: int | None = None) -> list[Record]:
        timeout = timeout_ms or self.config.timeout_ms
        try:
            with session.isolated_page() as page:
                html = self._render(page, url, timeout)
        except FetchError:
            raise
        except PlaywrightError as exc:
            raise NetworkError(f"Browser session failed: {exc}", url=url) from exc
        self.logger.info("page_fetched", url=url, bytes=len(html))
        records = self.extractor.extract(html, url)
        self.logger.info("page_parsed", url=url, records=len(records))
        return records

    def _render(self, page: Any, url: str, timeout: int) -> str:
        try:
            response = page.goto(url, wait_until="domcontentloaded", timeout=timeout)
            if self._is_failure(response):
                raise NetworkError(f"Unexpected status {response.status}", url=url)
            if self.config.settle_ms:
                page.wait_for_timeout(self.config.settle_ms)
            return page.content()
        except FetchError:
            raise
        except PlaywrightTimeoutError as exc:
            raise FetchTimeoutError(f"Timed out after {timeout} ms: {exc}", url=url) from exc
        except PlaywrightError as exc:
            raise NetworkError(f"Navigation failed: {exc}", url=url) from exc

    @staticmethod
    def _is_failure(response: Any) -> bool:
        status_code = getattr(response, "status", 0) or 0
        if status_code >= 500:
            return True
        if status_code in {401, 403, 404, 429}:
            return True
        return False


__all__ = [
    "BrowserSession",
    "BrowserSessionFactory",
    "PageFetcher",
    "Session",
]
