"""Page fetchers returning the raw text of a paginated transaction table."""

from __future__ import annotations

from typing import Protocol
from urllib.parse import urljoin

import httpx
import structlog
from selectolax.parser import HTMLParser, Node

from ..config import BrowserConfig, FetcherKind, SweepConfig
from ..errors import HardFetchError, TransientTimeout, WorkerStartupError


class PageFetcher(Protocol):
    """Capability consumed by workers: URL in, raw tabular text out."""

    def start(self) -> None:
        """Acquire the underlying browser or HTTP client."""

    def fetch(self, url: str, patience_ms: int) -> str:
        """Return table text, raising TransientTimeout or HardFetchError."""

    def close(self) -> None:
        """Release resources; safe to call more than once."""


class BrowserPageFetcher:
    """Drive headless Chromium through Playwright's sync API.

    The source page sometimes raises an error dialog instead of rendering its
    table. The dialog is dismissed as soon as it appears and, before waiting
    for content, the page's regenerate button is clicked to rebuild the table.
    The table may be rendered inline or inside an iframe; whichever shows up
    first within the patience budget is read.
    """

    def __init__(
        self, config: BrowserConfig, logger: structlog.BoundLogger | None = None
    ) -> None:
        self.config = config
        self.logger = logger or structlog.get_logger("page_sweeper.fetcher")
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self._had_error_dialog = False

    def start(self) -> None:
        if self._page is not None:
            return
        try:
            from playwright.sync_api import Error as PlaywrightError
            from playwright.sync_api import sync_playwright
        except ImportError as exc:  # pragma: no cover
            raise WorkerStartupError(
                "Browser fetching requires installing the 'playwright' package."
            ) from exc

        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=self.config.headless)
            self._context = self._browser.new_context(user_agent=self.config.user_agent)
            self._page = self._context.new_page()
        except PlaywrightError as exc:
            self.close()
            raise WorkerStartupError(f"Could not launch browser: {exc}") from exc
        self._page.set_default_navigation_timeout(self.config.navigation_timeout)
        self._page.on("dialog", self._on_dialog)

    def _on_dialog(self, dialog) -> None:
        self.logger.debug("error_dialog_dismissed", message=dialog.message)
        dialog.dismiss()
        self._had_error_dialog = True

    def fetch(self, url: str, patience_ms: int) -> str:
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

        self.start()
        self._had_error_dialog = False
        try:
            self._page.goto(url)
        except PlaywrightTimeoutError as exc:
            raise TransientTimeout(url, patience_ms) from exc
        except PlaywrightError as exc:
            raise HardFetchError(f"Navigation to {url} failed: {exc}") from exc

        if self._had_error_dialog:
            try:
                self._page.click(self.config.regenerate_selector)
            except PlaywrightError as exc:
                raise HardFetchError(
                    f"Could not regenerate table after error dialog on {url}: {exc}"
                ) from exc

        content_selector = f"{self.config.table_selector}, {self.config.frame_selector}"
        try:
            self._page.wait_for_selector(content_selector, timeout=patience_ms)
        except PlaywrightTimeoutError as exc:
            raise TransientTimeout(url, patience_ms) from exc

        try:
            text = self._read_table_text(patience_ms)
        except PlaywrightError as exc:
            # 框架仍在导航时会销毁执行上下文，下一次尝试即可读到
            self.logger.debug("table_read_failed", url=url, error=str(exc))
            raise TransientTimeout(url, patience_ms) from exc
        if not text or not text.strip():
            # iframe present but not populated yet
            raise TransientTimeout(url, patience_ms)
        return text

    def _read_table_text(self, patience_ms: int) -> str | None:
        text = self._page.inner_text(self.config.container_selector, timeout=patience_ms)
        if text:
            return text
        frame = self._page.frame(name=self.config.frame_name)
        if frame is None:
            return None
        return frame.evaluate("() => document.querySelector('*').innerText")

    def close(self) -> None:
        if self._context is not None:
            self._context.close()
            self._context = None
            self._page = None
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None


class HttpPageFetcher:
    """Fetch server rendered tables with httpx and extract them with selectolax."""

    def __init__(
        self, config: BrowserConfig, logger: structlog.BoundLogger | None = None
    ) -> None:
        self.config = config
        self.logger = logger or structlog.get_logger("page_sweeper.fetcher")
        self._client: httpx.Client | None = None

    def start(self) -> None:
        if self._client is not None:
            return
        headers = {"User-Agent": self.config.user_agent} if self.config.user_agent else None
        self._client = httpx.Client(follow_redirects=True, headers=headers)

    def fetch(self, url: str, patience_ms: int) -> str:
        self.start()
        html = self._get(url, patience_ms)
        tree = HTMLParser(html)
        table = tree.css_first(self.config.table_selector)
        if table is not None:
            return table_to_text(table)
        frame = tree.css_first(self.config.frame_selector)
        src = frame.attributes.get("src") if frame is not None else None
        if src:
            frame_tree = HTMLParser(self._get(urljoin(url, src), patience_ms))
            frame_table = frame_tree.css_first("table")
            if frame_table is not None:
                return table_to_text(frame_table)
        raise TransientTimeout(url, patience_ms)

    def _get(self, url: str, patience_ms: int) -> str:
        try:
            response = self._client.get(url, timeout=patience_ms / 1000)
        except httpx.TimeoutException as exc:
            raise TransientTimeout(url, patience_ms) from exc
        except httpx.HTTPError as exc:
            raise HardFetchError(f"Request to {url} failed: {exc}") from exc
        if self._is_retryable(response):
            self.logger.debug("retryable_status", url=url, status=response.status_code)
            raise TransientTimeout(url, patience_ms)
        if response.status_code >= 400:
            raise HardFetchError(f"Unexpected status {response.status_code} for {url}")
        return response.text

    @staticmethod
    def _is_retryable(response: httpx.Response) -> bool:
        return response.status_code >= 500 or response.status_code == 429

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def table_to_text(table: Node) -> str:
    """Render a table as tab separated rows, the way a browser's innerText does."""

    rows = []
    for row in table.css("tr"):
        cells = [cell.text(strip=True) for cell in row.iter() if cell.tag in ("th", "td")]
        rows.append("\t".join(cells))
    return "\n".join(rows)


def build_fetcher(
    config: SweepConfig, logger: structlog.BoundLogger | None = None
) -> PageFetcher:
    if config.fetcher is FetcherKind.HTTP:
        return HttpPageFetcher(config.browser, logger=logger)
    return BrowserPageFetcher(config.browser, logger=logger)


__all__ = [
    "BrowserPageFetcher",
    "HttpPageFetcher",
    "PageFetcher",
    "build_fetcher",
    "table_to_text",
]
