"""Page extractors: fetch a page and turn it into a typed record."""

from __future__ import annotations

from threading import Lock, get_ident
from typing import Protocol

import httpx
import structlog

from ..config import ExtractionConfig
from ..errors import ExtractionError
from .parser import PageParser
from .records import ExtractedRecord, TargetKind

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class PageExtractor(Protocol):
    """Capability consumed by the fetch coordinator."""

    def extract(self, url: str, kind: TargetKind, timeout: float) -> ExtractedRecord:
        """Return the record for ``url`` or raise ``ExtractionError``."""


class HttpPageExtractor:
    """Fetch static markup with httpx and parse it."""

    def __init__(
        self,
        parser: PageParser | None = None,
        user_agent: str | None = None,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.parser = parser or PageParser()
        self.logger = logger or structlog.get_logger("catalog_crawler.extractor")
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=30,
            headers={"User-Agent": user_agent or DEFAULT_USER_AGENT},
        )

    def extract(self, url: str, kind: TargetKind, timeout: float) -> ExtractedRecord:
        try:
            response = self._client.get(url, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise ExtractionError(
                f"Timed out fetching {url}", url=url, kind=TargetKind(kind).value, timed_out=True
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionError(
                f"HTTP error fetching {url}: {exc}", url=url, kind=TargetKind(kind).value
            ) from exc
        if self._is_failure(response):
            raise ExtractionError(
                f"Unexpected status {response.status_code} for {url}",
                url=url,
                kind=TargetKind(kind).value,
            )
        return self.parser.parse(kind, response.text, str(response.url))

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _is_failure(response: httpx.Response) -> bool:
        return response.status_code >= 400


class BrowserPageExtractor:
    """Render pages in headless Chromium before parsing.

    Playwright's sync API is bound to the thread that started it, so one
    browser session is kept per worker thread.
    """

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        parser: PageParser | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.parser = parser or PageParser(
            navigation_limit=self.config.navigation_limit,
            listing_limit=self.config.listing_limit,
        )
        self.logger = logger or structlog.get_logger("catalog_crawler.extractor")
        self._sessions: dict[int, _PlaywrightSession] = {}
        self._lock = Lock()

    def extract(self, url: str, kind: TargetKind, timeout: float) -> ExtractedRecord:
        session = self._ensure_session()
        html, final_url = session.render(url, timeout, self.logger)
        return self.parser.parse(kind, html, final_url)

    def close(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            try:
                session.close()
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("browser_close_failed", error=str(exc))

    def _ensure_session(self) -> "_PlaywrightSession":
        thread_id = get_ident()
        with self._lock:
            session = self._sessions.get(thread_id)
            if session is None:
                session = _PlaywrightSession(self.config)
                self._sessions[thread_id] = session
            return session


class _PlaywrightSession:
    def __init__(self, config: ExtractionConfig) -> None:
        self._config = config
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def _ensure_started(self) -> None:
        if self._playwright is not None:
            return
        from playwright.sync_api import sync_playwright

        width, height = self._config.viewport_size
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=self._config.headless_mode)
        self._context = self._browser.new_context(
            user_agent=self._config.user_agent or DEFAULT_USER_AGENT,
            viewport={"width": width, "height": height},
            ignore_https_errors=True,
        )
        self._page = self._context.new_page()

    def render(self, url: str, timeout: float, logger: structlog.BoundLogger) -> tuple[str, str]:
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

        timeout_ms = int(timeout * 1000)
        try:
            self._ensure_started()
            self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise ExtractionError(f"Playwright timeout: {exc}", url=url, timed_out=True) from exc
        except PlaywrightError as exc:
            raise ExtractionError(f"Playwright navigation failed: {exc}", url=url) from exc
        try:
            self._page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            # Pages with long-polling widgets never go idle; parse what rendered
            logger.warning("networkidle_timeout", url=url)
        return self._page.content(), self._page.url

    def close(self) -> None:
        if self._page is not None:
            self._page.close()
            self._page = None
        if self._context is not None:
            self._context.close()
            self._context = None
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None


def build_extractor(config: ExtractionConfig) -> HttpPageExtractor | BrowserPageExtractor:
    """Return the extractor selected by ``config.use_browser``."""

    if config.use_browser:
        return BrowserPageExtractor(config)
    parser = PageParser(navigation_limit=config.navigation_limit, listing_limit=config.listing_limit)
    return HttpPageExtractor(parser=parser, user_agent=config.user_agent)


__all__ = [
    "BrowserPageExtractor",
    "DEFAULT_USER_AGENT",
    "HttpPageExtractor",
    "PageExtractor",
    "build_extractor",
]
