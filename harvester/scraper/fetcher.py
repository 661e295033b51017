"""Page fetchers: plain HTTP with retries, and headless-browser rendering."""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable, Optional, Sequence

import httpx

from harvester.config import Settings
from harvester.errors import FetchError
from harvester.scraper.models import RawPage, RenderedPage
from harvester.scraper.retry import RetrySpec, with_retry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Request identity
# ---------------------------------------------------------------------------
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
]

_BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

_CANCELLED = "cancelled before fetch started"


def _cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


# ---------------------------------------------------------------------------
# Lightweight fetcher
# ---------------------------------------------------------------------------

class LightweightFetcher:
    """HTTP-only retrieval through ``httpx`` with the shared retry policy.

    Every attempt picks a fresh user-agent from the pool.  Transport errors
    and non-2xx responses are retried; once the budget is spent the last
    error is wrapped in :class:`~harvester.errors.FetchError`.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        retry_spec: RetrySpec = RetrySpec(),
        user_agents: Sequence[str] = USER_AGENTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._timeout = timeout
        self._retry_spec = retry_spec
        self._user_agents = list(user_agents)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, config: Settings) -> "LightweightFetcher":
        return cls(timeout=config.request_timeout, retry_spec=config.retry_spec)

    def _headers(self) -> dict[str, str]:
        return {**_BROWSER_HEADERS, "User-Agent": random.choice(self._user_agents)}

    def _attempt(self, client: httpx.Client, url: str) -> RawPage:
        response = client.get(url, headers=self._headers())
        if not response.is_success:
            raise httpx.HTTPStatusError(
                f"HTTP {response.status_code} for {url}",
                request=response.request,
                response=response,
            )
        return RawPage(
            url=str(response.url),
            html=response.text,
            status_code=response.status_code,
            requested_url=url,
        )

    def fetch(
        self,
        url: str,
        cancel: Optional[threading.Event] = None,
        retry_spec: Optional[RetrySpec] = None,
    ) -> RawPage:
        """Fetch *url* and return a :class:`RawPage` for the resolved location.

        *retry_spec* overrides the fetcher's default policy for this call.

        Raises:
            FetchError: When every attempt failed (or *cancel* was already set).
        """
        if _cancelled(cancel):
            raise FetchError(url, _CANCELLED)

        logger.info("[FETCH] GET %s", url)
        with httpx.Client(timeout=self._timeout, follow_redirects=True) as client:
            try:
                return with_retry(
                    lambda: self._attempt(client, url),
                    retry_spec or self._retry_spec,
                    retry_on=(httpx.HTTPError,),
                    cancel=cancel,
                    sleep=self._sleep,
                )
            except httpx.HTTPError as exc:
                logger.warning("[FETCH] giving up on %s: %s", url, exc)
                raise FetchError(url, exc) from exc


# ---------------------------------------------------------------------------
# Rendered fetcher
# ---------------------------------------------------------------------------

class RenderedFetcher:
    """Load a page in headless Chromium and capture what a reader would see.

    A browser is launched per call and closed on every exit path.  Failures
    are not retried here: a render is expensive to repeat blindly.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        capture_screenshot: bool = True,
        user_agent: str = USER_AGENTS[0],
    ) -> None:
        self._timeout = timeout
        self._capture_screenshot = capture_screenshot
        self._user_agent = user_agent

    @classmethod
    def from_settings(cls, config: Settings) -> "RenderedFetcher":
        return cls(
            timeout=config.render_timeout,
            capture_screenshot=config.capture_screenshots,
        )

    @staticmethod
    def _meta_description(page) -> str:  # type: ignore[no-untyped-def]
        # locator.count() does not wait, unlike page.get_attribute().
        meta = page.locator('meta[name="description"]')
        if meta.count() == 0:
            return ""
        return meta.first.get_attribute("content") or ""

    def fetch(self, url: str, cancel: Optional[threading.Event] = None) -> RenderedPage:
        """Render *url* and return markup, visible text and a screenshot.

        Playwright is imported lazily so the lightweight path never needs a
        browser install.

        Raises:
            FetchError: On any navigation or evaluation failure.
        """
        if _cancelled(cancel):
            raise FetchError(url, _CANCELLED)

        from playwright.sync_api import sync_playwright  # noqa: PLC0415

        logger.info("[FETCH] rendering %s", url)
        try:
            with sync_playwright() as pw:
                browser = pw.chromium.launch(
                    headless=True,
                    args=["--no-sandbox", "--disable-setuid-sandbox"],
                )
                try:
                    page = browser.new_page(user_agent=self._user_agent)
                    page.goto(
                        url,
                        timeout=int(self._timeout * 1000),
                        wait_until="networkidle",
                    )
                    title = page.title()
                    description = self._meta_description(page)
                    screenshot = (
                        page.screenshot(full_page=False) if self._capture_screenshot else None
                    )
                    html = page.content()
                    visible_text = page.evaluate(
                        "() => document.body ? document.body.innerText : ''"
                    )
                    final_url = page.url or url
                finally:
                    browser.close()
        except Exception as exc:
            logger.warning("[FETCH] render failed for %s: %s", url, exc)
            raise FetchError(url, exc) from exc

        return RenderedPage(
            url=final_url,
            html=html,
            visible_text=visible_text or "",
            title=title or "",
            description=description,
            screenshot=screenshot,
            requested_url=url,
        )
