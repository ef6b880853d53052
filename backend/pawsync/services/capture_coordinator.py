# backend/pawsync/services/capture_coordinator.py
"""
Capture Coordinator - screenshots of a pet's main photo from its listing page.

Architecture:
- BrowserSession owns one Chromium browser, one context and a small pool of
  pages. It is acquired with ``async with`` and always closes the context and
  browser on exit, including cancellation from a batch timeout.
- CaptureCoordinator borrows a page per capture, navigates, waits for client
  rendering to settle, then tries the configured photo selectors in order.
  The first selector that resolves to a non-chrome image is captured as a
  close-cropped element screenshot. If none match, a fixed page rectangle is
  captured instead.

The selector table and chrome filters are plain configuration so markup
changes on the listing site need no code change.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..constants import (
    BROWSER_LAUNCH_ARGS,
    DEFAULT_CHROME_FILTERS,
    DEFAULT_FALLBACK_CLIP,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_PHOTO_SELECTORS,
    DEFAULT_SETTLE_DELAY_MS,
    DEFAULT_USER_AGENT,
    DEFAULT_VIEWPORT,
)
from ..enums import CaptureStrategy, LogEmoji, LoggerName
from ..exceptions import CaptureError, CaptureSetupError, NavigationError, NoImageFound
from ..models.pipeline_models import CaptureResult
from .logger import get_service_logger

logger = get_service_logger(LoggerName.CAPTURE_PIPELINE, LogEmoji.CAMERA)


class BrowserSession:
    """
    One browser and context shared by every capture in a batch.

    Pages are handed out through an asyncio.Queue so at most ``page_count``
    captures use the browser at once.
    """

    def __init__(
        self,
        page_count: int = 1,
        headless: bool = True,
        viewport: Tuple[int, int] = DEFAULT_VIEWPORT,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.page_count = max(1, page_count)
        self.headless = headless
        self.viewport = viewport
        self.user_agent = user_agent

        self._playwright = None
        self._browser = None
        self._context = None
        self._pages: "asyncio.Queue[Any]" = asyncio.Queue()

    async def __aenter__(self) -> "BrowserSession":
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless, args=BROWSER_LAUNCH_ARGS
            )
            self._context = await self._browser.new_context(
                viewport={"width": self.viewport[0], "height": self.viewport[1]},
                user_agent=self.user_agent,
            )
            for _ in range(self.page_count):
                self._pages.put_nowait(await self._context.new_page())
        except (PlaywrightError, OSError) as e:
            await self.close()
            raise CaptureSetupError(
                f"Failed to launch browser: {e}", operation="browser_launch"
            ) from e
        except asyncio.CancelledError:
            await self.close()
            raise

        logger.info(
            f"Browser session started with {self.page_count} page(s)",
            emoji=LogEmoji.STARTUP,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close context, browser and driver. Safe to call more than once."""
        for name in ("_context", "_browser"):
            resource = getattr(self, name)
            if resource is None:
                continue
            setattr(self, name, None)
            try:
                await resource.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing browser {name.strip('_')}: {e}")

        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            try:
                await playwright.stop()
            except PlaywrightError as e:
                logger.warning(f"Error stopping playwright: {e}")

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Any]:
        """Borrow a page for the duration of one capture."""
        page = await self._pages.get()
        try:
            yield page
        finally:
            self._pages.put_nowait(page)


class CaptureCoordinator:
    """Captures the main pet photo from a listing page."""

    def __init__(
        self,
        session: Any,
        photo_selectors: Optional[Sequence[str]] = None,
        chrome_filters: Optional[Sequence[str]] = None,
        fallback_clip: Optional[Dict[str, int]] = None,
        settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS,
        default_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
    ):
        """
        Args:
            session: Object with a ``page()`` async context manager, normally
                a BrowserSession
            photo_selectors: Ordered CSS selectors for the main photo
            chrome_filters: Substrings of img src that mark UI chrome
            fallback_clip: Page rectangle captured when no selector matches
            settle_delay_ms: Wait after load for client-side rendering
            default_timeout_ms: Navigation timeout when capture() gets none
        """
        self.session = session
        self.photo_selectors: List[str] = list(
            photo_selectors if photo_selectors is not None else DEFAULT_PHOTO_SELECTORS
        )
        self.chrome_filters: List[str] = list(
            chrome_filters if chrome_filters is not None else DEFAULT_CHROME_FILTERS
        )
        self.fallback_clip = dict(fallback_clip or DEFAULT_FALLBACK_CLIP)
        self.settle_delay_ms = settle_delay_ms
        self.default_timeout_ms = default_timeout_ms

    def is_chrome_image(self, src: Optional[str]) -> bool:
        """True when src is empty or matches a UI chrome filter."""
        if not src:
            return True
        return any(fragment in src for fragment in self.chrome_filters)

    async def _navigate(self, page: Any, source_url: str, timeout_ms: int) -> None:
        try:
            response = await page.goto(
                source_url, wait_until="domcontentloaded", timeout=timeout_ms
            )
        except PlaywrightTimeoutError as e:
            raise NavigationError(
                f"Timed out after {timeout_ms}ms loading {source_url}",
                operation="navigate",
            ) from e
        except PlaywrightError as e:
            raise NavigationError(
                f"Failed to load {source_url}: {e}", operation="navigate"
            ) from e

        if response is not None and response.status >= 400:
            raise NavigationError(
                f"Source page returned HTTP {response.status}",
                operation="navigate",
                details={"status": response.status, "url": source_url},
            )

    async def _capture_element(self, page: Any) -> Optional[Tuple[bytes, str]]:
        """First selector resolving to a real photo, screenshotted on its own."""
        for selector in self.photo_selectors:
            try:
                element = await page.query_selector(selector)
                if element is None:
                    continue
                src = await element.get_attribute("src")
                if self.is_chrome_image(src):
                    logger.debug(f"Skipping chrome image for {selector}: {src}")
                    continue
                png = await element.screenshot(type="png")
            except PlaywrightError as e:
                logger.debug(f"Selector {selector} not capturable: {e}")
                continue

            if png:
                return png, selector
        return None

    async def _capture_page_area(self, page: Any) -> Optional[bytes]:
        try:
            return await page.screenshot(
                type="png", full_page=False, clip=self.fallback_clip
            )
        except PlaywrightError as e:
            logger.warning(f"Fallback page-area capture failed: {e}")
            return None

    async def capture(
        self, source_url: str, timeout_ms: Optional[int] = None
    ) -> CaptureResult:
        """
        Capture the main photo of a listing page as PNG bytes.

        Raises:
            NavigationError: Page unreachable or timed out (retryable)
            NoImageFound: No selector matched and the fallback failed
            CaptureError: Any other browser failure
        """
        timeout_ms = timeout_ms or self.default_timeout_ms
        started = time.monotonic()

        async with self.session.page() as page:
            await self._navigate(page, source_url, timeout_ms)

            try:
                if self.settle_delay_ms:
                    await page.wait_for_timeout(self.settle_delay_ms)

                element_capture = await self._capture_element(page)
                if element_capture is not None:
                    png, selector = element_capture
                    strategy = CaptureStrategy.ELEMENT
                else:
                    logger.info(
                        f"No photo selector matched on {source_url}, "
                        "capturing page area"
                    )
                    png = await self._capture_page_area(page)
                    selector = None
                    strategy = CaptureStrategy.PAGE_AREA
            except PlaywrightError as e:
                raise CaptureError(
                    f"Browser error capturing {source_url}: {e}", operation="capture"
                ) from e

        if not png:
            raise NoImageFound(
                f"No photo found on {source_url}", operation="capture"
            )

        return CaptureResult(
            png_bytes=png,
            strategy=strategy,
            selector=selector,
            duration_ms=int((time.monotonic() - started) * 1000),
        )


@asynccontextmanager
async def open_capture_coordinator(settings, page_count: int = 1):
    """
    Launch a browser session and yield a coordinator bound to it.

    Raises:
        CaptureSetupError: If the browser cannot be launched
    """
    session = BrowserSession(
        page_count=page_count,
        headless=settings.capture_headless,
        viewport=(settings.capture_viewport_width, settings.capture_viewport_height),
        user_agent=settings.capture_user_agent,
    )
    async with session:
        yield CaptureCoordinator(
            session,
            photo_selectors=settings.capture_photo_selectors,
            chrome_filters=settings.capture_chrome_filters,
            fallback_clip=settings.capture_fallback_clip,
            settle_delay_ms=settings.capture_settle_delay_ms,
            default_timeout_ms=settings.capture_navigation_timeout_ms,
        )
