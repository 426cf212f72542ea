import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]


class BrowserPool:
    """
    Owns the single headless Chromium instance.

    The browser is launched on first use. Once the last page is closed a
    reaper task waits `idle_timeout` seconds and shuts the browser down if
    nothing used it meanwhile; a browser found stale on acquire is
    relaunched. Every caller gets its own page so concurrent navigations
    never share in-flight state.
    """

    def __init__(
        self,
        idle_timeout: float = 30 * 60,
        headless: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.idle_timeout = idle_timeout
        self.headless = headless
        self.clock = clock
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._last_used = clock()
        self._open_pages = 0
        self._reaper: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    async def _get_browser(self) -> Browser:
        async with self._lock:
            idle_for = self.clock() - self._last_used
            if self._browser and self._open_pages == 0 and idle_for > self.idle_timeout:
                logger.info(f"Browser idle for {idle_for:.0f}s, relaunching")
                await self._shutdown()

            if self._browser is None:
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless, args=LAUNCH_ARGS
                )
                logger.info("Launched headless browser")

            self._last_used = self.clock()
            return self._browser

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        browser = await self._get_browser()
        self._open_pages += 1
        page = await browser.new_page()
        try:
            yield page
        finally:
            self._open_pages -= 1
            self._last_used = self.clock()
            await page.close()
            if self._open_pages == 0:
                self._schedule_reaper()

    def _schedule_reaper(self):
        if self._reaper is not None:
            self._reaper.cancel()
        self._reaper = asyncio.create_task(self._reap_when_idle())

    async def _reap_when_idle(self):
        delay = self.idle_timeout
        while True:
            await asyncio.sleep(delay)
            async with self._lock:
                if self._browser is None or self._open_pages:
                    return
                idle_for = self.clock() - self._last_used
                if idle_for >= self.idle_timeout:
                    logger.info(f"Browser idle for {idle_for:.0f}s, shutting down")
                    await self._shutdown()
                    return
                delay = self.idle_timeout - idle_for

    async def _shutdown(self):
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def close(self):
        if self._reaper is not None:
            self._reaper.cancel()
        self._reaper = None
        async with self._lock:
            await self._shutdown()
