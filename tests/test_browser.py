import asyncio
import unittest
from unittest import mock

from digest.browser import BrowserPool


class FakePage:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


class FakeChromiumBrowser:
    def __init__(self):
        self.closed = False
        self.pages = []

    async def new_page(self):
        page = FakePage()
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self):
        self.launched = []

    async def launch(self, headless=True, args=None):
        browser = FakeChromiumBrowser()
        self.launched.append(browser)
        return browser


class FakePlaywright:
    def __init__(self):
        self.chromium = FakeChromium()
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakeManager:
    def __init__(self, playwright):
        self.playwright = playwright

    async def start(self):
        return self.playwright


class TestBrowserPool(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.playwright = FakePlaywright()
        patcher = mock.patch("digest.browser.async_playwright", lambda: FakeManager(self.playwright))
        patcher.start()
        self.addCleanup(patcher.stop)

    async def test_launches_once_and_opens_a_page_per_caller(self):
        pool = BrowserPool(idle_timeout=60)
        async with pool.page() as first:
            async with pool.page() as second:
                self.assertIsNot(first, second)
        self.assertTrue(first.closed and second.closed)
        self.assertEqual(len(self.playwright.chromium.launched), 1)
        await pool.close()
        self.assertTrue(self.playwright.chromium.launched[0].closed)
        self.assertTrue(self.playwright.stopped)

    async def test_relaunches_after_idle_timeout(self):
        now = [0.0]
        pool = BrowserPool(idle_timeout=60, clock=lambda: now[0])

        async with pool.page():
            pass
        now[0] += 61
        async with pool.page():
            pass

        launched = self.playwright.chromium.launched
        self.assertEqual(len(launched), 2)
        self.assertTrue(launched[0].closed)
        self.assertFalse(launched[1].closed)
        await pool.close()

    async def test_reuses_browser_within_idle_timeout(self):
        now = [0.0]
        pool = BrowserPool(idle_timeout=60, clock=lambda: now[0])

        async with pool.page():
            pass
        now[0] += 30
        async with pool.page():
            pass

        self.assertEqual(len(self.playwright.chromium.launched), 1)
        await pool.close()

    async def test_idle_browser_is_shut_down_without_a_new_caller(self):
        pool = BrowserPool(idle_timeout=0.01)
        async with pool.page():
            pass

        await asyncio.sleep(0.1)

        self.assertTrue(self.playwright.chromium.launched[0].closed)
        self.assertTrue(self.playwright.stopped)
        await pool.close()


if __name__ == "__main__":
    unittest.main()
