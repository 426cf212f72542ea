import logging
import httpx
from typing import Optional
from fake_useragent import UserAgent

from digest.browser import BrowserPool
from digest.errors import FetchError
from digest.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class HTTPClient:
    """
    Page fetcher: direct request first, headless browser when that raises.
    All requests go through the page-fetch rate limiter.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        browser: Optional[BrowserPool] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.ua = UserAgent()
        self.limiter = limiter
        self.browser = browser
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(http2=False, follow_redirects=True)

    def _get_headers(self):
        return {
            "User-Agent": self.ua.random,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "DNT": "1",
            "Connection": "keep-alive",
            "Upgrade-Insecure-Requests": "1",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "cross-site",
            "Cache-Control": "max-age=0",
        }

    async def get(self, url: str, params: Optional[dict] = None) -> httpx.Response:
        """Plain rate-limited GET. Status codes are left to the caller."""
        return await self.limiter.schedule(
            self.client.get, url, params=params, headers=self._get_headers(), timeout=self.timeout
        )

    async def _fetch_direct(self, url: str) -> str:
        response = await self.client.get(url, headers=self._get_headers(), timeout=self.timeout)
        response.raise_for_status()
        return response.text

    async def _fetch_rendered(self, url: str) -> str:
        async with self.browser.page() as page:
            await page.goto(url, wait_until="networkidle")
            return await page.content()

    async def _fetch(self, url: str) -> str:
        try:
            html = await self._fetch_direct(url)
            logger.info(f"Successfully fetched {url}")
            return html
        except Exception as e:
            if self.browser is None:
                raise FetchError(url, f"Request failed ({e})") from e
            logger.warning(f"Direct fetch failed for {url}: {e}. Falling back to browser...")

        try:
            html = await self._fetch_rendered(url)
            logger.info(f"Fetched {url} with browser")
            return html
        except Exception as e:
            logger.error(f"Failed to fetch {url}: {e}")
            raise FetchError(url, f"Request and browser fallback failed ({e})") from e

    async def fetch(self, url: str) -> str:
        """
        Returns the page markup for `url`.
        Raises FetchError when both the request and the browser fail.
        """
        return await self.limiter.schedule(self._fetch, url)

    async def close(self):
        await self.client.aclose()
