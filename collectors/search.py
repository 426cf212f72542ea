import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Protocol
from urllib.parse import urlparse

from digest.browser import BrowserPool
from digest.collector_base import BaseCollector
from digest.config import JOB_PATH_PATTERN, REDIRECTOR_HOSTS
from digest.errors import ConfigurationError, ExternalServiceError
from digest.http_client import HTTPClient
from digest.models import RawCandidate
from digest.rate_limit import RateLimiter, retry
from digest.urls import is_bare_root, is_blacklisted

logger = logging.getLogger(__name__)

RESULTS_PER_PAGE = 10
SEARCH_SOURCE_PREFIX = "search:"


class SearchAPI(Protocol):
    async def search(self, query: str, start: int) -> List[Dict[str, str]]:
        """Returns result items with "title", "link" and "snippet" keys."""
        ...


class GoogleSearchAPI:
    ENDPOINT = "https://www.googleapis.com/customsearch/v1"

    def __init__(self, http_client: HTTPClient, api_key: Optional[str], engine_id: Optional[str]):
        if not api_key or not engine_id:
            raise ConfigurationError("CUSTOM_SEARCH_API_KEY and CUSTOM_SEARCH_ENGINE_ID must be set")
        self.http_client = http_client
        self.api_key = api_key
        self.engine_id = engine_id

    async def search(self, query: str, start: int) -> List[Dict[str, str]]:
        params = {"key": self.api_key, "cx": self.engine_id, "q": query, "start": start, "num": RESULTS_PER_PAGE}
        response = await self.http_client.get(self.ENDPOINT, params=params)
        if not response.is_success:
            raise ExternalServiceError(
                f"Search API returned {response.status_code} for {query!r}", service="search"
            )
        items = response.json().get("items") or []
        return [
            {"title": item.get("title", ""), "link": item.get("link", ""), "snippet": item.get("snippet", "")}
            for item in items
        ]


def is_redirector(url: str, redirector_hosts: Iterable[str] = REDIRECTOR_HOSTS) -> bool:
    return (urlparse(url).hostname or "").lower() in set(redirector_hosts)


def is_job_posting(url: str) -> bool:
    return bool(JOB_PATH_PATTERN.search(urlparse(url).path))


class SearchCollector(BaseCollector):
    """
    Runs each query (scoped to the current month) over several result pages
    and keeps results that look like articles: redirector links are followed
    to their destination, homepages, job postings and blacklisted origins
    are dropped.
    """

    def __init__(
        self,
        search_api: SearchAPI,
        browser: BrowserPool,
        limiter: RateLimiter,
        queries: Iterable[str],
        pages_per_query: int = 3,
        blacklist: Iterable[str] = (),
        redirector_hosts: Iterable[str] = REDIRECTOR_HOSTS,
        clock: Callable[[], datetime] = datetime.now,
        sleep=None,
    ):
        super().__init__()
        self.search_api = search_api
        self.browser = browser
        self.limiter = limiter
        self.queries = list(queries)
        self.pages_per_query = pages_per_query
        self.blacklist = list(blacklist)
        self.redirector_hosts = set(redirector_hosts)
        self.clock = clock
        self._sleep = sleep

    def scoped_query(self, query: str) -> str:
        return f"{query} {self.clock().strftime('%B')}"

    async def _navigate(self, url: str) -> Optional[str]:
        async with self.browser.page() as page:
            response = await page.goto(url, wait_until="networkidle")
            if response is None or not response.ok:
                status = response.status if response is not None else "no response"
                logger.warning(f"Error navigating to {url}: {status}")
                return None
            return page.url

    async def resolve_redirect(self, url: str) -> Optional[str]:
        try:
            return await self.limiter.schedule(self._navigate, url)
        except Exception as e:
            logger.warning(f"Error navigating to {url}: {e}")
            return None

    async def screen_item(self, item: Dict[str, str], query: str) -> Optional[RawCandidate]:
        link = (item.get("link") or "").strip()
        title = (item.get("title") or "").strip()
        if not link or not title:
            return None

        if is_redirector(link, self.redirector_hosts):
            link = await self.resolve_redirect(link)
            if not link:
                return None

        if is_bare_root(link):
            logger.debug(f"Skipping homepage result {link}")
            return None
        if is_job_posting(link):
            logger.debug(f"Skipping job posting {link}")
            return None
        if is_blacklisted(link, self.blacklist):
            logger.info(f"Blacklisted domain: {link}")
            return None

        return RawCandidate(
            source_url=f"{SEARCH_SOURCE_PREFIX}{query}",
            link=link,
            title=title,
            snippet=item.get("snippet") or None,
        )

    async def search_page(self, query: str, page_index: int) -> List[RawCandidate]:
        start = page_index * RESULTS_PER_PAGE + 1
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        items = await retry(self.search_api.search, self.scoped_query(query), start, **kwargs)
        if not items:
            logger.info(f"No results found for query: {query} (start={start})")
            return []
        screened = await asyncio.gather(*(self.screen_item(item, query) for item in items))
        return [candidate for candidate in screened if candidate is not None]

    async def collect(self) -> List[RawCandidate]:
        results: List[RawCandidate] = []
        for query in self.queries:
            for page_index in range(self.pages_per_query):
                try:
                    results.extend(await self.search_page(query, page_index))
                except Exception as e:
                    logger.error(f"Error searching for query {query!r} page {page_index + 1}: {e}")
        logger.info(f"Found {len(results)} search results across {len(self.queries)} queries")
        return results
