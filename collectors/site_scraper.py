import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from bs4 import BeautifulSoup, Tag
from dateutil import parser as dtparser

from digest.collector_base import BaseCollector
from digest.http_client import HTTPClient
from digest.models import RawCandidate, SourceSpec
from digest.rate_limit import retry
from digest.robots import RobotsChecker
from digest.urls import construct_full_url, is_blacklisted

logger = logging.getLogger(__name__)


def parse_date(text: Optional[str]) -> Optional[datetime]:
    """Parses free-form listing dates ("Posted July 9, 2024 by ..."); None if unreadable."""
    if not text:
        return None
    try:
        parsed = dtparser.parse(text, fuzzy=True)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _select_text(element: Tag, selector: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    match = element.select_one(selector)
    if match is None:
        return None
    text = match.get_text(separator=" ", strip=True)
    return " ".join(text.split()) or None


def _select_href(element: Tag, selector: str) -> Optional[str]:
    match = element.select_one(selector)
    # A container that is itself the link (e.g. <a class="card">) has no inner match
    if match is None and element.name == "a":
        match = element
    if match is None:
        return None
    href = match.get("href")
    return href if isinstance(href, str) else None


def extract_candidates(html: str, source: SourceSpec) -> List[RawCandidate]:
    """Applies a source's selector rules to a listing page."""
    soup = BeautifulSoup(html, "lxml")
    candidates = []
    for element in soup.select(source.container_selector):
        candidates.append(
            RawCandidate(
                source_url=source.url,
                link=construct_full_url(source.url, _select_href(element, source.link_selector)),
                title=_select_text(element, source.title_selector),
                description=_select_text(element, source.description_selector),
                date=parse_date(_select_text(element, source.date_selector)),
            )
        )
    return candidates


class SiteScraper(BaseCollector):
    def __init__(
        self,
        http_client: HTTPClient,
        robots: RobotsChecker,
        sources: Iterable[SourceSpec],
        blacklist: Iterable[str] = (),
        sleep=None,
    ):
        super().__init__()
        self.http_client = http_client
        self.robots = robots
        self.sources = list(sources)
        self.blacklist = list(blacklist)
        self._sleep = sleep

    async def scrape_source(self, source: SourceSpec) -> List[RawCandidate]:
        if not await self.robots.is_allowed(source.url):
            logger.info(f"Scraping disallowed by robots.txt for {source.url}")
            return []

        try:
            kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
            html = await retry(self.http_client.fetch, source.url, **kwargs)
            candidates = extract_candidates(html, source)
        except Exception as e:
            logger.error(f"Error scraping {source.url}: {e}")
            return []

        logger.info(f"Found {len(candidates)} articles on {source.url}")
        return candidates

    async def collect(self) -> List[RawCandidate]:
        sources = [s for s in self.sources if not is_blacklisted(s.url, self.blacklist)]
        skipped = len(self.sources) - len(sources)
        if skipped:
            logger.info(f"Skipping {skipped} blacklisted source(s)")

        results = await asyncio.gather(*(self.scrape_source(source) for source in sources))
        return [candidate for batch in results for candidate in batch]
