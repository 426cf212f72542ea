import logging
import asyncio
import json
import os
import sys
from dotenv import load_dotenv

from digest.ai import AIOracle, GeminiModel
from digest.browser import BrowserPool
from digest.config import FALLBACK_SEARCH_QUERIES, SEARCH_QUERIES, EnvSettingsStore, Settings
from digest.enrich import Enricher
from digest.errors import DigestError
from digest.http_client import HTTPClient
from digest.pipeline import DigestPipeline
from digest.rate_limit import RateLimiter
from digest.robots import RobotsChecker

from collectors.search import GoogleSearchAPI, SearchCollector
from collectors.site_scraper import SiteScraper
from collectors.sources import SOURCES


# Load env
load_dotenv()

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def main() -> int:
    logger.info("Starting digest run...")

    settings = Settings.from_env()
    store = EnvSettingsStore()

    # One limiter per external quota
    ai_limiter = RateLimiter(settings.ai_max_concurrent, settings.ai_min_time, name="ai")
    fetch_limiter = RateLimiter(settings.fetch_max_concurrent, settings.fetch_min_time, name="fetch")

    browser = BrowserPool(idle_timeout=settings.browser_idle_timeout)
    http = HTTPClient(fetch_limiter, browser)

    try:
        blacklist = await store.get_blacklisted_domains()
        oracle = AIOracle(GeminiModel(), ai_limiter)
        search_api = GoogleSearchAPI(http, settings.search_api_key, settings.search_engine_id)

        collectors = [
            SiteScraper(http, RobotsChecker(http), SOURCES, blacklist=blacklist),
            SearchCollector(
                search_api, browser, fetch_limiter, SEARCH_QUERIES,
                pages_per_query=settings.search_pages_per_query, blacklist=blacklist,
            ),
        ]
        fallback = SearchCollector(
            search_api, browser, fetch_limiter, FALLBACK_SEARCH_QUERIES,
            pages_per_query=settings.search_pages_per_query, blacklist=blacklist,
        )

        pipeline = DigestPipeline(
            collectors,
            oracle,
            Enricher(http, oracle),
            settings,
            store,
            sources=SOURCES,
            fallback_collector=fallback,
        )
        result = await pipeline.run()
    except DigestError as e:
        logger.error(f"Digest run aborted: {e}")
        return 1
    finally:
        await http.close()
        await browser.close()

    output = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    if settings.output_path:
        with open(settings.output_path, "w", encoding="utf-8") as f:
            f.write(output)
        logger.info(f"Wrote digest to {settings.output_path}")
    else:
        print(output)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
