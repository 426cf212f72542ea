import logging
from typing import Dict, Optional
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

from digest.http_client import HTTPClient
from digest.rate_limit import retry

logger = logging.getLogger(__name__)


class RobotsChecker:
    """
    Gates scraping on the target origin's robots.txt.

    Fails open: if the policy cannot be fetched, or the server answers with
    a non-success status, scraping is allowed. Policies are cached per
    origin for the lifetime of the checker.
    """

    def __init__(self, http_client: HTTPClient, user_agent: str = "*", max_attempts: int = 3, sleep=None):
        self.http_client = http_client
        self.user_agent = user_agent
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._policies: Dict[str, Optional[RobotFileParser]] = {}

    @staticmethod
    def robots_url(url: str) -> str:
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}/robots.txt"

    async def _load_policy(self, robots_url: str) -> Optional[RobotFileParser]:
        kwargs = {"max_attempts": self.max_attempts}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        try:
            response = await retry(self.http_client.get, robots_url, **kwargs)
        except Exception as e:
            logger.warning(f"Failed to fetch {robots_url}: {e}. Assuming scraping is allowed")
            return None

        if not response.is_success:
            logger.warning(f"Failed to fetch {robots_url}: {response.status_code}. Assuming scraping is allowed")
            return None

        parser = RobotFileParser(robots_url)
        parser.parse(response.text.splitlines())
        return parser

    async def is_allowed(self, url: str) -> bool:
        try:
            robots_url = self.robots_url(url)
            if robots_url not in self._policies:
                self._policies[robots_url] = await self._load_policy(robots_url)
            policy = self._policies[robots_url]
            if policy is None:
                return True
            return policy.can_fetch(self.user_agent, url)
        except Exception as e:
            logger.error(f"Robots check failed for {url}: {e}. Assuming scraping is allowed")
            return True
