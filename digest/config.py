import os
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

logger = logging.getLogger(__name__)

TOPIC = "homecare (medical) and home health (medical)"

# Ordered; the last entry is the catch-all
CATEGORIES = [
    "Policy & Industry Trends",
    "Clinical Advancements & Best Practices",
    "Technology & Innovation",
    "Business Operations & Finance",
    "Workforce & Professional Development",
    "Patient Care & Community Health",
    "Other",
]
CATCH_ALL_CATEGORY = "Other"

DESCRIPTION_MAX_LENGTH = 35  # words
DESCRIPTION_FALLBACK = "Unable to generate description due to an error."

MAX_RETRIES = 3

SEARCH_QUERIES = [
    "homecare ai",
    "homecare legislation",
    "homecare best practices",
    "homecare workforce challenges",
    "homecare telemedicine integration",
    "homecare remote monitoring tools",
    "homecare caregiver burnout strategies",
    "homecare caregiver burnout prevention",
    "homecare AI-driven decision support",
    "homecare fall prevention technology",
]

# Used only when the primary collection comes back thin
FALLBACK_SEARCH_QUERIES = [
    "home health industry news",
    "homecare technology updates",
    "home health policy changes",
]

REDIRECTOR_HOSTS = {
    "news.google.com",
    "www.google.com",
    "google.com",
    "t.co",
    "lnkd.in",
    "bit.ly",
}

JOB_PATH_PATTERN = re.compile(
    r"/(jobs?|careers?|job-openings|job-listings|employment|hiring|vacancies)(/|$)",
    re.IGNORECASE,
)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _list_env(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    search_api_key: Optional[str] = None
    search_engine_id: Optional[str] = None
    max_articles: int = 30
    min_articles: int = 25
    max_articles_per_source: int = 5
    search_pages_per_query: int = 3
    initial_fetch_count: int = 40
    ai_max_concurrent: int = 15
    ai_min_time: float = 2.5  # seconds between AI call starts
    fetch_max_concurrent: int = 5
    fetch_min_time: float = 0.2
    browser_idle_timeout: float = 30 * 60
    output_path: Optional[str] = None
    categories: List[str] = field(default_factory=lambda: list(CATEGORIES))
    catch_all: str = CATCH_ALL_CATEGORY

    @classmethod
    def from_env(cls) -> "Settings":
        max_articles = _int_env("MAX_NUMBER_OF_ARTICLES", 30)
        settings = cls(
            search_api_key=os.getenv("CUSTOM_SEARCH_API_KEY"),
            search_engine_id=os.getenv("CUSTOM_SEARCH_ENGINE_ID"),
            max_articles=max_articles,
            min_articles=_int_env("MIN_NUMBER_OF_ARTICLES", max(1, max_articles - 5)),
            max_articles_per_source=_int_env("MAX_ARTICLES_PER_SOURCE", 5),
            search_pages_per_query=_int_env("SEARCH_PAGES_PER_QUERY", 3),
            initial_fetch_count=_int_env("INITIAL_FETCH_COUNT", 40),
            output_path=os.getenv("DIGEST_OUTPUT") or None,
        )
        if settings.min_articles >= settings.max_articles:
            logger.warning(
                f"MIN_NUMBER_OF_ARTICLES ({settings.min_articles}) must be below "
                f"MAX_NUMBER_OF_ARTICLES ({settings.max_articles}); lowering it"
            )
            settings.min_articles = max(0, settings.max_articles - 1)
        return settings


class SettingsStore(Protocol):
    """Persisted newsletter configuration owned by the admin side."""

    async def get_newsletter_frequency(self) -> int:
        ...

    async def get_blacklisted_domains(self) -> List[str]:
        ...


class EnvSettingsStore:
    """Reads the persisted settings from the environment."""

    async def get_newsletter_frequency(self) -> int:
        weeks = _int_env("NEWSLETTER_FREQUENCY_WEEKS", 1)
        if weeks < 1:
            raise ValueError(f"Newsletter frequency must be at least one week, got {weeks}")
        return weeks

    async def get_blacklisted_domains(self) -> List[str]:
        return _list_env("BLACKLISTED_DOMAINS")
