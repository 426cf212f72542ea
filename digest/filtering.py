import json
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Mapping, Optional, Sequence, TypeVar

from digest.ai import AIOracle, validate_title_list
from digest.config import TOPIC
from digest.models import SourceSpec, ValidCandidate

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=ValidCandidate)


def recency_cutoff(weeks: int, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(weeks=weeks)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def passes_prefilter(candidate: ValidCandidate, cutoff: datetime, source: Optional[SourceSpec]) -> bool:
    if not candidate.link or not candidate.title:
        return False
    if candidate.date is None:
        return not (source is not None and source.require_date)
    return _aware(candidate.date) > cutoff


def prefilter(
    candidates: Sequence[C],
    cutoff: datetime,
    sources: Mapping[str, SourceSpec],
) -> List[C]:
    """
    Drops stale candidates, ones missing link or title, and dateless ones
    from sources that require a date. Dateless candidates from other sources
    are kept.
    """
    kept = [c for c in candidates if passes_prefilter(c, cutoff, sources.get(c.source_url))]
    logger.info(f"Filtered {len(candidates)} articles to {len(kept)} using non-AI filtering")
    return kept


def build_relevance_prompt(articles: List[dict]) -> str:
    return f"""Filter the following list of articles related to {TOPIC}:

{json.dumps(articles, indent=2)}

Filtering criteria:
1. Relevance: Keep only articles directly related to {TOPIC} news.
2. Recency: Keep recent articles. If two articles cover the same event, keep only the most recent one.
3. Credibility: Retain articles from reputable healthcare news sources and industry publications.
4. Exclusions:
    - Remove articles about DME (Durable Medical Equipment) or Hospice care unless they have a direct and significant impact on homecare or home health.
    - Exclude non-news content such as opinions, editorials, briefs, job postings or promotional material. An example of a non-news article would be "Home Care briefs for Tuesday, July 9".
    - Remove duplicate or near-duplicate articles.

Output Instructions:
- Return the filtered list as a JSON array in the exact format of the original list, with titles unchanged.
- If all articles are irrelevant, return an empty array.
"""


async def filter_relevant(candidates: Sequence[C], oracle: AIOracle) -> List[C]:
    """
    Asks the AI judge which candidates are on-topic news and keeps those,
    in their original order. Errors propagate: an unfiltered digest is
    worse than no digest.
    """
    if not candidates:
        return []

    payload = [{"title": c.title, "description": c.teaser} for c in candidates]
    kept_titles = set(await oracle.generate_json(build_relevance_prompt(payload), validate_title_list))

    kept = [c for c in candidates if c.title in kept_titles]
    logger.info(f"AI relevance filter kept {len(kept)}/{len(candidates)} articles")
    return kept
