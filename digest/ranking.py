import json
import logging
import math
from collections import Counter
from typing import Dict, List, Sequence

from digest.ai import AIOracle, validate_title_list
from digest.config import TOPIC
from digest.errors import ConfigurationError, InsufficientResultsError
from digest.models import CountedCandidate, RankedArticle
from digest.urls import host_of

logger = logging.getLogger(__name__)


def build_ranking_prompt(
    articles: List[dict],
    target: int,
    minimum: int,
    categories: Sequence[str],
    max_per_source: int,
) -> str:
    per_category = math.ceil(target / len(categories))
    return f"""Rank the following list of filtered articles related to {TOPIC}:

{json.dumps(articles, indent=2)}

Ranking criteria:
1. Impact: Prioritize articles that discuss significant industry changes, policy updates, or innovations.
2. Diversity of Content: Ensure a mix of articles covering different aspects of homecare and home health.
3. Category Balance: Aim for an even distribution across these categories: {", ".join(categories)}. No category should have more than {per_category} articles.
4. Source Variety: Use a diverse range of sources. Limit articles from any single source to a maximum of {max_per_source}.
5. Relevance: Prioritize articles that are directly related to {TOPIC}.

Output Instructions:
- Return the ranked list as a JSON array of objects with the "title" field copied exactly from the input.
- Return a maximum of {target} articles and a minimum of {minimum} articles.
- If fewer than {target} articles are in the input, return all of them in ranked order.
- The most impactful articles come first.
"""


def reassociate(ranked_titles: Sequence[str], candidates: Sequence[CountedCandidate]) -> List[CountedCandidate]:
    """Maps AI-ranked titles back to the original records; unknown or repeated titles are dropped."""
    by_title: Dict[str, CountedCandidate] = {}
    for candidate in candidates:
        by_title.setdefault(candidate.title, candidate)

    matched = []
    seen = set()
    for title in ranked_titles:
        candidate = by_title.get(title)
        if candidate is None:
            logger.debug(f"Ranked title not found in candidates: {title}")
            continue
        if title in seen:
            continue
        seen.add(title)
        matched.append(candidate)
    return matched


def cap_per_source(candidates: Sequence[CountedCandidate], max_per_source: int) -> List[CountedCandidate]:
    counts: Counter = Counter()
    kept = []
    for candidate in candidates:
        source = host_of(candidate.link) or candidate.link
        if counts[source] >= max_per_source:
            continue
        counts[source] += 1
        kept.append(candidate)
    return kept


async def rank_articles(
    candidates: Sequence[CountedCandidate],
    oracle: AIOracle,
    target: int,
    minimum: int,
    categories: Sequence[str],
    max_per_source: int = 5,
) -> List[RankedArticle]:
    """
    Lets the AI order the filtered set, then enforces the source cap and the
    target size locally. Raises InsufficientResultsError below `minimum`
    and ConfigurationError when `minimum` is not below `target`.
    """
    if minimum >= target:
        raise ConfigurationError(f"minimum ({minimum}) must be below target ({target})")

    ranked_titles: List[str] = []
    if candidates:
        payload = [
            {"title": c.title, "description": c.teaser, "source": host_of(c.link), "mentions": c.occurrence_count}
            for c in candidates
        ]
        prompt = build_ranking_prompt(payload, target, minimum, categories, max_per_source)
        ranked_titles = await oracle.generate_json(prompt, validate_title_list)

    ranked = cap_per_source(reassociate(ranked_titles, candidates), max_per_source)[:target]
    logger.info(f"Ranked {len(candidates)} articles down to {len(ranked)}")

    if len(ranked) < minimum:
        raise InsufficientResultsError(len(ranked), minimum, stage="rank")
    return [RankedArticle.from_counted(c) for c in ranked]
