import json
import logging
import math
import random
from collections import OrderedDict
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

from digest.ai import AIOracle, ParseResult
from digest.errors import InsufficientResultsError
from digest.models import CategorizedArticle, CategoryGroup, EnrichedArticle

logger = logging.getLogger(__name__)

MAX_CHOICES = 3

A = TypeVar("A")


def balanced_capacity(total: int, categories: Sequence[str]) -> Dict[str, int]:
    limit = math.ceil(total / len(categories)) if categories else 0
    return {category: limit for category in categories}


def distribute(
    choices: Sequence[Tuple[A, Sequence[str]]],
    capacity: Mapping[str, int],
    catch_all: str,
) -> List[Tuple[A, str]]:
    """
    Greedy first-come assignment: each item takes its highest-ranked
    category that still has room, else the catch-all. The catch-all is
    counted like any other category while it has room, and absorbs the
    overflow once it is full.
    """
    counts = {category: 0 for category in capacity}
    counts.setdefault(catch_all, 0)
    assigned = []
    for item, ranked in choices:
        chosen = catch_all
        for category in ranked:
            if category in capacity and counts[category] < capacity[category]:
                chosen = category
                break
        counts[chosen] += 1
        assigned.append((item, chosen))
    return assigned


def build_category_prompt(articles: List[dict], categories: Sequence[str], catch_all: str) -> str:
    return f"""Analyze the following articles and suggest categories for each from this predefined list:

{json.dumps(articles, indent=2)}

CATEGORIES:
{chr(10).join(categories)}

Guidelines:
1. For every article give up to {MAX_CHOICES} categories from the list, best fit first.
2. Use only the category names exactly as written above.
3. If no category fits, use "{catch_all}".

Format your response as a JSON array:
[
    {{"title": "Article Title", "categories": ["Best Category", "Second Category"]}}
]
"""


def make_category_validator(categories: Sequence[str], catch_all: str):
    canonical = {c.lower(): c for c in categories}

    def validate(data: Any) -> ParseResult:
        if not isinstance(data, list):
            return ParseResult.failure(f"expected a JSON array, got {type(data).__name__}")
        suggestions: Dict[str, List[str]] = {}
        for item in data:
            if not isinstance(item, dict) or not isinstance(item.get("title"), str):
                continue
            raw = item.get("categories")
            if isinstance(raw, str):
                raw = [raw]
            if not isinstance(raw, list):
                continue
            ranked = []
            for name in raw:
                category = canonical.get(str(name).strip().lower())
                if category and category not in ranked:
                    ranked.append(category)
            suggestions[item["title"].strip()] = ranked[:MAX_CHOICES] or [catch_all]
        if data and not suggestions:
            return ParseResult.failure("no item carries a title and categories")
        return ParseResult.success(suggestions)

    return validate


def group_by_category(articles: Sequence[CategorizedArticle], categories: Sequence[str]) -> List[CategoryGroup]:
    """Groups in category enumeration order; empty categories are left out."""
    grouped: "OrderedDict[str, List[CategorizedArticle]]" = OrderedDict((c, []) for c in categories)
    for article in articles:
        grouped.setdefault(article.category, []).append(article)
    return [CategoryGroup(name=name, articles=items) for name, items in grouped.items() if items]


async def categorize_articles(
    articles: Sequence[EnrichedArticle],
    oracle: AIOracle,
    categories: Sequence[str],
    catch_all: str,
    minimum: int,
    rng: Optional[random.Random] = None,
) -> List[CategorizedArticle]:
    """
    The AI proposes ranked categories per article; `distribute` assigns one
    each with balanced sizes. The result is shuffled so categories are not
    clustered by rank.
    """
    if catch_all not in categories:
        raise ValueError(f"Catch-all category {catch_all!r} is not in the category list")

    suggestions: Dict[str, List[str]] = {}
    if articles:
        payload = [{"title": a.title, "description": a.description} for a in articles]
        suggestions = await oracle.generate_json(
            build_category_prompt(payload, categories, catch_all),
            make_category_validator(categories, catch_all),
        )

    choices = [(article, suggestions.get(article.title, [catch_all])) for article in articles]
    assigned = distribute(choices, balanced_capacity(len(articles), categories), catch_all)

    categorized = [
        CategorizedArticle(title=a.title, link=a.link, description=a.description, category=category)
        for a, category in assigned
    ]
    (rng or random.Random()).shuffle(categorized)

    logger.info(f"Categorized {len(categorized)} articles")
    if len(categorized) < minimum:
        raise InsufficientResultsError(len(categorized), minimum, stage="categorize")
    return categorized
