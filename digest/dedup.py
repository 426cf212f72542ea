import logging
from typing import Dict, List, Sequence, Tuple

from digest.models import CountedCandidate, ValidCandidate

logger = logging.getLogger(__name__)

DEFAULT_KEY_FIELDS = ("title", "link")


def dedup_key(candidate: ValidCandidate, fields: Sequence[str] = DEFAULT_KEY_FIELDS) -> Tuple[str, ...]:
    return tuple(f"{name}:{getattr(candidate, name)}" for name in fields)


def deduplicate(
    candidates: Sequence[ValidCandidate],
    fields: Sequence[str] = DEFAULT_KEY_FIELDS,
    sort_by_count: bool = False,
) -> List[CountedCandidate]:
    """
    Folds candidates sharing the same key into one record that keeps the
    first-seen values and counts how many raw records it stands for.
    Output follows first-occurrence order unless `sort_by_count` is set.
    """
    unique: Dict[Tuple[str, ...], CountedCandidate] = {}
    for candidate in candidates:
        key = dedup_key(candidate, fields)
        existing = unique.get(key)
        if existing is None:
            unique[key] = CountedCandidate(
                source_url=candidate.source_url,
                link=candidate.link,
                title=candidate.title,
                description=candidate.description,
                date=candidate.date,
                snippet=candidate.snippet,
            )
        else:
            unique[key] = existing.bumped()

    results = list(unique.values())
    if sort_by_count:
        results.sort(key=lambda c: c.occurrence_count, reverse=True)

    logger.info(f"Deduplicated {len(candidates)} candidates into {len(results)}")
    return results
