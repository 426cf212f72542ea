import asyncio
import logging
import random
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from digest.ai import AIOracle
from digest.categorize import categorize_articles, group_by_category
from digest.collector_base import BaseCollector
from digest.config import Settings, SettingsStore
from digest.dedup import deduplicate
from digest.enrich import Enricher, generate_summary
from digest.errors import DigestError, InsufficientResultsError
from digest.filtering import filter_relevant, prefilter, recency_cutoff
from digest.models import DigestResult, RawCandidate, SourceSpec, ValidCandidate
from digest.ranking import rank_articles

logger = logging.getLogger(__name__)

DEFAULT_FREQUENCY_WEEKS = 1


class DigestPipeline:
    """
    collect -> dedup -> filter -> rank -> enrich -> categorize -> summarize

    Every stage builds new records from the previous stage's output. Any
    DigestError leaves the run with the failing stage and the counts
    reached so far attached.
    """

    def __init__(
        self,
        collectors: Iterable[BaseCollector],
        oracle: AIOracle,
        enricher: Enricher,
        settings: Settings,
        settings_store: SettingsStore,
        sources: Iterable[SourceSpec] = (),
        fallback_collector: Optional[BaseCollector] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.collectors = list(collectors)
        self.oracle = oracle
        self.enricher = enricher
        self.settings = settings
        self.settings_store = settings_store
        self.sources: Dict[str, SourceSpec] = {source.url: source for source in sources}
        self.fallback_collector = fallback_collector
        self.rng = rng or random.Random()
        self.clock = clock
        self.counts: Dict[str, int] = {}

    @contextmanager
    def _stage(self, name: str):
        logger.info(f"Stage: {name}")
        try:
            yield
        except DigestError as e:
            e.add_context(name, self.counts)
            logger.error(f"Digest run failed: {e}")
            raise

    async def _run_collector(self, collector: BaseCollector) -> List[RawCandidate]:
        try:
            candidates = await collector.collect()
        except Exception as e:
            logger.error(f"Collector {collector.name} failed: {e}")
            return []
        logger.info(f"Found {len(candidates)} articles from {collector.name}")
        return candidates

    async def collect(self) -> List[RawCandidate]:
        batches = await asyncio.gather(*(self._run_collector(c) for c in self.collectors))
        results = [candidate for batch in batches for candidate in batch]

        if self.fallback_collector is not None and len(results) < self.settings.initial_fetch_count:
            logger.info(
                f"Only {len(results)} candidates (< {self.settings.initial_fetch_count}), "
                f"running {self.fallback_collector.name}"
            )
            results.extend(await self._run_collector(self.fallback_collector))
        return results

    async def _cutoff(self) -> datetime:
        try:
            weeks = await self.settings_store.get_newsletter_frequency()
        except Exception as e:
            logger.error(f"Error fetching newsletter frequency: {e}. Using {DEFAULT_FREQUENCY_WEEKS} week")
            weeks = DEFAULT_FREQUENCY_WEEKS
        return recency_cutoff(weeks, self.clock())

    async def run(self) -> DigestResult:
        self.counts = {}
        settings = self.settings

        with self._stage("collect"):
            raw = await self.collect()
            self.counts["collected"] = len(raw)
            valid = [c for c in (ValidCandidate.from_raw(r) for r in raw) if c is not None]
            self.counts["valid"] = len(valid)
            if not valid:
                raise InsufficientResultsError(0, settings.min_articles)

        with self._stage("dedup"):
            unique = deduplicate(valid)
            self.counts["unique"] = len(unique)

        with self._stage("filter"):
            fresh = prefilter(unique, await self._cutoff(), self.sources)
            self.counts["fresh"] = len(fresh)
            relevant = await filter_relevant(fresh, self.oracle)
            self.counts["relevant"] = len(relevant)

        with self._stage("rank"):
            ranked = await rank_articles(
                relevant,
                self.oracle,
                target=settings.max_articles,
                minimum=settings.min_articles,
                categories=settings.categories,
                max_per_source=settings.max_articles_per_source,
            )
            self.counts["ranked"] = len(ranked)

        with self._stage("enrich"):
            enriched = await self.enricher.enrich(ranked)
            self.counts["enriched"] = len(enriched)

        with self._stage("categorize"):
            categorized = await categorize_articles(
                enriched,
                self.oracle,
                categories=settings.categories,
                catch_all=settings.catch_all,
                minimum=settings.min_articles,
                rng=self.rng,
            )
            self.counts["categorized"] = len(categorized)

        with self._stage("summarize"):
            summary = await generate_summary(categorized, self.oracle)

        logger.info(f"✅ Digest ready: {len(categorized)} articles, {self.oracle.call_count} AI calls")
        return DigestResult(summary=summary, categories=group_by_category(categorized, settings.categories))
