import json
import unittest

from digest.errors import ConfigurationError, ExternalServiceError, InsufficientResultsError
from digest.models import CountedCandidate, RankedArticle
from digest.ranking import cap_per_source, rank_articles, reassociate

from fakes import make_oracle

CATEGORIES = ["Policy", "Technology", "Workforce", "Other"]


def candidate(title, host="outlet.com", snippet=None):
    return CountedCandidate(
        source_url="https://src.com/", link=f"https://{host}/{title}", title=title,
        description=None if snippet else f"about {title}", snippet=snippet,
    )


def answer(*titles):
    return json.dumps([{"title": t} for t in titles])


class TestReassociate(unittest.TestCase):
    def test_drops_unknown_and_repeated_titles(self):
        candidates = [candidate("a"), candidate("b"), candidate("c")]
        matched = reassociate(["c", "invented", "a", "c"], candidates)
        self.assertEqual([c.title for c in matched], ["c", "a"])

    def test_cap_per_source(self):
        candidates = [candidate(str(i), host="big.com") for i in range(4)] + [candidate("x", host="small.com")]
        kept = cap_per_source(candidates, 2)
        self.assertEqual([c.title for c in kept], ["0", "1", "x"])


class TestRankArticles(unittest.IsolatedAsyncioTestCase):
    async def test_orders_and_truncates(self):
        candidates = [candidate(t, host=f"{t}.com") for t in "abcdef"]
        oracle = make_oracle(lambda prompt: answer("f", "a", "c", "b", "e", "d"))
        ranked = await rank_articles(candidates, oracle, target=4, minimum=3, categories=CATEGORIES)
        self.assertEqual([r.title for r in ranked], ["f", "a", "c", "b"])
        self.assertIsInstance(ranked[0], RankedArticle)

    async def test_snippets_do_not_become_descriptions(self):
        candidates = [candidate("a", snippet="search teaser"), candidate("b", host="b.com")]
        oracle = make_oracle(lambda prompt: answer("a", "b"))
        ranked = await rank_articles(candidates, oracle, target=3, minimum=2, categories=CATEGORIES)
        self.assertIsNone(ranked[0].description)
        self.assertIn("search teaser", oracle.model.prompts[0])

    async def test_too_few_matches_fail(self):
        candidates = [candidate(t, host=f"{t}.com") for t in "abcd"]
        oracle = make_oracle(lambda prompt: answer("a", "made up", "b"))
        with self.assertRaises(InsufficientResultsError) as ctx:
            await rank_articles(candidates, oracle, target=4, minimum=3, categories=CATEGORIES)
        self.assertEqual(ctx.exception.found, 2)

    async def test_source_cap_is_enforced(self):
        candidates = [candidate(str(i), host="same.com") for i in range(6)]
        oracle = make_oracle(lambda prompt: answer(*[str(i) for i in range(6)]))
        ranked = await rank_articles(candidates, oracle, target=5, minimum=2, categories=CATEGORIES, max_per_source=3)
        self.assertEqual(len(ranked), 3)

    async def test_ai_failure_propagates(self):
        def broken(prompt):
            raise TimeoutError("deadline exceeded")

        with self.assertRaises(ExternalServiceError):
            await rank_articles([candidate("a")], make_oracle(broken), target=2, minimum=1, categories=CATEGORIES)

    async def test_minimum_must_be_below_target(self):
        with self.assertRaises(ConfigurationError):
            await rank_articles([], make_oracle(lambda prompt: "[]"), target=3, minimum=3, categories=CATEGORIES)


if __name__ == "__main__":
    unittest.main()
