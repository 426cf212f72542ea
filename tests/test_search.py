import unittest
from datetime import datetime

import httpx

from collectors.search import GoogleSearchAPI, SearchCollector, is_job_posting, is_redirector
from digest.errors import ConfigurationError, ExternalServiceError
from digest.rate_limit import RateLimiter

from fakes import FakeBrowser, no_sleep


class FakeSearchAPI:
    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    async def search(self, query, start):
        self.calls.append((query, start))
        result = self.pages.get((query, start), [])
        if isinstance(result, Exception):
            raise result
        return result


def item(title, link, snippet="teaser"):
    return {"title": title, "link": link, "snippet": snippet}


def collector(api, browser=None, queries=("homecare ai",), pages=1, blacklist=()):
    return SearchCollector(
        api,
        browser or FakeBrowser(),
        RateLimiter(5),
        queries,
        pages_per_query=pages,
        blacklist=blacklist,
        clock=lambda: datetime(2026, 10, 19),
        sleep=no_sleep,
    )


class TestSearchCollector(unittest.IsolatedAsyncioTestCase):
    async def test_scopes_queries_and_pages(self):
        api = FakeSearchAPI({})
        await collector(api, pages=3).collect()
        self.assertEqual(
            api.calls,
            [("homecare ai October", 1), ("homecare ai October", 11), ("homecare ai October", 21)],
        )

    async def test_screens_results(self):
        api = FakeSearchAPI({
            ("homecare ai October", 1): [
                item("Agency adopts AI scheduling", "https://news.example.com/ai-scheduling"),
                item("Home page", "https://homecarecompany.com/"),
                item("Now hiring nurses", "https://agency.com/careers/rn"),
                item("Blocked outlet story", "https://nahc.com/news/story"),
                item("", "https://news.example.com/untitled"),
            ]
        })
        results = await collector(api, blacklist=["https://nahc.com"]).collect()

        self.assertEqual([r.title for r in results], ["Agency adopts AI scheduling"])
        only = results[0]
        self.assertEqual(only.link, "https://news.example.com/ai-scheduling")
        self.assertEqual(only.snippet, "teaser")
        self.assertIsNone(only.description)
        self.assertEqual(only.source_url, "search:homecare ai")

    async def test_resolves_redirector_links_on_separate_pages(self):
        browser = FakeBrowser({
            "https://news.google.com/rss/articles/abc": ("https://outlet.com/story-1", 200),
            "https://news.google.com/rss/articles/def": ("https://outlet.com/story-2", 404),
            "https://news.google.com/rss/articles/ghi": TimeoutError("navigation timed out"),
        })
        api = FakeSearchAPI({
            ("homecare ai October", 1): [
                item("Resolved", "https://news.google.com/rss/articles/abc"),
                item("Dead link", "https://news.google.com/rss/articles/def"),
                item("Timed out", "https://news.google.com/rss/articles/ghi"),
            ]
        })
        results = await collector(api, browser=browser).collect()

        self.assertEqual([(r.title, r.link) for r in results], [("Resolved", "https://outlet.com/story-1")])
        self.assertEqual(browser.pages_opened, 3)

    async def test_failing_page_does_not_abort_other_queries(self):
        api = FakeSearchAPI({
            ("homecare ai October", 1): RuntimeError("quota exceeded"),
            ("homecare legislation October", 1): [item("New bill", "https://gov.example.com/bill-12")],
        })
        results = await collector(api, queries=["homecare ai", "homecare legislation"]).collect()
        self.assertEqual([r.title for r in results], ["New bill"])
        # retried before giving up
        self.assertEqual(api.calls.count(("homecare ai October", 1)), 3)


class TestSearchHelpers(unittest.TestCase):
    def test_is_redirector(self):
        self.assertTrue(is_redirector("https://news.google.com/rss/articles/x"))
        self.assertFalse(is_redirector("https://homehealthcarenews.com/x"))

    def test_is_job_posting(self):
        self.assertTrue(is_job_posting("https://x.com/jobs/123"))
        self.assertTrue(is_job_posting("https://x.com/about/Careers"))
        self.assertFalse(is_job_posting("https://x.com/news/jobs-report-shows-growth"))


class RecordingHTTPClient:
    def __init__(self, response):
        self.response = response
        self.calls = []

    async def get(self, url, params=None):
        self.calls.append((url, params))
        return self.response


class TestGoogleSearchAPI(unittest.IsolatedAsyncioTestCase):
    async def test_requests_one_page_of_results(self):
        http = RecordingHTTPClient(httpx.Response(200, json={"items": [
            {"title": "Medicare rule", "link": "https://a.com/rule", "snippet": "CMS finalized"},
            {"title": "No snippet", "link": "https://b.com/x"},
        ]}))
        api = GoogleSearchAPI(http, "key", "engine")

        items = await api.search("homecare ai October", 11)

        url, params = http.calls[0]
        self.assertEqual(url, GoogleSearchAPI.ENDPOINT)
        self.assertEqual(params, {"key": "key", "cx": "engine", "q": "homecare ai October", "start": 11, "num": 10})
        self.assertEqual(items[0], {"title": "Medicare rule", "link": "https://a.com/rule", "snippet": "CMS finalized"})
        self.assertEqual(items[1]["snippet"], "")

    async def test_no_items_is_an_empty_page(self):
        api = GoogleSearchAPI(RecordingHTTPClient(httpx.Response(200, json={})), "key", "engine")
        self.assertEqual(await api.search("q", 1), [])

    async def test_error_status_raises(self):
        api = GoogleSearchAPI(RecordingHTTPClient(httpx.Response(429, json={})), "key", "engine")
        with self.assertRaises(ExternalServiceError) as ctx:
            await api.search("q", 1)
        self.assertEqual(ctx.exception.service, "search")

    def test_missing_credentials(self):
        with self.assertRaises(ConfigurationError):
            GoogleSearchAPI(RecordingHTTPClient(None), None, "engine")


if __name__ == "__main__":
    unittest.main()
