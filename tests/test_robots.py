import unittest

import httpx

from digest.robots import RobotsChecker

from fakes import FakeHTTPClient, no_sleep

ROBOTS = """User-agent: *
Disallow: /private/
Allow: /
"""


class TestRobotsChecker(unittest.IsolatedAsyncioTestCase):
    async def test_follows_policy(self):
        http = FakeHTTPClient(responses={"https://x.com/robots.txt": httpx.Response(200, text=ROBOTS)})
        checker = RobotsChecker(http, sleep=no_sleep)
        self.assertTrue(await checker.is_allowed("https://x.com/news/"))
        self.assertFalse(await checker.is_allowed("https://x.com/private/page"))

    async def test_missing_robots_allows(self):
        checker = RobotsChecker(FakeHTTPClient(), sleep=no_sleep)
        self.assertTrue(await checker.is_allowed("https://x.com/news/"))

    async def test_fetch_failure_allows(self):
        http = FakeHTTPClient(responses={"https://x.com/robots.txt": httpx.ConnectError("down")})
        checker = RobotsChecker(http, sleep=no_sleep)
        self.assertTrue(await checker.is_allowed("https://x.com/news/"))

    async def test_policy_is_cached_per_origin(self):
        calls = []

        class CountingClient(FakeHTTPClient):
            async def get(self, url, params=None):
                calls.append(url)
                return await super().get(url, params)

        http = CountingClient(responses={"https://x.com/robots.txt": httpx.Response(200, text=ROBOTS)})
        checker = RobotsChecker(http, sleep=no_sleep)
        await checker.is_allowed("https://x.com/a")
        await checker.is_allowed("https://x.com/b")
        self.assertEqual(calls, ["https://x.com/robots.txt"])

    def test_robots_url(self):
        self.assertEqual(RobotsChecker.robots_url("https://x.com/news/a?b=1"), "https://x.com/robots.txt")


if __name__ == "__main__":
    unittest.main()
