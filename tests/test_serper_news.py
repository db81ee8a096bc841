import os
import unittest
from unittest.mock import AsyncMock, patch

import httpx

from services.analysis.pipeline import gather_news
from services.news.serper_news import NewsClientError, fetch_news, normalize_news_results


class TestNormalizeNewsResults(unittest.TestCase):
    def test_drops_entries_without_title_or_link(self):
        items = [
            {"title": "Apple beats", "link": "https://example.com/a", "snippet": "Q3", "date": "1 hour ago"},
            {"title": "", "link": "https://example.com/b"},
            {"title": "No link"},
            "garbage",
            {"title": "Second", "link": "https://example.com/c", "source": "Reuters"},
        ]
        out = normalize_news_results(items, max_items=10)

        self.assertEqual([n.title for n in out], ["Apple beats", "Second"])
        self.assertEqual(out[0].date, "1 hour ago")
        self.assertEqual(out[1].source, "Reuters")

    def test_respects_max_items(self):
        items = [{"title": f"t{i}", "link": f"https://example.com/{i}"} for i in range(5)]
        self.assertEqual(len(normalize_news_results(items, max_items=2)), 2)

    def test_non_list_is_empty(self):
        self.assertEqual(normalize_news_results(None, max_items=5), [])


class TestFetchNews(unittest.IsolatedAsyncioTestCase):
    async def test_missing_key_raises_before_network(self):
        post = AsyncMock()
        with patch.dict(os.environ, {"SERPER_API_KEY": ""}), patch.object(httpx.AsyncClient, "post", post):
            with self.assertRaises(NewsClientError):
                await fetch_news("AAPL")
        post.assert_not_called()

    async def test_non_200_is_a_failed_result(self):
        resp = httpx.Response(429, json={"message": "slow down"})
        with patch.dict(os.environ, {"SERPER_API_KEY": "k"}), patch.object(
            httpx.AsyncClient, "post", AsyncMock(return_value=resp)
        ):
            res = await fetch_news("AAPL")

        self.assertFalse(res.ok)
        self.assertEqual(res.error.status, 429)

    async def test_success_returns_normalized_items(self):
        resp = httpx.Response(
            200,
            json={"news": [{"title": "Apple beats", "link": "https://example.com/a"}, {"title": "x"}]},
        )
        post = AsyncMock(return_value=resp)
        with patch.dict(os.environ, {"SERPER_API_KEY": "k"}), patch.object(httpx.AsyncClient, "post", post):
            res = await fetch_news("AAPL", max_results=5)

        self.assertTrue(res.ok)
        self.assertEqual([n.link for n in res.data], ["https://example.com/a"])
        _, kwargs = post.call_args
        self.assertEqual(kwargs["json"], {"q": "AAPL", "num": 5})
        self.assertEqual(kwargs["headers"]["X-API-KEY"], "k")


class TestGatherNews(unittest.IsolatedAsyncioTestCase):
    async def test_missing_key_becomes_placeholder_item(self):
        with patch.dict(os.environ, {"SERPER_API_KEY": ""}):
            news = await gather_news("AAPL")

        self.assertEqual(
            news,
            [{"title": "Error fetching news", "link": "#", "snippet": "Missing SERPER_API_KEY"}],
        )


if __name__ == "__main__":
    unittest.main()
