import unittest
from unittest.mock import patch

import httpx

from services.market_data.alpha_vantage import (
    TIMEFRAME_QUERIES,
    TIMEFRAMES,
    AlphaVantageService,
    resolve_timeframe,
)
from services.market_data.alpha_vantage_parsers import (
    AlphaVantageParseError,
    in_band_error,
    parse_global_quote,
    parse_indicator,
    parse_time_series,
)


def _daily_doc(days: int) -> dict:
    series = {}
    for i in range(days):
        day = f"2024-01-{i + 1:02d}"
        close = 100.0 + i
        series[day] = {
            "1. open": str(close - 0.5),
            "2. high": str(close + 1),
            "3. low": str(close - 1),
            "4. close": str(close),
            "5. volume": "1000",
        }
    return {
        "Meta Data": {"1. Information": "Daily Prices", "2. Symbol": "AAPL", "3. Last Refreshed": f"2024-01-{days:02d}"},
        "Time Series (Daily)": series,
    }


class TestTimeSeriesParser(unittest.TestCase):
    def test_keeps_most_recent_window_newest_first(self) -> None:
        parsed = parse_time_series(_daily_doc(10), window=3)

        self.assertEqual([b["t"] for b in parsed["bars"]], ["2024-01-10", "2024-01-09", "2024-01-08"])
        self.assertEqual(parsed["last_refreshed"], "2024-01-10")
        summary = parsed["summary"]
        self.assertEqual(summary["close"], 109.0)
        self.assertEqual(summary["open"], 106.5)
        self.assertEqual(summary["high"], 110.0)
        self.assertEqual(summary["low"], 106.0)
        self.assertEqual(summary["volume"], 3000.0)

    def test_crypto_daily_market_columns(self) -> None:
        doc = {
            "Meta Data": {"6. Last Refreshed": "2024-02-02 00:00:00"},
            "Time Series (Digital Currency Daily)": {
                "2024-02-02": {
                    "1a. open (USD)": "42000",
                    "1b. open (USD)": "42000",
                    "2a. high (USD)": "43000",
                    "3a. low (USD)": "41000",
                    "4a. close (USD)": "42500",
                    "5. volume": "12.5",
                }
            },
        }
        parsed = parse_time_series(doc, window=7)
        bar = parsed["bars"][0]
        self.assertEqual(bar["close"], 42500.0)
        self.assertEqual(bar["open"], 42000.0)
        self.assertEqual(parsed["last_refreshed"], "2024-02-02 00:00:00")

    def test_missing_series_is_an_explicit_error(self) -> None:
        with self.assertRaises(AlphaVantageParseError):
            parse_time_series({"Meta Data": {}}, window=5)

    def test_missing_close_is_an_explicit_error(self) -> None:
        doc = {"Time Series (60min)": {"2024-01-01 10:00:00": {"1. open": "1"}}}
        with self.assertRaises(AlphaVantageParseError):
            parse_time_series(doc, window=1)


class TestOtherParsers(unittest.TestCase):
    def test_indicator_latest_values(self) -> None:
        doc = {
            "Meta Data": {"3: Last Refreshed": "2024-01-03"},
            "Technical Analysis: RSI": {
                "2024-01-02": {"RSI": "48.1"},
                "2024-01-03": {"RSI": "55.25"},
            },
        }
        parsed = parse_indicator(doc)
        self.assertEqual(parsed["latest"], {"RSI": 55.25})
        self.assertEqual(parsed["points"][0]["t"], "2024-01-03")
        self.assertEqual(parsed["last_refreshed"], "2024-01-03")

    def test_in_band_errors(self) -> None:
        self.assertEqual(in_band_error({"Note": "Thank you for using Alpha Vantage!"}), "Thank you for using Alpha Vantage!")
        self.assertIsNotNone(in_band_error({"Error Message": "Invalid API call."}))
        self.assertIsNone(in_band_error(_daily_doc(1)))

    def test_global_quote_requires_price(self) -> None:
        self.assertEqual(
            parse_global_quote({"Global Quote": {"05. price": "189.50", "07. latest trading day": "2024-01-05"}})["price"],
            189.5,
        )
        with self.assertRaises(AlphaVantageParseError):
            parse_global_quote({"Global Quote": {}})
        with self.assertRaises(AlphaVantageParseError):
            parse_global_quote({"Global Quote": {"01. symbol": "AAPL"}})


class TestTimeframeMapping(unittest.TestCase):
    def test_mapping_is_total(self) -> None:
        for asset_type in ("stock", "crypto"):
            for tf in TIMEFRAMES:
                q = resolve_timeframe(tf, asset_type)
                self.assertGreaterEqual(q.window, 1)
        self.assertEqual(len(TIMEFRAME_QUERIES), 2 * len(TIMEFRAMES))

    def test_unmapped_pair_is_a_programming_error(self) -> None:
        with self.assertRaises(ValueError):
            resolve_timeframe("2h", "stock")
        with self.assertRaises(ValueError):
            resolve_timeframe("1d", "bond")

    def test_one_year_stock_needs_full_output(self) -> None:
        self.assertEqual(resolve_timeframe("1y", "stock").outputsize, "full")
        self.assertEqual(resolve_timeframe("1y", "stock").window, 252)
        self.assertEqual(resolve_timeframe("1w", "crypto").window, 7)


class TestAlphaVantageService(unittest.IsolatedAsyncioTestCase):
    def _client(self, handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def test_non_200_becomes_failure_with_status(self) -> None:
        svc = AlphaVantageService(api_key="demo")
        async with self._client(lambda req: httpx.Response(503, text="busy")) as client:
            res = await svc.fetch_time_series("AAPL", "stock", "1d", client=client)

        self.assertFalse(res.ok)
        self.assertEqual(res.error.status, 503)
        self.assertEqual(res.error_entry(), {"error": "Alpha Vantage error 503", "status": 503})

    async def test_throttle_note_becomes_failure(self) -> None:
        svc = AlphaVantageService(api_key="demo")
        async with self._client(lambda req: httpx.Response(200, json={"Note": "rate limited"})) as client:
            res = await svc.fetch_indicator("AAPL", "RSI", time_period=14, client=client)

        self.assertFalse(res.ok)
        self.assertEqual(res.error.message, "rate limited")

    async def test_success_sends_mapped_query(self) -> None:
        seen = {}

        def handler(req: httpx.Request) -> httpx.Response:
            seen.update(dict(req.url.params))
            return httpx.Response(200, json=_daily_doc(30))

        svc = AlphaVantageService(api_key="demo")
        async with self._client(handler) as client:
            res = await svc.fetch_time_series("AAPL", "stock", "1w", client=client)

        self.assertTrue(res.ok)
        self.assertEqual(seen["function"], "TIME_SERIES_DAILY")
        self.assertEqual(seen["apikey"], "demo")
        self.assertNotIn("interval", seen)
        self.assertEqual(len(res.data["bars"]), 5)
        self.assertEqual(res.data["timeframe"], "1w")

    async def test_crypto_query_sets_market(self) -> None:
        seen = {}

        def handler(req: httpx.Request) -> httpx.Response:
            seen.update(dict(req.url.params))
            return httpx.Response(200, json={"Time Series Crypto (60min)": {"2024-01-01 10:00:00": {"4. close": "1"}}})

        svc = AlphaVantageService(api_key="demo")
        async with self._client(handler) as client:
            res = await svc.fetch_time_series("BTC", "crypto", "6h", client=client)

        self.assertTrue(res.ok)
        self.assertEqual(seen["function"], "CRYPTO_INTRADAY")
        self.assertEqual(seen["market"], "USD")
        self.assertEqual(seen["interval"], "60min")

    async def test_missing_key_fails_without_request(self) -> None:
        def handler(req: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with patch.dict("os.environ", {"ALPHA_VANTAGE_API_KEY": ""}):
            svc = AlphaVantageService()
        async with self._client(handler) as client:
            res = await svc.fetch_time_series("AAPL", "stock", "1d", client=client)

        self.assertFalse(res.ok)
        self.assertEqual(res.error.message, "Missing ALPHA_VANTAGE_API_KEY")


if __name__ == "__main__":
    unittest.main()
