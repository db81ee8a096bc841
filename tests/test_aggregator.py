import asyncio
import unittest

from services.analysis.aggregator import INDICATORS, aggregate_market_data
from services.market_data.alpha_vantage import TIMEFRAMES
from services.market_data.types import ProviderResult


class _FakeAlphaVantage:
    def __init__(self, *, failing_timeframes=(), raising_indicators=(), slow_timeframes=(), delay=0.0):
        self.failing_timeframes = set(failing_timeframes)
        self.raising_indicators = set(raising_indicators)
        self.slow_timeframes = set(slow_timeframes)
        self.delay = delay
        self.calls = []

    async def fetch_time_series(self, symbol, asset_type, timeframe):
        self.calls.append(("ts", timeframe))
        if timeframe in self.slow_timeframes:
            await asyncio.sleep(5)
        if self.delay:
            await asyncio.sleep(self.delay)
        if timeframe in self.failing_timeframes:
            return ProviderResult.failure("alpha_vantage:TIME_SERIES_DAILY", "Alpha Vantage error 500", 500)
        return ProviderResult.success("alpha_vantage:TIME_SERIES_DAILY", {"timeframe": timeframe, "symbol": symbol})

    async def fetch_indicator(self, symbol, indicator, *, interval, series_type, time_period):
        self.calls.append(("ind", indicator))
        if indicator in self.raising_indicators:
            raise RuntimeError("boom")
        return ProviderResult.success(f"alpha_vantage:{indicator}", {"indicator": indicator, "time_period": time_period})


class TestAggregateMarketData(unittest.IsolatedAsyncioTestCase):
    async def test_every_slot_is_attempted(self) -> None:
        av = _FakeAlphaVantage()
        data = await aggregate_market_data("AAPL", "stock", av=av)

        self.assertEqual(list(data.market_data), list(TIMEFRAMES))
        self.assertEqual(list(data.indicators), [s.name for s in INDICATORS])
        self.assertEqual(len(av.calls), len(TIMEFRAMES) + len(INDICATORS))
        self.assertEqual(data.failed_slots, {})

    async def test_one_failed_timeframe_keeps_the_others(self) -> None:
        av = _FakeAlphaVantage(failing_timeframes={"1w"})
        data = await aggregate_market_data("AAPL", "stock", av=av)
        out = data.to_dict()

        self.assertEqual(out["marketData"]["1w"], {"error": "Alpha Vantage error 500", "status": 500})
        for tf in TIMEFRAMES:
            if tf != "1w":
                self.assertEqual(out["marketData"][tf]["timeframe"], tf)
        self.assertEqual(set(data.failed_slots), {"1w"})

    async def test_raising_adapter_is_captured(self) -> None:
        av = _FakeAlphaVantage(raising_indicators={"MACD"})
        data = await aggregate_market_data("BTC", "crypto", av=av)

        self.assertEqual(data.indicators["MACD"], {"error": "boom"})
        self.assertEqual(data.indicators["RSI"]["time_period"], 14)
        self.assertEqual(data.indicators["EMA"]["time_period"], 200)

    async def test_slow_slot_times_out_alone(self) -> None:
        av = _FakeAlphaVantage(slow_timeframes={"1y"})
        data = await aggregate_market_data("AAPL", "stock", av=av, timeout_s=0.05)

        self.assertIn("error", data.market_data["1y"])
        self.assertEqual(data.market_data["1d"]["timeframe"], "1d")

    async def test_result_does_not_depend_on_concurrency(self) -> None:
        serial = await aggregate_market_data(
            "AAPL", "stock", av=_FakeAlphaVantage(failing_timeframes={"3d"}, delay=0.001), concurrency=1
        )
        parallel = await aggregate_market_data(
            "AAPL", "stock", av=_FakeAlphaVantage(failing_timeframes={"3d"}, delay=0.001), concurrency=16
        )
        self.assertEqual(serial.to_dict(), parallel.to_dict())

    async def test_unknown_asset_type_fails_before_any_request(self) -> None:
        av = _FakeAlphaVantage()
        with self.assertRaises(ValueError):
            await aggregate_market_data("AAPL", "bond", av=av)
        self.assertEqual(av.calls, [])


if __name__ == "__main__":
    unittest.main()
