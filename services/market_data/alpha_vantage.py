# services/market_data/alpha_vantage.py
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx
from dotenv import load_dotenv

from services.market_data.alpha_vantage_parsers import (
    AlphaVantageParseError,
    in_band_error,
    parse_global_quote,
    parse_indicator,
    parse_market_cap,
    parse_symbol_search,
    parse_time_series,
)
from services.market_data.types import ProviderResult
from utils.common_helpers import safe_json

load_dotenv()

logger = logging.getLogger(__name__)

ALPHA_VANTAGE_URL = os.getenv("ALPHA_VANTAGE_URL", "https://www.alphavantage.co/query")
ALPHA_VANTAGE_TIMEOUT_S = float(os.getenv("ALPHA_VANTAGE_TIMEOUT_S", "20"))

TIMEFRAMES: Tuple[str, ...] = ("1h", "6h", "12h", "1d", "3d", "1w", "1m", "1y")


class AlphaVantageConfigError(RuntimeError):
    """Raised when the Alpha Vantage credential is not configured."""


@dataclass(frozen=True)
class TimeframeQuery:
    function: str
    interval: Optional[str]
    outputsize: Optional[str]
    window: int  # most recent bars kept for this timeframe


def _build_timeframe_queries() -> Dict[Tuple[str, str], TimeframeQuery]:
    stock_intraday = ("TIME_SERIES_INTRADAY", "60min")
    crypto_intraday = ("CRYPTO_INTRADAY", "60min")

    queries: Dict[Tuple[str, str], TimeframeQuery] = {}
    for tf, bars in (("1h", 1), ("6h", 6), ("12h", 12)):
        queries[("stock", tf)] = TimeframeQuery(*stock_intraday, "compact", bars)
        queries[("crypto", tf)] = TimeframeQuery(*crypto_intraday, "compact", bars)

    # stocks trade ~21 days a month / 252 a year, crypto every day
    stock_days = {"1d": 1, "3d": 3, "1w": 5, "1m": 21, "1y": 252}
    crypto_days = {"1d": 1, "3d": 3, "1w": 7, "1m": 30, "1y": 365}
    for tf, bars in stock_days.items():
        size = "full" if bars > 100 else "compact"
        queries[("stock", tf)] = TimeframeQuery("TIME_SERIES_DAILY", None, size, bars)
    for tf, bars in crypto_days.items():
        queries[("crypto", tf)] = TimeframeQuery("DIGITAL_CURRENCY_DAILY", None, None, bars)
    return queries


TIMEFRAME_QUERIES = _build_timeframe_queries()


def resolve_timeframe(timeframe: str, asset_type: str) -> TimeframeQuery:
    """Map (timeframe, asset_type) to the provider query. Unknown pairs are a bug."""
    try:
        return TIMEFRAME_QUERIES[(asset_type, timeframe)]
    except KeyError:
        raise ValueError(f"No Alpha Vantage mapping for timeframe={timeframe!r} asset_type={asset_type!r}")


class AlphaVantageService:
    """
    Async client for the Alpha Vantage query endpoint.

    fetch_* methods used by the analysis pipeline never raise for upstream
    problems: non-2xx statuses, in-band error documents, transport errors and
    unparseable payloads all come back as a failed ProviderResult.
    """

    def __init__(self, api_key: Optional[str] = None, timeout: float = ALPHA_VANTAGE_TIMEOUT_S):
        self.api_key = api_key if api_key is not None else os.getenv("ALPHA_VANTAGE_API_KEY", "")
        self.timeout = timeout

    @asynccontextmanager
    async def _client(self, client: Optional[httpx.AsyncClient] = None):
        if client is not None:
            yield client
            return
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as c:
            yield c

    def _require_key(self) -> str:
        if not self.api_key:
            raise AlphaVantageConfigError("Missing ALPHA_VANTAGE_API_KEY")
        return self.api_key

    async def _query(
        self,
        params: Dict[str, Any],
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> ProviderResult:
        source = f"alpha_vantage:{params.get('function')}"
        try:
            key = self._require_key()
        except AlphaVantageConfigError as e:
            return ProviderResult.failure(source, str(e))

        query = {k: v for k, v in params.items() if v is not None}
        query["apikey"] = key
        try:
            async with self._client(client) as c:
                r = await c.get(ALPHA_VANTAGE_URL, params=query)
        except httpx.TimeoutException:
            return ProviderResult.failure(source, "Alpha Vantage request timed out")
        except httpx.HTTPError as e:
            return ProviderResult.failure(source, f"Alpha Vantage request failed: {e}")

        if r.status_code >= 400:
            return ProviderResult.failure(source, f"Alpha Vantage error {r.status_code}", r.status_code)

        doc = safe_json(r)
        if doc is None:
            return ProviderResult.failure(source, "Alpha Vantage returned a non-JSON body", r.status_code)

        msg = in_band_error(doc)
        if msg:
            return ProviderResult.failure(source, msg, r.status_code)
        return ProviderResult.success(source, doc)

    # -----------------------
    # Pipeline adapters
    # -----------------------

    async def fetch_time_series(
        self,
        symbol: str,
        asset_type: str,
        timeframe: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> ProviderResult:
        q = resolve_timeframe(timeframe, asset_type)
        params: Dict[str, Any] = {
            "function": q.function,
            "symbol": symbol,
            "interval": q.interval,
            "outputsize": q.outputsize,
        }
        if asset_type == "crypto":
            params["market"] = "USD"

        res = await self._query(params, client=client)
        if not res.ok:
            return res
        try:
            parsed = parse_time_series(res.data, window=q.window)
        except AlphaVantageParseError as e:
            return ProviderResult.failure(res.source, str(e))

        return ProviderResult.success(
            res.source,
            {
                "symbol": symbol,
                "timeframe": timeframe,
                "function": q.function,
                "interval": q.interval or "daily",
                **parsed,
            },
        )

    async def fetch_indicator(
        self,
        symbol: str,
        indicator: str,
        *,
        interval: str = "daily",
        series_type: Optional[str] = "close",
        time_period: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> ProviderResult:
        params = {
            "function": indicator,
            "symbol": symbol,
            "interval": interval,
            "series_type": series_type,
            "time_period": time_period,
        }
        res = await self._query(params, client=client)
        if not res.ok:
            return res
        try:
            parsed = parse_indicator(res.data)
        except AlphaVantageParseError as e:
            return ProviderResult.failure(res.source, str(e))

        return ProviderResult.success(
            res.source,
            {
                "indicator": indicator,
                "interval": interval,
                "series_type": series_type,
                "time_period": time_period,
                **parsed,
            },
        )

    # -----------------------
    # Proxy helpers (quote / search)
    # -----------------------

    async def fetch_global_quote(self, symbol: str) -> ProviderResult:
        res = await self._query({"function": "GLOBAL_QUOTE", "symbol": symbol})
        if not res.ok:
            return res
        try:
            return ProviderResult.success(res.source, parse_global_quote(res.data))
        except AlphaVantageParseError as e:
            return ProviderResult.failure(res.source, str(e))

    async def search_symbols(self, keywords: str) -> List[Dict[str, Any]]:
        """Best matches for keywords; empty when unconfigured or on any failure."""
        if not self.api_key:
            return []
        res = await self._query({"function": "SYMBOL_SEARCH", "keywords": keywords})
        if not res.ok:
            logger.warning("alpha_vantage_symbol_search_failed error=%s", res.error.message)
            return []
        try:
            return parse_symbol_search(res.data)
        except AlphaVantageParseError:
            return []

    async def fetch_market_cap(self, symbol: str) -> Optional[float]:
        res = await self._query({"function": "OVERVIEW", "symbol": symbol})
        if not res.ok:
            return None
        return parse_market_cap(res.data)
