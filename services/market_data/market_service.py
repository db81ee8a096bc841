# services/market_data/market_service.py
"""
Read-through helpers behind the symbol search and price routes.

These are thin proxies: they forward upstream failures as MarketDataError and
leave status mapping to the router.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from services.market_data.alpha_vantage import AlphaVantageService
from services.market_data.crypto_market import fetch_binance_price, search_coingecko
from services.market_data.yahoo_search import search_yahoo_equities

MARKET_CAP_ENRICH_TOP_N = 5


class MarketDataError(Exception):
    """Upstream market data provider failed or returned nothing usable."""


async def search_stocks(query: str, *, sort_by_cap: bool = False, av: Optional[AlphaVantageService] = None) -> List[Dict[str, Any]]:
    av = av or AlphaVantageService()

    items = await av.search_symbols(query)
    if not items:
        items = await search_yahoo_equities(query)

    if sort_by_cap and items and av.api_key:
        top = items[:MARKET_CAP_ENRICH_TOP_N]
        caps = await asyncio.gather(*(av.fetch_market_cap(it["symbol"]) for it in top))
        enriched = [{**it, "marketCap": cap} for it, cap in zip(top, caps)]
        items = enriched + items[len(enriched):]
        items.sort(
            key=lambda it: (
                it.get("marketCap") if it.get("marketCap") is not None else -1,
                it.get("matchScore") or 0,
            ),
            reverse=True,
        )
    else:
        items.sort(key=lambda it: it.get("matchScore") or 0, reverse=True)

    return items


async def search_crypto(query: str) -> List[Dict[str, Any]]:
    res = await search_coingecko(query)
    if not res.ok:
        raise MarketDataError(res.error.message)
    return res.data


async def get_price(asset: str, symbol: str, av: Optional[AlphaVantageService] = None) -> Dict[str, Any]:
    asset = asset.lower()
    symbol = symbol.upper().strip()

    if asset == "stock":
        av = av or AlphaVantageService()
        res = await av.fetch_global_quote(symbol)
        if not res.ok:
            raise MarketDataError(res.error.message)
        return {
            "asset": "stock",
            "symbol": symbol,
            "price": res.data["price"],
            "currency": "USD",
            "time": res.data.get("time"),
            "source": "alpha_vantage_global_quote",
        }

    if asset == "crypto":
        res = await fetch_binance_price(symbol)
        if not res.ok:
            raise MarketDataError(res.error.message)
        return {
            "asset": "crypto",
            "symbol": symbol,
            "price": res.data["price"],
            "currency": "USD",
            "time": res.data["time"],
            "source": res.source,
        }

    raise ValueError("Unsupported asset")
