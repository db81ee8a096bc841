# services/market_data/crypto_market.py
from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx

from services.market_data.types import ProviderResult
from utils.common_helpers import safe_float

BINANCE_TICKER_PRICE_URL = "https://api.binance.com/api/v3/ticker/price"
COINGECKO_SEARCH_URL = "https://api.coingecko.com/api/v3/search"

CRYPTO_HTTP_TIMEOUT_S = float(os.getenv("CRYPTO_HTTP_TIMEOUT_S", "10"))


async def fetch_binance_price(symbol: str) -> ProviderResult:
    """USDT-quoted spot price; USDT is treated as USD."""
    source = "binance_ticker_USDT"
    pair = f"{symbol.upper()}USDT"
    try:
        async with httpx.AsyncClient(timeout=CRYPTO_HTTP_TIMEOUT_S) as client:
            r = await client.get(BINANCE_TICKER_PRICE_URL, params={"symbol": pair})
    except httpx.HTTPError as e:
        return ProviderResult.failure(source, f"Binance request failed: {e}")

    if r.status_code >= 400:
        return ProviderResult.failure(source, f"Binance error {r.status_code}", r.status_code)

    try:
        data = r.json()
    except ValueError:
        return ProviderResult.failure(source, "Binance returned a non-JSON body", r.status_code)

    price = safe_float(data.get("price")) if isinstance(data, dict) else None
    if price is None:
        return ProviderResult.failure(source, "No price from Binance", r.status_code)

    return ProviderResult.success(
        source,
        {"price": price, "time": datetime.now(timezone.utc).isoformat()},
    )


async def search_coingecko(query: str) -> ProviderResult:
    source = "coingecko_search"
    try:
        async with httpx.AsyncClient(timeout=CRYPTO_HTTP_TIMEOUT_S) as client:
            r = await client.get(
                COINGECKO_SEARCH_URL,
                params={"query": query},
                headers={"Accept": "application/json"},
            )
    except httpx.HTTPError as e:
        return ProviderResult.failure(source, f"CoinGecko request failed: {e}")

    if r.status_code >= 400:
        return ProviderResult.failure(source, f"CoinGecko error {r.status_code}", r.status_code)

    try:
        data = r.json()
    except ValueError:
        return ProviderResult.failure(source, "CoinGecko returned a non-JSON body", r.status_code)

    coins = data.get("coins") if isinstance(data, dict) else None
    items: List[Dict[str, Any]] = []
    for c in coins or []:
        if not isinstance(c, dict) or not c.get("id"):
            continue
        items.append(
            {
                "id": c["id"],
                "symbol": str(c.get("symbol") or "").upper(),
                "name": c.get("name") or "",
            }
        )
    return ProviderResult.success(source, items)
