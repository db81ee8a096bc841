# services/market_data/yahoo_search.py
from __future__ import annotations

import logging
from typing import Any, Dict, List

import httpx

logger = logging.getLogger(__name__)

YAHOO_SEARCH_URL = "https://query1.finance.yahoo.com/v1/finance/search"

# unofficial endpoint; rejects requests without a browser UA
_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json",
}


async def search_yahoo_equities(query: str, timeout: float = 10.0) -> List[Dict[str, Any]]:
    """Equity/ETF matches from Yahoo search. Empty list on any failure."""
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            r = await client.get(YAHOO_SEARCH_URL, params={"q": query}, headers=_HEADERS)
        if r.status_code >= 400:
            logger.warning("yahoo_search_failed status=%s", r.status_code)
            return []
        data = r.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("yahoo_search_failed error=%s", e)
        return []

    quotes = data.get("quotes") if isinstance(data, dict) else None
    items: List[Dict[str, Any]] = []
    for q in quotes or []:
        if not isinstance(q, dict) or q.get("quoteType") not in ("EQUITY", "ETF"):
            continue
        if not q.get("symbol"):
            continue
        items.append(
            {
                "symbol": q.get("symbol"),
                "name": q.get("shortname") or q.get("longname") or q.get("symbol"),
                "region": q.get("exchange") or "",
                "currency": q.get("currency") or "USD",
                "type": q.get("quoteType") or "equity",
                "matchScore": 1.0,
                "marketCap": q.get("marketCap"),
            }
        )
    return items
