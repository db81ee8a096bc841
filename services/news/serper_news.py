from __future__ import annotations

import os
from typing import Any, Dict, List

import httpx

from schemas.analysis import NewsItem
from services.market_data.types import ProviderResult

SERPER_NEWS_URL = os.getenv("SERPER_NEWS_URL", "https://google.serper.dev/news")
SERPER_TIMEOUT_SEC = float(os.getenv("SERPER_TIMEOUT_S", "20"))

SOURCE = "serper_news"


class NewsClientError(RuntimeError):
    """Raised when the Serper client is misconfigured."""


def normalize_news_results(items: Any, max_items: int) -> List[NewsItem]:
    """Keep well-formed entries only; title and link are required."""
    if not isinstance(items, list):
        return []

    out: List[NewsItem] = []
    for raw in items:
        if len(out) >= max_items:
            break
        if not isinstance(raw, dict):
            continue
        title = (raw.get("title") or "").strip()
        link = (raw.get("link") or "").strip()
        if not title or not link:
            continue
        out.append(
            NewsItem(
                title=title,
                link=link,
                snippet=raw.get("snippet") or None,
                date=raw.get("date") or None,
                source=raw.get("source") or None,
            )
        )
    return out


async def fetch_news(query: str, max_results: int = 10) -> ProviderResult:
    """
    Search recent news for `query`.

    Raises NewsClientError before any network call when SERPER_API_KEY is
    missing. Upstream problems come back as a failed ProviderResult.
    """
    api_key = os.getenv("SERPER_API_KEY", "")
    if not api_key:
        raise NewsClientError("Missing SERPER_API_KEY")

    payload: Dict[str, Any] = {"q": query, "num": int(max_results)}
    headers = {"X-API-KEY": api_key, "Content-Type": "application/json"}

    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(SERPER_TIMEOUT_SEC)) as client:
            response = await client.post(SERPER_NEWS_URL, json=payload, headers=headers)
    except httpx.TimeoutException:
        return ProviderResult.failure(SOURCE, "Serper request timed out")
    except httpx.HTTPError as exc:
        return ProviderResult.failure(SOURCE, f"Serper request failed: {exc}")

    if response.status_code >= 400:
        return ProviderResult.failure(SOURCE, f"Serper error {response.status_code}", response.status_code)

    try:
        data = response.json()
    except ValueError:
        return ProviderResult.failure(SOURCE, "Serper returned a non-JSON body", response.status_code)

    news = data.get("news") if isinstance(data, dict) else None
    return ProviderResult.success(SOURCE, normalize_news_results(news, max_results))
