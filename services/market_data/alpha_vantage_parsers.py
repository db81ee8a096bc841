"""
Explicit parsers for Alpha Vantage documents.

Each parser maps one documented response shape into the compact dicts the
analysis pipeline stores, and raises AlphaVantageParseError when a field the
shape requires is missing. Nothing here falls back silently.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from utils.common_helpers import pct_change, safe_float

INDICATOR_MAX_POINTS = 30

_IN_BAND_ERROR_KEYS = ("Error Message", "Note", "Information")


class AlphaVantageParseError(ValueError):
    """Raised when a document does not have the shape its function documents."""


def in_band_error(doc: Any) -> Optional[str]:
    """
    Alpha Vantage answers 200 for bad symbols and throttling, with the
    problem described in one of a few top-level keys.
    """
    if not isinstance(doc, dict):
        return "Unexpected response type"
    for key in _IN_BAND_ERROR_KEYS:
        msg = doc.get(key)
        if msg:
            return str(msg)
    return None


def _find_key(doc: Dict[str, Any], prefix: str) -> Optional[str]:
    for key, value in doc.items():
        if key.startswith(prefix) and isinstance(value, dict):
            return key
    return None


def _last_refreshed(doc: Dict[str, Any]) -> Optional[str]:
    meta = doc.get("Meta Data")
    if not isinstance(meta, dict):
        return None
    for key, value in meta.items():
        if "Last Refreshed" in key:
            return str(value)
    return None


def _field(values: Dict[str, Any], name: str) -> Optional[float]:
    # "4. close", "4a. close (USD)", "5. adjusted close" -> first in key order wins
    for key in sorted(values):
        if name in key.lower():
            return safe_float(values[key])
    return None


def _summarize(bars: List[Dict[str, Any]]) -> Dict[str, Any]:
    # bars are newest first
    oldest, newest = bars[-1], bars[0]
    highs = [b["high"] for b in bars if b["high"] is not None]
    lows = [b["low"] for b in bars if b["low"] is not None]
    volumes = [b["volume"] for b in bars if b["volume"] is not None]
    open_ = oldest["open"] if oldest["open"] is not None else oldest["close"]
    change = pct_change(newest["close"], open_)
    return {
        "open": open_,
        "close": newest["close"],
        "high": max(highs) if highs else None,
        "low": min(lows) if lows else None,
        "change_pct": round(change, 4) if change is not None else None,
        "volume": sum(volumes) if volumes else None,
    }


def parse_time_series(doc: Dict[str, Any], *, window: int) -> Dict[str, Any]:
    series_key = _find_key(doc, "Time Series")
    if not series_key:
        raise AlphaVantageParseError("No time series in response")

    series = doc[series_key]
    bars: List[Dict[str, Any]] = []
    for ts in sorted(series, reverse=True)[: max(1, window)]:
        values = series[ts]
        if not isinstance(values, dict):
            raise AlphaVantageParseError(f"Malformed bar at {ts}")
        close = _field(values, "close")
        if close is None:
            raise AlphaVantageParseError(f"Missing close price at {ts}")
        bars.append(
            {
                "t": ts,
                "open": _field(values, "open"),
                "high": _field(values, "high"),
                "low": _field(values, "low"),
                "close": close,
                "volume": _field(values, "volume"),
            }
        )

    if not bars:
        raise AlphaVantageParseError("Empty time series")

    return {
        "last_refreshed": _last_refreshed(doc),
        "bars": bars,
        "summary": _summarize(bars),
    }


def parse_indicator(doc: Dict[str, Any], *, max_points: int = INDICATOR_MAX_POINTS) -> Dict[str, Any]:
    series_key = _find_key(doc, "Technical Analysis")
    if not series_key:
        raise AlphaVantageParseError("No indicator series in response")

    series = doc[series_key]
    points: List[Dict[str, Any]] = []
    for ts in sorted(series, reverse=True)[:max_points]:
        values = series[ts]
        if not isinstance(values, dict):
            raise AlphaVantageParseError(f"Malformed indicator point at {ts}")
        point: Dict[str, Any] = {"t": ts}
        for name, raw in values.items():
            point[name] = safe_float(raw)
        points.append(point)

    if not points:
        raise AlphaVantageParseError("Empty indicator series")

    latest = {k: v for k, v in points[0].items() if k != "t"}
    return {
        "last_refreshed": _last_refreshed(doc),
        "latest": latest,
        "points": points,
    }


def parse_global_quote(doc: Dict[str, Any]) -> Dict[str, Any]:
    q = doc.get("Global Quote")
    if not isinstance(q, dict) or not q:
        raise AlphaVantageParseError("No quote in response")
    price = safe_float(q.get("05. price"))
    if price is None:
        raise AlphaVantageParseError("No price from Alpha Vantage")
    return {
        "price": price,
        "time": q.get("07. latest trading day"),
        "previous_close": safe_float(q.get("08. previous close")),
    }


def parse_symbol_search(doc: Dict[str, Any]) -> List[Dict[str, Any]]:
    matches = doc.get("bestMatches")
    if not isinstance(matches, list):
        raise AlphaVantageParseError("No bestMatches in response")
    items = []
    for m in matches:
        if not isinstance(m, dict) or not m.get("1. symbol"):
            continue
        items.append(
            {
                "symbol": m["1. symbol"],
                "name": m.get("2. name", ""),
                "region": m.get("4. region", ""),
                "currency": m.get("8. currency", ""),
                "type": m.get("3. type", ""),
                "matchScore": safe_float(m.get("9. matchScore")) or 0.0,
            }
        )
    return items


def parse_market_cap(doc: Dict[str, Any]) -> Optional[float]:
    return safe_float(doc.get("MarketCapitalization"))
