# services/analysis/aggregator.py
"""
Fans out to the market data adapters for one analysis job.

Every timeframe and indicator is fetched independently; a failure in one slot
is recorded as {"error": ...} under its key and never discards the others.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from services.analysis.analysis_config import (
    ANALYSIS_FETCH_CONCURRENCY,
    ANALYSIS_FETCH_TIMEOUT_S,
)
from services.market_data.alpha_vantage import TIMEFRAMES, AlphaVantageService, resolve_timeframe
from services.market_data.types import ProviderResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndicatorSpec:
    name: str
    interval: str = "daily"
    series_type: str = "close"
    time_period: Optional[int] = None


INDICATORS: Tuple[IndicatorSpec, ...] = (
    IndicatorSpec("BBANDS", time_period=20),
    IndicatorSpec("RSI", time_period=14),
    IndicatorSpec("MACD"),
    IndicatorSpec("SMA", time_period=50),
    IndicatorSpec("EMA", time_period=200),
)


@dataclass
class AggregatedData:
    """Time series per timeframe and indicator series per name, success or error."""
    market_data: Dict[str, Any] = field(default_factory=dict)
    indicators: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "marketData": self.market_data,
            "indicators": self.indicators,
        }

    @property
    def failed_slots(self) -> Dict[str, str]:
        out = {}
        for group in (self.market_data, self.indicators):
            for key, value in group.items():
                if isinstance(value, dict) and "error" in value:
                    out[key] = value["error"]
        return out


async def _run_slot(
    label: str,
    call: Callable[[], Awaitable[ProviderResult]],
    sem: asyncio.Semaphore,
    timeout_s: float,
) -> Dict[str, Any]:
    async with sem:
        try:
            res = await asyncio.wait_for(call(), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning("aggregate_slot_timeout slot=%s timeout_s=%.0f", label, timeout_s)
            return {"error": f"Timed out after {timeout_s:.0f}s"}
        except Exception as e:
            logger.warning("aggregate_slot_failed slot=%s error=%s", label, e)
            return {"error": str(e) or e.__class__.__name__}

    if not res.ok:
        logger.info("aggregate_slot_error slot=%s error=%s", label, res.error.message if res.error else None)
        return res.error_entry()
    return res.data


async def aggregate_market_data(
    symbol: str,
    asset_type: str,
    *,
    av: Optional[AlphaVantageService] = None,
    concurrency: int = ANALYSIS_FETCH_CONCURRENCY,
    timeout_s: float = ANALYSIS_FETCH_TIMEOUT_S,
) -> AggregatedData:
    """
    Fetch every timeframe in TIMEFRAMES and every indicator in INDICATORS.

    All entries are attempted. Result content does not depend on scheduling:
    slots are keyed by timeframe / indicator name.
    """
    av = av or AlphaVantageService()
    sem = asyncio.Semaphore(max(1, int(concurrency)))

    # a missing mapping is a bug and must surface before any request goes out
    for tf in TIMEFRAMES:
        resolve_timeframe(tf, asset_type)

    def _ts_call(tf: str):
        return lambda: av.fetch_time_series(symbol, asset_type, tf)

    def _ind_call(spec: IndicatorSpec):
        return lambda: av.fetch_indicator(
            symbol,
            spec.name,
            interval=spec.interval,
            series_type=spec.series_type,
            time_period=spec.time_period,
        )

    ts_results, ind_results = await asyncio.gather(
        asyncio.gather(*(_run_slot(f"ts:{tf}", _ts_call(tf), sem, timeout_s) for tf in TIMEFRAMES)),
        asyncio.gather(*(_run_slot(f"ind:{s.name}", _ind_call(s), sem, timeout_s) for s in INDICATORS)),
    )

    data = AggregatedData(
        market_data=dict(zip(TIMEFRAMES, ts_results)),
        indicators={s.name: r for s, r in zip(INDICATORS, ind_results)},
    )
    logger.info(
        "aggregate_completed symbol=%s asset_type=%s failed_slots=%d",
        symbol, asset_type, len(data.failed_slots),
    )
    return data
