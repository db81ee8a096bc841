from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from schemas.analysis import AnalyzeRequest
from schemas.investment_report import (
    REPORT_VERSION,
    IndicatorSignal,
    InvestmentReport,
    KeyLevels,
    Reference,
    Strategy,
)
from services.ai.json_helpers import extract_json
from services.ai.llm_service import LLMService, get_llm_service
from services.analysis.analysis_config import (
    MARKET_DATA_PROMPT_MAX_CHARS,
    NEWS_PROMPT_MAX_CHARS,
    REPORT_LANGUAGE,
)
from utils.common_helpers import safe_float

logger = logging.getLogger(__name__)

SIGNALS = ("bullish", "bearish", "neutral")

SYSTEM_PROMPT = f"""
You are an expert investment analyst. Analyze multi-timeframe market data, technical indicators (BBANDS, RSI, MACD, moving averages), and recent news to produce a comprehensive investment report.

LANGUAGE: Write all narrative text in {REPORT_LANGUAGE}. This includes summary_outlook, technical_analysis (if string), strategy.rationale, risks, catalysts, and any other natural language fields. Keep the JSON KEYS in English exactly as defined below. Use USD for monetary values (no currency symbols in JSON values).

The investment level (1-5) selects the horizon: 1 = intraday to a few days, 3 = several weeks to months, 5 = a year or more.

Return STRICT JSON that matches exactly this schema (no extra keys, no markdown, no prose outside JSON):
{{
  "version": "v1",
  "ticker": string,
  "asset_type": "stock" | "crypto",
  "investment_period_level": 1 | 2 | 3 | 4 | 5,
  "summary_outlook": string,
  "technical_analysis": string | object,
  "key_levels": {{ "support": number[], "resistance": number[] }},
  "indicators_summary": Array<{{ "name": string, "value"?: string | number | null, "signal": "bullish" | "bearish" | "neutral", "note"?: string }}>,
  "risks": string[],
  "catalysts": string[],
  "confidence": number (0-100),
  "strategy": {{ "entry_price": number | null, "stop_loss": number | null, "rationale": string }},
  "references"?: Array<{{ "title": string, "url": string }}>
}}
""".strip()


@dataclass
class SynthesisOutcome:
    report: InvestmentReport
    # set when the report model could not be called; the report then only
    # carries the cause in `_raw`
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _build_prompt(request: AnalyzeRequest, aggregated: Dict[str, Any], news: List[Dict[str, Any]]) -> str:
    market_json = json.dumps(aggregated, default=str)[:MARKET_DATA_PROMPT_MAX_CHARS]
    news_json = json.dumps(news, default=str)[:NEWS_PROMPT_MAX_CHARS]
    return "\n\n".join(
        [
            f"Ticker: {request.ticker} (Asset: {request.asset_type}, InvestmentLevel: {request.investment_level})",
            f"MarketData(JSON): {market_json}",
            f"News(JSON): {news_json}",
            f"Return ONLY the JSON with the exact schema. Do not include code fences. "
            f"Narrative text must be in {REPORT_LANGUAGE}.",
        ]
    )


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _as_str(v: Any) -> str:
    if v is None:
        return ""
    return v if isinstance(v, str) else str(v)


def _str_list(v: Any) -> List[str]:
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, list):
        return []
    return [s for s in (_as_str(x).strip() for x in v if x is not None) if s]


def _num_list(v: Any) -> List[float]:
    if not isinstance(v, list):
        return []
    return [f for f in (safe_float(x) for x in v) if f is not None]


def _key_levels(v: Any) -> KeyLevels:
    if not isinstance(v, dict):
        return KeyLevels()
    return KeyLevels(support=_num_list(v.get("support")), resistance=_num_list(v.get("resistance")))


def _indicator_signals(v: Any) -> List[IndicatorSignal]:
    if not isinstance(v, list):
        return []
    out: List[IndicatorSignal] = []
    for item in v:
        if not isinstance(item, dict):
            continue
        name = _as_str(item.get("name")).strip()
        if not name:
            continue
        value = item.get("value")
        if not isinstance(value, (int, float, str)) or isinstance(value, bool):
            value = None
        signal = _as_str(item.get("signal")).strip().lower()
        note = item.get("note")
        out.append(
            IndicatorSignal(
                name=name,
                value=value,
                signal=signal if signal in SIGNALS else "neutral",
                note=_as_str(note) if note is not None else None,
            )
        )
    return out


def _strategy(v: Any) -> Strategy:
    if not isinstance(v, dict):
        return Strategy()
    return Strategy(
        entry_price=safe_float(v.get("entry_price")),
        stop_loss=safe_float(v.get("stop_loss")),
        rationale=_as_str(v.get("rationale")),
    )


def _references(v: Any) -> List[Reference]:
    if not isinstance(v, list):
        return []
    out = []
    for item in v:
        if isinstance(item, dict) and item.get("title") and item.get("url"):
            out.append(Reference(title=_as_str(item["title"]), url=_as_str(item["url"])))
    return out


def _level(v: Any, default: int) -> int:
    f = safe_float(v)
    if f is None or not f.is_integer() or not 1 <= f <= 5:
        return default
    return int(f)


def normalize_report(parsed: Dict[str, Any], request: AnalyzeRequest) -> InvestmentReport:
    """
    Coerce a parsed model answer into the v1 schema. Absent or ill-typed
    fields take their documented defaults; unknown keys are dropped.
    """
    ticker = parsed.get("ticker")
    asset_type = parsed.get("asset_type")
    technical = parsed.get("technical_analysis")
    if not isinstance(technical, (str, dict)):
        technical = "" if technical is None else json.dumps(technical, default=str)
    confidence = safe_float(parsed.get("confidence"))
    raw = parsed.get("_raw")

    return InvestmentReport(
        version=_as_str(parsed.get("version")) or REPORT_VERSION,
        ticker=ticker.strip() if isinstance(ticker, str) and ticker.strip() else request.ticker,
        asset_type=asset_type if asset_type in ("stock", "crypto") else request.asset_type,
        investment_period_level=_level(parsed.get("investment_period_level"), request.investment_level),
        summary_outlook=_as_str(parsed.get("summary_outlook")),
        technical_analysis=technical,
        key_levels=_key_levels(parsed.get("key_levels")),
        indicators_summary=_indicator_signals(parsed.get("indicators_summary")),
        risks=_str_list(parsed.get("risks")),
        catalysts=_str_list(parsed.get("catalysts")),
        confidence=min(100.0, max(0.0, confidence)) if confidence is not None else 0,
        strategy=_strategy(parsed.get("strategy")),
        references=_references(parsed.get("references")),
        raw=raw if isinstance(raw, str) else None,
    )


def fallback_report(request: AnalyzeRequest, raw_text: str) -> InvestmentReport:
    """Report for a model answer that could not be parsed; keeps the text."""
    return InvestmentReport(
        ticker=request.ticker,
        asset_type=request.asset_type,
        investment_period_level=request.investment_level,
        technical_analysis=raw_text,
        raw=raw_text,
    )


def error_report(request: AnalyzeRequest, cause: str) -> InvestmentReport:
    return InvestmentReport(
        ticker=request.ticker,
        asset_type=request.asset_type,
        investment_period_level=request.investment_level,
        raw=cause,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def synthesize_investment_report(
    request: AnalyzeRequest,
    aggregated: Dict[str, Any],
    news: List[Dict[str, Any]],
    *,
    llm: Optional[LLMService] = None,
) -> SynthesisOutcome:
    prompt = _build_prompt(request, aggregated, news)

    try:
        svc = llm or get_llm_service()
        raw = await svc.generate_text(system=SYSTEM_PROMPT, user=prompt)
    except Exception as e:
        cause = f"Report generation failed: {e}"
        logger.warning("report_generation_failed ticker=%s error=%s", request.ticker, e)
        return SynthesisOutcome(report=error_report(request, cause), error=cause)

    try:
        parsed = extract_json(raw)
    except ValueError:
        logger.warning("report_parse_failed ticker=%s chars=%d", request.ticker, len(raw or ""))
        return SynthesisOutcome(report=fallback_report(request, raw or ""))

    return SynthesisOutcome(report=normalize_report(parsed, request))
