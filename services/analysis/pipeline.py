# services/analysis/pipeline.py
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from schemas.analysis import AnalyzeRequest
from services.ai.llm_service import LLMService
from services.analysis.aggregator import aggregate_market_data
from services.analysis.analysis_config import ANALYSIS_NEWS_LIMIT
from services.market_data.alpha_vantage import AlphaVantageService
from services.news.serper_news import NewsClientError, fetch_news
from services.synthesis.investment_report_synthesizer import synthesize_investment_report

logger = logging.getLogger(__name__)


class AnalysisPipelineError(RuntimeError):
    """
    The report model could not be called. `report` is the error-carrying
    report payload (its `_raw` holds the cause) for the failed job.
    """

    def __init__(self, message: str, report: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.report = report


def _news_error_item(message: str) -> Dict[str, Any]:
    return {"title": "Error fetching news", "link": "#", "snippet": message}


async def gather_news(query: str, limit: int = ANALYSIS_NEWS_LIMIT) -> List[Dict[str, Any]]:
    """News for the prompt. Failures become a single placeholder item."""
    try:
        res = await fetch_news(query, limit)
    except NewsClientError as e:
        logger.warning("news_fetch_failed query=%s error=%s", query, e)
        return [_news_error_item(str(e))]

    if not res.ok:
        logger.warning("news_fetch_failed query=%s error=%s", query, res.error.message)
        return [_news_error_item(res.error.message)]
    return [item.model_dump(exclude_none=True) for item in res.data]


async def run_analysis(
    request: AnalyzeRequest,
    *,
    av: Optional[AlphaVantageService] = None,
    llm: Optional[LLMService] = None,
) -> Dict[str, Any]:
    """
    Aggregate market data and news, then synthesize the report.

    Returns the completed payload {"aggregated", "news", "report"}; raises
    AnalysisPipelineError when the report model could not be called.
    """
    t0 = time.perf_counter()

    aggregated, news = await asyncio.gather(
        aggregate_market_data(request.ticker, request.asset_type, av=av),
        gather_news(request.ticker),
    )
    aggregated_dict = aggregated.to_dict()

    outcome = await synthesize_investment_report(request, aggregated_dict, news, llm=llm)
    if not outcome.ok:
        raise AnalysisPipelineError(outcome.error, report=outcome.report.to_payload())

    logger.info(
        "analysis_pipeline_completed ticker=%s asset_type=%s seconds=%.2f",
        request.ticker, request.asset_type, time.perf_counter() - t0,
    )
    return {
        "aggregated": aggregated_dict,
        "news": news,
        "report": outcome.report.to_payload(),
    }
