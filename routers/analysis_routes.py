# routers/analysis_routes.py
"""
Submit an analysis and poll for its report.

POST /analyze returns as soon as the pending report row exists; the pipeline
runs as a background task after the response is sent and the client polls
GET /report until the status is terminal.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from middleware.rate_limit import ANALYZE_RATE_LIMIT, limiter
from schemas.analysis import AnalyzeRequest, AnalyzeResponse, ReportStatusResponse
from services.analysis.analysis_jobs import (
    ReportNotFoundError,
    create_analysis_job,
    get_report_for_owner,
    run_analysis_job,
    to_status_payload,
)
from services.supabase_auth import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/analyze", response_model=AnalyzeResponse)
@limiter.limit(ANALYZE_RATE_LIMIT)
async def submit_analysis(
    request: Request,
    body: AnalyzeRequest,
    bg: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        search, report = create_analysis_job(db, user_id, body)
    except SQLAlchemyError:
        logger.exception("analysis_job_create_failed ticker=%s", body.ticker)
        raise HTTPException(status_code=500, detail="Failed to create analysis")

    bg.add_task(run_analysis_job, report.id, body)

    logger.info(
        "analysis_job_created report_id=%s ticker=%s asset_type=%s level=%d",
        report.id, body.ticker, body.asset_type, body.investment_level,
    )
    return {"search_id": search.id, "report_id": report.id}


@router.get("/report", response_model=ReportStatusResponse)
async def get_report(
    report_id: Optional[str] = Query(None, alias="id"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    report_id = (report_id or "").strip()
    if not report_id:
        raise HTTPException(status_code=400, detail="Missing id")

    try:
        report = get_report_for_owner(db, report_id, user_id)
    except ReportNotFoundError:
        raise HTTPException(status_code=404, detail="Not found")

    return to_status_payload(report)
