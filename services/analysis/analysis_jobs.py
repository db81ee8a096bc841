# services/analysis/analysis_jobs.py
"""
Lifecycle of an analysis job (an `analysis_reports` row).

    pending ──► completed   (payload: aggregated data, news, report)
        └─────► failed      (payload: {"error": ...}, plus "report" when the
                             report model failed)

The row is created by the submitting request and moved to a terminal state
exactly once by the background run that the same request scheduled. The
terminal UPDATE is conditional on status = 'pending', so a job can never
leave a terminal state or be finalized twice.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import database
from models.analysis_report import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    TERMINAL_STATUSES,
    AnalysisReport,
)
from models.search import Search
from schemas.analysis import AnalyzeRequest
from services.analysis.analysis_config import STALE_JOB_TIMEOUT_S
from services.analysis.pipeline import AnalysisPipelineError, run_analysis

logger = logging.getLogger(__name__)

STALE_JOB_ERROR = "analysis timed out"

Pipeline = Callable[[AnalyzeRequest], Awaitable[Dict[str, Any]]]
SessionFactory = Callable[[], Session]


class ReportNotFoundError(LookupError):
    """No report with this id is visible to the caller (missing or not owned)."""


# ----------------------------
# Create
# ----------------------------
def create_analysis_job(db: Session, owner_id: str, request: AnalyzeRequest) -> Tuple[Search, AnalysisReport]:
    """Insert the search and its pending report in one transaction."""
    try:
        search = Search(
            user_id=owner_id,
            ticker=request.ticker,
            asset_type=request.asset_type,
            investment_level=request.investment_level,
        )
        db.add(search)
        db.flush()

        report = AnalysisReport(search_id=search.id, status=STATUS_PENDING)
        db.add(report)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(search)
    db.refresh(report)
    return search, report


# ----------------------------
# Terminal write
# ----------------------------
def finalize_job(db: Session, report_id: str, status: str, payload: Dict[str, Any]) -> bool:
    """
    Move a pending job to `status`. Returns False when the job was not
    pending anymore (or does not exist); nothing is written in that case.
    """
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"Not a terminal status: {status}")

    result = db.execute(
        update(AnalysisReport)
        .where(AnalysisReport.id == report_id, AnalysisReport.status == STATUS_PENDING)
        .values(status=status, report_data=payload, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def _write_terminal(report_id: str, status: str, payload: Dict[str, Any], session_factory: SessionFactory) -> None:
    db = session_factory()
    try:
        if finalize_job(db, report_id, status, payload):
            logger.info("analysis_job_finalized report_id=%s status=%s", report_id, status)
        else:
            logger.warning("analysis_job_already_terminal report_id=%s status=%s", report_id, status)
    except SQLAlchemyError:
        # no caller to report to; the job stays pending until the stale sweep
        db.rollback()
        logger.exception("analysis_job_terminal_write_failed report_id=%s status=%s", report_id, status)
    finally:
        db.close()


# ----------------------------
# Background task
# ----------------------------
async def run_analysis_job(
    report_id: str,
    request: AnalyzeRequest,
    *,
    pipeline: Optional[Pipeline] = None,
    session_factory: Optional[SessionFactory] = None,
) -> None:
    """
    Run the pipeline for one job and record the outcome. Never raises: any
    exception escaping the pipeline is recorded as `failed`.
    """
    runner = pipeline or run_analysis
    factory = session_factory or database.SessionLocal
    t0 = time.perf_counter()

    try:
        payload = await runner(request)
        status = STATUS_COMPLETED
    except Exception as e:
        logger.exception(
            "analysis_job_failed report_id=%s ticker=%s seconds=%.2f",
            report_id, request.ticker, time.perf_counter() - t0,
        )
        status = STATUS_FAILED
        payload = {"error": str(e) or "analysis failed"}
        if isinstance(e, AnalysisPipelineError) and e.report is not None:
            payload["report"] = e.report

    # sync session work stays off the event loop
    await asyncio.to_thread(_write_terminal, report_id, status, payload, factory)


# ----------------------------
# Read
# ----------------------------
def get_report_for_owner(db: Session, report_id: str, owner_id: str) -> AnalysisReport:
    """Owner-scoped lookup. Unknown ids and other users' ids fail the same way."""
    report = db.execute(
        select(AnalysisReport)
        .join(Search, Search.id == AnalysisReport.search_id)
        .where(AnalysisReport.id == report_id, Search.user_id == owner_id)
    ).scalar_one_or_none()
    if report is None:
        raise ReportNotFoundError(report_id)
    return report


def to_status_payload(report: AnalysisReport) -> Dict[str, Any]:
    return {
        "id": report.id,
        "status": report.status,
        "report_data": report.report_data if report.status != STATUS_PENDING else None,
        "created_at": report.created_at,
        "updated_at": report.updated_at,
    }


# ----------------------------
# Stale job sweep
# ----------------------------
def expire_stale_jobs(db: Session, max_age_s: int = STALE_JOB_TIMEOUT_S) -> int:
    """Fail jobs pending for longer than max_age_s. Returns how many were expired."""
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=max_age_s)
    result = db.execute(
        update(AnalysisReport)
        .where(AnalysisReport.status == STATUS_PENDING, AnalysisReport.created_at < cutoff)
        .values(status=STATUS_FAILED, report_data={"error": STALE_JOB_ERROR}, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount or 0


def sweep_stale_jobs_once(max_age_s: int = STALE_JOB_TIMEOUT_S, session_factory: Optional[SessionFactory] = None) -> int:
    db = (session_factory or database.SessionLocal)()
    try:
        expired = expire_stale_jobs(db, max_age_s)
        if expired:
            logger.warning("stale_jobs_expired count=%d max_age_s=%d", expired, max_age_s)
        return expired
    except SQLAlchemyError:
        db.rollback()
        logger.exception("stale_job_sweep_failed")
        return 0
    finally:
        db.close()


async def stale_job_sweeper(interval_s: int, max_age_s: int = STALE_JOB_TIMEOUT_S) -> None:
    """Periodic sweep; runs until cancelled."""
    while True:
        await asyncio.to_thread(sweep_stale_jobs_once, max_age_s)
        await asyncio.sleep(interval_s)
