# main.py
import asyncio
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from config.logging_config import configure_logging

configure_logging()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import Base, engine
import models  # noqa: F401  registers tables on Base.metadata
from middleware.rate_limit import limiter
from middleware.request_logging import RequestLoggingMiddleware
from routers.analysis_routes import router as analysis_router
from routers.market_routes import router as market_router
from services.analysis.analysis_config import STALE_JOB_SWEEP_INTERVAL_S, STALE_JOB_TIMEOUT_S
from services.analysis.analysis_jobs import stale_job_sweeper

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)

    sweeper = None
    if STALE_JOB_SWEEP_INTERVAL_S > 0:
        sweeper = asyncio.create_task(
            stale_job_sweeper(STALE_JOB_SWEEP_INTERVAL_S, STALE_JOB_TIMEOUT_S)
        )
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass


app = FastAPI(title="Investment Analysis API", lifespan=lifespan)

origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Every error body is {"error": "<message>"}
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query"))
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"error": "; ".join(problems) or "Invalid request"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.scope.get("path", ""))
    return JSONResponse(status_code=500, content={"error": "Unexpected error"})


@app.get("/health")
async def health():
    return {"status": "ok"}


app.include_router(analysis_router)
app.include_router(market_router)
