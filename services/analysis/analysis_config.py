import os

from dotenv import load_dotenv

load_dotenv()

# Narrative language for every generated report. Product-wide constant.
REPORT_LANGUAGE = os.getenv("REPORT_LANGUAGE", "Korean")

ANALYSIS_NEWS_LIMIT = int(os.getenv("ANALYSIS_NEWS_LIMIT", "10"))
ANALYSIS_FETCH_CONCURRENCY = int(os.getenv("ANALYSIS_FETCH_CONCURRENCY", "4"))
ANALYSIS_FETCH_TIMEOUT_S = float(os.getenv("ANALYSIS_FETCH_TIMEOUT_S", "30"))

# Prompt payload caps (characters of serialized JSON)
MARKET_DATA_PROMPT_MAX_CHARS = 250_000
NEWS_PROMPT_MAX_CHARS = 80_000

# Jobs pending longer than this are swept to failed
STALE_JOB_TIMEOUT_S = int(os.getenv("STALE_JOB_TIMEOUT_S", "1800"))
# 0 disables the sweeper
STALE_JOB_SWEEP_INTERVAL_S = int(os.getenv("STALE_JOB_SWEEP_INTERVAL_S", "300"))
