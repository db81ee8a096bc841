"""
Logging setup for the analysis API.

- LOG_LEVEL from env (default INFO).
- One JSON object per line when LOG_JSON=1 or RAILWAY_ENVIRONMENT is set,
  plain text otherwise.
- Every record carries the id of the HTTP request it belongs to. Background
  analysis jobs inherit the id of the POST /analyze that scheduled them, so a
  job's log lines can be tied back to its submission.

Messages are `event key=value` pairs. Tokens, prompts and report payloads are
never logged.
"""
import json
import logging
import os
import sys
from contextvars import ContextVar
from typing import Any, Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# attributes every LogRecord has; anything else came in through `extra`
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "google_genai", "sqlalchemy.engine")


def set_request_id(value: Optional[str]):
    """Bind a request id to the current context. Returns a token for reset_request_id."""
    return _request_id.set(value)


def reset_request_id(token) -> None:
    _request_id.reset(token)


def get_request_id() -> Optional[str]:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = get_request_id() or "-"
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key in entry or value is None:
                continue
            entry[key] = value
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=_json_default)


def _json_default(obj: Any) -> str:
    isoformat = getattr(obj, "isoformat", None)
    return isoformat() if callable(isoformat) else str(obj)


def _use_json() -> bool:
    flag = os.getenv("LOG_JSON", "").strip().lower()
    return flag in ("1", "true", "yes") or bool(os.getenv("RAILWAY_ENVIRONMENT"))


def configure_logging() -> None:
    level = getattr(logging, (os.getenv("LOG_LEVEL") or "INFO").upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    if _use_json():
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s rid=%(request_id)s: %(message)s")
        )

    root = logging.getLogger()
    root.setLevel(level)
    # reload-safe: replace whatever handlers a previous call installed
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
