# database.py
import logging
import os
from typing import Any, Dict

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

load_dotenv()

logger = logging.getLogger(__name__)

Base = declarative_base()

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set in the environment")

_IN_MEMORY_SQLITE = ("sqlite://", "sqlite:///:memory:")


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # the sweeper thread and background jobs share the engine with requests
        opts: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in _IN_MEMORY_SQLITE:
            # one shared connection, otherwise every session gets an empty database
            opts["poolclass"] = StaticPool
        return opts

    return {
        "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
        "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", "30")),
        "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", "1800")),
        "pool_pre_ping": True,
    }


_options = _engine_options(DATABASE_URL)
engine = create_engine(DATABASE_URL, **_options)
logger.info(
    "db_engine_configured dialect=%s pool=%s",
    engine.dialect.name,
    _options.get("poolclass", type(engine.pool)).__name__,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
