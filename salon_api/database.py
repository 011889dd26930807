"""
Database engine and session factory
The reminder job and the API share one engine; tenant tables are resolved per request
"""

import logging
import os
import time

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
LOG_SLOW_QUERIES = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_SECONDS = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))


def _engine_options(url: str) -> dict:
    """Pool options for server databases; SQLite only needs cross-thread access"""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_recycle": DB_POOL_RECYCLE,
        "pool_size": DB_POOL_SIZE,
        "max_overflow": DB_MAX_OVERFLOW,
        "pool_timeout": DB_POOL_TIMEOUT,
    }


def _watch_slow_queries(bind) -> None:
    @event.listens_for(bind, "before_cursor_execute")
    def _start_timer(conn, _cursor, _statement, _parameters, _context, _executemany):
        conn.info.setdefault("reminder_query_started", []).append(time.perf_counter())

    @event.listens_for(bind, "after_cursor_execute")
    def _report_slow(conn, _cursor, statement, _parameters, _context, _executemany):
        elapsed = time.perf_counter() - conn.info["reminder_query_started"].pop()
        if elapsed > SLOW_QUERY_SECONDS:
            logger.warning(f"🐌 Slow reminder query ({elapsed:.2f}s): {statement[:200]}")


try:
    engine = create_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))
    logger.info("✅ Reminder database engine ready")
except Exception as e:
    logger.error(f"❌ Could not create reminder database engine: {e}")
    raise

if LOG_SLOW_QUERIES:
    _watch_slow_queries(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """FastAPI dependency yielding a session that is always closed"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
