import logging
import os
import time
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

# Get environment-specific pool settings
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
ENABLE_QUERY_LOGGING = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

# Tables the email subsystem uses when present but must never require
OPTIONAL_TABLES = (
    "email_reminders",
    "hearing_reminders",
    "deadline_notes",
    "email_events",
    "notifications",
)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite connections are shared with the threadpool FastAPI runs sync deps in
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,  # Test connections before using
        "pool_recycle": POOL_RECYCLE,
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
    }


def enable_sqlite_savepoints(sqlite_engine: Engine) -> None:
    """
    Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINTs nest correctly.
    Optional-table writes and reminder claims run in SAVEPOINTs.
    """

    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


try:
    engine = create_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))
    if DATABASE_URL.startswith("sqlite"):
        enable_sqlite_savepoints(engine)
    logger.info("✅ Database engine created successfully")
except Exception as e:
    logger.error(f"❌ Failed to create database engine: {e}")
    raise

# Slow query logging for performance monitoring
if ENABLE_QUERY_LOGGING:

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > SLOW_QUERY_THRESHOLD:
            logger.warning(f"🐌 Slow query ({total:.2f}s): {statement[:200]}...")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@dataclass(frozen=True)
class SchemaFeatures:
    """Which optional email-tracking tables exist in the connected database"""

    email_reminders: bool = False
    hearing_reminders: bool = False
    deadline_notes: bool = False
    email_events: bool = False
    notifications: bool = False


@lru_cache(maxsize=None)
def detect_schema_features(bind: Engine) -> SchemaFeatures:
    """
    Probe the database once for the optional tables.

    Results are cached per engine; call detect_schema_features.cache_clear()
    after running migrations in-process.
    """
    existing = set(inspect(bind).get_table_names())
    features = SchemaFeatures(**{name: name in existing for name in OPTIONAL_TABLES})
    missing = [name for name in OPTIONAL_TABLES if name not in existing]
    if missing:
        logger.warning(f"⚠️ Optional email tables missing, related features disabled: {missing}")
    else:
        logger.info("✅ All optional email tables present")
    return features


def get_schema_features(db) -> SchemaFeatures:
    """SchemaFeatures for the engine a session is bound to"""
    return detect_schema_features(db.get_bind())
