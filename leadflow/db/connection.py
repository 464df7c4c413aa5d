"""
Database connection utilities.
Centralizes DB_PATH, get_db(), get_db_conn() and transaction() context managers,
gen_id() and now_iso().
"""

import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from leadflow import config

logger = logging.getLogger("leadflow.db")

DB_PATH = config.DB_PATH


def get_db():
    """Get a database connection with row_factory for dict-like access."""
    conn = sqlite3.connect(DB_PATH, timeout=config.DB_TIMEOUT)
    conn.row_factory = sqlite3.Row
    journal_mode = os.environ.get("LEADFLOW_JOURNAL_MODE", config.DB_JOURNAL_MODE)
    conn.execute(f"PRAGMA journal_mode={journal_mode}")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


@contextmanager
def get_db_conn():
    """Context manager for database connections. Ensures connections are always closed."""
    conn = get_db()
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction():
    """Run a block as one write transaction.

    BEGIN IMMEDIATE takes the write lock up front, so concurrent writers on the
    same rows are serialized instead of racing on read-modify-write. Commits on
    success, rolls back on any exception.
    """
    conn = get_db()
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def gen_id(prefix=""):
    """Generate a prefixed UUID."""
    short = uuid.uuid4().hex[:12]
    return f"{prefix}_{short}" if prefix else short


def now_iso(offset: timedelta = None) -> str:
    """UTC timestamp in a fixed-width ISO format so stored values sort as text."""
    moment = datetime.now(timezone.utc)
    if offset:
        moment = moment + offset
    return moment.isoformat(timespec="microseconds")

