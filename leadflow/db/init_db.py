"""
Leadflow - Database Initialization
Creates all tables and indexes.
"""

import logging
import sqlite3

from leadflow.db import connection

logger = logging.getLogger("leadflow.db")

SCHEMA_SQL = """
-- Subscribers (prospective customers)
CREATE TABLE IF NOT EXISTS subscribers (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    name TEXT,
    intent_score INTEGER NOT NULL DEFAULT 0,
    journey_position TEXT NOT NULL DEFAULT 'lead',
    last_signal_at TEXT,
    first_high_intent_at TEXT,
    lead_intelligence TEXT DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Signals (append-only behavioral events)
CREATE TABLE IF NOT EXISTS signals (
    id TEXT PRIMARY KEY,
    subscriber_id TEXT NOT NULL REFERENCES subscribers(id),
    signal_type TEXT NOT NULL,
    value TEXT,
    created_at TEXT NOT NULL
);

-- Workflow queue (proposed automation awaiting approval)
CREATE TABLE IF NOT EXISTS workflow_queue (
    id TEXT PRIMARY KEY,
    subscriber_id TEXT NOT NULL REFERENCES subscribers(id),
    workflow_type TEXT NOT NULL,
    payload TEXT DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'pending',
    processed INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Activity log
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subscriber_id TEXT,
    queue_id TEXT,
    action TEXT NOT NULL,
    details TEXT DEFAULT '{}',
    created_at TEXT NOT NULL
);

-- Cached offer recommendations (one per subscriber)
CREATE TABLE IF NOT EXISTS offer_recommendations (
    subscriber_id TEXT PRIMARY KEY REFERENCES subscribers(id),
    recommendation TEXT,
    confidence REAL NOT NULL,
    rationale TEXT,
    next_sequence TEXT DEFAULT '[]',
    computed_at TEXT NOT NULL
);

-- Email engagement events (opens, clicks)
CREATE TABLE IF NOT EXISTS email_events (
    id TEXT PRIMARY KEY,
    subscriber_id TEXT NOT NULL REFERENCES subscribers(id),
    event_type TEXT NOT NULL,
    email_id TEXT,
    created_at TEXT NOT NULL
);

-- Outbound email queue
CREATE TABLE IF NOT EXISTS email_queue (
    id TEXT PRIMARY KEY,
    subscriber_id TEXT,
    email TEXT NOT NULL,
    subject TEXT NOT NULL,
    html TEXT NOT NULL,
    scheduled_for TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    dedupe_key TEXT UNIQUE,
    error_message TEXT,
    sent_at TEXT,
    created_at TEXT NOT NULL
);

-- Non-fatal errors from fire-and-forget work (notifications, alerts, activity log)
CREATE TABLE IF NOT EXISTS pipeline_errors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subscriber_id TEXT,
    queue_id TEXT,
    phase TEXT NOT NULL,
    agent_name TEXT,
    error_type TEXT,
    error_message TEXT,
    context TEXT DEFAULT '{}',
    severity TEXT DEFAULT 'warning',
    resolved INTEGER DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_signals_subscriber ON signals(subscriber_id, created_at);
CREATE INDEX IF NOT EXISTS idx_workflow_queue_status ON workflow_queue(status, created_at);
CREATE INDEX IF NOT EXISTS idx_activity_subscriber ON activity_log(subscriber_id);
CREATE INDEX IF NOT EXISTS idx_email_events_subscriber ON email_events(subscriber_id, event_type);
CREATE INDEX IF NOT EXISTS idx_email_queue_due ON email_queue(status, scheduled_for);
CREATE INDEX IF NOT EXISTS idx_pipeline_errors_severity ON pipeline_errors(severity, resolved);
"""


def init_db(db_path: str = None) -> str:
    """Create the schema. Idempotent."""
    path = db_path or connection.DB_PATH
    conn = sqlite3.connect(path)
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    conn.close()

    logger.info("Database initialized at %s", path)
    return path


if __name__ == "__main__":
    init_db()
