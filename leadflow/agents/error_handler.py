"""
Pipeline Error Handler - Captures and logs non-fatal errors.

Fire-and-forget work (high-intent notifications, alert delivery, activity
logging) must never fail the request that triggered it. Instead it calls
log_pipeline_error() so the failure is logged and stored in the
pipeline_errors table where operators can review and resolve it.

Usage:
    from leadflow.agents.error_handler import log_pipeline_error, safe_execute

    # Option 1: Manual logging
    try:
        notify(subscriber)
    except Exception as e:
        log_pipeline_error(phase="high_intent_notify", error=e, subscriber_id=sid)

    # Option 2: Safe execution wrapper
    safe_execute(models.log_activity, args=("approved",), phase="activity_log")
"""

import json
import logging
import traceback
from typing import Any, Callable

from leadflow.db.connection import get_db_conn

logger = logging.getLogger("leadflow.error_handler")


def log_pipeline_error(
    phase: str,
    error: Exception = None,
    error_message: str = None,
    subscriber_id: str = None,
    queue_id: str = None,
    agent_name: str = None,
    context: dict = None,
    severity: str = "warning",
):
    """Log a non-fatal error to the logger and the pipeline_errors table. Never raises.

    Args:
        phase: Where the error occurred (high_intent_notify, alert, activity_log, ...)
        error: The exception object (optional if error_message provided)
        error_message: Human-readable error description
        subscriber_id: Associated subscriber
        queue_id: Associated workflow queue item
        agent_name: Which agent encountered the error
        context: Additional context dict
        severity: "warning", "error", or "critical"
    """
    msg = error_message or (str(error) if error else "Unknown error")
    error_type = type(error).__name__ if error else "UnknownError"

    log_extra = {
        "phase": phase,
        "agent_name": agent_name or "",
        "subscriber_id": subscriber_id or "",
        "queue_id": queue_id or "",
    }

    if severity == "critical":
        logger.critical("Pipeline error in %s: %s", phase, msg, extra=log_extra)
    elif severity == "error":
        logger.error("Pipeline error in %s: %s", phase, msg, extra=log_extra)
    else:
        logger.warning("Pipeline error in %s: %s", phase, msg, extra=log_extra)

    try:
        with get_db_conn() as conn:
            conn.execute("""
                INSERT INTO pipeline_errors
                    (subscriber_id, queue_id, phase, agent_name, error_type,
                     error_message, context, severity)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                subscriber_id, queue_id, phase, agent_name,
                error_type, msg, json.dumps(context or {}, default=str), severity,
            ))
            conn.commit()
    except Exception as db_err:
        # If we can't even log the error to the DB, the logger line above is all we keep
        logger.error("Failed to log pipeline error to DB: %s", db_err)


def safe_execute(
    fn: Callable,
    args: tuple = (),
    kwargs: dict = None,
    phase: str = "unknown",
    agent_name: str = None,
    subscriber_id: str = None,
    queue_id: str = None,
    fallback: Any = None,
    severity: str = "warning",
) -> Any:
    """Execute a function with automatic error capture.

    If the function raises, the error is logged and the fallback value is returned.

    Returns:
        The function's return value, or fallback if it raised.
    """
    kwargs = kwargs or {}
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        log_pipeline_error(
            phase=phase,
            error=e,
            subscriber_id=subscriber_id,
            queue_id=queue_id,
            agent_name=agent_name,
            context={"function": getattr(fn, "__name__", repr(fn)),
                     "traceback": traceback.format_exc()[-500:]},
            severity=severity,
        )
        return fallback


def get_errors(phase: str = None, severity: str = None,
               unresolved_only: bool = True, limit: int = 100) -> list:
    """Get pipeline errors, newest first, optionally filtered."""
    query = "SELECT * FROM pipeline_errors WHERE 1=1"
    params = []

    if phase:
        query += " AND phase=?"
        params.append(phase)
    if severity:
        query += " AND severity=?"
        params.append(severity)
    if unresolved_only:
        query += " AND resolved=0"

    query += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    try:
        with get_db_conn() as conn:
            rows = conn.execute(query, params).fetchall()
            return [dict(r) for r in rows]
    except Exception as e:
        logger.error("Failed to read pipeline errors: %s", e)
        return []


def resolve_error(error_id: int) -> bool:
    """Mark a pipeline error as resolved."""
    try:
        with get_db_conn() as conn:
            cur = conn.execute("UPDATE pipeline_errors SET resolved=1 WHERE id=?", (error_id,))
            conn.commit()
            return cur.rowcount == 1
    except Exception as e:
        logger.error("Failed to resolve error %s: %s", error_id, e)
        return False
