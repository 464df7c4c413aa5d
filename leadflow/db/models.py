"""
Leadflow - Data Access Layer
CRUD and transactional operations for subscribers, signals, the workflow queue,
activity log, offer recommendations, email events and the outbound email queue.
"""

import json
import sqlite3
from datetime import timedelta
from typing import Optional

from leadflow.db.connection import gen_id, get_db, get_db_conn, now_iso, transaction

JOURNEY_ORDER = ["lead", "nurture", "warm", "hot", "customer"]

WORKFLOW_STATUSES = ("pending", "approved", "processed", "rejected")

_JSON_COLUMNS = {
    "subscribers": ("lead_intelligence",),
    "workflow_queue": ("payload",),
    "activity_log": ("details",),
    "offer_recommendations": ("next_sequence",),
}


def _decode(table: str, row) -> Optional[dict]:
    if row is None:
        return None
    d = dict(row)
    for col in _JSON_COLUMNS.get(table, ()):
        raw = d.get(col)
        if isinstance(raw, str):
            try:
                d[col] = json.loads(raw)
            except ValueError:
                d[col] = {}
    return d


def _journey_rank(position: str) -> int:
    try:
        return JOURNEY_ORDER.index(position)
    except ValueError:
        return 0


# ─── SUBSCRIBERS ────────────────────────────────────────────────

def create_subscriber(data: dict) -> dict:
    """Create a subscriber on first contact; return the existing row on repeat contact."""
    email = data["email"].strip().lower()
    now = now_iso()
    with transaction() as conn:
        row = conn.execute("SELECT * FROM subscribers WHERE email=?", (email,)).fetchone()
        if row:
            return _decode("subscribers", row)
        sid = data.get("id") or gen_id("sub")
        conn.execute("""
            INSERT INTO subscribers (id, email, name, intent_score, journey_position,
                lead_intelligence, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?)
        """, (
            sid, email, data.get("name"), data.get("intent_score", 0),
            data.get("journey_position", "lead"),
            json.dumps(data.get("lead_intelligence") or {}), now, now,
        ))
        row = conn.execute("SELECT * FROM subscribers WHERE id=?", (sid,)).fetchone()
        return _decode("subscribers", row)


def get_subscriber(subscriber_id: str) -> Optional[dict]:
    with get_db_conn() as conn:
        row = conn.execute("SELECT * FROM subscribers WHERE id=?", (subscriber_id,)).fetchone()
        return _decode("subscribers", row)


def list_subscribers(limit=100, offset=0, journey_position=None) -> list:
    query = "SELECT * FROM subscribers"
    params = []
    if journey_position:
        query += " WHERE journey_position=?"
        params.append(journey_position)
    query += " ORDER BY intent_score DESC, created_at LIMIT ? OFFSET ?"
    params.extend([limit, offset])
    with get_db_conn() as conn:
        rows = conn.execute(query, params).fetchall()
        return [_decode("subscribers", r) for r in rows]


def promote_journey(conn: sqlite3.Connection, subscriber_id: str, target: str) -> bool:
    """Move a subscriber forward to `target`; never moves backwards.

    Runs on the caller's connection so it joins the caller's transaction.
    Returns True when the position changed.
    """
    row = conn.execute("SELECT journey_position FROM subscribers WHERE id=?",
                       (subscriber_id,)).fetchone()
    if not row or _journey_rank(target) <= _journey_rank(row["journey_position"]):
        return False
    conn.execute("UPDATE subscribers SET journey_position=?, updated_at=? WHERE id=?",
                 (target, now_iso(), subscriber_id))
    return True


# ─── SIGNALS ────────────────────────────────────────────────────

def apply_signal(subscriber_id: str, signal_type: str, value: str,
                 increment: int, high_intent_threshold: int) -> Optional[dict]:
    """Record a signal and apply its score increment in one transaction.

    The increment is a relative UPDATE under the write lock, so concurrent
    signals for one subscriber cannot lose updates. The high-intent timestamp
    is guarded by `IS NULL`, so it is set at most once.

    Returns None when the subscriber does not exist, otherwise
    {"signal", "intent_score", "crossed_high_intent", "subscriber"}.
    """
    now = now_iso()
    with transaction() as conn:
        exists = conn.execute("SELECT 1 FROM subscribers WHERE id=?", (subscriber_id,)).fetchone()
        if not exists:
            return None

        sig_id = gen_id("sig")
        conn.execute("""
            INSERT INTO signals (id, subscriber_id, signal_type, value, created_at)
            VALUES (?,?,?,?,?)
        """, (sig_id, subscriber_id, signal_type, value, now))
        conn.execute("""
            UPDATE subscribers
            SET intent_score = intent_score + ?, last_signal_at=?, updated_at=?
            WHERE id=?
        """, (increment, now, now, subscriber_id))

        crossed = conn.execute("""
            UPDATE subscribers SET first_high_intent_at=?
            WHERE id=? AND first_high_intent_at IS NULL AND intent_score > ?
        """, (now, subscriber_id, high_intent_threshold)).rowcount == 1
        if crossed:
            promote_journey(conn, subscriber_id, "warm")

        subscriber = _decode("subscribers", conn.execute(
            "SELECT * FROM subscribers WHERE id=?", (subscriber_id,)).fetchone())
        signal = dict(conn.execute("SELECT * FROM signals WHERE id=?", (sig_id,)).fetchone())

    return {
        "signal": signal,
        "intent_score": subscriber["intent_score"],
        "crossed_high_intent": crossed,
        "subscriber": subscriber,
    }


def get_signals(subscriber_id: str, limit: int = 200) -> list:
    """Signals for a subscriber, oldest first."""
    with get_db_conn() as conn:
        rows = conn.execute("""
            SELECT * FROM signals WHERE subscriber_id=?
            ORDER BY created_at, rowid LIMIT ?
        """, (subscriber_id, limit)).fetchall()
        return [dict(r) for r in rows]


def get_latest_signal_values(subscriber_id: str, signal_types) -> dict:
    """Most recent value per signal type; types never recorded map to None."""
    latest = {t: None for t in signal_types}
    if not latest:
        return latest
    placeholders = ",".join("?" for _ in latest)
    with get_db_conn() as conn:
        rows = conn.execute(f"""
            SELECT signal_type, value FROM signals
            WHERE subscriber_id=? AND signal_type IN ({placeholders})
            ORDER BY created_at, rowid
        """, [subscriber_id, *latest.keys()]).fetchall()
    for r in rows:
        latest[r["signal_type"]] = r["value"]
    return latest


# ─── WORKFLOW QUEUE ─────────────────────────────────────────────

def create_workflow_item(subscriber_id: str, workflow_type: str, payload: dict,
                         journey_target: str = None) -> dict:
    now = now_iso()
    qid = gen_id("wf")
    with transaction() as conn:
        conn.execute("""
            INSERT INTO workflow_queue (id, subscriber_id, workflow_type, payload,
                status, processed, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?)
        """, (qid, subscriber_id, workflow_type, json.dumps(payload, default=str),
              "pending", 0, now, now))
        if journey_target:
            promote_journey(conn, subscriber_id, journey_target)
        row = conn.execute("SELECT * FROM workflow_queue WHERE id=?", (qid,)).fetchone()
        return _decode("workflow_queue", row)


def get_workflow_item(queue_id: str) -> Optional[dict]:
    with get_db_conn() as conn:
        row = conn.execute("""
            SELECT q.*, s.email AS subscriber_email, s.name AS subscriber_name
            FROM workflow_queue q
            LEFT JOIN subscribers s ON q.subscriber_id = s.id
            WHERE q.id=?
        """, (queue_id,)).fetchone()
        return _decode("workflow_queue", row)


def list_workflow_items(status: str = None, limit: int = 50) -> list:
    query = """
        SELECT q.*, s.email AS subscriber_email, s.name AS subscriber_name
        FROM workflow_queue q
        LEFT JOIN subscribers s ON q.subscriber_id = s.id
    """
    params = []
    if status:
        query += " WHERE q.status=?"
        params.append(status)
    query += " ORDER BY q.created_at DESC LIMIT ?"
    params.append(limit)
    with get_db_conn() as conn:
        rows = conn.execute(query, params).fetchall()
        return [_decode("workflow_queue", r) for r in rows]


def transition_workflow_item(queue_id: str, to_status: str, from_statuses,
                             processed: bool = None, error_message: str = None) -> bool:
    """Conditionally move a queue item between statuses.

    The WHERE clause carries the allowed source statuses, so a transition that
    lost a race (or would move backwards) updates nothing and returns False.
    """
    from_statuses = tuple(from_statuses)
    placeholders = ",".join("?" for _ in from_statuses)
    sets = ["status=?", "updated_at=?", "error_message=?"]
    params = [to_status, now_iso(), error_message]
    if processed is not None:
        sets.append("processed=?")
        params.append(1 if processed else 0)
    params.append(queue_id)
    params.extend(from_statuses)
    with transaction() as conn:
        cur = conn.execute(f"""
            UPDATE workflow_queue SET {', '.join(sets)}
            WHERE id=? AND processed=0 AND status IN ({placeholders})
        """, params)
        return cur.rowcount == 1


def record_workflow_error(queue_id: str, error_message: str):
    with transaction() as conn:
        conn.execute("UPDATE workflow_queue SET error_message=?, updated_at=? WHERE id=?",
                     (error_message, now_iso(), queue_id))


# ─── ACTIVITY LOG ───────────────────────────────────────────────

def log_activity(action: str, subscriber_id: str = None, queue_id: str = None,
                 details: dict = None) -> dict:
    now = now_iso()
    with transaction() as conn:
        cur = conn.execute("""
            INSERT INTO activity_log (subscriber_id, queue_id, action, details, created_at)
            VALUES (?,?,?,?,?)
        """, (subscriber_id, queue_id, action, json.dumps(details or {}, default=str), now))
        row = conn.execute("SELECT * FROM activity_log WHERE id=?", (cur.lastrowid,)).fetchone()
        return _decode("activity_log", row)


def list_activity(subscriber_id: str = None, action: str = None, limit: int = 50) -> list:
    query = "SELECT * FROM activity_log WHERE 1=1"
    params = []
    if subscriber_id:
        query += " AND subscriber_id=?"
        params.append(subscriber_id)
    if action:
        query += " AND action=?"
        params.append(action)
    query += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    with get_db_conn() as conn:
        rows = conn.execute(query, params).fetchall()
        return [_decode("activity_log", r) for r in rows]


# ─── OFFER RECOMMENDATIONS ──────────────────────────────────────

def save_offer_recommendation(subscriber_id: str, rec: dict) -> dict:
    now = now_iso()
    with transaction() as conn:
        conn.execute("""
            INSERT INTO offer_recommendations (subscriber_id, recommendation, confidence,
                rationale, next_sequence, computed_at)
            VALUES (?,?,?,?,?,?)
            ON CONFLICT(subscriber_id) DO UPDATE SET
                recommendation=excluded.recommendation,
                confidence=excluded.confidence,
                rationale=excluded.rationale,
                next_sequence=excluded.next_sequence,
                computed_at=excluded.computed_at
        """, (subscriber_id, rec.get("recommendation"), rec["confidence"],
              rec.get("rationale"), json.dumps(rec.get("next_sequence", [])), now))
        row = conn.execute("SELECT * FROM offer_recommendations WHERE subscriber_id=?",
                           (subscriber_id,)).fetchone()
        return _decode("offer_recommendations", row)


def get_offer_recommendation(subscriber_id: str) -> Optional[dict]:
    with get_db_conn() as conn:
        row = conn.execute("SELECT * FROM offer_recommendations WHERE subscriber_id=?",
                           (subscriber_id,)).fetchone()
        return _decode("offer_recommendations", row)


def find_recompute_candidates(signal_window_hours: int = 24, stale_days: int = 7,
                              limit: int = 100) -> list:
    """Subscriber ids with recent signals or a missing/stale cached recommendation."""
    signal_cutoff = now_iso(-timedelta(hours=signal_window_hours))
    stale_cutoff = now_iso(-timedelta(days=stale_days))
    with get_db_conn() as conn:
        rows = conn.execute("""
            SELECT s.id
            FROM subscribers s
            LEFT JOIN offer_recommendations r ON r.subscriber_id = s.id
            WHERE (s.last_signal_at IS NOT NULL AND s.last_signal_at >= ?)
               OR r.computed_at IS NULL
               OR r.computed_at < ?
            ORDER BY COALESCE(r.computed_at, ''), s.created_at
            LIMIT ?
        """, (signal_cutoff, stale_cutoff, limit)).fetchall()
        return [r["id"] for r in rows]


# ─── EMAIL EVENTS ───────────────────────────────────────────────

def log_email_event(subscriber_id: str, event_type: str, email_id: str = None) -> dict:
    eid = gen_id("evt")
    with transaction() as conn:
        conn.execute("""
            INSERT INTO email_events (id, subscriber_id, event_type, email_id, created_at)
            VALUES (?,?,?,?,?)
        """, (eid, subscriber_id, event_type, email_id, now_iso()))
        return dict(conn.execute("SELECT * FROM email_events WHERE id=?", (eid,)).fetchone())


def count_email_events(subscriber_id: str, event_type: str = "open") -> int:
    with get_db_conn() as conn:
        return conn.execute(
            "SELECT COUNT(*) FROM email_events WHERE subscriber_id=? AND event_type=?",
            (subscriber_id, event_type)
        ).fetchone()[0]


# ─── EMAIL QUEUE ────────────────────────────────────────────────

def enqueue_email(data: dict) -> dict:
    """Insert an outbound email. A repeated dedupe_key returns the existing row
    with "duplicate": True instead of scheduling a second send."""
    now = now_iso()
    dedupe_key = data.get("dedupe_key")
    with transaction() as conn:
        if dedupe_key:
            existing = conn.execute("SELECT * FROM email_queue WHERE dedupe_key=?",
                                    (dedupe_key,)).fetchone()
            if existing:
                return {**dict(existing), "duplicate": True}
        mid = gen_id("eml")
        conn.execute("""
            INSERT INTO email_queue (id, subscriber_id, email, subject, html,
                scheduled_for, status, dedupe_key, created_at)
            VALUES (?,?,?,?,?,?,?,?,?)
        """, (mid, data.get("subscriber_id"), data["email"], data["subject"], data["html"],
              data.get("scheduled_for") or now, "pending", dedupe_key, now))
        row = conn.execute("SELECT * FROM email_queue WHERE id=?", (mid,)).fetchone()
        return {**dict(row), "duplicate": False}


def get_due_emails(limit: int = 50, as_of: str = None) -> list:
    as_of = as_of or now_iso()
    with get_db_conn() as conn:
        rows = conn.execute("""
            SELECT * FROM email_queue
            WHERE status='pending' AND scheduled_for <= ?
            ORDER BY scheduled_for LIMIT ?
        """, (as_of, limit)).fetchall()
        return [dict(r) for r in rows]


def mark_email_sent(email_id: str):
    with transaction() as conn:
        now = now_iso()
        conn.execute("UPDATE email_queue SET status='sent', sent_at=?, error_message=NULL WHERE id=?",
                     (now, email_id))


def mark_email_failed(email_id: str, error_message: str):
    with transaction() as conn:
        conn.execute("UPDATE email_queue SET status='failed', error_message=? WHERE id=?",
                     (error_message, email_id))


def list_emails(subscriber_id: str = None, status: str = None, limit: int = 50) -> list:
    query = "SELECT * FROM email_queue WHERE 1=1"
    params = []
    if subscriber_id:
        query += " AND subscriber_id=?"
        params.append(subscriber_id)
    if status:
        query += " AND status=?"
        params.append(status)
    query += " ORDER BY scheduled_for LIMIT ?"
    params.append(limit)
    with get_db_conn() as conn:
        return [dict(r) for r in conn.execute(query, params).fetchall()]


# ─── HEALTH ─────────────────────────────────────────────────────

def get_table_counts() -> dict:
    tables = ("subscribers", "signals", "workflow_queue", "activity_log",
              "offer_recommendations", "email_queue")
    conn = get_db()
    try:
        return {t: conn.execute(f"SELECT COUNT(*) FROM {t}").fetchone()[0] for t in tables}
    finally:
        conn.close()
