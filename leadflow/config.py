"""
Centralized Configuration - Single source of truth for all settings.

All environment variables are read here, validated, and exposed as module-level
constants. Other modules import from here instead of reading os.environ directly.

Usage:
    from leadflow.config import DB_PATH, HIGH_INTENT_THRESHOLD, LOG_LEVEL
"""

import os
import re
import sys

# ─── PATHS ───────────────────────────────────────────────────

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOGS_DIR = os.path.join(PROJECT_ROOT, "logs")

# ─── DATABASE ────────────────────────────────────────────────

DB_PATH = os.environ.get("LEADFLOW_DB_PATH", os.path.join(PROJECT_ROOT, "leadflow.db"))
DB_JOURNAL_MODE = os.environ.get("LEADFLOW_JOURNAL_MODE", "WAL")
DB_TIMEOUT = float(os.environ.get("LEADFLOW_DB_TIMEOUT", "10"))

# ─── INTENT SCORING ──────────────────────────────────────────

SIGNAL_SCORE_INCREMENT = int(os.environ.get("SIGNAL_SCORE_INCREMENT", "3"))
HIGH_INTENT_THRESHOLD = int(os.environ.get("HIGH_INTENT_THRESHOLD", "9"))
READINESS_HOT_SCORE = int(os.environ.get("READINESS_HOT_SCORE", "15"))
READINESS_WARM_SCORE = int(os.environ.get("READINESS_WARM_SCORE", "6"))

# ─── AGENTS ──────────────────────────────────────────────────

BATCH_MAX_ITEMS = int(os.environ.get("BATCH_MAX_ITEMS", "1000"))
TRACE_BUFFER_SIZE = int(os.environ.get("TRACE_BUFFER_SIZE", "200"))
RETRY_MAX = int(os.environ.get("RETRY_MAX", "3"))
RETRY_BASE_DELAY_MS = int(os.environ.get("RETRY_BASE_DELAY_MS", "1000"))
EXCLUDED_AGENT_PATTERN = os.environ.get("EXCLUDED_AGENT_PATTERN", "maya|chat")
NOTIFY_MAX_WORKERS = int(os.environ.get("NOTIFY_MAX_WORKERS", "2"))

# ─── OFFER RECOMPUTE ─────────────────────────────────────────

RECOMPUTE_LIMIT = int(os.environ.get("RECOMPUTE_LIMIT", "100"))
RECOMPUTE_DELAY_MS = int(os.environ.get("RECOMPUTE_DELAY_MS", "100"))
RECOMMENDATION_STALE_DAYS = int(os.environ.get("RECOMMENDATION_STALE_DAYS", "7"))

# ─── EMAIL / ALERTS ──────────────────────────────────────────

ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "")
EMAIL_FROM = os.environ.get("EMAIL_FROM", "alerts@localhost")
RESEND_API_KEY = os.environ.get("RESEND_API_KEY", "")
RESEND_API_URL = os.environ.get("RESEND_API_URL", "https://api.resend.com/emails")
EMAIL_TIMEOUT = int(os.environ.get("EMAIL_TIMEOUT_SECONDS", "15"))

# ─── API ─────────────────────────────────────────────────────

API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "8000"))
ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN", "")
CRON_SECRET = os.environ.get("CRON_SECRET", "")

# ─── LOGGING ─────────────────────────────────────────────────

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "text" or "json"
LOG_FILE = os.environ.get("LOG_FILE", "")  # empty = stdout only

# ─── VALIDATION ──────────────────────────────────────────────

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_LOG_FORMATS = {"text", "json"}
_VALID_JOURNAL_MODES = {"WAL", "DELETE", "MEMORY", "OFF"}

_errors = []

if LOG_LEVEL not in _VALID_LOG_LEVELS:
    _errors.append(f"LOG_LEVEL must be one of {_VALID_LOG_LEVELS}, got '{LOG_LEVEL}'")

if LOG_FORMAT not in _VALID_LOG_FORMATS:
    _errors.append(f"LOG_FORMAT must be one of {_VALID_LOG_FORMATS}, got '{LOG_FORMAT}'")

if DB_JOURNAL_MODE not in _VALID_JOURNAL_MODES:
    _errors.append(f"LEADFLOW_JOURNAL_MODE must be one of {_VALID_JOURNAL_MODES}, got '{DB_JOURNAL_MODE}'")

if SIGNAL_SCORE_INCREMENT < 1:
    _errors.append(f"SIGNAL_SCORE_INCREMENT must be positive, got {SIGNAL_SCORE_INCREMENT}")

if BATCH_MAX_ITEMS < 1:
    _errors.append(f"BATCH_MAX_ITEMS must be positive, got {BATCH_MAX_ITEMS}")

if TRACE_BUFFER_SIZE < 1:
    _errors.append(f"TRACE_BUFFER_SIZE must be positive, got {TRACE_BUFFER_SIZE}")

if RETRY_MAX < 0:
    _errors.append(f"RETRY_MAX must not be negative, got {RETRY_MAX}")

if NOTIFY_MAX_WORKERS < 1:
    _errors.append(f"NOTIFY_MAX_WORKERS must be positive, got {NOTIFY_MAX_WORKERS}")

if READINESS_WARM_SCORE > READINESS_HOT_SCORE:
    _errors.append(
        f"READINESS_WARM_SCORE ({READINESS_WARM_SCORE}) must not exceed "
        f"READINESS_HOT_SCORE ({READINESS_HOT_SCORE})"
    )

try:
    re.compile(EXCLUDED_AGENT_PATTERN)
except re.error as exc:
    _errors.append(f"EXCLUDED_AGENT_PATTERN is not a valid regex: {exc}")

if _errors:
    for e in _errors:
        print(f"[config] ERROR: {e}", file=sys.stderr)
    # Don't crash during import; scripts may not need every setting


def validate(strict: bool = False) -> list:
    """Validate all configuration settings.

    Args:
        strict: If True, raise ValueError on any errors.

    Returns:
        List of error messages (empty if all valid).
    """
    if strict and _errors:
        raise ValueError(f"Configuration errors: {'; '.join(_errors)}")
    return list(_errors)


def print_config():
    """Print current configuration (safe - no secrets)."""
    print("=" * 50)
    print("Leadflow Configuration")
    print("=" * 50)
    print(f"  DB_PATH:               {DB_PATH}")
    print(f"  DB_JOURNAL_MODE:       {DB_JOURNAL_MODE}")
    print(f"  SIGNAL_SCORE_INCREMENT:{SIGNAL_SCORE_INCREMENT}")
    print(f"  HIGH_INTENT_THRESHOLD: {HIGH_INTENT_THRESHOLD}")
    print(f"  BATCH_MAX_ITEMS:       {BATCH_MAX_ITEMS}")
    print(f"  TRACE_BUFFER_SIZE:     {TRACE_BUFFER_SIZE}")
    print(f"  RETRY_MAX:             {RETRY_MAX}")
    print(f"  RETRY_BASE_DELAY_MS:   {RETRY_BASE_DELAY_MS}")
    print(f"  EXCLUDED_AGENT_PATTERN:{EXCLUDED_AGENT_PATTERN}")
    print(f"  RECOMPUTE_LIMIT:       {RECOMPUTE_LIMIT}")
    print(f"  ADMIN_EMAIL:           {ADMIN_EMAIL or '(not set)'}")
    print(f"  EMAIL_PROVIDER:        {'resend' if RESEND_API_KEY else 'log-only'}")
    print(f"  ADMIN_API_TOKEN:       {'set' if ADMIN_API_TOKEN else '(not set)'}")
    print(f"  API_HOST:              {API_HOST}")
    print(f"  API_PORT:              {API_PORT}")
    print(f"  LOG_LEVEL:             {LOG_LEVEL}")
    print(f"  LOG_FORMAT:            {LOG_FORMAT}")
    print(f"  PROJECT_ROOT:          {PROJECT_ROOT}")
    print("=" * 50)
