"""
Logging setup for the API, the recompute CLI and the agents.

setup_logging() configures the root logger once from LOG_LEVEL, LOG_FORMAT
and LOG_FILE (see leadflow.config). Modules log through
logging.getLogger("leadflow.<area>") and attach context with ``extra=``:

    logger.info("Signal recorded", extra={"subscriber_id": sid})

Context keys listed in CONTEXT_FIELDS are rendered by both formats: as
``key=value`` pairs after the message in text mode, and as top-level keys
in JSON mode.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from leadflow import config

CONTEXT_FIELDS = ("subscriber_id", "queue_id", "agent_name", "phase",
                  "duration_ms", "attempt")

QUIET_LOGGERS = ("urllib3", "asyncio", "uvicorn.access", "httpx")


def record_context(record: logging.LogRecord) -> dict:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
                                 .isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": record.lineno,
        }
        entry.update(record_context(record))
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Readable lines for development, with context appended."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} ({pairs}){sep}{tail}"


class AgentLogger(logging.LoggerAdapter):
    """Stamps agent_name on every record; caller extras are kept."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


_initialized = False


def setup_logging(level: str = None, fmt: str = None, log_file: str = None) -> bool:
    """Configure the root logger. Returns False when already configured.

    Args:
        level: Overrides LOG_LEVEL.
        fmt: "text" or "json"; overrides LOG_FORMAT.
        log_file: Extra file handler path; overrides LOG_FILE.
    """
    global _initialized
    if _initialized:
        return False
    _initialized = True

    level = (level or config.LOG_LEVEL).upper()
    fmt = fmt or config.LOG_FORMAT
    log_file = log_file or config.LOG_FILE

    formatter = JSONFormatter() if fmt == "json" else TextFormatter()
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("leadflow").info("Logging configured: level=%s, format=%s%s",
                                       level, fmt, f", file={log_file}" if log_file else "")
    return True


def get_agent_logger(agent_name: str) -> AgentLogger:
    """Logger for one agent; every record carries agent_name."""
    return AgentLogger(logging.getLogger(f"leadflow.agents.{agent_name}"),
                       {"agent_name": agent_name})
