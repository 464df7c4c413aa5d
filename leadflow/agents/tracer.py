"""
Agent trace and metrics collector.

One TraceStore is created per process (see leadflow.runtime) and shared by
every agent invocation. It keeps the most recent N invocations in a ring
buffer plus per-agent counters. State is in memory only; a restart clears it.

record() never raises: losing a trace is a diagnostic degradation, not a
reason to fail the agent call that produced it.
"""

import hashlib
import json
import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from leadflow import config

logger = logging.getLogger("leadflow.tracer")


@dataclass(frozen=True)
class TraceEvent:
    agent_name: str
    input_digest: str
    success: bool
    duration_ms: int
    timestamp: str
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def digest_input(payload: Any) -> str:
    """Short stable fingerprint of an agent input."""
    try:
        canonical = json.dumps(payload, sort_keys=True, default=str)
    except (TypeError, ValueError):
        canonical = repr(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def _empty_metrics() -> dict:
    return {
        "invocations": 0,
        "successes": 0,
        "failures": 0,
        "total_duration_ms": 0,
        "avg_duration_ms": 0.0,
        "last_error": None,
        "last_run_at": None,
    }


class TraceStore:
    """Bounded trace ring plus per-agent counters, safe for concurrent use."""

    def __init__(self, max_traces: int = None):
        self.max_traces = max_traces or config.TRACE_BUFFER_SIZE
        self._traces = deque(maxlen=self.max_traces)
        self._metrics = {}
        self._lock = threading.Lock()

    def record(self, agent_name: str, payload: Any, success: bool, duration_ms: int,
               error: str = None) -> Optional[TraceEvent]:
        try:
            event = TraceEvent(
                agent_name=agent_name,
                input_digest=digest_input(payload),
                success=bool(success),
                duration_ms=int(duration_ms),
                timestamp=datetime.now(timezone.utc).isoformat(),
                error=error,
            )
            with self._lock:
                self._traces.append(event)
                m = self._metrics.setdefault(agent_name, _empty_metrics())
                m["invocations"] += 1
                m["successes" if event.success else "failures"] += 1
                m["total_duration_ms"] += event.duration_ms
                m["avg_duration_ms"] = round(m["total_duration_ms"] / m["invocations"], 2)
                m["last_run_at"] = event.timestamp
                if not event.success:
                    m["last_error"] = error
            return event
        except Exception as e:
            logger.warning("Trace recording failed for %s: %s", agent_name, e,
                           extra={"agent_name": agent_name})
            return None

    def get_recent_traces(self, n: int = 50) -> list:
        """Newest first."""
        with self._lock:
            events = list(self._traces)
        if n is not None:
            events = events[-n:] if n > 0 else []
        return [e.to_dict() for e in reversed(events)]

    def get_agent_traces(self, agent_name: str, limit: int = None) -> list:
        """Newest first, only for one agent."""
        with self._lock:
            events = [e for e in self._traces if e.agent_name == agent_name]
        events.reverse()
        if limit is not None:
            events = events[:limit]
        return [e.to_dict() for e in events]

    def clear_traces(self) -> int:
        """Drop all traces and counters; returns how many traces were removed."""
        with self._lock:
            removed = len(self._traces)
            self._traces.clear()
            self._metrics.clear()
        logger.info("Cleared %d trace(s)", removed)
        return removed

    def get_metrics(self, agent_name: str = None) -> dict:
        with self._lock:
            if agent_name is not None:
                return dict(self._metrics.get(agent_name) or _empty_metrics())
            return {name: dict(m) for name, m in self._metrics.items()}

    def snapshot(self) -> dict:
        with self._lock:
            total = len(self._traces)
            agents = {name: dict(m) for name, m in self._metrics.items()}
        return {
            "buffer_size": self.max_traces,
            "buffered_traces": total,
            "invocations": sum(m["invocations"] for m in agents.values()),
            "failures": sum(m["failures"] for m in agents.values()),
            "agents": agents,
        }
