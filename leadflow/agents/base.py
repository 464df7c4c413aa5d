"""
Agent contract shared by every worker the registry can dispatch.

An agent implements run(payload) and describes itself through class
attributes. Callers only ever use process(payload), which never raises:
recoverable failures are retried with backoff, exhausted retries on a
critical agent raise an alert, and every outcome comes back as an AgentResult.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional

from leadflow import config
from leadflow.agents.retry import is_recoverable, retry_with_backoff
from leadflow.exceptions import ValidationError

logger = logging.getLogger("leadflow.agents")


@dataclass
class AgentResult:
    """Outcome of one agent invocation."""

    success: bool
    result: Any = None
    error: Optional[str] = None
    details: dict = field(default_factory=dict)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class BaseAgent:
    """Base class for registry-dispatched agents."""

    name = "BaseAgent"
    version = "1.0.0"
    description = ""
    critical = False

    def __init__(self, alerts=None, retry_max: int = None, retry_base_delay_ms: int = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.alerts = alerts
        self.retry_max = config.RETRY_MAX if retry_max is None else retry_max
        self.retry_base_delay_ms = (config.RETRY_BASE_DELAY_MS
                                    if retry_base_delay_ms is None else retry_base_delay_ms)
        self._sleep = sleep

    def get_metadata(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "critical": self.critical,
        }

    def run(self, payload: Any) -> Any:
        raise NotImplementedError

    def process(self, payload: Any) -> AgentResult:
        started = time.monotonic()
        try:
            output = retry_with_backoff(
                lambda: self.run(payload),
                max_retries=self.retry_max,
                base_delay_ms=self.retry_base_delay_ms,
                sleep=self._sleep,
                label=self.name,
            )
        except Exception as e:
            recoverable = is_recoverable(e)
            alerted = False
            if recoverable and self.critical:
                alerted = self._alert_exhausted(e)
            elif recoverable:
                logger.error("Agent %s exhausted retries: %s", self.name, e,
                             extra={"agent_name": self.name})
            else:
                logger.warning("Agent %s failed: %s", self.name, e,
                               extra={"agent_name": self.name})
            return AgentResult(
                success=False,
                error=str(e) or type(e).__name__,
                details={
                    "error_type": type(e).__name__,
                    "recoverable": recoverable,
                    "alerted": alerted,
                },
                duration_ms=_elapsed_ms(started),
            )

        if isinstance(output, AgentResult):
            output.duration_ms = output.duration_ms or _elapsed_ms(started)
            return output
        if isinstance(output, dict) and output.get("success") is False:
            return AgentResult(success=False, result=output, error=output.get("error"),
                               duration_ms=_elapsed_ms(started))
        return AgentResult(success=True, result=output, duration_ms=_elapsed_ms(started))

    def _alert_exhausted(self, error: Exception) -> bool:
        if not self.alerts:
            logger.error("Agent %s exhausted retries with no alert notifier: %s",
                         self.name, error, extra={"agent_name": self.name})
            return False
        self.alerts.send_critical_alert(
            f"Agent {self.name}",
            f"Retries exhausted ({self.retry_max + 1} attempts): {error}",
        )
        return True


def require_action(payload: Any, actions) -> str:
    """Return payload["action"] after checking it is one of `actions`."""
    if not isinstance(payload, dict):
        raise ValidationError("Agent input must be an object")
    action = payload.get("action")
    if action not in actions:
        raise ValidationError(f"Unknown action '{action}'. Expected one of: {', '.join(actions)}")
    return action


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
