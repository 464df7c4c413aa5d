"""
Batch Job Manager - drives agents over inputs with per-item failure isolation.

run_batch() processes inputs in order and always returns one result per
input, in input order. A failing item is recorded on its own result and the
batch moves on; partial failure is a normal outcome, not an exception.
Only whole-call problems (unknown agent, bad input bounds) raise.
"""

import logging
import time
from typing import Any, Callable, List

from leadflow import config
from leadflow.agents.base import AgentResult
from leadflow.exceptions import NotFoundError, ValidationError

logger = logging.getLogger("leadflow.agents.batch")


def invoke_agent(agent_name: str, agent, payload: Any, tracer) -> AgentResult:
    """Call one agent and trace it, capturing any escape from process() into the result."""
    started = time.monotonic()
    try:
        result = agent.process(payload)
        if not isinstance(result, AgentResult):
            result = AgentResult(success=True, result=result)
    except Exception as e:
        logger.error("Agent %s raised from process(): %s", agent_name, e,
                     extra={"agent_name": agent_name})
        result = AgentResult(success=False, error=str(e) or type(e).__name__,
                             details={"error_type": type(e).__name__})
    if not result.duration_ms:
        result.duration_ms = int((time.monotonic() - started) * 1000)

    tracer.record(agent_name, payload, result.success, result.duration_ms, error=result.error)
    return result


class BatchJobManager:
    """Dispatches registered agents with tracing and alerting."""

    def __init__(self, registry, tracer, alerts=None, max_items: int = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.registry = registry
        self.tracer = tracer
        self.alerts = alerts
        self.max_items = max_items or config.BATCH_MAX_ITEMS
        self._sleep = sleep

    def _resolve(self, agent_name: str):
        if not agent_name or not isinstance(agent_name, str):
            raise ValidationError("Agent name is required")
        agent = self.registry.get(agent_name)
        if agent is None:
            raise NotFoundError(f"Agent '{agent_name}' not found")
        return agent

    def invoke(self, agent_name: str, agent, payload: Any) -> AgentResult:
        return invoke_agent(agent_name, agent, payload, self.tracer)

    def run_single(self, agent_name: str, payload: Any) -> AgentResult:
        agent = self._resolve(agent_name)
        return self.invoke(agent_name, agent, payload)

    def run_batch(self, agent_name: str, inputs: List[Any], item_delay_ms: int = 0) -> dict:
        """Run `agent_name` over `inputs`.

        Returns:
            {"agent", "results": [AgentResult dict per input], "total",
             "succeeded", "failed", "duration_ms"}
        """
        agent = self._resolve(agent_name)
        if not isinstance(inputs, list):
            raise ValidationError("inputs must be an array")
        if not inputs:
            raise ValidationError("inputs must contain at least one item")
        if len(inputs) > self.max_items:
            raise ValidationError(f"inputs must contain at most {self.max_items} items, got {len(inputs)}")

        logger.info("Batch started: %s x %d", agent_name, len(inputs),
                    extra={"agent_name": agent_name})
        started = time.monotonic()
        results = []
        succeeded = 0

        for index, payload in enumerate(inputs):
            if index and item_delay_ms:
                self._sleep(item_delay_ms / 1000.0)
            result = self.invoke(agent_name, agent, payload)
            if result.success:
                succeeded += 1
            else:
                self._alert_item_failure(agent_name, index, result)
            results.append(result.to_dict())

        duration_ms = int((time.monotonic() - started) * 1000)
        failed = len(results) - succeeded
        logger.info("Batch finished: %s %d/%d succeeded in %dms", agent_name,
                    succeeded, len(results), duration_ms,
                    extra={"agent_name": agent_name, "duration_ms": duration_ms})
        return {
            "agent": agent_name,
            "results": results,
            "total": len(results),
            "succeeded": succeeded,
            "failed": failed,
            "duration_ms": duration_ms,
        }

    def _alert_item_failure(self, agent_name: str, index: int, result: AgentResult):
        # retry exhaustion already alerted from inside the agent
        if result.details.get("alerted") or not self.alerts:
            return
        self.alerts.send_critical_alert(
            f"Batch item failed: {agent_name}",
            f"Item {index} failed: {result.error}",
        )
