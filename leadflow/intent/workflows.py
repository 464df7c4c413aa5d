"""
Workflow routing and the human approval gate.

WorkflowRouter turns a lifecycle event into a pending queue item and never
executes anything. ApprovalQueue is the only path to execution:

    pending --approve--> approved --executor ok--> processed
    pending --reject---> rejected

An executor failure leaves the item approved but not processed; approving it
again is the recovery path. A processed item is never executed twice.
"""

import logging
import threading
from typing import Callable

from leadflow.agents.error_handler import safe_execute
from leadflow.db import models
from leadflow.exceptions import (InvalidStateError, NotFoundError, ValidationError,
                                 WorkflowExecutionError)

logger = logging.getLogger("leadflow.intent.workflows")

EVENT_WORKFLOWS = {
    "subscribed": "welcome",
    "blueprint_completed": "blueprint_followup",
    "cta_clicked": "upsell",
    "pdf_downloaded": "nurture",
}

EVENT_JOURNEY = {
    "subscribed": "nurture",
    "blueprint_completed": "warm",
    "cta_clicked": "hot",
    "pdf_downloaded": "nurture",
}


class WorkflowRouter:
    """Proposes workflows for lifecycle events."""

    def route(self, subscriber_id: str, event: str) -> dict:
        if not subscriber_id or not event:
            raise ValidationError("subscriberId and event are required")
        workflow_type = EVENT_WORKFLOWS.get(event)
        if workflow_type is None:
            raise ValidationError(
                f"Unknown event '{event}'. Expected one of: {', '.join(EVENT_WORKFLOWS)}")

        subscriber = models.get_subscriber(subscriber_id)
        if not subscriber:
            raise NotFoundError(f"Subscriber '{subscriber_id}' not found")

        payload = {
            "event": event,
            "email": subscriber["email"],
            "name": subscriber.get("name"),
            "intent_score": subscriber["intent_score"],
            "journey_position": subscriber["journey_position"],
            "lead_intelligence": subscriber.get("lead_intelligence") or {},
        }
        item = models.create_workflow_item(subscriber_id, workflow_type, payload,
                                           journey_target=EVENT_JOURNEY[event])
        logger.info("Queued %s workflow for event %s", workflow_type, event,
                    extra={"subscriber_id": subscriber_id, "queue_id": item["id"]})
        return {"status": "queued", "workflow": workflow_type, "queueId": item["id"]}


class AgentWorkflowExecutor:
    """Runs approved workflows through a registered agent."""

    def __init__(self, batch_manager, agent_name: str = "MarketingAutomationAgent"):
        self.batch_manager = batch_manager
        self.agent_name = agent_name

    def __call__(self, item: dict):
        result = self.batch_manager.run_single(
            self.agent_name, {"action": "runApprovedWorkflow", "workflow": item})
        if not result.success:
            raise WorkflowExecutionError(
                f"{self.agent_name} failed for {item['id']}: {result.error}")
        return result.result


class ApprovalQueue:
    """Operator gate in front of workflow execution."""

    def __init__(self, executor: Callable[[dict], object]):
        self.executor = executor
        self._in_flight = set()
        self._lock = threading.Lock()

    def list(self, status: str = None, limit: int = 50) -> list:
        if status and status not in models.WORKFLOW_STATUSES:
            raise ValidationError(f"Unknown status '{status}'")
        return models.list_workflow_items(status=status, limit=limit)

    def approve(self, queue_id: str) -> dict:
        if not queue_id:
            raise ValidationError("workflowId is required")

        with self._lock:
            if queue_id in self._in_flight:
                raise InvalidStateError(f"Workflow '{queue_id}' is already being processed")
            self._in_flight.add(queue_id)
        try:
            return self._approve(queue_id)
        finally:
            with self._lock:
                self._in_flight.discard(queue_id)

    def _approve(self, queue_id: str) -> dict:
        item = models.get_workflow_item(queue_id)
        if not item:
            raise NotFoundError(f"Workflow '{queue_id}' not found")
        if item["processed"]:
            logger.info("Workflow already processed, skipping execution",
                        extra={"queue_id": queue_id})
            return {"status": "already_processed", "workflowId": queue_id, "processed": True}
        if item["status"] == "rejected":
            raise InvalidStateError(f"Workflow '{queue_id}' was rejected")

        if item["status"] == "pending":
            models.transition_workflow_item(queue_id, "approved", ("pending",))
            item = models.get_workflow_item(queue_id)
            if item["processed"]:
                return {"status": "already_processed", "workflowId": queue_id, "processed": True}
            if item["status"] != "approved":
                raise InvalidStateError(f"Workflow '{queue_id}' is {item['status']}")
            safe_execute(models.log_activity, args=("workflow_approved",),
                         kwargs={"subscriber_id": item["subscriber_id"], "queue_id": queue_id,
                                 "details": {"workflow_type": item["workflow_type"]}},
                         phase="activity_log", queue_id=queue_id)

        try:
            outcome = self.executor(item)
        except Exception as e:
            models.record_workflow_error(queue_id, str(e))
            logger.error("Workflow execution failed: %s", e, extra={"queue_id": queue_id})
            if isinstance(e, WorkflowExecutionError):
                raise
            raise WorkflowExecutionError(f"Workflow '{queue_id}' failed: {e}") from e

        models.transition_workflow_item(queue_id, "processed", ("approved",), processed=True)
        safe_execute(models.log_activity, args=("workflow_processed",),
                     kwargs={"subscriber_id": item["subscriber_id"], "queue_id": queue_id,
                             "details": {"workflow_type": item["workflow_type"],
                                         "result": outcome}},
                     phase="activity_log", queue_id=queue_id)
        logger.info("Workflow %s processed", item["workflow_type"], extra={"queue_id": queue_id})
        return {"status": "approved", "workflowId": queue_id, "processed": True, "result": outcome}

    def reject(self, queue_id: str, reason: str = None) -> dict:
        if not queue_id:
            raise ValidationError("workflowId is required")
        item = models.get_workflow_item(queue_id)
        if not item:
            raise NotFoundError(f"Workflow '{queue_id}' not found")
        if item["status"] == "rejected":
            return {"status": "rejected", "workflowId": queue_id}
        if not models.transition_workflow_item(queue_id, "rejected", ("pending",),
                                               error_message=reason):
            raise InvalidStateError(
                f"Only pending workflows can be rejected; '{queue_id}' is {item['status']}")
        safe_execute(models.log_activity, args=("workflow_rejected",),
                     kwargs={"subscriber_id": item["subscriber_id"], "queue_id": queue_id,
                             "details": {"reason": reason}},
                     phase="activity_log", queue_id=queue_id)
        return {"status": "rejected", "workflowId": queue_id}
