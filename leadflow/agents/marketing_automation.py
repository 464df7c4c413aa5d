"""
Marketing Automation Agent - executes approved workflows.

Actions:
    {"action": "runApprovedWorkflow", "workflow": <workflow queue item>}
    {"action": "startBlueprintFollowUp", "params": {"subscriberId", "email", "name"}}

Scheduling is delegated to the EmailQueueManager; every email is keyed so a
retried workflow never schedules a duplicate.
"""

from datetime import timedelta

from leadflow.agents.base import BaseAgent, require_action
from leadflow.db.connection import now_iso
from leadflow.exceptions import ValidationError
from leadflow.logging_config import get_agent_logger

logger = get_agent_logger("MarketingAutomationAgent")

ACTIONS = ("runApprovedWorkflow", "startBlueprintFollowUp")

BLUEPRINT_FOLLOW_UP = (
    (0, "Your Brand Blueprint is Ready", "Thanks for completing your Brand Blueprint."),
    (1, "Day 2: Strategic Tips for Your Blueprint", "Here are your next strategic tips."),
    (2, "Day 3: Ready to Take Action?", "Let's take it to the next step."),
)


class MarketingAutomationAgent(BaseAgent):
    name = "MarketingAutomationAgent"
    version = "1.0.0"
    description = "Runs approved marketing workflows and follow-up sequences"
    critical = True

    def __init__(self, email_queue, **kwargs):
        super().__init__(**kwargs)
        self.email_queue = email_queue

    def run(self, payload):
        action = require_action(payload, ACTIONS)
        if action == "runApprovedWorkflow":
            workflow = payload.get("workflow")
            if not isinstance(workflow, dict):
                raise ValidationError("workflow is required")
            return self.run_approved_workflow(workflow)
        params = payload.get("params") or {}
        return self.start_blueprint_follow_up(params.get("subscriberId"),
                                              params.get("email"), params.get("name"))

    def run_approved_workflow(self, workflow: dict) -> dict:
        payload = workflow.get("payload") or {}
        email = workflow.get("subscriber_email") or payload.get("email")
        name = workflow.get("subscriber_name") or payload.get("name") or ""
        workflow_type = workflow.get("workflow_type") or "workflow"
        if not email:
            raise ValidationError(f"Workflow {workflow.get('id')} has no recipient email")

        if workflow_type == "blueprint_followup":
            return self.start_blueprint_follow_up(workflow.get("subscriber_id"), email, name,
                                                  key_prefix=f"workflow:{workflow.get('id')}")

        subject = f"[{workflow_type}] Update for {email}"
        html = (f"<p>Hello {name},</p>"
                f"<p>Your {workflow_type.replace('_', ' ')} workflow has been approved.</p>")
        result = self.email_queue.schedule_email(
            subscriber_id=workflow.get("subscriber_id"),
            email=email,
            subject=subject,
            html=html,
            dedupe_key=f"workflow:{workflow.get('id')}",
        )
        logger.info("Workflow %s scheduled", workflow_type,
                    extra={"queue_id": workflow.get("id")})
        return {"success": True, "scheduled": 0 if result["duplicate"] else 1,
                "emailIds": [result["emailId"]]}

    def start_blueprint_follow_up(self, subscriber_id, email, name,
                                  key_prefix: str = None) -> dict:
        """Schedule the 3-step blueprint sequence at +0, +1 and +2 days."""
        if not email:
            raise ValidationError("email is required")
        key_prefix = key_prefix or f"blueprint:{subscriber_id or email}"
        scheduled = 0
        email_ids = []
        for day, subject, line in BLUEPRINT_FOLLOW_UP:
            result = self.email_queue.schedule_email(
                subscriber_id=subscriber_id,
                email=email,
                subject=subject,
                html=f"<p>Hi {name or ''},</p><p>{line}</p>",
                scheduled_for=now_iso(timedelta(days=day)),
                dedupe_key=f"{key_prefix}:step{day + 1}",
            )
            email_ids.append(result["emailId"])
            if not result["duplicate"]:
                scheduled += 1
        return {"success": True, "scheduled": scheduled, "emailIds": email_ids}
