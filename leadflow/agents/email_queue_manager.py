"""
Email Queue Manager - schedules outbound email and delivers what is due.

Actions:
    {"action": "scheduleEmail", "subscriberId", "email", "subject", "html",
     "scheduledFor"?, "dedupeKey"?}
    {"action": "checkEmailQueue", "limit"?}

A repeated dedupeKey never schedules a second copy, which is what makes
re-running an approved workflow safe.
"""

from leadflow.agents.base import BaseAgent, require_action
from leadflow.agents.retry import retry_with_backoff
from leadflow.db import models
from leadflow.exceptions import ValidationError
from leadflow.logging_config import get_agent_logger

logger = get_agent_logger("EmailQueueManager")

ACTIONS = ("scheduleEmail", "checkEmailQueue")


class EmailQueueManager(BaseAgent):
    name = "EmailQueueManager"
    version = "1.0.0"
    description = "Schedules marketing email and delivers due messages from the queue"
    critical = True

    def __init__(self, sender, **kwargs):
        super().__init__(**kwargs)
        self.sender = sender

    def run(self, payload):
        action = require_action(payload, ACTIONS)
        if action == "scheduleEmail":
            return self.schedule_email(
                subscriber_id=payload.get("subscriberId"),
                email=payload.get("email"),
                subject=payload.get("subject"),
                html=payload.get("html"),
                scheduled_for=payload.get("scheduledFor"),
                dedupe_key=payload.get("dedupeKey"),
            )
        return self.check_email_queue(limit=payload.get("limit", 50))

    def schedule_email(self, subscriber_id, email, subject, html,
                       scheduled_for=None, dedupe_key=None) -> dict:
        if not email or not subject or not html:
            raise ValidationError("email, subject and html are required")
        row = models.enqueue_email({
            "subscriber_id": subscriber_id,
            "email": email,
            "subject": subject,
            "html": html,
            "scheduled_for": scheduled_for,
            "dedupe_key": dedupe_key,
        })
        if row["duplicate"]:
            logger.info("Email %s already scheduled, skipping", dedupe_key,
                        extra={"subscriber_id": subscriber_id})
        else:
            logger.info("Scheduled email '%s' for %s", subject, row["scheduled_for"],
                        extra={"subscriber_id": subscriber_id})
        return {"success": True, "emailId": row["id"], "duplicate": row["duplicate"]}

    def check_email_queue(self, limit: int = 50) -> dict:
        """Send every due pending email; one failed send doesn't stop the rest."""
        sent = failed = 0
        errors = []
        for msg in models.get_due_emails(limit=limit):
            try:
                delivered = retry_with_backoff(
                    lambda m=msg: self.sender.send(m["email"], m["subject"], m["html"]),
                    max_retries=self.retry_max,
                    base_delay_ms=self.retry_base_delay_ms,
                    sleep=self._sleep,
                    label=f"send {msg['id']}",
                )
            except Exception as e:
                delivered = False
                error = str(e)
            else:
                error = None if delivered else "Provider rejected message"

            if delivered:
                models.mark_email_sent(msg["id"])
                sent += 1
            else:
                models.mark_email_failed(msg["id"], error)
                failed += 1
                errors.append({"emailId": msg["id"], "error": error})
                logger.warning("Email %s failed: %s", msg["id"], error,
                               extra={"subscriber_id": msg.get("subscriber_id")})
        return {"processed": sent + failed, "sent": sent, "failed": failed, "errors": errors}
