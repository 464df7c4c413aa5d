"""
Critical alert notifier.

send_critical_alert() is best-effort: a failure to deliver the alert is logged
and recorded in pipeline_errors, never raised, so alerting can't turn into a
second failure on the caller's error path.
"""

import logging
import threading
from datetime import datetime, timezone

from leadflow import config
from leadflow.agents.error_handler import log_pipeline_error

logger = logging.getLogger("leadflow.alerts")


class AlertNotifier:
    """Emails critical failures to the operator address."""

    def __init__(self, sender, admin_email: str = None):
        self.sender = sender
        self.admin_email = config.ADMIN_EMAIL if admin_email is None else admin_email
        self._lock = threading.Lock()
        self._counts = {"sent": 0, "failed": 0, "skipped": 0}

    def send_critical_alert(self, subject_context: str, error_description: str) -> bool:
        """Send an alert; returns True only when the email was delivered."""
        logger.critical("CRITICAL: %s - %s", subject_context, error_description)

        if not self.admin_email:
            self._bump("skipped")
            return False

        subject = f"[Leadflow Alert] {subject_context}"
        body = (
            f"<p><strong>{subject_context}</strong></p>"
            f"<p>{error_description}</p>"
            f"<p>Time: {datetime.now(timezone.utc).isoformat()}</p>"
        )
        try:
            delivered = bool(self.sender.send(self.admin_email, subject, body))
        except Exception as e:
            log_pipeline_error(
                phase="alert",
                error=e,
                context={"subject_context": subject_context, "error": error_description},
                severity="error",
            )
            delivered = False

        self._bump("sent" if delivered else "failed")
        if not delivered:
            logger.error("Critical alert could not be delivered: %s", subject_context)
        return delivered

    def stats(self) -> dict:
        with self._lock:
            return dict(self._counts)

    def _bump(self, key: str):
        with self._lock:
            self._counts[key] += 1
