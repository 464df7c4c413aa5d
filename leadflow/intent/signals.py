"""
Signal ingestion and next-step readiness.

record_signal() appends a Signal and applies its intent increment in a single
transaction. When the updated score first crosses the high-intent threshold,
the one-time timestamp is set inside that same transaction and a
notification is handed to the background dispatcher; a failed notification is
logged and never fails the signal.
"""

import logging

from leadflow import config
from leadflow.db import models
from leadflow.exceptions import NotFoundError, ValidationError

logger = logging.getLogger("leadflow.intent.signals")

NEXT_STEP_SIGNAL_TYPES = ("focus", "stuck", "timeline")


def readiness_label(intent_score: int, first_high_intent_at: str = None,
                    hot_score: int = None, warm_score: int = None) -> str:
    hot_score = config.READINESS_HOT_SCORE if hot_score is None else hot_score
    warm_score = config.READINESS_WARM_SCORE if warm_score is None else warm_score
    score = intent_score or 0
    if score >= hot_score or first_high_intent_at:
        return "hot"
    if score >= warm_score:
        return "warm"
    return "cold"


class SignalIngestion:
    """Records behavioral signals and raises high-intent notifications."""

    def __init__(self, dispatcher, sender=None, admin_email: str = None,
                 increment: int = None, high_intent_threshold: int = None):
        self.dispatcher = dispatcher
        self.sender = sender
        self.admin_email = config.ADMIN_EMAIL if admin_email is None else admin_email
        self.increment = config.SIGNAL_SCORE_INCREMENT if increment is None else increment
        self.high_intent_threshold = (config.HIGH_INTENT_THRESHOLD
                                      if high_intent_threshold is None else high_intent_threshold)

    def record_signal(self, subscriber_id: str, signal_type: str, value) -> dict:
        missing = [name for name, v in (("subscriberId", subscriber_id),
                                         ("signalType", signal_type),
                                         ("value", value)) if v is None or v == ""]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

        outcome = models.apply_signal(
            subscriber_id, str(signal_type), str(value),
            increment=self.increment,
            high_intent_threshold=self.high_intent_threshold,
        )
        if outcome is None:
            raise NotFoundError(f"Subscriber '{subscriber_id}' not found")

        subscriber = outcome["subscriber"]
        logger.info("Signal %s recorded, intent score now %d", signal_type,
                    outcome["intent_score"], extra={"subscriber_id": subscriber_id})

        if outcome["crossed_high_intent"]:
            logger.info("Subscriber crossed high-intent threshold (%d)",
                        self.high_intent_threshold, extra={"subscriber_id": subscriber_id})
            self.dispatcher.submit(self.notify_high_intent, subscriber,
                                   phase="high_intent_notify", subscriber_id=subscriber_id)

        return {
            "subscriber_id": subscriber_id,
            "signal_id": outcome["signal"]["id"],
            "intent_score": outcome["intent_score"],
            "high_intent": bool(subscriber.get("first_high_intent_at")),
            "crossed_high_intent": outcome["crossed_high_intent"],
        }

    def notify_high_intent(self, subscriber: dict):
        """Log the crossing and tell the operator. Runs on the background dispatcher."""
        models.log_activity(
            "high_intent_detected",
            subscriber_id=subscriber["id"],
            details={
                "intent_score": subscriber.get("intent_score"),
                "first_high_intent_at": subscriber.get("first_high_intent_at"),
            },
        )
        if not (self.sender and self.admin_email):
            return
        label = subscriber.get("name") or subscriber.get("email")
        delivered = self.sender.send(
            self.admin_email,
            f"High-intent lead: {label}",
            f"<p>{label} ({subscriber.get('email')}) reached intent score "
            f"{subscriber.get('intent_score')}.</p>",
        )
        if not delivered:
            raise RuntimeError(f"High-intent notification for {subscriber['id']} was not delivered")

    def next_step(self, subscriber_id: str) -> dict:
        subscriber = models.get_subscriber(subscriber_id)
        if not subscriber:
            raise NotFoundError(f"Subscriber '{subscriber_id}' not found")
        latest = models.get_latest_signal_values(subscriber_id, NEXT_STEP_SIGNAL_TYPES)
        return {
            **latest,
            "readinessLabel": readiness_label(subscriber["intent_score"],
                                              subscriber.get("first_high_intent_at")),
            "intentScore": subscriber["intent_score"],
        }
