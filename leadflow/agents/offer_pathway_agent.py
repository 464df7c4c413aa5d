"""Offer Pathway Agent - recomputes and stores a subscriber's offer recommendation."""

from datetime import datetime, timezone

from leadflow.agents.base import BaseAgent
from leadflow.db import models
from leadflow.exceptions import NotFoundError, ValidationError
from leadflow.intent.offer_pathway import compute_offer_recommendation, inputs_from_state


def _days_since(timestamp: str):
    if not timestamp:
        return None
    try:
        created = datetime.fromisoformat(timestamp)
    except ValueError:
        return None
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return max((datetime.now(timezone.utc) - created).days, 0)


def build_recommendation(subscriber_id: str):
    """Load stored state for a subscriber and run the offer engine on it."""
    subscriber = models.get_subscriber(subscriber_id)
    if not subscriber:
        raise NotFoundError(f"Subscriber '{subscriber_id}' not found")
    kwargs = inputs_from_state(
        subscriber,
        signals=models.get_signals(subscriber_id),
        email_opens=models.count_email_events(subscriber_id, "open"),
        days_since_signup=_days_since(subscriber.get("created_at")),
    )
    return compute_offer_recommendation(**kwargs)


class OfferPathwayAgent(BaseAgent):
    name = "OfferPathwayAgent"
    version = "1.0.0"
    description = "Recomputes and persists the next offer recommendation for a subscriber"

    def run(self, payload):
        if isinstance(payload, dict):
            subscriber_id = payload.get("subscriberId")
        else:
            subscriber_id = payload
        if not subscriber_id or not isinstance(subscriber_id, str):
            raise ValidationError("subscriberId is required")
        rec = build_recommendation(subscriber_id)
        models.save_offer_recommendation(subscriber_id, rec.to_dict())
        return {"subscriberId": subscriber_id, **rec.to_dict()}
