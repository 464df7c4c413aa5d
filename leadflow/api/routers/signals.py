"""Subscriber intake, signal recording and next-step readiness routes."""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from leadflow.agents.offer_pathway_agent import build_recommendation
from leadflow.api.deps import get_runtime
from leadflow.db import models
from leadflow.exceptions import NotFoundError, ValidationError

router = APIRouter(tags=["signals"])


class SignalCreate(BaseModel):
    subscriberId: Optional[str] = None
    signalType: Optional[str] = None
    value: Any = None


class SubscriberCreate(BaseModel):
    email: str
    name: Optional[str] = None
    lead_intelligence: Optional[dict] = None


@router.post("/signal")
def record_signal(req: SignalCreate, runtime=Depends(get_runtime)):
    outcome = runtime.signals.record_signal(req.subscriberId, req.signalType, req.value)
    return {
        "success": True,
        "intentScore": outcome["intent_score"],
        "highIntent": outcome["high_intent"],
        "signalId": outcome["signal_id"],
    }


@router.get("/next-step")
def next_step(id: str = None, runtime=Depends(get_runtime)):
    if not id:
        raise ValidationError("id is required")
    return {"success": True, **runtime.signals.next_step(id)}


# ─── SUBSCRIBERS ──────────────────────────────────────────────

@router.post("/subscribers")
def create_subscriber(req: SubscriberCreate):
    if "@" not in req.email:
        raise ValidationError("A valid email is required")
    return {"success": True, "subscriber": models.create_subscriber(req.model_dump())}


@router.get("/subscribers")
def list_subscribers(limit: int = 100, offset: int = 0, journey_position: str = None):
    return {"success": True,
            "subscribers": models.list_subscribers(limit=limit, offset=offset,
                                                   journey_position=journey_position)}


@router.get("/subscribers/{subscriber_id}")
def get_subscriber(subscriber_id: str):
    subscriber = models.get_subscriber(subscriber_id)
    if not subscriber:
        raise NotFoundError(f"Subscriber '{subscriber_id}' not found")
    return {"success": True, "subscriber": subscriber}


@router.get("/subscribers/{subscriber_id}/offer")
def get_offer(subscriber_id: str):
    rec = build_recommendation(subscriber_id)
    return {"success": True, "subscriberId": subscriber_id, **rec.to_dict(),
            "cached": models.get_offer_recommendation(subscriber_id)}
