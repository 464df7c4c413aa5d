"""Scheduled job routes."""

from fastapi import APIRouter, Depends

from leadflow.api.deps import get_runtime, require_cron_secret
from leadflow.exceptions import ValidationError
from leadflow.intent.recompute import recompute_offer_pathways

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


@router.post("/offer-pathway")
def offer_pathway(limit: int = None, dry_run: bool = False, runtime=Depends(get_runtime)):
    if limit is not None and limit < 1:
        raise ValidationError("limit must be >= 1")
    summary = recompute_offer_pathways(runtime.batch_manager, limit=limit, dry_run=dry_run)
    return {"success": True, **summary}
