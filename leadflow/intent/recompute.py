"""
Offer pathway recompute job.

Refreshes cached offer recommendations for subscribers that either had
signals in the last 24 hours or whose cached recommendation is missing or
older than RECOMMENDATION_STALE_DAYS. Candidates are processed oldest cache
first through the BatchJobManager, so one bad subscriber never stops the run.
"""

import logging
from datetime import datetime, timezone

from leadflow import config
from leadflow.agents.offer_pathway_agent import build_recommendation
from leadflow.db import models

logger = logging.getLogger("leadflow.intent.recompute")

AGENT_NAME = "OfferPathwayAgent"
SIGNAL_WINDOW_HOURS = 24


def recompute_offer_pathways(batch_manager, limit: int = None, dry_run: bool = False,
                             item_delay_ms: int = None) -> dict:
    """Recompute recommendations for stale subscribers.

    Args:
        batch_manager: BatchJobManager with OfferPathwayAgent registered.
        limit: Max subscribers this run. Clamped to RECOMPUTE_LIMIT and the
            batch manager's max_items.
        dry_run: Compute recommendations without persisting or tracing them.
        item_delay_ms: Pause between items (default RECOMPUTE_DELAY_MS).

    Returns:
        {"started", "completed", "dry_run", "candidates", "total",
         "succeeded", "failed", "results"}
    """
    cap = min(config.RECOMPUTE_LIMIT, batch_manager.max_items)
    limit = cap if limit is None else min(limit, cap)
    item_delay_ms = config.RECOMPUTE_DELAY_MS if item_delay_ms is None else item_delay_ms
    started = datetime.now(timezone.utc).isoformat()

    candidates = models.find_recompute_candidates(
        signal_window_hours=SIGNAL_WINDOW_HOURS,
        stale_days=config.RECOMMENDATION_STALE_DAYS,
        limit=limit,
    )
    logger.info("Offer recompute: %d candidate(s), dry_run=%s", len(candidates), dry_run)

    summary = {
        "started": started,
        "dry_run": dry_run,
        "candidates": len(candidates),
        "total": 0,
        "succeeded": 0,
        "failed": 0,
        "results": [],
    }

    if dry_run:
        for subscriber_id in candidates:
            try:
                rec = build_recommendation(subscriber_id)
                summary["results"].append({"success": True,
                                           "result": {"subscriberId": subscriber_id,
                                                      **rec.to_dict()}})
                summary["succeeded"] += 1
            except Exception as e:
                summary["results"].append({"success": False, "error": str(e),
                                           "result": {"subscriberId": subscriber_id}})
                summary["failed"] += 1
        summary["total"] = len(candidates)
    elif candidates:
        batch = batch_manager.run_batch(
            AGENT_NAME,
            [{"subscriberId": sid} for sid in candidates],
            item_delay_ms=item_delay_ms,
        )
        summary.update({k: batch[k] for k in ("total", "succeeded", "failed", "results")})

    summary["completed"] = datetime.now(timezone.utc).isoformat()
    logger.info("Offer recompute complete: %d/%d succeeded", summary["succeeded"],
                summary["total"])
    return summary
