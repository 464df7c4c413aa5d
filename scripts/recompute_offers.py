#!/usr/bin/env python3
"""
Offer pathway recompute cron job.

Refreshes cached offer recommendations for subscribers with recent signals
or a missing/stale recommendation.

Usage:
    python scripts/recompute_offers.py               # Default: RECOMPUTE_LIMIT subscribers
    python scripts/recompute_offers.py --limit 25    # Smaller run
    python scripts/recompute_offers.py --dry-run     # Preview without writing

Cron example (hourly):
    0 * * * * cd /path/to/leadflow && python scripts/recompute_offers.py >> logs/recompute.log 2>&1
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from leadflow import config
from leadflow.db.init_db import init_db
from leadflow.intent.recompute import recompute_offer_pathways
from leadflow.logging_config import setup_logging
from leadflow.runtime import build_runtime


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Recompute offer pathway recommendations")
    parser.add_argument("--limit", type=int, default=config.RECOMPUTE_LIMIT,
                        help=f"Max subscribers to process (default: {config.RECOMPUTE_LIMIT})")
    parser.add_argument("--dry-run", action="store_true",
                        help="Compute recommendations without writing to database")
    parser.add_argument("--show-config", action="store_true",
                        help="Print the active configuration and exit")
    args = parser.parse_args(argv)
    if args.show_config:
        config.print_config()
        return 1 if config.validate() else 0
    if args.limit < 1:
        parser.error("--limit must be >= 1")

    setup_logging()
    init_db()
    runtime = build_runtime()
    try:
        summary = recompute_offer_pathways(runtime.batch_manager, limit=args.limit,
                                           dry_run=args.dry_run)
    finally:
        runtime.shutdown()

    print(f"[recompute] Started {summary['started']}, dry run: {summary['dry_run']}")
    for item in summary["results"]:
        sid = (item.get("result") or {}).get("subscriberId", "?")
        if item.get("success"):
            print(f"  {sid}: {item['result'].get('recommendation') or 'none'} "
                  f"({item['result'].get('confidence')})")
        else:
            print(f"  ERROR: {sid} - {item.get('error')}")
    print(f"\n[recompute] Complete: {summary['candidates']} candidates, "
          f"{summary['succeeded']} succeeded, {summary['failed']} failed")
    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
