#!/usr/bin/env python
"""Rewrite total_hours of completed attendances with the current lunch-break rule."""
from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from work360.db import SessionLocal
from work360.logging_utils import setup_json_logging
from work360.services.attendance import recalculate_completed_attendances

logger = logging.getLogger("work360.scripts.recalculate_worked_hours")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--company-id", type=uuid.UUID, default=None, help="limit to one company")
    parser.add_argument("--dry-run", action="store_true", help="report without writing")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_json_logging(service="work360-recalculate")

    with SessionLocal() as db:
        report = recalculate_completed_attendances(db, company_id=args.company_id, dry_run=args.dry_run)

    summary = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "dry_run": args.dry_run,
        "company_id": str(args.company_id) if args.company_id else None,
        "updated": report.updated,
        "unchanged": report.unchanged,
        "skipped": report.skipped,
        "total": report.total,
    }
    logger.info("worked_hours_recalculation_done", extra=summary)
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
