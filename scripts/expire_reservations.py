#!/usr/bin/env python3
"""Complete every ACTIVE study-space reservation dated before a given day."""

import argparse
import sys
from datetime import date

sys.path.insert(0, ".")

from univibe import create_app
from univibe.models.study_space import RESERVATION_ACTIVE, StudySpaceReservation
from univibe.services.reservation_service import expire_stale


def run(*, today: date, apply: bool = False) -> dict:
    mode = "apply" if apply else "dry-run"
    print(f"[INFO] mode={mode} today={today.isoformat()}")

    if not apply:
        stale = (
            StudySpaceReservation.query
            .filter(
                StudySpaceReservation.status == RESERVATION_ACTIVE,
                StudySpaceReservation.date < today,
            )
            .order_by(StudySpaceReservation.id)
            .all()
        )
        for r in stale:
            print(f"[PLAN] reservation_id={r.id} space_id={r.space_id} date={r.date}")
        summary = {"mode": mode, "count": len(stale), "affected_ids": [r.id for r in stale]}
    else:
        outcome = expire_stale(today)
        for r in outcome["affected"]:
            print(f"[EXPIRE] reservation_id={r['id']} space_id={r['space_id']} date={r['date']}")
        summary = {
            "mode": mode,
            "count": outcome["count"],
            "affected_ids": [r["id"] for r in outcome["affected"]],
        }

    print(f"[SUMMARY] mode={mode} count={summary['count']}")
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Mark past ACTIVE reservations COMPLETED (idempotent)."
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Preview only; do not write data")
    mode.add_argument("--apply", action="store_true", help="Persist changes")
    parser.add_argument("--today", type=date.fromisoformat, default=None,
                        help="Reference day YYYY-MM-DD (default: today)")
    parser.add_argument("--env", default=None, help="Config name (default: APP_ENV)")
    args = parser.parse_args()

    if not args.dry_run and not args.apply:
        print("[INFO] No mode specified; defaulting to --dry-run")

    app = create_app(args.env)
    with app.app_context():
        run(today=args.today or date.today(), apply=bool(args.apply))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
