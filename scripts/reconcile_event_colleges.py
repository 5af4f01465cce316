#!/usr/bin/env python3
"""Re-sync every community event's college with its community (idempotent)."""

import argparse
import sys

sys.path.insert(0, ".")

from univibe import create_app
from univibe.services.event_lifecycle import reconcile_event_colleges


def run(*, apply: bool = False) -> dict:
    mode = "apply" if apply else "dry-run"
    print(f"[INFO] mode={mode}")

    summary = reconcile_event_colleges(apply=apply)
    tag = "[FIX]" if apply else "[PLAN]"
    for event_id in summary["affected_ids"]:
        print(f"{tag} event_id={event_id}")

    print(
        "[SUMMARY] "
        f"mode={mode} "
        f"checked={summary['checked']} "
        f"corrected={summary['corrected']} "
        f"skipped_unassigned={summary['skipped_unassigned']} "
        f"conflicts={summary['conflicts']}"
    )
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Re-sync event college ids from their communities (idempotent)."
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Preview only; do not write data")
    mode.add_argument("--apply", action="store_true", help="Persist corrections")
    parser.add_argument("--env", default=None, help="Config name (default: APP_ENV)")
    args = parser.parse_args()

    if not args.dry_run and not args.apply:
        print("[INFO] No mode specified; defaulting to --dry-run")

    app = create_app(args.env)
    with app.app_context():
        result = run(apply=bool(args.apply))

    return 1 if result["conflicts"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
