#!/usr/bin/env python3
"""Link communities to colleges from a JSON mapping file (idempotent).

Mapping file format:
    {"IEEE": "ENG", "Debate Club": "LAW"}

Re-running with the same mapping reports every pair as "verified".
Existing events are not touched; run reconcile_event_colleges.py after.
"""

import argparse
import json
import sys

sys.path.insert(0, ".")

from univibe import create_app
from univibe.core.exceptions import NotFoundError
from univibe.models.org import College, Community
from univibe.services.directory_service import link_community_to_college


def link_communities(mapping: dict, *, apply: bool = False) -> dict:
    summary = {
        "mode": "apply" if apply else "dry-run",
        "processed": 0,
        "linked": 0,
        "relinked": 0,
        "verified": 0,
        "would_link": 0,
        "errors": 0,
        "error_details": [],
    }
    print(f"[INFO] mode={summary['mode']} pairs={len(mapping)}")

    for community_name, college_code in sorted(mapping.items()):
        summary["processed"] += 1
        prefix = f"community={community_name!r} college={college_code}"
        try:
            community = Community.query.filter_by(name=community_name).first()
            if community is None:
                raise NotFoundError(resource="Community", resource_id=community_name)
            college = College.query.filter_by(code=str(college_code).strip().upper()).first()
            if college is None:
                raise NotFoundError(resource="College", resource_id=college_code)

            if not apply:
                if community.college_id == college.id:
                    summary["verified"] += 1
                    print(f"[SKIP] {prefix} reason=already_linked")
                else:
                    summary["would_link"] += 1
                    print(f"[PLAN] {prefix} previous_college_id={community.college_id}")
                continue

            outcome = link_community_to_college(community.id, college.id)
            summary[outcome["outcome"]] += 1
            print(f"[{outcome['outcome'].upper()}] {prefix} "
                  f"previous_college_id={outcome['previous_college_id']}")

        except NotFoundError as exc:
            summary["errors"] += 1
            summary["error_details"].append(
                {"community": community_name, "college": college_code, "error": str(exc)}
            )
            print(f"[ERROR] {prefix} error={exc}")

    print(
        "[SUMMARY] "
        f"mode={summary['mode']} "
        f"processed={summary['processed']} "
        f"linked={summary['linked']} "
        f"relinked={summary['relinked']} "
        f"verified={summary['verified']} "
        f"would_link={summary['would_link']} "
        f"errors={summary['errors']}"
    )
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Link communities to colleges from a JSON mapping (idempotent)."
    )
    parser.add_argument("mapping", help="Path to JSON file: {community name: college code}")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Preview only; do not write data")
    mode.add_argument("--apply", action="store_true", help="Persist links")
    parser.add_argument("--env", default=None, help="Config name (default: APP_ENV)")
    args = parser.parse_args()

    with open(args.mapping, encoding="utf-8") as fh:
        mapping = json.load(fh)

    if not args.dry_run and not args.apply:
        print("[INFO] No mode specified; defaulting to --dry-run")

    app = create_app(args.env)
    with app.app_context():
        result = link_communities(mapping, apply=bool(args.apply))

    return 1 if result["errors"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
