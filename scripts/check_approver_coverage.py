#!/usr/bin/env python3
"""Report missing / ambiguous approvers and communities that block routing.

Read-only.  Exit code 1 when anything needs attention, so it can gate a
deployment or a cron alert.
"""

import argparse
import sys

sys.path.insert(0, ".")

from univibe import create_app
from univibe.services.approval_chain import approver_coverage


def run() -> dict:
    report = approver_coverage()

    for row in report["colleges"]:
        for key in ("faculty_leader", "dean"):
            entry = row[key]
            tag = "[OK]" if entry["status"] == "ok" else "[WARN]"
            print(f"{tag} college={row['code']} role={key} status={entry['status']} "
                  f"user_ids={entry['user_ids']}")

    deanship = report["deanship"]
    tag = "[OK]" if deanship["status"] == "ok" else "[WARN]"
    print(f"{tag} role=deanship status={deanship['status']} user_ids={deanship['user_ids']}")

    for c in report["unassigned_communities"]:
        print(f"[WARN] community_id={c['id']} name={c['name']!r} reason=no_college")
    for c in report["leaderless_communities"]:
        print(f"[WARN] community_id={c['id']} name={c['name']!r} reason=no_club_leader")

    print(
        "[SUMMARY] "
        f"colleges={len(report['colleges'])} "
        f"unassigned={len(report['unassigned_communities'])} "
        f"leaderless={len(report['leaderless_communities'])} "
        f"ok={report['ok']}"
    )
    return report


def main() -> int:
    parser = argparse.ArgumentParser(description="Report approver coverage (read-only).")
    parser.add_argument("--env", default=None, help="Config name (default: APP_ENV)")
    args = parser.parse_args()

    app = create_app(args.env)
    with app.app_context():
        report = run()
    return 0 if report["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
