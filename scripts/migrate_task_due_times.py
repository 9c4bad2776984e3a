"""
Set due_time on every task that does not have one.
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chorepulse.db import DbClient, TaskRecord
from chorepulse.dependencies import get_db_client

logger = logging.getLogger(__name__)

DUE_TIME_PATTERN = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")


def migrate(db: DbClient, default_due_time: str, dry_run: bool = False) -> dict[str, int]:
    tasks = db.find(TaskRecord, due_time=None)
    updated = 0
    failed = 0
    for task in tasks:
        if dry_run:
            logger.info("Would set due_time of %r (%s) to %s", task.name, task.id, default_due_time)
            continue
        try:
            db.update(TaskRecord, task.id, due_time=default_due_time)
        except Exception:
            logger.exception("Failed to update task %r (%s)", task.name, task.id)
            failed += 1
            continue
        logger.info("Set due_time of %r (%s) to %s", task.name, task.id, default_due_time)
        updated += 1
    return {"total": len(tasks), "updated": updated, "failed": failed}


def main() -> int:
    parser = argparse.ArgumentParser(description="Backfill task due times")
    parser.add_argument(
        "--default",
        dest="default_due_time",
        default="23:59",
        help="HH:MM due time given to tasks without one",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the tasks that would change without writing",
    )
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.INFO, format="%(name)s %(levelname)s %(asctime)s %(message)s"
    )

    if not DUE_TIME_PATTERN.match(args.default_due_time):
        parser.error("--default must be HH:MM (24-hour)")

    summary = migrate(get_db_client(), args.default_due_time, dry_run=args.dry_run)
    if not summary["total"]:
        print("No tasks found without due_time.")
        return 0
    print("Migration summary:")
    print(f"  Tasks without due_time: {summary['total']}")
    if args.dry_run:
        print("  Dry run, nothing written.")
    else:
        print(f"  Updated: {summary['updated']}")
        print(f"  Failed: {summary['failed']}")
    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
