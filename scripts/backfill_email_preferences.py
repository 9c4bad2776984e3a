"""
Create default email preferences for users that have an email address but no
stored preferences.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chorepulse.campaigns import ensure_preferences
from chorepulse.db import DbClient, EmailPreferencesRecord, UserRecord
from chorepulse.dependencies import get_db_client

logger = logging.getLogger(__name__)


def backfill(db: DbClient, dry_run: bool = False) -> int:
    created = 0
    for user in db.find(UserRecord, order_by="created_at"):
        if not user.email:
            continue
        if db.find_one(EmailPreferencesRecord, user_id=user.id):
            continue
        if not dry_run:
            ensure_preferences(db, user)
        logger.info("User %s has no email preferences", user.id)
        created += 1
    return created


def main() -> int:
    parser = argparse.ArgumentParser(description="Backfill email preferences")
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.INFO, format="%(name)s %(levelname)s %(asctime)s %(message)s"
    )

    created = backfill(get_db_client(), dry_run=args.dry_run)
    verb = "Would create" if args.dry_run else "Created"
    print(f"{verb} email preferences for {created} users")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
