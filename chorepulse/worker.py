"""
Worker loop that delivers queued campaign emails.

Due email ids are taken from the delivery queue; rows that were stored but never
queued are picked up by polling the email_queue table. With
``--calendar-interval`` the loop also runs the calendar fan-out sync.
"""

from __future__ import annotations

import argparse
import logging
import time
from typing import Optional

from chorepulse.calendar_sync import sync_all_calendars
from chorepulse.campaigns import deliver_queued
from chorepulse.db import DbClient, EmailQueueRecord
from chorepulse.dependencies import get_db_client, get_email_queue, get_email_sender
from chorepulse.mailer import EmailSender
from chorepulse.queue import EmailQueue

logger = logging.getLogger(__name__)


def _next_unqueued(db: DbClient, now: Optional[float] = None) -> Optional[EmailQueueRecord]:
    pending = db.find(EmailQueueRecord, status="queued", order_by="scheduled_for", limit=1)
    if pending and pending[0].scheduled_for <= (time.time() if now is None else now):
        return pending[0]
    return None


def process_next(
    *,
    db: Optional[DbClient] = None,
    queue: Optional[EmailQueue] = None,
    sender: Optional[EmailSender] = None,
    now: Optional[float] = None,
) -> bool:
    """
    Deliver one due email from the queue (or the table fallback). Returns True if one was handled.
    """
    db = db or get_db_client()
    queue = queue or get_email_queue()
    sender = sender or get_email_sender()

    email_id = queue.dequeue(now=now)
    if not email_id:
        item = _next_unqueued(db, now)
        if not item:
            return False
        email_id = item.id

    return deliver_queued(db, sender, email_id)


def run_loop(
    poll_interval_seconds: float = 2.0, calendar_interval_seconds: Optional[float] = None
) -> None:
    """
    Polling loop that drains due emails and sleeps when idle. Intended to be run under systemd/supervisor.
    """
    db = get_db_client()
    queue = get_email_queue()
    sender = get_email_sender()
    last_calendar_sync = 0.0
    while True:
        if calendar_interval_seconds and time.time() - last_calendar_sync >= calendar_interval_seconds:
            try:
                summary = sync_all_calendars(db)
                logger.info(summary["message"])
            except Exception:
                logger.exception("Scheduled calendar sync failed")
            last_calendar_sync = time.time()
        if not process_next(db=db, queue=queue, sender=sender):
            time.sleep(poll_interval_seconds)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Deliver queued ChorePulse emails.")
    parser.add_argument("--poll-interval", type=float, default=2.0)
    parser.add_argument(
        "--calendar-interval",
        type=float,
        default=None,
        help="Also sync every enabled Google Calendar every N seconds.",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO, format="%(name)s %(levelname)s %(asctime)s %(message)s"
    )
    run_loop(args.poll_interval, args.calendar_interval)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
