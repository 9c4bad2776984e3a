"""
Push a user's assigned tasks into their Google Calendar.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from chorepulse.config import Settings, get_settings
from chorepulse.db import (
    CalendarIntegrationRecord,
    DbClient,
    TaskAssignmentRecord,
    TaskRecord,
    UserRecord,
)
from chorepulse.google_calendar import (
    SYNCED_PROPERTY,
    TASK_ID_PROPERTY,
    GoogleCalendarClient,
    GoogleCalendarError,
    TokenRefreshError,
    refresh_access_token,
    task_to_event,
)
from chorepulse.timefmt import iso

logger = logging.getLogger(__name__)

SYNC_WINDOW_SECONDS = 30 * 86400
MAX_SYNCED_EVENTS = 2500
DEFAULT_SYNC_WORKERS = 8


@dataclass
class SyncResult:
    success: bool
    synced_count: int = 0
    error: Optional[str] = None


def assigned_tasks(db: DbClient, user: UserRecord) -> list[dict]:
    """Active organization tasks assigned to the user, with every assignee's name."""
    task_ids = {a.task_id for a in db.find(TaskAssignmentRecord, user_id=user.id)}
    if not task_ids:
        return []
    tasks = db.find(
        TaskRecord,
        id=list(task_ids),
        organization_id=user.organization_id,
        status="active",
    )
    assignments = db.find(TaskAssignmentRecord, task_id=[t.id for t in tasks])
    names = {
        u.id: u.name
        for u in db.find(UserRecord, id=list({a.user_id for a in assignments}))
    }
    result = []
    for task in tasks:
        payload = task.as_dict()
        payload["assigned_to_names"] = [
            names[a.user_id] for a in assignments if a.task_id == task.id and a.user_id in names
        ]
        result.append(payload)
    return result


def _record_status(
    db: DbClient, integration_id: str, status: str, error: Optional[str]
) -> None:
    now = time.time()
    db.update(
        CalendarIntegrationRecord,
        integration_id,
        last_sync_at=now,
        last_sync_status=status,
        last_sync_error=error,
        updated_at=now,
    )


def valid_access_token(
    db: DbClient, integration: CalendarIntegrationRecord, settings: Settings
) -> str:
    """The stored access token, refreshed and persisted first when it has expired."""
    if integration.token_expiry is not None and integration.token_expiry > time.time():
        return integration.access_token
    access_token, expiry = refresh_access_token(
        integration.refresh_token,
        settings.google_client_id or "",
        settings.google_client_secret or "",
    )
    db.update(
        CalendarIntegrationRecord,
        integration.id,
        access_token=access_token,
        token_expiry=expiry,
        updated_at=time.time(),
    )
    return access_token


def push_tasks(
    client: GoogleCalendarClient,
    integration: CalendarIntegrationRecord,
    tasks: list[dict],
    settings: Settings,
) -> int:
    calendar_id = client.get_or_create_calendar(
        integration.calendar_name, settings.calendar_timezone
    )
    now = time.time()
    existing = client.list_events(
        calendar_id,
        timeMin=iso(now - SYNC_WINDOW_SECONDS),
        timeMax=iso(now + SYNC_WINDOW_SECONDS),
        privateExtendedProperty=f"{SYNCED_PROPERTY}=true",
        maxResults=MAX_SYNCED_EVENTS,
    )
    events_by_task = {}
    for event in existing:
        task_id = event.get("extendedProperties", {}).get("private", {}).get(TASK_ID_PROPERTY)
        if task_id:
            events_by_task[task_id] = event

    synced = 0
    for task in tasks:
        event = task_to_event(
            task, app_url=settings.app_url, timezone_name=settings.calendar_timezone
        )
        try:
            current = events_by_task.get(task["id"])
            if current:
                client.update_event(calendar_id, current["id"], event)
            else:
                client.insert_event(calendar_id, event)
            synced += 1
        except GoogleCalendarError:
            logger.exception("Error syncing task %s", task["id"])

    live_ids = {task["id"] for task in tasks}
    for task_id, event in events_by_task.items():
        if task_id in live_ids:
            continue
        try:
            client.delete_event(calendar_id, event["id"])
        except GoogleCalendarError:
            logger.exception("Error deleting event for task %s", task_id)
    return synced


def sync_user_calendar(
    db: DbClient,
    user_id: str,
    *,
    settings: Optional[Settings] = None,
    client_factory: Callable[[str], GoogleCalendarClient] = GoogleCalendarClient,
) -> SyncResult:
    settings = settings or get_settings()
    integration = db.find_one(CalendarIntegrationRecord, user_id=user_id, provider="google")
    if (
        not integration
        or not integration.sync_enabled
        or not integration.sync_tasks_to_calendar
    ):
        return SyncResult(success=True)

    try:
        access_token = valid_access_token(db, integration, settings)
    except TokenRefreshError:
        logger.warning("Token refresh failed for user %s", user_id, exc_info=True)
        error = "Failed to refresh access token"
        _record_status(db, integration.id, "error", error)
        return SyncResult(success=False, error=error)

    user = db.get(UserRecord, user_id)
    if not user:
        return SyncResult(success=False, error="User not found")

    client = client_factory(access_token)
    try:
        synced = push_tasks(client, integration, assigned_tasks(db, user), settings)
    except GoogleCalendarError as e:
        logger.exception("Calendar sync failed for user %s", user_id)
        _record_status(db, integration.id, "error", str(e) or "Unknown error")
        return SyncResult(success=False, error=str(e) or "Unknown error")
    finally:
        client.close()

    _record_status(db, integration.id, "success", None)
    return SyncResult(success=True, synced_count=synced)


def sync_users_quietly(db: DbClient, user_ids: Iterable[str]) -> None:
    """Best-effort sync after task changes; failures are only logged."""
    for user_id in set(user_ids):
        try:
            result = sync_user_calendar(db, user_id)
        except Exception:
            logger.exception("Calendar sync raised for user %s", user_id)
            continue
        if not result.success:
            logger.warning("Calendar sync failed for user %s: %s", user_id, result.error)


def sync_all_calendars(
    db: DbClient, *, max_workers: int = DEFAULT_SYNC_WORKERS, **kwargs
) -> dict:
    """Sync every enabled integration concurrently and summarise the outcome."""
    integrations = db.find(
        CalendarIntegrationRecord,
        provider="google",
        sync_enabled=True,
        sync_tasks_to_calendar=True,
    )

    def _sync(user_id: str) -> bool:
        try:
            return sync_user_calendar(db, user_id, **kwargs).success
        except Exception:
            logger.exception("Failed to sync calendar for user %s", user_id)
            return False

    if integrations:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(_sync, [i.user_id for i in integrations]))
    else:
        results = []

    successful = sum(1 for ok in results if ok)
    failed = len(results) - successful
    return {
        "success": True,
        "message": f"Synced calendars for {successful} users ({failed} failed)",
        "totalUsers": len(integrations),
        "successful": successful,
        "failed": failed,
    }
