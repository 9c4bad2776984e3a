"""
Google Calendar integration: OAuth connect flow, sync settings, manual and
scheduled sync, and reading the member's own calendar events.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from chorepulse.auth import current_user
from chorepulse.calendar_sync import sync_all_calendars, sync_user_calendar, valid_access_token
from chorepulse.config import Settings, get_settings
from chorepulse.db import CalendarIntegrationRecord, DbClient, UserRecord
from chorepulse.dependencies import get_db_client
from chorepulse.google_calendar import (
    SYNCED_PROPERTY,
    GoogleCalendarClient,
    GoogleCalendarError,
    TokenRefreshError,
    build_consent_url,
    decode_state,
    encode_state,
    exchange_code,
    fetch_user_email,
)
from chorepulse.schemas import CalendarSettingsUpdate
from chorepulse.serializers import camelize

logger = logging.getLogger(__name__)

router = APIRouter(tags=["calendar"])

DEFAULT_RETURN_URL = "/settings?tab=integrations"
EVENTS_WINDOW = timedelta(days=7)


def _settings_redirect(settings: Settings, error: str) -> RedirectResponse:
    app_url = settings.app_url.rstrip("/")
    return RedirectResponse(f"{app_url}{DEFAULT_RETURN_URL}&error={error}", status_code=307)


def _integration(db: DbClient, user: UserRecord) -> Optional[CalendarIntegrationRecord]:
    return db.find_one(CalendarIntegrationRecord, user_id=user.id, provider="google")


@router.get("/integrations/google-calendar/connect")
def connect(
    return_url: Optional[str] = Query(default=None, alias="returnUrl"),
    user: UserRecord = Depends(current_user),
    settings: Settings = Depends(get_settings),
):
    if not settings.google_client_id:
        logger.error("GOOGLE_CLIENT_ID not configured")
        raise HTTPException(status_code=500, detail="Google Calendar integration not configured")
    state = encode_state(
        {
            "userId": user.id,
            "timestamp": int(time.time() * 1000),
            "returnUrl": return_url or DEFAULT_RETURN_URL,
        }
    )
    return {
        "authUrl": build_consent_url(settings.google_client_id, settings.calendar_redirect_uri, state)
    }


@router.get("/integrations/google-calendar/callback")
def oauth_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    if error:
        logger.warning("Google OAuth error: %s", error)
        return _settings_redirect(settings, "oauth_failed")
    if not code or not state:
        return _settings_redirect(settings, "invalid_callback")

    try:
        state_data = decode_state(state)
    except ValueError:
        return _settings_redirect(settings, "invalid_callback")

    try:
        user = current_user(request, db)
    except HTTPException as e:
        return _settings_redirect(settings, "user_not_found" if e.status_code == 404 else "unauthorized")
    if user.id != state_data.get("userId"):
        return _settings_redirect(settings, "unauthorized")

    if not settings.google_client_id or not settings.google_client_secret:
        logger.error("Google OAuth credentials not configured")
        return _settings_redirect(settings, "not_configured")

    try:
        tokens = exchange_code(
            code,
            settings.google_client_id,
            settings.google_client_secret,
            settings.calendar_redirect_uri,
        )
    except GoogleCalendarError:
        logger.exception("Token exchange failed for user %s", user.id)
        return _settings_redirect(settings, "token_exchange_failed")
    if not tokens.get("access_token"):
        return _settings_redirect(settings, "token_exchange_failed")

    values = {
        "organization_id": user.organization_id,
        "access_token": tokens["access_token"],
        "refresh_token": tokens.get("refresh_token"),
        "token_expiry": time.time() + int(tokens.get("expires_in") or 3600),
        "email": fetch_user_email(tokens["access_token"]),
        "sync_enabled": True,
        "sync_tasks_to_calendar": True,
        "sync_calendar_to_tasks": False,
        "calendar_name": "ChorePulse Tasks",
        "last_sync_status": "pending",
        "updated_at": time.time(),
    }
    try:
        existing = _integration(db, user)
        if existing:
            db.update(CalendarIntegrationRecord, existing.id, **values)
        else:
            db.insert(CalendarIntegrationRecord(user_id=user.id, provider="google", **values))
    except Exception:
        logger.exception("Error storing calendar integration for user %s", user.id)
        return _settings_redirect(settings, "storage_failed")

    return_url = state_data.get("returnUrl") or DEFAULT_RETURN_URL
    return RedirectResponse(
        f"{settings.app_url.rstrip('/')}{return_url}&success=calendar_connected", status_code=307
    )


@router.get("/integrations/google-calendar")
def integration_status(
    user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)
):
    integration = _integration(db, user)
    return {
        "connected": integration is not None,
        "integration": camelize(integration) if integration else None,
    }


@router.patch("/integrations/google-calendar")
def update_integration(
    payload: CalendarSettingsUpdate,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    integration = _integration(db, user)
    if not integration:
        raise HTTPException(status_code=404, detail="Calendar integration not found")
    changes = {k: v for k, v in payload.provided().items() if v is not None}
    if not changes:
        raise HTTPException(status_code=400, detail="No settings provided to update")
    updated = db.update(
        CalendarIntegrationRecord, integration.id, updated_at=time.time(), **changes
    )
    return {"success": True, "integration": camelize(updated)}


@router.delete("/integrations/google-calendar")
def disconnect(user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    deleted = db.delete_where(CalendarIntegrationRecord, user_id=user.id, provider="google")
    logger.info("Disconnected Google Calendar for user %s (%s rows)", user.id, deleted)
    return {"success": True, "message": "Google Calendar disconnected"}


@router.post("/integrations/google-calendar/sync")
def sync_now(
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    result = sync_user_calendar(db, user.id, settings=settings)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error or "Calendar sync failed")
    return {
        "success": True,
        "syncedCount": result.synced_count,
        "message": f"Synced {result.synced_count} tasks to Google Calendar",
    }


def _parse_bound(value: Optional[str], default: datetime) -> datetime:
    if not value:
        return default
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _event_payload(event: dict) -> dict:
    start = event.get("start") or {}
    end = event.get("end") or {}
    return {
        "id": event.get("id"),
        "summary": event.get("summary") or "Untitled Event",
        "description": event.get("description") or "",
        "start": start.get("dateTime") or start.get("date"),
        "end": end.get("dateTime") or end.get("date"),
        "isAllDay": not start.get("dateTime"),
        "location": event.get("location") or "",
        "htmlLink": event.get("htmlLink"),
        "colorId": event.get("colorId"),
    }


def _is_synced_event(event: dict) -> bool:
    private = (event.get("extendedProperties") or {}).get("private") or {}
    return private.get(SYNCED_PROPERTY) == "true"


@router.get("/integrations/google-calendar/events")
def calendar_events(
    start: Optional[str] = Query(default=None),
    end: Optional[str] = Query(default=None),
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    integration = _integration(db, user)
    if not integration:
        raise HTTPException(status_code=404, detail="Calendar integration not found")
    if not integration.sync_enabled:
        return {"events": [], "count": 0}

    now = datetime.now(timezone.utc)
    start_at = _parse_bound(start, now)
    end_at = _parse_bound(end, now + EVENTS_WINDOW)

    try:
        access_token = valid_access_token(db, integration, settings)
    except TokenRefreshError:
        logger.warning("Token refresh failed for user %s", user.id, exc_info=True)
        raise HTTPException(
            status_code=401,
            detail="Failed to refresh access token. Please reconnect your calendar.",
        )

    client = GoogleCalendarClient(access_token)
    try:
        events = client.list_events(
            "primary",
            timeMin=start_at.isoformat(),
            timeMax=end_at.isoformat(),
            singleEvents="true",
            orderBy="startTime",
        )
    except GoogleCalendarError:
        logger.exception("Failed to fetch calendar events for user %s", user.id)
        raise HTTPException(status_code=500, detail="Failed to fetch calendar events")
    finally:
        client.close()

    payload = [_event_payload(e) for e in events if not _is_synced_event(e)]
    return {"events": payload, "count": len(payload)}


@router.get("/cron/calendar-sync")
def cron_calendar_sync(
    request: Request,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    expected = f"Bearer {settings.cron_secret}" if settings.cron_secret else None
    if not expected or request.headers.get("authorization") != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")
    summary = sync_all_calendars(db, settings=settings)
    logger.info(summary["message"])
    return summary
