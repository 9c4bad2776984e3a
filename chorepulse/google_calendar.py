"""
Thin client for the Google OAuth2 and Calendar v3 REST APIs.
"""

from __future__ import annotations

import base64
import json
import logging
import re
import time
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

import requests

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
CALENDAR_API = "https://www.googleapis.com/calendar/v3"
SCOPES = (
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
)
REQUEST_TIMEOUT = 30
SYNCED_PROPERTY = "chorepulse_synced"
TASK_ID_PROPERTY = "chorepulse_task_id"
CALENDAR_DESCRIPTION = "Tasks and chores from ChorePulse"
EVENT_COLOR_ID = "11"


class GoogleCalendarError(Exception):
    pass


class TokenRefreshError(GoogleCalendarError):
    pass


def encode_state(payload: dict) -> str:
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_state(state: str) -> dict:
    padded = state + "=" * (-len(state) % 4)
    return json.loads(base64.b64decode(padded).decode("utf-8"))


def build_consent_url(client_id: str, redirect_uri: str, state: str) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{AUTH_URL}?{urlencode(params)}"


def _post_token(data: dict) -> dict:
    response = requests.post(TOKEN_URL, data=data, timeout=REQUEST_TIMEOUT)
    if response.status_code >= 400:
        raise GoogleCalendarError(
            f"Token endpoint responded {response.status_code}: {response.text[:200]}"
        )
    return response.json()


def exchange_code(code: str, client_id: str, client_secret: str, redirect_uri: str) -> dict:
    return _post_token(
        {
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }
    )


def refresh_access_token(
    refresh_token: Optional[str], client_id: str, client_secret: str
) -> tuple[str, float]:
    """Return a fresh access token and its expiry (epoch seconds)."""
    if not refresh_token:
        raise TokenRefreshError("No refresh token stored")
    try:
        tokens = _post_token(
            {
                "refresh_token": refresh_token,
                "client_id": client_id,
                "client_secret": client_secret,
                "grant_type": "refresh_token",
            }
        )
    except (GoogleCalendarError, requests.RequestException) as e:
        raise TokenRefreshError(str(e)) from e
    access_token = tokens.get("access_token")
    if not access_token:
        raise TokenRefreshError("Token response did not include an access token")
    return access_token, time.time() + int(tokens.get("expires_in") or 3600)


def fetch_user_email(access_token: str) -> str:
    try:
        response = requests.get(
            USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException:
        logger.warning("Could not fetch Google account email", exc_info=True)
        return ""
    if not response.ok:
        return ""
    return response.json().get("email", "")


def parse_due_time(due_time: Optional[str]) -> tuple[int, int]:
    """Parse `7:30 PM` or `19:30` style times; anything else is 09:00."""
    if not due_time or ":" not in due_time:
        return 9, 0
    is_pm = bool(re.search(r"pm", due_time, flags=re.IGNORECASE))
    parts = re.sub(r"[ap]m", "", due_time, flags=re.IGNORECASE).strip().split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1] or 0) if len(parts) > 1 else 0
    except ValueError:
        return 9, 0
    if is_pm and hour != 12:
        hour += 12
    if not is_pm and hour == 12 and re.search(r"am", due_time, flags=re.IGNORECASE):
        hour = 0
    return hour % 24, minute % 60


def recurrence_for(frequency: Optional[str], interval: Optional[int]) -> Optional[list[str]]:
    if frequency == "daily":
        return [f"RRULE:FREQ=DAILY;INTERVAL={interval or 1}"]
    if frequency == "weekly":
        return [f"RRULE:FREQ=WEEKLY;INTERVAL={interval or 1}"]
    if frequency == "monthly":
        return ["RRULE:FREQ=MONTHLY"]
    return None


def task_to_event(task: dict, *, app_url: str, timezone_name: str) -> dict:
    """
    Build a Calendar event body for a task dict carrying the task fields plus
    `assigned_to_names`.
    """
    zone = ZoneInfo(timezone_name)
    hour, minute = parse_due_time(task.get("due_time"))
    start = datetime.now(zone).replace(hour=hour, minute=minute, second=0, microsecond=0)
    end = start + timedelta(hours=1)
    assigned = ", ".join(task.get("assigned_to_names") or []) or "Unassigned"

    description_lines = [
        task.get("description") or "",
        f"\nAssigned to: {assigned}",
        f"Category: {task['category']}" if task.get("category") else "",
        f"Points: {task['points']}" if task.get("points") else "",
        f"\nManage in ChorePulse: {app_url.rstrip('/')}/tasks",
    ]
    event = {
        "summary": f"{task['name']} ({assigned})",
        "description": "\n".join(line for line in description_lines if line),
        "start": {"dateTime": start.isoformat(), "timeZone": timezone_name},
        "end": {"dateTime": end.isoformat(), "timeZone": timezone_name},
        "colorId": EVENT_COLOR_ID,
        "extendedProperties": {
            "private": {TASK_ID_PROPERTY: task["id"], SYNCED_PROPERTY: "true"}
        },
    }
    recurrence = recurrence_for(task.get("frequency"), task.get("recurrence_interval"))
    if recurrence:
        event["recurrence"] = recurrence
    return event


class GoogleCalendarClient:
    """Calendar v3 calls authorised with a bearer access token."""

    def __init__(self, access_token: str, session: Optional[requests.Session] = None):
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.session.headers["Authorization"] = f"Bearer {access_token}"

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self.session.request(
                method, f"{CALENDAR_API}{path}", timeout=REQUEST_TIMEOUT, **kwargs
            )
        except requests.RequestException as e:
            raise GoogleCalendarError(str(e)) from e
        if response.status_code >= 400:
            raise GoogleCalendarError(
                f"{method} {path} failed with {response.status_code}: {response.text[:200]}"
            )
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def list_calendars(self) -> list[dict]:
        return self._request("GET", "/users/me/calendarList").get("items", [])

    def get_or_create_calendar(self, name: str, timezone_name: str) -> str:
        for calendar in self.list_calendars():
            if calendar.get("summary") == name:
                return calendar["id"]
        created = self._request(
            "POST",
            "/calendars",
            json={"summary": name, "description": CALENDAR_DESCRIPTION, "timeZone": timezone_name},
        )
        return created["id"]

    def list_events(self, calendar_id: str, **params) -> list[dict]:
        return self._request(
            "GET", f"/calendars/{calendar_id}/events", params=params
        ).get("items", [])

    def insert_event(self, calendar_id: str, event: dict) -> dict:
        return self._request("POST", f"/calendars/{calendar_id}/events", json=event)

    def update_event(self, calendar_id: str, event_id: str, event: dict) -> dict:
        return self._request(
            "PUT", f"/calendars/{calendar_id}/events/{event_id}", json=event
        )

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        self._request("DELETE", f"/calendars/{calendar_id}/events/{event_id}")
