"""
Small helpers for rendering timestamps and numbers the way the UI expects.
"""

from __future__ import annotations

import math
import time
from datetime import date, datetime, timezone
from typing import Optional


def iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def utc_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def round_half_up(value: float, digits: int = 0):
    """Round ties upward, matching the web client's Math.round."""
    if digits:
        scale = 10 ** digits
        return math.floor(value * scale + 0.5) / scale
    return math.floor(value + 0.5)


def start_of_utc_day(ts: Optional[float] = None) -> float:
    moment = utc_datetime(time.time() if ts is None else ts)
    return moment.replace(hour=0, minute=0, second=0, microsecond=0).timestamp()


def start_of_utc_month(ts: Optional[float] = None) -> float:
    moment = utc_datetime(time.time() if ts is None else ts)
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0).timestamp()


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def time_ago(ts: float, now: Optional[float] = None) -> str:
    """Render `Just now`, `N mins ago`, `N hours ago` or `N days ago`."""
    elapsed = max(0, (time.time() if now is None else now) - ts)
    minutes = int(elapsed // 60)
    hours = int(elapsed // 3600)
    days = int(elapsed // 86400)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return _plural(minutes, "min")
    if hours < 24:
        return _plural(hours, "hour")
    return _plural(days, "day")


def relative_date(ts: float, now: Optional[float] = None) -> str:
    """Like time_ago, but falls back to the calendar date after a week."""
    elapsed = (time.time() if now is None else now) - ts
    if elapsed >= 7 * 86400:
        return utc_datetime(ts).strftime("%b %d, %Y")
    return time_ago(ts, now)


def parse_birthday(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def age_from_birthday(value: Optional[str], today: Optional[date] = None) -> Optional[int]:
    born = parse_birthday(value)
    if born is None:
        return None
    today = today or datetime.now(timezone.utc).date()
    years = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        years -= 1
    return years


def age_bracket(age: Optional[int]) -> Optional[str]:
    if age is None:
        return None
    if age < 13:
        return "under_13"
    if age < 18:
        return "13_17"
    if age < 25:
        return "18_24"
    if age < 35:
        return "25_34"
    if age < 45:
        return "35_44"
    return "45_plus"
