"""
Shape stored records into the camelCase payloads the web client reads.
"""

from __future__ import annotations

from typing import Iterable

from pydantic.alias_generators import to_camel

from chorepulse.db import (
    OrganizationRecord,
    Record,
    TaskRecord,
    UserRecord,
)
from chorepulse.timefmt import iso

TIMESTAMP_SUFFIXES = ("_at", "_expiry", "_window_start", "_date", "scheduled_for")

SECRET_FIELDS = frozenset(
    {
        "password_hash",
        "pin_hash",
        "invitation_token",
        "access_token",
        "refresh_token",
        "unsubscribe_token",
    }
)


def camelize(record: Record, exclude: Iterable[str] = ()) -> dict:
    """Record fields with camelCase keys, ISO timestamps and secrets removed."""
    skipped = SECRET_FIELDS.union(exclude)
    payload = {}
    for key, value in record.as_dict().items():
        if key in skipped:
            continue
        if key.endswith(TIMESTAMP_SUFFIXES) and isinstance(value, (int, float)) and not isinstance(value, bool):
            value = iso(value)
        payload[to_camel(key)] = value
    return payload


def user_payload(user: UserRecord) -> dict:
    payload = camelize(user, exclude=("coppa_consent_ip", "invitation_token_expiry"))
    payload["hasPin"] = bool(user.pin_hash)
    return payload


def organization_payload(org: OrganizationRecord) -> dict:
    payload = camelize(org, exclude=("property_data",))
    for key, value in (org.property_data or {}).items():
        payload.setdefault(key, value)
    return payload


def task_payload(task: TaskRecord) -> dict:
    return camelize(task)
