"""
Organization (family) settings, family codes, household profile and property data.
"""

from __future__ import annotations

import logging
import math
import re
import secrets
import time

from fastapi import APIRouter, Depends, HTTPException

from chorepulse.auth import current_user, require_manager, require_owner
from chorepulse.config import get_settings
from chorepulse.db import DbClient, FamilyProfileRecord, OrganizationRecord, UserRecord
from chorepulse.dependencies import get_db_client
from chorepulse.property_data import PropertyLookupError, lookup_property, merge_home_features
from chorepulse.schemas import (
    HouseholdUpdateRequest,
    OrganizationUpdateRequest,
    PropertyLookupRequest,
)
from chorepulse.serializers import organization_payload
from chorepulse.timefmt import iso

logger = logging.getLogger(__name__)

router = APIRouter(tags=["organizations"])

FAMILY_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
FAMILY_CODE_LENGTH = 6

PROPERTY_FETCH_LIMIT = 2
PROPERTY_WINDOW_SECONDS = 24 * 3600

FAMILY_PROFILE_FIELDS = (
    "family_type",
    "household_size",
    "age_groups",
    "home_type",
    "has_yard",
    "has_pets",
    "pet_types",
    "dietary_restrictions",
    "food_allergies",
    "meal_preferences",
    "meals_to_plan",
    "task_time_preferences",
    "tasks_per_child_per_day",
    "task_assignment_style",
    "rotate_tasks_weekly",
    "preferred_reward_types",
    "reward_approval_style",
    "reward_point_preference",
)

# Property facts copied onto the organization's own columns.
PROPERTY_COLUMNS = {
    "propertyType": "property_type",
    "hasFireplace": "has_fireplace",
    "hasPool": "has_pool",
    "hasGarage": "has_garage",
}


def generate_family_code(db: DbClient) -> str:
    while True:
        code = "".join(
            secrets.choice(FAMILY_CODE_ALPHABET) for _ in range(FAMILY_CODE_LENGTH)
        )
        if not db.find_one(OrganizationRecord, current_family_code=code):
            return code


def unique_username(db: DbClient, name: str) -> str:
    base = re.sub(r"[^a-z0-9]", "", (name or "").lower()) or "member"
    candidate = base
    counter = 1
    while db.find_one(UserRecord, username=candidate):
        candidate = f"{base}{counter}"
        counter += 1
    return candidate


def load_organization(db: DbClient, user: UserRecord) -> OrganizationRecord:
    org = db.get(OrganizationRecord, user.organization_id)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


@router.get("/organizations/current")
def get_current_organization(
    user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)
):
    return {"organization": organization_payload(load_organization(db, user))}


@router.patch("/organizations/household")
def update_household(
    payload: HouseholdUpdateRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_manager(user, "Only account owners and family managers can update household settings")
    changes = payload.provided()
    org = db.update(
        OrganizationRecord, user.organization_id, updated_at=time.time(), **changes
    )
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return {"organization": organization_payload(org), "message": "Household updated successfully"}


@router.post("/organizations/sync-features")
def sync_features(user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    require_manager(user)
    org = load_organization(db, user)
    features = merge_home_features(
        org.home_features, {"hasFireplace": org.has_fireplace, "hasPool": org.has_pool}
    )
    org = db.update(OrganizationRecord, org.id, home_features=features, updated_at=time.time())
    return {"success": True, "homeFeatures": org.home_features}


@router.patch("/organizations/{organization_id}")
def update_organization(
    organization_id: str,
    payload: OrganizationUpdateRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    if user.organization_id != organization_id or not user.is_account_owner:
        raise HTTPException(
            status_code=403, detail="Only account owners can update organization settings"
        )
    changes = payload.provided()
    if "name" in changes and not (changes["name"] or "").strip():
        raise HTTPException(status_code=400, detail="Organization name cannot be empty")
    org = db.update(OrganizationRecord, organization_id, updated_at=time.time(), **changes)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return {"organization": organization_payload(org), "message": "Organization updated successfully"}


def _family_code_payload(org: OrganizationRecord) -> dict:
    return {
        "familyCode": org.current_family_code,
        "generatedAt": iso(org.family_code_generated_at),
        "version": org.family_code_version,
    }


@router.get("/organization/family-code")
def get_family_code(user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    return _family_code_payload(load_organization(db, user))


@router.post("/organization/family-code")
def regenerate_family_code(
    user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)
):
    require_manager(
        user, "Only account owners and family managers can regenerate the family code"
    )
    org = load_organization(db, user)
    org = db.update(
        OrganizationRecord,
        org.id,
        current_family_code=generate_family_code(db),
        family_code_generated_at=time.time(),
        family_code_version=(org.family_code_version or 0) + 1,
    )
    return {**_family_code_payload(org), "message": "Family code regenerated successfully"}


def _profile_payload(profile: FamilyProfileRecord) -> dict:
    return {
        "organization_id": profile.organization_id,
        **profile.data,
        "updated_at": iso(profile.updated_at),
    }


@router.get("/organization/family-profile")
def get_family_profile(
    user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)
):
    profile = db.find_one(FamilyProfileRecord, organization_id=user.organization_id)
    if not profile:
        return {"profile": None, "exists": False}
    return {"profile": _profile_payload(profile), "exists": True}


@router.patch("/organization/family-profile")
def update_family_profile(
    body: dict,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_manager(user)
    changes = {key: body[key] for key in FAMILY_PROFILE_FIELDS if key in body}
    profile = db.find_one(FamilyProfileRecord, organization_id=user.organization_id)
    if profile:
        profile = db.update(
            FamilyProfileRecord,
            profile.id,
            data={**profile.data, **changes},
            updated_at=time.time(),
        )
        message = "Family profile updated successfully"
    else:
        profile = db.insert(
            FamilyProfileRecord(organization_id=user.organization_id, data=changes)
        )
        message = "Family profile created successfully"
    return {"profile": _profile_payload(profile), "message": message}


def _fetch_window(org: OrganizationRecord, now: float) -> tuple[int, float]:
    """Current (count, window_start) for the rolling property lookup window."""
    start = org.property_fetch_window_start
    if start is not None and now - start < PROPERTY_WINDOW_SECONDS:
        return org.property_fetch_count or 0, start
    return 0, now


@router.post("/property/lookup")
def property_lookup(
    payload: PropertyLookupRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_owner(user, "Only account owners can fetch property data")
    org = load_organization(db, user)

    now = time.time()
    count, window_start = _fetch_window(org, now)
    if count >= PROPERTY_FETCH_LIMIT:
        hours = max(1, math.ceil((PROPERTY_WINDOW_SECONDS - (now - window_start)) / 3600))
        raise HTTPException(
            status_code=429,
            detail=(
                f"Property data fetch limit reached ({PROPERTY_FETCH_LIMIT} per day). "
                f"Please wait {hours} more hour{'' if hours == 1 else 's'} before trying again."
            ),
        )

    if payload.address:
        address = payload.address
    elif payload.address_line1 and payload.city and payload.state:
        address = f"{payload.address_line1}, {payload.city}, {payload.state} {payload.zip_code or ''}".strip()
    else:
        raise HTTPException(status_code=400, detail="Address is required")

    settings = get_settings()
    if not settings.rentcast_api_key:
        logger.error("RENTCAST_API_KEY not configured")
        raise HTTPException(status_code=500, detail="Property lookup service not configured")

    try:
        mapped = lookup_property(address, settings.rentcast_api_key)
    except PropertyLookupError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    changes = {column: mapped.get(key) for key, column in PROPERTY_COLUMNS.items()}
    db.update(
        OrganizationRecord,
        org.id,
        property_data=mapped,
        property_fetch_count=count + 1,
        property_fetch_window_start=window_start,
        home_features=merge_home_features(org.home_features, mapped),
        updated_at=now,
        **changes,
    )
    return {
        "success": True,
        "property": mapped,
        "message": "Property data fetched and saved successfully",
    }

