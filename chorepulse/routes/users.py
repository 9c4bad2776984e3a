"""
Family member management, profile views and the GDPR data export.
"""

from __future__ import annotations

import json
import logging
import re
import secrets
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from chorepulse.analytics import current_streak
from chorepulse.auth import client_ip, current_user, hash_secret, require_manager, require_owner
from chorepulse.campaigns import send_parental_consent_email
from chorepulse.db import (
    CalendarIntegrationRecord,
    DbClient,
    EmailPreferencesRecord,
    MilestoneRecord,
    OrganizationRecord,
    RedemptionRecord,
    TaskAssignmentRecord,
    TaskCompletionRecord,
    TaskRecord,
    UserAchievementRecord,
    UserRecord,
)
from chorepulse.dependencies import get_db_client, get_email_sender
from chorepulse.mailer import EmailSender
from chorepulse.routes.organizations import unique_username
from chorepulse.schemas import PinUpdateRequest, UserCreateRequest, UserUpdateRequest
from chorepulse.serializers import camelize, user_payload
from chorepulse.timefmt import age_bracket, age_from_birthday, iso, utc_datetime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])

ROLES = ("adult", "teen", "kid")
PIN_PATTERN = re.compile(r"[0-9]{4}")
INVITATION_TTL_SECONDS = 7 * 24 * 3600
COPPA_AGE = 13

# Deleting a member removes these rows too.
MEMBER_OWNED = (
    TaskAssignmentRecord,
    TaskCompletionRecord,
    RedemptionRecord,
    UserAchievementRecord,
    MilestoneRecord,
    CalendarIntegrationRecord,
    EmailPreferencesRecord,
)


def _member_summary(member: UserRecord, completions: list[TaskCompletionRecord]) -> dict:
    can_manage = member.is_manager or member.role == "adult"
    today = datetime.now(timezone.utc).date()
    days = {utc_datetime(c.completed_at).date() for c in completions}
    return {
        "id": member.id,
        "name": member.name or member.username or "Unknown",
        "username": member.username,
        "email": member.email,
        "avatar": member.avatar or "smile",
        "role": member.role or "kid",
        "color": member.color or "#3B82F6",
        "isAccountOwner": member.is_account_owner,
        "isFamilyManager": member.is_family_manager,
        "canManageTasks": can_manage,
        "canApproveRewards": can_manage,
        "canManageFamily": member.is_manager,
        "isActive": True,
        "hasPin": bool(member.pin_hash),
        "joinedDate": iso(member.created_at),
        "tasksCompleted": len(completions),
        "pointsEarned": member.points or 0,
        "currentStreak": current_streak(days, today),
    }


def _org_member(db: DbClient, user: UserRecord, user_id: str, action: str) -> UserRecord:
    target = db.get(UserRecord, user_id)
    if not target:
        raise HTTPException(status_code=404, detail="Target user not found")
    if target.organization_id != user.organization_id:
        raise HTTPException(
            status_code=403, detail=f"Cannot {action} users from other organizations"
        )
    return target


@router.get("/users")
def list_users(user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    members = db.find(UserRecord, organization_id=user.organization_id, order_by="created_at")
    completions = db.find(TaskCompletionRecord, user_id=[m.id for m in members])
    return {
        "users": [
            _member_summary(m, [c for c in completions if c.user_id == m.id]) for m in members
        ]
    }


@router.post("/users", status_code=201)
def create_user(
    payload: UserCreateRequest,
    request: Request,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
    sender: EmailSender = Depends(get_email_sender),
):
    require_manager(user)
    if not payload.name or not payload.role:
        raise HTTPException(status_code=400, detail="Name and role are required")
    if payload.role not in ROLES:
        raise HTTPException(status_code=400, detail="Role must be adult, teen or kid")
    if payload.role == "adult" and not payload.email:
        raise HTTPException(status_code=400, detail="Email is required for adult members")
    if payload.role in ("kid", "teen") and not (payload.pin and PIN_PATTERN.fullmatch(payload.pin)):
        raise HTTPException(status_code=400, detail="4-digit PIN is required for kids and teens")
    if payload.email and db.find_one(UserRecord, email=payload.email.lower()):
        raise HTTPException(status_code=400, detail="An account with this email already exists")

    pin_hash = hash_secret(payload.pin) if payload.pin and PIN_PATTERN.fullmatch(payload.pin) else None
    now = time.time()
    member = UserRecord(
        organization_id=user.organization_id,
        name=payload.name.strip(),
        username=unique_username(db, payload.name),
        role=payload.role,
        email=payload.email.lower() if payload.email else None,
        avatar=payload.avatar or "smile",
        color=payload.color or "#3B82F6",
        is_family_manager=bool(payload.is_family_manager and payload.role == "adult"),
        pin_hash=pin_hash,
        pin_required=pin_hash is not None,
        birthday=payload.birthday,
    )

    age = age_from_birthday(payload.birthday)
    needs_consent = bool(payload.parent_consent and age is not None and age < COPPA_AGE)
    if needs_consent:
        member.coppa_consent_given = True
        member.coppa_consent_date = now
        member.coppa_consent_ip = client_ip(request) or "unknown"
        member.coppa_consent_parent_email = payload.parent_email or user.email

    if member.role == "adult" and member.email:
        member.invitation_token = secrets.token_urlsafe(32)
        member.invitation_token_expiry = now + INVITATION_TTL_SECONDS
        member.invitation_status = "pending"

    member = db.insert(member)

    parent_email = member.coppa_consent_parent_email
    if needs_consent and parent_email:
        org = db.get(OrganizationRecord, user.organization_id)
        try:
            send_parental_consent_email(
                sender,
                parent_email=parent_email,
                parent_name=user.name or "Parent",
                child_name=member.name,
                child_age=age,
                consent_date=now,
                organization_name=org.name if org else None,
            )
        except Exception:
            logger.exception("Failed to send parental consent email for user %s", member.id)

    return {"user": user_payload(member), "message": "User created successfully"}


@router.get("/users/me")
def my_profile(user: UserRecord = Depends(current_user)):
    age = age_from_birthday(user.birthday)
    return {
        "user": {
            "id": user.id,
            "name": user.name,
            "username": user.username,
            "email": user.email,
            "points": user.points,
            "isAccountOwner": user.is_account_owner,
            "isFamilyManager": user.is_family_manager,
            "organizationId": user.organization_id,
            "avatar": user.avatar,
            "color": user.color,
            "role": user.role,
            "birthday": user.birthday,
            "age": age,
            "ageBracket": age_bracket(age),
            "parentConsentGivenAt": iso(user.coppa_consent_date),
        }
    }


@router.get("/user/current")
def current_user_summary(user: UserRecord = Depends(current_user)):
    return {
        "user": {
            "id": user.id,
            "name": user.name or user.username or "Unknown",
            "email": user.email,
            "avatar": user.avatar or "smile",
            "role": user.role or "kid",
            "color": user.color or "#3B82F6",
            "isAccountOwner": user.is_account_owner,
            "isFamilyManager": user.is_family_manager,
            "points": user.points or 0,
            "joinedDate": iso(user.created_at),
        }
    }


@router.get("/users/export")
def export_my_data(user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    """Everything stored about the caller, as a downloadable JSON document."""
    org = db.get(OrganizationRecord, user.organization_id)
    assigned_ids = [a.task_id for a in db.find(TaskAssignmentRecord, user_id=user.id)]
    tasks = db.find(TaskRecord, id=assigned_ids)
    completions = db.find(TaskCompletionRecord, user_id=user.id, order_by="completed_at")
    redemptions = db.find(RedemptionRecord, user_id=user.id, order_by="requested_at")
    achievements = db.find(UserAchievementRecord, user_id=user.id)
    milestones = db.find(MilestoneRecord, user_id=user.id, order_by="created_at")
    preferences = db.find_one(EmailPreferencesRecord, user_id=user.id)
    members = db.find(UserRecord, organization_id=user.organization_id, order_by="created_at")

    exported_at = time.time()
    document = {
        "exportedAt": iso(exported_at),
        "exportType": "GDPR Data Export",
        "user": user_payload(user),
        "organization": (
            {"id": org.id, "name": org.name, "createdAt": iso(org.created_at)} if org else None
        ),
        "familyMembers": [
            {"id": m.id, "name": m.name, "role": m.role, "createdAt": iso(m.created_at)}
            for m in members
        ],
        "tasks": [camelize(t) for t in tasks],
        "completions": [camelize(c) for c in completions],
        "redemptions": [camelize(r) for r in redemptions],
        "achievements": [camelize(a) for a in achievements],
        "milestones": [camelize(m) for m in milestones],
        "emailPreferences": camelize(preferences) if preferences else None,
        "statistics": {
            "totalTasksCompleted": len(completions),
            "totalPointsEarned": user.points or 0,
            "totalRedemptions": len(redemptions),
        },
    }
    filename = (
        f"chorepulse-data-export-{user.username}-{utc_datetime(exported_at).date().isoformat()}.json"
    )
    return Response(
        content=json.dumps(document, indent=2, ensure_ascii=False),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.patch("/users/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdateRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    target = _org_member(db, user, user_id, "update")
    if target.id != user.id and not user.is_manager:
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    changes = payload.provided()
    if {"role", "is_family_manager"} & changes.keys():
        require_owner(user, "Only account owners can change roles")
        if "role" in changes and changes["role"] not in ROLES:
            raise HTTPException(status_code=400, detail="Role must be adult, teen or kid")
    if changes.get("email"):
        changes["email"] = changes["email"].lower()
        existing = db.find_one(UserRecord, email=changes["email"])
        if existing and existing.id != target.id:
            raise HTTPException(status_code=400, detail="An account with this email already exists")
    for key in ("name", "avatar", "color", "role"):
        if key in changes and changes[key] is None:
            del changes[key]

    updated = db.update(UserRecord, target.id, **changes) if changes else target
    return {"user": user_payload(updated), "message": "User updated successfully"}


@router.delete("/users/{user_id}")
def delete_user(user_id: str, user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    require_owner(user, "Only account owners can remove family members")
    target = _org_member(db, user, user_id, "delete")
    if target.id == user.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    if target.is_account_owner and db.count(
        UserRecord, organization_id=user.organization_id, is_account_owner=True
    ) <= 1:
        raise HTTPException(status_code=400, detail="Cannot delete the last account owner")

    for record_type in MEMBER_OWNED:
        db.delete_where(record_type, user_id=target.id)
    db.delete(UserRecord, target.id)
    logger.info("Deleted user %s from organization %s", target.id, target.organization_id)
    return {"message": "User deleted successfully"}


@router.patch("/users/{user_id}/pin")
def update_pin(
    user_id: str,
    payload: PinUpdateRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    target = _org_member(db, user, user_id, "update")
    is_parent = user.is_manager or user.role == "adult"
    allowed = (target.id == user.id and user.role == "teen") or (
        is_parent and target.role in ("kid", "teen")
    )
    if not allowed:
        raise HTTPException(status_code=403, detail="Insufficient permissions to update PIN")
    if not payload.pin or not PIN_PATTERN.fullmatch(payload.pin):
        raise HTTPException(status_code=400, detail="PIN must be exactly 4 digits")

    db.update(UserRecord, target.id, pin_hash=hash_secret(payload.pin), pin_required=True)
    return {"message": "PIN updated successfully"}
