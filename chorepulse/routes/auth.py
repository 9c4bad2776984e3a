"""
Sign-up, sign-in (email/password and family-code PIN) and sign-out.
"""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Response

from chorepulse.auth import (
    clear_session_cookie,
    current_user,
    hash_secret,
    issue_token,
    set_session_cookie,
    upgrade_hash,
    verify_secret,
)
from chorepulse.db import DbClient, OrganizationRecord, UserRecord
from chorepulse.dependencies import get_db_client
from chorepulse.routes.organizations import generate_family_code, unique_username
from chorepulse.schemas import PinLoginRequest, SigninRequest, SignupRequest
from chorepulse.serializers import organization_payload, user_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

TRIAL_SECONDS = 14 * 86400


def _session_response(response: Response, user: UserRecord, **extra) -> dict:
    token = issue_token(user)
    set_session_cookie(response, token)
    return {"user": user_payload(user), "token": token, **extra}


@router.post("/signup", status_code=201)
def signup(payload: SignupRequest, response: Response, db: DbClient = Depends(get_db_client)):
    if not payload.email or not payload.password or not payload.name or not payload.family_name:
        raise HTTPException(
            status_code=400,
            detail="Missing required fields: email, password, name, familyName",
        )
    if len(payload.password) < 8:
        raise HTTPException(
            status_code=400, detail="Password must be at least 8 characters long"
        )
    email = payload.email.strip().lower()
    if db.find_one(UserRecord, email=email):
        raise HTTPException(status_code=400, detail="An account with this email already exists")

    now = time.time()
    org = db.insert(
        OrganizationRecord(
            name=payload.family_name.strip(),
            current_family_code=generate_family_code(db),
            family_code_generated_at=now,
            family_code_version=1,
            trial_ends_at=now + TRIAL_SECONDS,
        )
    )
    user = db.insert(
        UserRecord(
            organization_id=org.id,
            name=payload.name.strip(),
            username=unique_username(db, payload.name),
            role="adult",
            email=email,
            is_account_owner=True,
            password_hash=hash_secret(payload.password),
        )
    )
    logger.info("Created organization %s for %s", org.id, email)
    return _session_response(response, user, organization=organization_payload(org))


@router.post("/signin")
def signin(payload: SigninRequest, response: Response, db: DbClient = Depends(get_db_client)):
    email = (payload.email or "").strip().lower()
    user = db.find_one(UserRecord, email=email) if email else None
    if not user or not verify_secret(user.password_hash, payload.password or ""):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    upgrade_hash(db, user, "password_hash", payload.password)
    return _session_response(response, user)


@router.post("/pin-login")
def pin_login(payload: PinLoginRequest, response: Response, db: DbClient = Depends(get_db_client)):
    invalid = HTTPException(status_code=401, detail="Invalid family code, username, or PIN")
    if not payload.family_code or not payload.username or not payload.pin:
        raise invalid
    org = db.find_one(
        OrganizationRecord, current_family_code=payload.family_code.strip().upper()
    )
    if not org:
        raise invalid
    user = db.find_one(
        UserRecord, organization_id=org.id, username=payload.username.strip().lower()
    )
    if not user or not user.pin_hash or not verify_secret(user.pin_hash, payload.pin):
        raise invalid
    upgrade_hash(db, user, "pin_hash", payload.pin)
    return _session_response(response, user)


@router.post("/signout")
def signout(response: Response):
    clear_session_cookie(response)
    return {"success": True}


@router.get("/user")
def auth_user(user: UserRecord = Depends(current_user)):
    return {"user": user_payload(user)}
