"""
Invitation links for adult family members.
"""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from chorepulse.auth import hash_secret, issue_token, set_session_cookie
from chorepulse.db import DbClient, OrganizationRecord, UserRecord
from chorepulse.dependencies import get_db_client
from chorepulse.schemas import InvitationAcceptRequest
from chorepulse.serializers import user_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invitations", tags=["invitations"])


def _pending_invitee(db: DbClient, token: str, org_id: str) -> UserRecord:
    user = db.find_one(UserRecord, invitation_token=token, organization_id=org_id)
    if not user:
        raise HTTPException(status_code=404, detail="Invalid invitation token")
    if user.invitation_status == "accepted" or user.password_hash:
        raise HTTPException(status_code=400, detail="This invitation has already been accepted")
    if user.invitation_token_expiry is not None and user.invitation_token_expiry < time.time():
        raise HTTPException(status_code=400, detail="This invitation has expired")
    return user


@router.get("/verify")
def verify_invitation(
    token: str | None = Query(default=None),
    org: str | None = Query(default=None),
    db: DbClient = Depends(get_db_client),
):
    if not token or not org:
        raise HTTPException(status_code=400, detail="Missing token or organization ID")
    user = _pending_invitee(db, token, org)
    organization = db.get(OrganizationRecord, org)
    inviter = db.find_one(UserRecord, organization_id=org, is_account_owner=True)
    return {
        "valid": True,
        "userName": user.name,
        "userEmail": user.email,
        "userRole": user.role,
        "familyName": organization.name if organization else None,
        "inviterName": inviter.name if inviter else None,
    }


@router.post("/accept")
def accept_invitation(
    payload: InvitationAcceptRequest,
    response: Response,
    db: DbClient = Depends(get_db_client),
):
    if not payload.token or not payload.org_id or not payload.password:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if len(payload.password) < 8:
        raise HTTPException(
            status_code=400, detail="Password must be at least 8 characters long"
        )
    user = _pending_invitee(db, payload.token, payload.org_id)
    if not user.email:
        raise HTTPException(
            status_code=400, detail="No email address associated with this invitation"
        )
    user = db.update(
        UserRecord,
        user.id,
        password_hash=hash_secret(payload.password),
        invitation_status="accepted",
        invitation_token=None,
        invitation_token_expiry=None,
    )
    logger.info("User %s accepted their invitation", user.id)
    token = issue_token(user)
    set_session_cookie(response, token)
    return {
        "message": "Invitation accepted successfully",
        "user": user_payload(user),
        "token": token,
    }
