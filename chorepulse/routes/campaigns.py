"""
Campaign email triggers and per-user email preferences.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from chorepulse.auth import current_user, require_manager
from chorepulse.campaigns import (
    CAMPAIGN_TYPES,
    ONBOARDING_CAMPAIGNS,
    already_sent,
    build_campaign_data,
    can_send,
    enqueue_campaign,
    ensure_preferences,
    send_campaign,
)
from chorepulse.db import DbClient, EmailPreferencesRecord, UserRecord
from chorepulse.dependencies import get_db_client, get_email_queue, get_email_sender
from chorepulse.mailer import EmailSender
from chorepulse.queue import EmailQueue
from chorepulse.schemas import CampaignTriggerRequest, EmailPreferencesUpdate
from chorepulse.serializers import camelize

logger = logging.getLogger(__name__)

router = APIRouter(tags=["campaigns"])


@router.post("/campaigns/trigger")
def trigger_campaign(
    payload: CampaignTriggerRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
    sender: EmailSender = Depends(get_email_sender),
    queue: EmailQueue = Depends(get_email_queue),
):
    require_manager(user)
    if not payload.user_id or not payload.campaign_type:
        raise HTTPException(status_code=400, detail="Missing required fields: userId, campaignType")
    if payload.campaign_type not in CAMPAIGN_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown campaign type: {payload.campaign_type}")

    recipient = db.get(UserRecord, payload.user_id)
    if not recipient or recipient.organization_id != user.organization_id:
        raise HTTPException(status_code=404, detail="User not found")
    if not recipient.email:
        raise HTTPException(status_code=400, detail="User has no email address")

    campaign_type = payload.campaign_type
    if not can_send(db, recipient.id, campaign_type):
        return {"message": "User has opted out of this email type", "sent": False}
    if campaign_type in ONBOARDING_CAMPAIGNS and already_sent(db, recipient.id, campaign_type):
        return {"message": "Campaign already sent to this user", "sent": False}

    data = build_campaign_data(db, recipient, campaign_type, payload.custom_data)
    if payload.queue:
        item = enqueue_campaign(db, queue, recipient, campaign_type, data)
        return JSONResponse(
            status_code=202,
            content={
                "success": True,
                "sent": False,
                "queued": True,
                "emailId": item.id,
                "message": f"Campaign {campaign_type} queued for {recipient.email}",
            },
        )

    if not send_campaign(db, sender, recipient, campaign_type, data):
        raise HTTPException(status_code=500, detail="Failed to send email")
    return {
        "success": True,
        "sent": True,
        "message": f"Campaign {campaign_type} sent to {recipient.email}",
    }


@router.get("/email-preferences")
def get_email_preferences(
    user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)
):
    return {"preferences": camelize(ensure_preferences(db, user))}


@router.patch("/email-preferences")
def update_email_preferences(
    payload: EmailPreferencesUpdate,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    changes = {k: v for k, v in payload.provided().items() if v is not None}
    if not changes:
        raise HTTPException(status_code=400, detail="No preferences provided to update")
    prefs = ensure_preferences(db, user)
    prefs = db.update(EmailPreferencesRecord, prefs.id, **changes)
    return {"success": True, "preferences": camelize(prefs)}


@router.post("/email-preferences/unsubscribe")
def unsubscribe(
    token: Optional[str] = Query(default=None),
    db: DbClient = Depends(get_db_client),
):
    if not token:
        raise HTTPException(status_code=400, detail="Missing unsubscribe token")
    prefs = db.find_one(EmailPreferencesRecord, unsubscribe_token=token)
    if not prefs:
        raise HTTPException(status_code=404, detail="Invalid unsubscribe token")
    db.update(EmailPreferencesRecord, prefs.id, unsubscribed_all=True)
    logger.info("User %s unsubscribed from all emails", prefs.user_id)
    return {"success": True, "message": "You have been unsubscribed from all ChorePulse emails."}
