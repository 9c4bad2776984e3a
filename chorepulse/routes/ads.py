"""
Ad configuration for the signed-in member.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from chorepulse.ads import ad_config
from chorepulse.auth import current_user
from chorepulse.config import Settings, get_settings
from chorepulse.db import DbClient, OrganizationRecord, UserRecord
from chorepulse.dependencies import get_db_client

router = APIRouter(tags=["ads"])


@router.get("/ads/config")
def ads_config(
    page: Optional[str] = Query(default=None),
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    org = db.get(OrganizationRecord, user.organization_id)
    return ad_config(settings, user.role, org.subscription_tier if org else None, page)
