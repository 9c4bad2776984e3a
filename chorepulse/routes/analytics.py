"""
Family analytics dashboard.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from chorepulse.analytics import compute_analytics
from chorepulse.auth import current_user
from chorepulse.db import DbClient, TaskCompletionRecord, TaskRecord, UserRecord
from chorepulse.dependencies import get_db_client

router = APIRouter(tags=["analytics"])


@router.get("/analytics")
def family_analytics(user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    members = db.find(UserRecord, organization_id=user.organization_id, order_by="created_at")
    tasks = db.find(TaskRecord, organization_id=user.organization_id)
    completions = db.find(TaskCompletionRecord, user_id=[m.id for m in members])
    return compute_analytics(members, tasks, completions)
