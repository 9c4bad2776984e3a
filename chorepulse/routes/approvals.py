"""
Pending approvals queue for managers (task completions and reward requests).
"""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Query

from chorepulse.auth import current_user, require_manager
from chorepulse.db import (
    DbClient,
    RedemptionRecord,
    RewardRecord,
    TaskCompletionRecord,
    TaskRecord,
    UserRecord,
)
from chorepulse.dependencies import get_db_client
from chorepulse.timefmt import iso, time_ago

router = APIRouter(tags=["approvals"])


@router.get("/approvals")
def list_approvals(
    limit: int = Query(default=10, ge=1, le=100),
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_manager(user)
    members = {m.id: m for m in db.find(UserRecord, organization_id=user.organization_id)}
    member_ids = list(members)

    completions = db.find(
        TaskCompletionRecord,
        user_id=member_ids,
        requires_approval=True,
        approved=None,
        order_by="completed_at",
        descending=True,
        limit=limit,
    )
    tasks = {t.id: t for t in db.find(TaskRecord, id=[c.task_id for c in completions])}
    redemptions = db.find(
        RedemptionRecord,
        user_id=member_ids,
        status="pending",
        order_by="requested_at",
        descending=True,
        limit=limit,
    )
    rewards = {r.id: r for r in db.find(RewardRecord, id=[r.reward_id for r in redemptions])}

    items = []
    for c in completions:
        task = tasks.get(c.task_id)
        member = members[c.user_id]
        items.append(
            {
                "id": c.id,
                "type": "task",
                "memberName": member.name or member.username,
                "memberAvatar": member.avatar,
                "title": task.name if task else "Unknown Task",
                "points": task.points if task else 0,
                "requestedAt": c.completed_at,
                "notes": c.notes,
                "photoUrl": c.photo_url,
                "requiresPhoto": task.requires_photo if task else False,
            }
        )
    for r in redemptions:
        reward = rewards.get(r.reward_id)
        member = members[r.user_id]
        items.append(
            {
                "id": r.id,
                "type": "reward",
                "memberName": member.name or member.username,
                "memberAvatar": member.avatar,
                "title": reward.name if reward else "Unknown Reward",
                "points": r.points_spent,
                "requestedAt": r.requested_at,
                "notes": r.notes,
                "icon": reward.icon if reward else None,
            }
        )

    items.sort(key=lambda item: item["requestedAt"], reverse=True)
    items = items[:limit]
    now = time.time()
    for item in items:
        item["timeAgo"] = time_ago(item["requestedAt"], now)
        item["requestedBy"] = item["memberName"]
        item["requestedAt"] = iso(item["requestedAt"])
    return {"approvals": items, "count": len(items)}
