"""
Achievement progress, unlock notifications and personal milestones.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chorepulse.auth import current_user
from chorepulse.db import (
    AchievementDefinitionRecord,
    DbClient,
    MilestoneRecord,
    UserAchievementRecord,
    UserRecord,
)
from chorepulse.dependencies import get_db_client
from chorepulse.schemas import AchievementAckRequest, MilestoneCreateRequest
from chorepulse.timefmt import iso, round_half_up

router = APIRouter(prefix="/achievements", tags=["achievements"])

TIERS = ("bronze", "silver", "gold", "platinum")


def _achievement_payload(
    definition: AchievementDefinitionRecord, progress: Optional[UserAchievementRecord]
) -> dict:
    return {
        "id": definition.id,
        "key": definition.key,
        "name": definition.name,
        "description": definition.description,
        "icon": definition.icon,
        "category": definition.category,
        "tier": definition.tier,
        "progress": progress.progress if progress else 0,
        "maxProgress": definition.max_progress,
        "isUnlocked": bool(progress and progress.is_unlocked),
        "unlockedDate": iso(progress.unlocked_at) if progress else None,
        "points": definition.points_reward,
    }


@router.get("")
def list_achievements(
    category: Optional[str] = Query(default=None),
    status: str = Query(default="all"),
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    filters = {"is_active": True}
    if category and category != "all":
        filters["category"] = category
    definitions = db.find(AchievementDefinitionRecord, order_by="sort_order", **filters)
    progress = {
        ua.achievement_id: ua for ua in db.find(UserAchievementRecord, user_id=user.id)
    }
    achievements = [_achievement_payload(d, progress.get(d.id)) for d in definitions]
    unlocked = [a for a in achievements if a["isUnlocked"]]

    if status == "unlocked":
        visible = unlocked
    elif status == "locked":
        visible = [a for a in achievements if not a["isUnlocked"]]
    else:
        visible = achievements

    total = len(achievements)
    return {
        "achievements": visible,
        "summary": {
            "total": total,
            "unlocked": len(unlocked),
            "locked": total - len(unlocked),
            "completionPercentage": round_half_up(len(unlocked) / total * 100) if total else 0,
            "totalPoints": sum(a["points"] or 0 for a in unlocked),
            "currentUserPoints": user.points,
            "tierBreakdown": {
                tier: sum(1 for a in unlocked if a["tier"] == tier) for tier in TIERS
            },
        },
    }


@router.get("/check-unlocked")
def unnotified_achievements(
    user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)
):
    pending = db.find(UserAchievementRecord, user_id=user.id, is_unlocked=True, notified=False)
    definitions = {
        d.id: d
        for d in db.find(AchievementDefinitionRecord, id=[p.achievement_id for p in pending])
    }
    achievements = [
        _achievement_payload(definitions[p.achievement_id], p)
        for p in pending
        if p.achievement_id in definitions
    ]
    return {"achievements": achievements, "count": len(achievements)}


@router.post("/check-unlocked")
def mark_achievements_notified(
    payload: AchievementAckRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    if not isinstance(payload.achievement_ids, list):
        raise HTTPException(status_code=400, detail="achievementIds must be an array")
    marked = 0
    for record in db.find(
        UserAchievementRecord, user_id=user.id, achievement_id=payload.achievement_ids
    ):
        db.update(UserAchievementRecord, record.id, notified=True)
        marked += 1
    return {"success": True, "marked": marked}


def _milestone_payload(milestone: MilestoneRecord) -> dict:
    return {
        "id": milestone.id,
        "title": milestone.title,
        "description": milestone.description,
        "icon": milestone.icon,
        "date": iso(milestone.created_at),
        "type": milestone.milestone_type,
        "referenceId": milestone.reference_id,
    }


@router.get("/milestones")
def list_milestones(
    limit: int = Query(default=10, ge=1, le=100),
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    milestones = db.find(
        MilestoneRecord, user_id=user.id, order_by="created_at", descending=True, limit=limit
    )
    return {"milestones": [_milestone_payload(m) for m in milestones]}


@router.post("/milestones", status_code=201)
def create_milestone(
    payload: MilestoneCreateRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    if not payload.title or not payload.type:
        raise HTTPException(status_code=400, detail="Missing required fields: title, type")
    milestone = db.insert(
        MilestoneRecord(
            user_id=user.id,
            title=payload.title,
            milestone_type=payload.type,
            description=payload.description,
            icon=payload.icon or "🎯",
            reference_id=payload.reference_id,
        )
    )
    return {"message": "Milestone created", "milestone": _milestone_payload(milestone)}
