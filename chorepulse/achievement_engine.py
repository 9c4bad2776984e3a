"""
Recompute achievement progress after points or redemptions change.
"""

from __future__ import annotations

import logging
import time

from chorepulse.db import (
    AchievementDefinitionRecord,
    DbClient,
    MilestoneRecord,
    RedemptionRecord,
    TaskCompletionRecord,
    UserAchievementRecord,
)

logger = logging.getLogger(__name__)

REDEEMED_STATUSES = ("pending", "approved", "fulfilled")


def user_totals(db: DbClient, user_id: str) -> dict[str, int]:
    completions = db.find(TaskCompletionRecord, user_id=user_id, approved=True)
    return {
        "tasks_completed": len(completions),
        "points_earned": sum(c.points_awarded or 0 for c in completions),
        "rewards_redeemed": db.count(
            RedemptionRecord, user_id=user_id, status=list(REDEEMED_STATUSES)
        ),
    }


def refresh_achievements(db: DbClient, user_id: str) -> list[AchievementDefinitionRecord]:
    """
    Update every active definition's progress for the user and unlock the ones
    that reached max_progress. Returns the newly unlocked definitions.
    """
    totals = user_totals(db, user_id)
    existing = {
        ua.achievement_id: ua for ua in db.find(UserAchievementRecord, user_id=user_id)
    }
    unlocked = []
    for definition in db.find(AchievementDefinitionRecord, is_active=True):
        progress = min(totals.get(definition.requirement_type, 0), definition.max_progress)
        current = existing.get(definition.id)
        if current is None:
            current = db.insert(
                UserAchievementRecord(user_id=user_id, achievement_id=definition.id)
            )
        if current.is_unlocked:
            continue

        if progress < definition.max_progress:
            if progress != current.progress:
                db.update(UserAchievementRecord, current.id, progress=progress)
            continue

        now = time.time()
        db.update(
            UserAchievementRecord,
            current.id,
            progress=progress,
            is_unlocked=True,
            unlocked_at=now,
            notified=False,
        )
        if definition.points_reward:
            db.adjust_points(user_id, definition.points_reward)
        db.insert(
            MilestoneRecord(
                user_id=user_id,
                title=f"Unlocked {definition.name}",
                description=definition.description,
                icon=definition.icon or "🏆",
                milestone_type="achievement",
                reference_id=definition.id,
                created_at=now,
            )
        )
        logger.info("User %s unlocked achievement %s", user_id, definition.key)
        unlocked.append(definition)
    return unlocked
