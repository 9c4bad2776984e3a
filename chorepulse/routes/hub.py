"""
Family hub display settings and the at-a-glance family stats.
"""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, HTTPException

from chorepulse.auth import current_user, require_manager
from chorepulse.db import (
    DbClient,
    OrganizationRecord,
    TaskAssignmentRecord,
    TaskCompletionRecord,
    TaskRecord,
    UserRecord,
)
from chorepulse.dependencies import get_db_client
from chorepulse.google_calendar import parse_due_time
from chorepulse.timefmt import round_half_up, start_of_utc_day

router = APIRouter(tags=["hub"])

DEFAULT_HUB_SETTINGS = {
    "showTodayTasks": True,
    "showTomorrowTasks": True,
    "showWeeklyTasks": False,
    "showLeaderboard": True,
    "showFamilyStats": True,
    "showUpcomingEvents": False,
    "showMotivationalQuote": True,
    "showWeather": False,
    "autoRefreshInterval": 60,
    "theme": "light",
}


@router.get("/hub/settings")
def get_hub_settings(user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    require_manager(user)
    org = db.get(OrganizationRecord, user.organization_id)
    return {"settings": (org.hub_settings if org else None) or dict(DEFAULT_HUB_SETTINGS)}


@router.post("/hub/settings")
def save_hub_settings(
    settings: dict,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_manager(user)
    if not db.update(OrganizationRecord, user.organization_id, hub_settings=settings):
        raise HTTPException(status_code=404, detail="Organization not found")
    return {"success": True, "settings": settings}


@router.get("/family/stats")
def family_stats(user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    members = db.find(UserRecord, organization_id=user.organization_id)
    total_points = sum(m.points or 0 for m in members)
    assignments = db.find(TaskAssignmentRecord, user_id=[m.id for m in members])
    tasks = db.find(
        TaskRecord,
        id=list({a.task_id for a in assignments}),
        organization_id=user.organization_id,
        status="active",
    )

    now = time.time()
    today = start_of_utc_day(now)
    completions = db.find(TaskCompletionRecord, task_id=[t.id for t in tasks])
    done_today = {
        c.task_id for c in completions if c.completed_at >= today and c.approved is not False
    }

    completed = 0
    overdue = 0
    for task in tasks:
        if task.id in done_today:
            completed += 1
        elif task.frequency == "daily" and task.due_time:
            hour, minute = parse_due_time(task.due_time)
            if now > today + hour * 3600 + minute * 60:
                overdue += 1

    return {
        "stats": {
            "completionRate": round_half_up(completed / len(tasks) * 100) if tasks else 0,
            "overdueTasks": overdue,
            "completedToday": completed,
            "totalActivePoints": total_points,
            "totalTasks": len(tasks),
            "completedTasks": completed,
        }
    }
