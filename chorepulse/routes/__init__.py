"""
API routers, combined into a single router mounted under the API prefix.
"""

from __future__ import annotations

from fastapi import APIRouter

from chorepulse.routes import (
    achievements,
    ads,
    ai,
    analytics,
    approvals,
    auth,
    calendar,
    campaigns,
    hub,
    invitations,
    organizations,
    rewards,
    task_catalog,
    tasks,
    users,
    weather,
)

router = APIRouter()

router.include_router(auth.router)
# /tasks/templates and /tasks/suggestions must win over /tasks/{task_id}.
router.include_router(task_catalog.router)
router.include_router(tasks.router)
router.include_router(approvals.router)
router.include_router(rewards.router)
router.include_router(achievements.router)
router.include_router(users.router)
router.include_router(organizations.router)
router.include_router(invitations.router)
router.include_router(hub.router)
router.include_router(analytics.router)
router.include_router(calendar.router)
router.include_router(campaigns.router)
router.include_router(weather.router)
router.include_router(ads.router)
router.include_router(ai.router)
