"""
Task templates and household-based task suggestions.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chorepulse.auth import current_user
from chorepulse.db import DbClient, OrganizationRecord, TaskRecord, TaskTemplateRecord, UserRecord
from chorepulse.dependencies import get_db_client
from chorepulse.suggestions import Household, household_context, suggest_tasks

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("/templates")
def task_templates(
    category: Optional[str] = Query(default=None),
    age_group: Optional[str] = Query(default=None, alias="ageGroup"),
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    filters = {"is_system": True}
    if category and category != "all":
        filters["category"] = category
    templates = db.find(TaskTemplateRecord, order_by="popularity", descending=True, **filters)
    if age_group:
        templates = [t for t in templates if age_group in (t.age_appropriate or [])]
    return {
        "templates": [
            {
                "id": t.id,
                "name": t.name,
                "description": t.description,
                "category": t.category,
                "emoji": t.emoji,
                "defaultPoints": t.default_points,
                "defaultFrequency": t.default_frequency,
                "ageAppropriate": t.age_appropriate,
                "popularity": t.popularity,
            }
            for t in templates
        ]
    }


@router.get("/suggestions")
def task_suggestions(user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    org = db.get(OrganizationRecord, user.organization_id)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    tasks = db.find(TaskRecord, organization_id=org.id)
    members = db.find(UserRecord, organization_id=org.id)
    household = Household(
        org=org,
        task_names={t.name.lower() for t in tasks},
        categories={t.category for t in tasks},
        roles={m.role for m in members},
    )
    return {
        "suggestions": suggest_tasks(household),
        "householdContext": household_context(org),
    }
