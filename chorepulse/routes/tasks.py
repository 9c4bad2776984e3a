"""
Task CRUD, completion, approval and claiming.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from chorepulse.achievement_engine import refresh_achievements
from chorepulse.auth import current_user, require_manager, require_owner
from chorepulse.calendar_sync import sync_users_quietly
from chorepulse.db import (
    DbClient,
    TaskAssignmentRecord,
    TaskCompletionRecord,
    TaskRecord,
    UserRecord,
)
from chorepulse.dependencies import get_db_client, get_storage_client
from chorepulse.schemas import (
    CompletionReviewRequest,
    PhotoUploadRequest,
    TaskCompleteRequest,
    TaskCreateRequest,
    TaskUpdateRequest,
)
from chorepulse.serializers import camelize, task_payload
from chorepulse.storage import StorageClient
from chorepulse.timefmt import iso, start_of_utc_day

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])

CLAIM_SECONDS = 24 * 3600


def _org_task(db: DbClient, task_id: str, user: UserRecord, detail: str = "Task not found") -> TaskRecord:
    task = db.get(TaskRecord, task_id)
    if not task or task.organization_id != user.organization_id:
        raise HTTPException(status_code=404, detail=detail)
    return task


def _validate_assignees(db: DbClient, user: UserRecord, user_ids: list[str]) -> list[str]:
    unique = list(dict.fromkeys(user_ids))
    if not unique:
        return []
    members = db.find(UserRecord, id=unique, organization_id=user.organization_id)
    if len(members) != len(unique):
        raise HTTPException(status_code=400, detail="Invalid assignees")
    return unique


def _active_claim(assignment: TaskAssignmentRecord, now: float) -> bool:
    return assignment.is_claim and (assignment.claim_expires_at or 0) > now


def enrich_tasks(db: DbClient, tasks: list[TaskRecord], user: UserRecord) -> list[dict]:
    """Attach assignees, completions and the caller's claim state to each task."""
    task_ids = [t.id for t in tasks]
    assignments = db.find(TaskAssignmentRecord, task_id=task_ids)
    completions = db.find(
        TaskCompletionRecord, task_id=task_ids, order_by="completed_at", descending=True
    )
    names = {
        u.id: u.name
        for u in db.find(UserRecord, id=list({a.user_id for a in assignments}))
    }
    now = time.time()
    today = start_of_utc_day(now)

    result = []
    for task in tasks:
        own_assignments = [a for a in assignments if a.task_id == task.id]
        live = [a for a in own_assignments if not a.is_claim or _active_claim(a, now)]
        own_completions = [c for c in completions if c.task_id == task.id]
        claims = [a for a in live if a.is_claim]
        mine = next((a for a in claims if a.user_id == user.id), None)

        payload = task_payload(task)
        payload.update(
            {
                "assignedTo": [a.user_id for a in live],
                "assignedToNames": [names.get(a.user_id, "Unknown") for a in live],
                "assignments": [
                    {
                        "userId": a.user_id,
                        "userName": names.get(a.user_id, "Unknown"),
                        "isClaim": a.is_claim,
                        "claimExpiresAt": iso(a.claim_expires_at),
                    }
                    for a in live
                ],
                "completions": [camelize(c) for c in own_completions],
                "lastCompletion": camelize(own_completions[0]) if own_completions else None,
                "completedToday": any(
                    c.user_id == user.id and c.completed_at >= today for c in own_completions
                ),
                "isClaimed": mine is not None,
                "isClaimedByOther": any(a.user_id != user.id for a in claims),
                "claimExpiresAt": iso(claims[0].claim_expires_at) if claims else None,
            }
        )
        result.append(payload)
    return result


def _credit_points(db: DbClient, user_id: str, points: int) -> None:
    if points:
        if db.adjust_points(user_id, points) is None:
            logger.error("Failed to credit %s points to user %s", points, user_id)
    refresh_achievements(db, user_id)


@router.get("")
def list_tasks(
    scope: str = Query(default="all"),
    category: Optional[str] = Query(default=None),
    status: str = Query(default="active"),
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    filters = {"organization_id": user.organization_id, "status": status}
    if category and category != "all":
        filters["category"] = category
    tasks = db.find(TaskRecord, order_by="created_at", descending=True, **filters)
    payloads = enrich_tasks(db, tasks, user)
    if scope == "my":
        payloads = [p for p in payloads if user.id in p["assignedTo"]]
    return {"tasks": payloads}


@router.post("", status_code=201)
def create_task(
    payload: TaskCreateRequest,
    background_tasks: BackgroundTasks,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_manager(user, "Insufficient permissions to create tasks")
    if not payload.name or not payload.category or not payload.frequency or payload.points is None:
        raise HTTPException(
            status_code=400,
            detail="Missing required fields: name, category, frequency, points",
        )
    if payload.points < 0:
        raise HTTPException(status_code=400, detail="Points must be a non-negative number")
    assignees = _validate_assignees(db, user, payload.assign_to)

    task = db.insert(
        TaskRecord(
            organization_id=user.organization_id,
            name=payload.name.strip(),
            description=payload.description,
            category=payload.category,
            frequency=payload.frequency,
            points=int(payload.points),
            due_time=payload.due_time,
            requires_photo=payload.requires_photo,
            requires_approval=payload.requires_approval,
            recurrence_interval=payload.recurrence_interval,
            recurrence_day_of_week=payload.recurrence_day_of_week,
            created_by=user.id,
        )
    )
    for assignee in assignees:
        db.insert(TaskAssignmentRecord(task_id=task.id, user_id=assignee))
    background_tasks.add_task(sync_users_quietly, db, assignees)

    return {
        "task": enrich_tasks(db, [task], user)[0],
        "message": "Task created successfully",
    }


@router.post("/completions/{completion_id}/approve")
def review_completion(
    completion_id: str,
    payload: CompletionReviewRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_manager(user, "Only account owners and family managers can approve tasks")
    if not isinstance(payload.approved, bool):
        raise HTTPException(status_code=400, detail="Missing required field: approved (boolean)")
    completion = db.get(TaskCompletionRecord, completion_id)
    if not completion:
        raise HTTPException(status_code=404, detail="Completion not found")
    task = db.get(TaskRecord, completion.task_id)
    if not task or task.organization_id != user.organization_id:
        raise HTTPException(status_code=403, detail="Access denied")
    if not completion.requires_approval:
        raise HTTPException(status_code=400, detail="This completion does not require approval")
    if completion.approved is not None:
        raise HTTPException(status_code=400, detail="This completion has already been reviewed")

    points = task.points if payload.approved else 0
    completion = db.update(
        TaskCompletionRecord,
        completion.id,
        approved=payload.approved,
        approved_by=user.id,
        approved_at=time.time(),
        approval_notes=payload.notes,
        points_awarded=points,
    )
    if payload.approved:
        _credit_points(db, completion.user_id, points)
        message = f"Task approved! {points} points awarded."
    else:
        message = "Task rejected."
    return {"completion": camelize(completion), "message": message, "pointsAwarded": points}


@router.get("/{task_id}")
def get_task(task_id: str, user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    task = _org_task(db, task_id, user)
    return {"task": enrich_tasks(db, [task], user)[0]}


@router.patch("/{task_id}")
def update_task(
    task_id: str,
    payload: TaskUpdateRequest,
    background_tasks: BackgroundTasks,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_manager(user, "Insufficient permissions to update tasks")
    task = _org_task(db, task_id, user)
    changes = payload.provided()
    assign_to = changes.pop("assign_to", None)
    if "points" in changes:
        if changes["points"] is None or changes["points"] < 0:
            raise HTTPException(status_code=400, detail="Points must be a non-negative number")
        changes["points"] = int(changes["points"])

    previous = {a.user_id for a in db.find(TaskAssignmentRecord, task_id=task.id)}
    if assign_to is not None:
        assignees = _validate_assignees(db, user, assign_to)
        db.delete_where(TaskAssignmentRecord, task_id=task.id, is_claim=False)
        for assignee in assignees:
            db.insert(TaskAssignmentRecord(task_id=task.id, user_id=assignee))

    task = db.update(TaskRecord, task.id, updated_at=time.time(), **changes)
    current = {a.user_id for a in db.find(TaskAssignmentRecord, task_id=task.id)}
    background_tasks.add_task(sync_users_quietly, db, previous | current)
    return {
        "task": enrich_tasks(db, [task], user)[0],
        "message": "Task updated successfully",
    }


@router.delete("/{task_id}")
def delete_task(
    task_id: str,
    background_tasks: BackgroundTasks,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_owner(user, "Only account owners can delete tasks")
    task = _org_task(db, task_id, user)
    former = {a.user_id for a in db.find(TaskAssignmentRecord, task_id=task.id)}
    db.delete_where(TaskAssignmentRecord, task_id=task.id)
    db.delete_where(TaskCompletionRecord, task_id=task.id)
    db.delete(TaskRecord, task.id)
    background_tasks.add_task(sync_users_quietly, db, former)
    return {"message": "Task deleted successfully"}


@router.post("/{task_id}/complete", status_code=201)
def complete_task(
    task_id: str,
    payload: TaskCompleteRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    task = _org_task(db, task_id, user)
    if task.requires_photo and not payload.photo_url:
        raise HTTPException(status_code=400, detail="This task requires a photo")

    points = 0 if task.requires_approval else task.points
    completion = db.insert(
        TaskCompletionRecord(
            task_id=task.id,
            user_id=user.id,
            photo_url=payload.photo_url,
            notes=payload.notes,
            requires_approval=task.requires_approval,
            approved=None if task.requires_approval else True,
            points_awarded=points,
        )
    )
    claim = db.find_one(TaskAssignmentRecord, task_id=task.id, user_id=user.id, is_claim=True)
    if claim:
        db.update(TaskAssignmentRecord, claim.id, is_claim=False, claim_expires_at=None)

    if task.requires_approval:
        message = "Task submitted for approval!"
    else:
        _credit_points(db, user.id, points)
        message = f"Task completed! You earned {points} points!"
    return {"completion": camelize(completion), "message": message, "pointsAwarded": points}


@router.post("/{task_id}/photo-upload-url")
def photo_upload_url(
    task_id: str,
    payload: PhotoUploadRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    task = _org_task(db, task_id, user)
    filename = re.sub(r"[^A-Za-z0-9._-]", "_", payload.filename) or "photo.jpg"
    path = f"task-photos/{user.organization_id}/{task.id}/{uuid.uuid4().hex}-{filename}"
    return {
        "uploadUrl": storage.presign_put(path, content_type=payload.content_type),
        "path": path,
        "photoUrl": storage.public_url(path),
    }


@router.post("/{task_id}/claim", status_code=201)
def claim_task(
    task_id: str,
    background_tasks: BackgroundTasks,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    task = _org_task(db, task_id, user, detail="Task not found in your organization")
    if task.status != "active":
        raise HTTPException(status_code=400, detail="Task is not active")

    now = time.time()
    assignments = db.find(TaskAssignmentRecord, task_id=task.id)
    live = [a for a in assignments if not a.is_claim or _active_claim(a, now)]
    if any(a.user_id == user.id for a in live):
        raise HTTPException(status_code=400, detail="You have already claimed this task")
    if live:
        raise HTTPException(
            status_code=400, detail="This task has already been claimed by someone else"
        )
    for assignment in assignments:
        if assignment.is_claim:
            db.delete(TaskAssignmentRecord, assignment.id)

    claim = db.insert(
        TaskAssignmentRecord(
            task_id=task.id,
            user_id=user.id,
            is_claim=True,
            claim_expires_at=now + CLAIM_SECONDS,
            assigned_at=now,
        )
    )
    background_tasks.add_task(sync_users_quietly, db, [user.id])
    return {
        "claim": camelize(claim),
        "message": "Task claimed! You have 24 hours to complete it.",
        "expiresAt": iso(claim.claim_expires_at),
    }


@router.delete("/{task_id}/claim")
def unclaim_task(
    task_id: str,
    background_tasks: BackgroundTasks,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    task = _org_task(db, task_id, user, detail="Task not found in your organization")
    removed = db.delete_where(TaskAssignmentRecord, task_id=task.id, user_id=user.id, is_claim=True)
    if not removed:
        raise HTTPException(status_code=404, detail="No active claim found")
    background_tasks.add_task(sync_users_quietly, db, [user.id])
    return {"message": "Task unclaimed successfully"}
