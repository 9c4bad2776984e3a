"""
Rewards catalog, redemption requests and their review.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chorepulse.achievement_engine import refresh_achievements
from chorepulse.auth import current_user, require_manager
from chorepulse.db import (
    DbClient,
    RedemptionRecord,
    RewardRecord,
    RewardTemplateRecord,
    UserRecord,
)
from chorepulse.dependencies import get_db_client
from chorepulse.reward_ranking import rank_templates, redemption_counts
from chorepulse.schemas import RedeemRequest, RedemptionActionRequest, RewardCreateRequest
from chorepulse.serializers import camelize
from chorepulse.timefmt import iso, relative_date, start_of_utc_month

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rewards", tags=["rewards"])

MONTHLY_LIMIT_STATUSES = ("pending", "approved", "fulfilled")
REVIEW_ACTIONS = ("approve", "deny", "fulfill")


def reward_payload(reward: RewardRecord) -> dict:
    payload = camelize(reward)
    payload["available"] = reward.status == "active" and (
        reward.stock_quantity is None or reward.stock_quantity > 0
    )
    return payload


@router.get("")
def list_rewards(user: UserRecord = Depends(current_user), db: DbClient = Depends(get_db_client)):
    rewards = db.find(RewardRecord, organization_id=user.organization_id, status="active")
    rewards.sort(key=lambda r: (r.category, r.points))
    return {"rewards": [reward_payload(r) for r in rewards]}


@router.post("", status_code=201)
def create_reward(
    payload: RewardCreateRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_manager(user, "Insufficient permissions to create rewards")
    if not payload.name or not payload.category or payload.points is None:
        raise HTTPException(status_code=400, detail="Missing required fields: name, category, points")
    if payload.points < 0:
        raise HTTPException(status_code=400, detail="Points must be a non-negative number")
    reward = db.insert(
        RewardRecord(
            organization_id=user.organization_id,
            name=payload.name.strip(),
            description=payload.description,
            category=payload.category,
            points=int(payload.points),
            icon=payload.icon or "🎁",
            stock_quantity=payload.stock_quantity,
            max_per_month=payload.max_per_month,
            age_restriction=payload.age_restriction,
            requires_approval=payload.requires_approval,
            created_by=user.id,
        )
    )
    return {"reward": reward_payload(reward), "message": "Reward created successfully"}


@router.get("/templates")
def reward_templates(
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    filters = {}
    if category and category != "all":
        filters["category"] = category
    templates = db.find(RewardTemplateRecord, **filters)
    if search:
        needle = search.lower()
        templates = [
            t
            for t in templates
            if needle in t.name.lower() or needle in (t.description or "").lower()
        ]

    org_rewards = {r.id: r.name for r in db.find(RewardRecord, organization_id=user.organization_id)}
    redeemed = db.find(
        RedemptionRecord, reward_id=list(org_rewards), status=["approved", "fulfilled"]
    )
    counts = redemption_counts(org_rewards[r.reward_id] for r in redeemed)
    ranked, meta = rank_templates(templates, counts)
    return {"templates": ranked, "meta": meta}


@router.get("/redemptions")
def list_redemptions(
    scope: str = Query(default="my"),
    status: Optional[str] = Query(default=None),
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    filters = {"organization_id": user.organization_id}
    if scope == "my":
        filters["user_id"] = user.id
    elif scope == "all":
        require_manager(user, "Insufficient permissions to view all redemptions")
    else:
        raise HTTPException(status_code=400, detail="Invalid scope parameter")
    if status and status != "all":
        filters["status"] = status

    redemptions = db.find(RedemptionRecord, order_by="requested_at", descending=True, **filters)
    rewards = {r.id: r for r in db.find(RewardRecord, id=[r.reward_id for r in redemptions])}
    users = {u.id: u for u in db.find(UserRecord, id=[r.user_id for r in redemptions])}
    now = time.time()
    items = []
    for r in redemptions:
        reward = rewards.get(r.reward_id)
        requester = users.get(r.user_id)
        items.append(
            {
                "id": r.id,
                "rewardId": r.reward_id,
                "rewardName": reward.name if reward else "Unknown Reward",
                "rewardIcon": reward.icon if reward else "🎁",
                "points": r.points_spent,
                "requestedBy": requester.name if requester else "Unknown",
                "requestedById": r.user_id,
                "requestedAt": relative_date(r.requested_at, now),
                "status": r.status,
                "notes": r.notes,
                "adminNotes": r.admin_notes,
                "reviewedAt": iso(r.reviewed_at),
                "fulfilledAt": iso(r.fulfilled_at),
            }
        )
    return {"redemptions": items}


@router.patch("/redemptions/{redemption_id}")
def review_redemption(
    redemption_id: str,
    payload: RedemptionActionRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    require_manager(user, "Only account owners and family managers can review reward requests")
    if payload.action not in REVIEW_ACTIONS:
        raise HTTPException(status_code=400, detail='Invalid action. Must be "approve" or "deny"')
    redemption = db.get(RedemptionRecord, redemption_id)
    if not redemption:
        raise HTTPException(status_code=404, detail="Redemption request not found")
    if redemption.organization_id != user.organization_id:
        raise HTTPException(status_code=403, detail="Access denied")

    now = time.time()
    if payload.action == "fulfill":
        if redemption.status != "approved":
            if redemption.status == "pending":
                raise HTTPException(status_code=400, detail="Only approved requests can be fulfilled")
            raise HTTPException(
                status_code=400, detail=f"This request has already been {redemption.status}"
            )
        redemption = db.update(
            RedemptionRecord,
            redemption.id,
            status="fulfilled",
            fulfilled_at=now,
            admin_notes=payload.admin_notes or redemption.admin_notes,
        )
        return {"redemption": camelize(redemption), "message": "Reward marked as fulfilled."}

    if redemption.status != "pending":
        raise HTTPException(
            status_code=400, detail=f"This request has already been {redemption.status}"
        )

    if payload.action == "deny":
        redemption = db.update(
            RedemptionRecord,
            redemption.id,
            status="denied",
            reviewed_at=now,
            reviewed_by=user.id,
            admin_notes=payload.admin_notes,
        )
        return {"redemption": camelize(redemption), "message": "Reward request denied."}

    requester = db.get(UserRecord, redemption.user_id)
    if not requester or requester.points < redemption.points_spent:
        raise HTTPException(
            status_code=400, detail="User no longer has enough points for this reward"
        )
    db.update(
        RedemptionRecord,
        redemption.id,
        status="approved",
        reviewed_at=now,
        reviewed_by=user.id,
        admin_notes=payload.admin_notes,
    )
    if db.adjust_points(requester.id, -redemption.points_spent) is None:
        logger.error("Point deduction failed for redemption %s", redemption.id)
        db.update(
            RedemptionRecord,
            redemption.id,
            status="pending",
            reviewed_at=None,
            reviewed_by=None,
        )
        raise HTTPException(status_code=500, detail="Failed to deduct points")
    refresh_achievements(db, requester.id)
    return {
        "redemption": camelize(db.get(RedemptionRecord, redemption.id)),
        "message": f"Reward approved! {redemption.points_spent} points deducted from {requester.name}.",
    }


@router.post("/{reward_id}/redeem", status_code=201)
def redeem_reward(
    reward_id: str,
    payload: RedeemRequest,
    user: UserRecord = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    reward = db.get(RewardRecord, reward_id)
    if not reward or reward.organization_id != user.organization_id:
        raise HTTPException(status_code=404, detail="Reward not found")
    if reward.status != "active":
        raise HTTPException(status_code=400, detail="This reward is no longer available")
    if user.points < reward.points:
        raise HTTPException(status_code=400, detail="Insufficient points")
    if reward.stock_quantity is not None and reward.stock_quantity <= 0:
        raise HTTPException(status_code=400, detail="This reward is out of stock")
    if reward.max_per_month:
        month_start = start_of_utc_month()
        this_month = [
            r
            for r in db.find(
                RedemptionRecord,
                reward_id=reward.id,
                user_id=user.id,
                status=list(MONTHLY_LIMIT_STATUSES),
            )
            if r.requested_at >= month_start
        ]
        if len(this_month) >= reward.max_per_month:
            raise HTTPException(
                status_code=400,
                detail=(
                    "You've reached the monthly limit for this reward "
                    f"({reward.max_per_month} per month)"
                ),
            )

    needs_approval = reward.requires_approval
    now = time.time()
    redemption = db.insert(
        RedemptionRecord(
            reward_id=reward.id,
            user_id=user.id,
            organization_id=user.organization_id,
            points_spent=reward.points,
            status="pending" if needs_approval else "approved",
            notes=payload.notes,
            requested_at=now,
            reviewed_at=None if needs_approval else now,
        )
    )

    balance = user.points
    if not needs_approval:
        balance = db.adjust_points(user.id, -reward.points)
        if balance is None:
            logger.error("Point deduction failed for redemption %s", redemption.id)
            db.delete(RedemptionRecord, redemption.id)
            raise HTTPException(status_code=500, detail="Failed to process redemption")

    if reward.stock_quantity is not None:
        db.update(RewardRecord, reward.id, stock_quantity=reward.stock_quantity - 1)
    refresh_achievements(db, user.id)

    if needs_approval:
        message = "Reward request submitted for approval!"
    else:
        message = f"Reward redeemed! {reward.points} points deducted."
    return {
        "redemption": camelize(redemption),
        "message": message,
        "pointsDeducted": 0 if needs_approval else reward.points,
        "newBalance": balance,
    }
