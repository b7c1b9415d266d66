"""Billing back-office: plans, AI model registry, revenue, subscriptions."""

from __future__ import annotations

import logging
from datetime import timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import require_admin
from database import get_db
from models.ai_model import AIModel
from models.billing import SubscriptionPlan, UserSubscription
from models.user import User
from schemas.billing import (
    AIModelIn,
    AIModelOut,
    PlanIn,
    PlanOut,
    SubscriptionAdminOut,
    SubscriptionUpdate,
)
from services.analytics import revenue_analytics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])

SUBSCRIPTION_LIST_LIMIT = 100


# ── Plans ─────────────────────────────────────────────────────────────────────


@router.get("/plans/", response_model=list[PlanOut])
def list_plans(db: Session = Depends(get_db)):
    return db.query(SubscriptionPlan).order_by(SubscriptionPlan.price, SubscriptionPlan.id).all()


@router.post("/plans/", response_model=PlanOut)
def save_plan(payload: PlanIn, db: Session = Depends(get_db)):
    """Create a plan, or update it in place when ``id`` is given."""
    data = payload.model_dump(exclude={"id"})
    if payload.id:
        plan = db.get(SubscriptionPlan, payload.id)
        if plan is None:
            raise HTTPException(status_code=404, detail="Plan not found")
        for attr, value in data.items():
            setattr(plan, attr, value)
    else:
        plan = SubscriptionPlan(**data)
        db.add(plan)
    db.commit()
    db.refresh(plan)
    logger.info("Saved plan %s (%s)", plan.id, plan.name)
    return plan


@router.delete("/plans/{plan_id}/", status_code=204)
def delete_plan(plan_id: int, db: Session = Depends(get_db)):
    plan = db.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")
    active = (
        db.query(UserSubscription)
        .filter(UserSubscription.plan_id == plan_id, UserSubscription.status == "active")
        .count()
    )
    if active:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete plan with active subscriptions. Deactivate it instead.",
        )
    db.query(UserSubscription).filter(UserSubscription.plan_id == plan_id).delete(synchronize_session=False)
    db.delete(plan)
    db.commit()


# ── AI models ─────────────────────────────────────────────────────────────────


@router.get("/models/", response_model=list[AIModelOut])
def list_models(db: Session = Depends(get_db)):
    return db.query(AIModel).order_by(AIModel.provider, AIModel.model_name).all()


@router.post("/models/", response_model=AIModelOut)
def save_model(payload: AIModelIn, db: Session = Depends(get_db)):
    """Create a registry entry, or update it in place when ``id`` is given."""
    data = payload.model_dump(exclude={"id"})
    if payload.id:
        entry = db.get(AIModel, payload.id)
        if entry is None:
            raise HTTPException(status_code=404, detail="Model not found")
        for attr, value in data.items():
            setattr(entry, attr, value)
    else:
        entry = AIModel(**data)
        db.add(entry)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Model already registered for this provider")
    db.refresh(entry)
    return entry


@router.delete("/models/{model_id}/", status_code=204)
def delete_model(model_id: int, db: Session = Depends(get_db)):
    entry = db.get(AIModel, model_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Model not found")
    db.delete(entry)
    db.commit()


# ── Revenue & subscriptions ───────────────────────────────────────────────────


@router.get("/analytics/")
def analytics(db: Session = Depends(get_db)):
    return revenue_analytics(db)


def _subscription_out(sub: UserSubscription) -> SubscriptionAdminOut:
    return SubscriptionAdminOut(
        id=sub.id,
        user_id=sub.user_id,
        plan_id=sub.plan_id,
        status=sub.status,
        current_period_start=sub.current_period_start,
        current_period_end=sub.current_period_end,
        cancel_at_period_end=sub.cancel_at_period_end,
        stripe_subscription_id=sub.stripe_subscription_id,
        created_at=sub.created_at,
        email=sub.user.email,
        name=sub.user.name,
        plan_name=sub.plan.name,
        price=sub.plan.price,
    )


@router.get("/subscriptions/", response_model=list[SubscriptionAdminOut])
def list_subscriptions(db: Session = Depends(get_db)):
    subs = (
        db.query(UserSubscription)
        .join(User, UserSubscription.user_id == User.id)
        .join(SubscriptionPlan, UserSubscription.plan_id == SubscriptionPlan.id)
        .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
        .limit(SUBSCRIPTION_LIST_LIMIT)
        .all()
    )
    return [_subscription_out(s) for s in subs]


@router.put("/subscriptions/{subscription_id}/", response_model=SubscriptionAdminOut)
def update_subscription(subscription_id: int, payload: SubscriptionUpdate, db: Session = Depends(get_db)):
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    sub = db.get(UserSubscription, subscription_id)
    if sub is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    if "current_period_end" in updates:
        end = updates["current_period_end"]
        if end.tzinfo is not None:
            updates["current_period_end"] = end.astimezone(timezone.utc).replace(tzinfo=None)
    for attr, value in updates.items():
        setattr(sub, attr, value)
    db.commit()
    db.refresh(sub)
    logger.info("Subscription %s updated: %s", subscription_id, sorted(updates))
    return _subscription_out(sub)
