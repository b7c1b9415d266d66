"""Subscription and credits endpoints, Stripe checkout and webhook."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from auth import get_current_user
from config import settings
from database import get_db
from models.billing import PaymentTransaction, SubscriptionPlan
from models.setting import Setting
from models.user import User
from schemas.billing import (
    CheckoutSessionIn,
    CheckoutSessionOut,
    CreditsOut,
    CurrentSubscriptionOut,
    PaymentOut,
    PlanOut,
    PurchaseCreditsIn,
)
from services.billing import complete_checkout, get_active_subscription, get_or_create_credits
from services.payments import PaymentError, StripeClient, WebhookSignatureError, verify_webhook
from services.usage import usage_summary

logger = logging.getLogger(__name__)

router = APIRouter()

PAYMENT_LIST_LIMIT = 50
DEFAULT_CREDITS_PER_DOLLAR = 100.0


def _stripe_client(db: Session) -> StripeClient:
    secret = Setting.get_value(db, "stripe_secret_key", "")
    if not secret:
        raise HTTPException(status_code=400, detail="Payment processing not configured")
    return StripeClient(secret)


@router.get("/plans/", response_model=list[PlanOut])
def list_plans(db: Session = Depends(get_db)):
    return (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.is_active == True)  # noqa: E712
        .order_by(SubscriptionPlan.price, SubscriptionPlan.id)
        .all()
    )


@router.get("/current/", response_model=CurrentSubscriptionOut | None)
def current_subscription(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    sub = get_active_subscription(db, user.id)
    if sub is None:
        return None
    plan = sub.plan
    return CurrentSubscriptionOut(
        id=sub.id,
        plan_id=plan.id,
        status=sub.status,
        current_period_start=sub.current_period_start,
        current_period_end=sub.current_period_end,
        cancel_at_period_end=sub.cancel_at_period_end,
        plan_name=plan.name,
        plan_description=plan.description,
        price=plan.price,
        billing_cycle=plan.billing_cycle,
        features=plan.features or [],
        message_limit=plan.message_limit,
    )


@router.get("/credits/", response_model=CreditsOut)
def get_credits(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    credits = get_or_create_credits(db, user.id)
    db.commit()
    return credits


@router.post("/create-checkout-session/", response_model=CheckoutSessionOut)
def create_checkout_session(
    payload: CheckoutSessionIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    client = _stripe_client(db)
    plan = (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.id == payload.plan_id, SubscriptionPlan.is_active == True)  # noqa: E712
        .first()
    )
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")

    recurring = {"monthly": "month", "yearly": "year"}.get(plan.billing_cycle)
    try:
        session = client.create_checkout_session(
            name=plan.name,
            description=plan.description,
            unit_amount_cents=round(plan.price * 100),
            mode="subscription" if recurring else "payment",
            recurring_interval=recurring,
            success_url=f"{settings.FRONTEND_URL}/billing?success=true",
            cancel_url=f"{settings.FRONTEND_URL}/billing?canceled=true",
            customer_email=user.email,
            metadata={"userId": str(user.id), "planId": str(plan.id), "type": "subscription"},
        )
    except PaymentError:
        logger.exception("Checkout session for plan %s failed", plan.id)
        raise HTTPException(status_code=502, detail="Failed to create checkout session")

    db.add(PaymentTransaction(
        user_id=user.id,
        type="subscription",
        amount=plan.price,
        status="pending",
        stripe_session_id=session.id,
        description=f"Subscription: {plan.name}",
        metadata_={"planId": plan.id},
    ))
    db.commit()
    return {"url": session.url}


@router.post("/purchase-credits/", response_model=CheckoutSessionOut)
def purchase_credits(
    payload: PurchaseCreditsIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    client = _stripe_client(db)
    per_dollar = Setting.get_float(db, "credits_per_dollar", DEFAULT_CREDITS_PER_DOLLAR)
    credits = int(payload.amount * per_dollar)
    try:
        session = client.create_checkout_session(
            name=f"{credits} AI Credits",
            description=f"Purchase {credits} credits for AI conversations",
            unit_amount_cents=round(payload.amount * 100),
            mode="payment",
            success_url=f"{settings.FRONTEND_URL}/billing?success=true&type=credits",
            cancel_url=f"{settings.FRONTEND_URL}/billing?canceled=true",
            customer_email=user.email,
            metadata={"userId": str(user.id), "credits": str(credits), "type": "credits"},
        )
    except PaymentError:
        logger.exception("Credits checkout session failed")
        raise HTTPException(status_code=502, detail="Failed to create checkout session")

    db.add(PaymentTransaction(
        user_id=user.id,
        type="credits",
        amount=payload.amount,
        status="pending",
        stripe_session_id=session.id,
        description=f"{credits} AI Credits",
        metadata_={"credits": credits},
    ))
    db.commit()
    return {"url": session.url}


@router.post("/webhook/")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")
    # the session is sync; keep its queries off the event loop
    return await asyncio.to_thread(_handle_stripe_event, db, payload, signature)


def _handle_stripe_event(db: Session, payload: bytes, signature: str) -> dict:
    secret = Setting.get_value(db, "stripe_webhook_secret", "")
    try:
        event = verify_webhook(payload, signature, secret)
    except WebhookSignatureError as exc:
        logger.warning("Rejected Stripe webhook: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    event_type = event.get("type")
    if event_type == "checkout.session.completed":
        session_obj = (event.get("data") or {}).get("object") or {}
        txn = complete_checkout(db, session_obj)
        db.commit()
        logger.info("Checkout session %s completed (transaction %s)", session_obj.get("id"), txn.id if txn else None)
    else:
        logger.info("Ignoring Stripe event %s", event_type)
    return {"received": True}


@router.get("/usage/")
def usage(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return usage_summary(db, user.id)


@router.get("/payments/", response_model=list[PaymentOut])
def payments(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return (
        db.query(PaymentTransaction)
        .filter(PaymentTransaction.user_id == user.id)
        .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
        .limit(PAYMENT_LIST_LIMIT)
        .all()
    )
