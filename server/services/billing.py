"""Subscription, credit balance and plan-gating helpers."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from database import utcnow
from models.billing import PaymentTransaction, SubscriptionPlan, UserCredits, UserSubscription
from models.user import User

logger = logging.getLogger(__name__)

TIER_FREE = "free"
TIER_PREMIUM = "premium"
TIER_CREDITS = "credits"


def add_months(dt: datetime, months: int) -> datetime:
    month = dt.month - 1 + months
    year = dt.year + month // 12
    month = month % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def get_active_subscription(db: Session, user_id: int) -> UserSubscription | None:
    """Latest active subscription whose period has not ended."""
    now = utcnow()
    return (
        db.query(UserSubscription)
        .filter(
            UserSubscription.user_id == user_id,
            UserSubscription.status == "active",
            UserSubscription.current_period_end > now,
        )
        .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
        .first()
    )


def get_or_create_credits(db: Session, user_id: int) -> UserCredits:
    credits = db.query(UserCredits).filter(UserCredits.user_id == user_id).first()
    if credits is None:
        credits = UserCredits(user_id=user_id, credits=0.0, total_purchased=0.0, total_used=0.0)
        db.add(credits)
        db.flush()
    return credits


def user_tier(db: Session, user: User) -> str:
    """``premium`` for admins and holders of a paid subscription, else ``free``."""
    if user.is_admin:
        return TIER_PREMIUM
    sub = get_active_subscription(db, user.id)
    if sub is not None and (sub.plan.price or 0) > 0:
        return TIER_PREMIUM
    return TIER_FREE


def plan_allows(db: Session, user: User, required_plan: str) -> bool:
    """Whether *user* may use a model gated behind *required_plan*."""
    if required_plan in ("", TIER_FREE):
        return True
    tier = user_tier(db, user)
    if tier == TIER_PREMIUM:
        return True
    if required_plan == TIER_CREDITS:
        credits = db.query(UserCredits).filter(UserCredits.user_id == user.id).first()
        return credits is not None and credits.credits > 0
    return False


def is_pay_per_message(plan: SubscriptionPlan) -> bool:
    return plan.billing_cycle == "one_time" and not plan.price


def charges_per_message(db: Session, user: User, required_plan: str) -> bool:
    """Whether each message is paid from the credit balance instead of the daily allowance.

    True for ``credits``-gated models used below premium tier, and for every
    message sent under a free one-time (pay-per-message) plan.
    """
    if user.is_admin:
        return False
    if required_plan == TIER_CREDITS and user_tier(db, user) != TIER_PREMIUM:
        return True
    sub = get_active_subscription(db, user.id)
    return sub is not None and is_pay_per_message(sub.plan)


def spend_credits(db: Session, user_id: int, amount: float) -> UserCredits:
    """Deduct *amount* credits. Does not commit."""
    credits = get_or_create_credits(db, user_id)
    credits.credits = max(0.0, (credits.credits or 0.0) - amount)
    credits.total_used = (credits.total_used or 0.0) + amount
    return credits


def grant_credits(db: Session, user_id: int, amount: float) -> UserCredits:
    """Add purchased credits. Does not commit."""
    credits = get_or_create_credits(db, user_id)
    credits.credits = (credits.credits or 0.0) + amount
    credits.total_purchased = (credits.total_purchased or 0.0) + amount
    credits.last_purchase_at = utcnow()
    logger.info("Granted %s credits to user %s", amount, user_id)
    return credits


def start_subscription(
    db: Session,
    user_id: int,
    plan: SubscriptionPlan,
    stripe_subscription_id: str | None = None,
) -> UserSubscription:
    """Cancel the user's other active subscriptions and open a new period. Does not commit."""
    now = utcnow()
    (
        db.query(UserSubscription)
        .filter(UserSubscription.user_id == user_id, UserSubscription.status == "active")
        .update({"status": "cancelled"}, synchronize_session=False)
    )
    months = 12 if plan.billing_cycle == "yearly" else 1
    sub = UserSubscription(
        user_id=user_id,
        plan_id=plan.id,
        status="active",
        current_period_start=now,
        current_period_end=add_months(now, months),
        stripe_subscription_id=stripe_subscription_id,
    )
    db.add(sub)
    db.flush()
    logger.info("User %s subscribed to plan %s until %s", user_id, plan.name, sub.current_period_end)
    return sub


def complete_checkout(db: Session, session_obj: dict) -> PaymentTransaction | None:
    """Apply a ``checkout.session.completed`` payload. Does not commit.

    Returns the completed transaction, or None when the session metadata does
    not identify a user.
    """
    metadata = session_obj.get("metadata") or {}
    try:
        user_id = int(metadata.get("userId", ""))
    except (TypeError, ValueError):
        logger.warning("Checkout session %s has no userId metadata", session_obj.get("id"))
        return None
    if db.get(User, user_id) is None:
        logger.warning("Checkout session %s references unknown user %s", session_obj.get("id"), user_id)
        return None

    amount = (session_obj.get("amount_total") or 0) / 100
    session_id = session_obj.get("id")
    txn = None
    if session_id:
        txn = (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.stripe_session_id == session_id)
            .first()
        )
        if txn is not None and txn.status == "completed":
            logger.info("Checkout session %s already applied", session_id)
            return txn

    if metadata.get("type") == "credits":
        grant_credits(db, user_id, float(metadata.get("credits") or 0))
        txn_type = "credits"
        description = f"{metadata.get('credits')} AI Credits"
    else:
        plan = db.get(SubscriptionPlan, int(metadata.get("planId") or 0))
        if plan is None:
            logger.warning("Checkout session %s references unknown plan", session_id)
            return None
        start_subscription(db, user_id, plan, stripe_subscription_id=session_obj.get("subscription"))
        txn_type = "subscription"
        description = f"Subscription: {plan.name}"

    if txn is None:
        txn = PaymentTransaction(
            user_id=user_id,
            type=txn_type,
            amount=amount,
            currency=(session_obj.get("currency") or "usd").upper(),
            stripe_session_id=session_id,
            description=description,
            metadata_=dict(metadata),
        )
        db.add(txn)
    txn.status = "completed"
    txn.stripe_payment_intent_id = session_obj.get("payment_intent")
    txn.stripe_invoice_id = session_obj.get("invoice")
    if amount:
        txn.amount = amount
    db.flush()
    return txn
