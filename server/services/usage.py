"""Daily usage accounting and message quota enforcement."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from models.billing import UserCredits
from models.setting import Setting
from models.usage import UserUsage
from models.user import User
from services.billing import get_active_subscription

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES_PER_DAY = 100
DEFAULT_CREDITS_PER_MESSAGE = 1.0


def today() -> date:
    """Usage is bucketed by UTC calendar day."""
    return datetime.now(timezone.utc).date()


@dataclass
class QuotaDecision:
    allowed: bool
    messages_sent: int
    limit: int | None
    use_credits: bool = False
    credit_cost: float = 0.0


def get_daily_usage(db: Session, user_id: int, day: date | None = None) -> UserUsage | None:
    day = day or today()
    # record_usage writes through Core, so refresh any instance already in the session
    return (
        db.query(UserUsage)
        .populate_existing()
        .filter(UserUsage.user_id == user_id, UserUsage.date == day)
        .first()
    )


def daily_message_limit(db: Session, user: User) -> int | None:
    """Messages per day for *user*; None means unlimited.

    An active subscription's plan limit wins over the site-wide
    ``max_messages_per_day`` setting.
    """
    sub = get_active_subscription(db, user.id)
    if sub is not None:
        return sub.plan.message_limit
    return Setting.get_int(db, "max_messages_per_day", DEFAULT_MAX_MESSAGES_PER_DAY)


def check_quota(db: Session, user: User, pay_per_message: bool = False) -> QuotaDecision:
    """Decide whether *user* may send one more message today.

    Within the daily limit the message is free. Past it, or always when
    *pay_per_message* is set, it must be paid with ``credits_per_message``
    credits.
    """
    usage = get_daily_usage(db, user.id)
    sent = usage.messages_sent if usage else 0
    limit = daily_message_limit(db, user)
    if not pay_per_message and (limit is None or sent < limit):
        return QuotaDecision(allowed=True, messages_sent=sent, limit=limit)

    cost = Setting.get_float(db, "credits_per_message", DEFAULT_CREDITS_PER_MESSAGE)
    credits = db.query(UserCredits).filter(UserCredits.user_id == user.id).first()
    if credits is not None and cost > 0 and credits.credits >= cost:
        return QuotaDecision(allowed=True, messages_sent=sent, limit=limit, use_credits=True, credit_cost=cost)
    return QuotaDecision(allowed=False, messages_sent=sent, limit=limit, credit_cost=cost)


def record_usage(
    db: Session,
    user_id: int,
    tokens_used: int,
    cost: float,
    day: date | None = None,
) -> None:
    """Additively upsert today's UserUsage row. Does not commit."""
    day = day or today()
    dialect = db.get_bind().dialect.name
    if dialect in ("sqlite", "postgresql"):
        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = insert(UserUsage).values(
            user_id=user_id, date=day, messages_sent=1, tokens_used=tokens_used, cost=cost
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserUsage.user_id, UserUsage.date],
            set_={
                "messages_sent": UserUsage.messages_sent + 1,
                "tokens_used": UserUsage.tokens_used + tokens_used,
                "cost": UserUsage.cost + cost,
            },
        )
        db.execute(stmt)
        return

    usage = get_daily_usage(db, user_id, day)
    if usage is None:
        db.add(UserUsage(user_id=user_id, date=day, messages_sent=1, tokens_used=tokens_used, cost=cost))
    else:
        usage.messages_sent += 1
        usage.tokens_used += tokens_used
        usage.cost += cost


def _sum_usage(db: Session, *criteria) -> dict:
    row = (
        db.query(
            func.coalesce(func.sum(UserUsage.messages_sent), 0),
            func.coalesce(func.sum(UserUsage.tokens_used), 0),
            func.coalesce(func.sum(UserUsage.cost), 0.0),
        )
        .filter(*criteria)
        .one()
    )
    return {"messages_sent": int(row[0]), "tokens_used": int(row[1]), "cost": float(row[2])}


def usage_summary(db: Session, user_id: int) -> dict:
    """Today / this month / all-time sums for one user."""
    day = today()
    month_start = day.replace(day=1)
    return {
        "today": _sum_usage(db, UserUsage.user_id == user_id, UserUsage.date == day),
        "this_month": _sum_usage(db, UserUsage.user_id == user_id, UserUsage.date >= month_start),
        "total": _sum_usage(db, UserUsage.user_id == user_id),
    }


def usage_since(db: Session, user_id: int, days: int) -> dict:
    return _sum_usage(db, UserUsage.user_id == user_id, UserUsage.date >= today() - timedelta(days=days))
