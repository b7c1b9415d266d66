"""Read-only aggregations for the admin back-office and the user dashboard.

Month and hour buckets are computed in Python from the raw timestamps so the
same code runs on SQLite and PostgreSQL.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import case, distinct, func
from sqlalchemy.orm import Session

from database import utcnow
from models.api_key import ApiKey
from models.billing import PaymentTransaction, SubscriptionPlan, UserSubscription
from models.conversation import Conversation, Message
from models.usage import UserUsage
from models.user import User
from services.billing import add_months
from services.usage import daily_message_limit, get_daily_usage, today, usage_since


def _midnight() -> datetime:
    now = utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _month_key(ts: datetime | None) -> str | None:
    return ts.strftime("%Y-%m") if ts else None


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


def admin_dashboard(db: Session) -> dict:
    midnight = _midnight()

    total_users, active_users, admin_users = db.query(
        func.count(User.id),
        func.coalesce(func.sum(case((User.is_active == True, 1), else_=0)), 0),  # noqa: E712
        func.coalesce(func.sum(case((User.role == "admin", 1), else_=0)), 0),
    ).one()

    total_conversations = db.query(func.count(Conversation.id)).scalar()
    today_conversations = (
        db.query(func.count(Conversation.id)).filter(Conversation.created_at >= midnight).scalar()
    )

    total_messages, total_tokens, total_cost = db.query(
        func.count(Message.id),
        func.coalesce(func.sum(Message.tokens_used), 0),
        func.coalesce(func.sum(Message.cost), 0.0),
    ).one()
    today_messages = db.query(func.count(Message.id)).filter(Message.created_at >= midnight).scalar()

    key_rows = (
        db.query(
            ApiKey.provider,
            func.count(ApiKey.id),
            func.coalesce(func.sum(case((ApiKey.is_active == True, 1), else_=0)), 0),  # noqa: E712
        )
        .group_by(ApiKey.provider)
        .order_by(ApiKey.provider)
        .all()
    )

    recent_users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).limit(5).all()

    return {
        "user_stats": {
            "total_users": total_users,
            "active_users": int(active_users),
            "admin_users": int(admin_users),
        },
        "conversation_stats": {
            "total_conversations": total_conversations,
            "today_conversations": today_conversations,
        },
        "message_stats": {
            "total_messages": total_messages,
            "today_messages": today_messages,
            "total_tokens": int(total_tokens),
            "total_cost": float(total_cost),
        },
        "api_key_stats": [
            {"provider": provider, "total_keys": total, "active_keys": int(active)}
            for provider, total, active in key_rows
        ],
        "recent_users": [
            {"id": u.id, "name": u.name, "email": u.email, "created_at": u.created_at}
            for u in recent_users
        ],
    }


def usage_analytics(db: Session, days: int = 30) -> dict:
    since_day = today() - timedelta(days=days)
    since_ts = _midnight() - timedelta(days=days)

    daily = (
        db.query(
            UserUsage.date,
            func.sum(UserUsage.messages_sent),
            func.sum(UserUsage.tokens_used),
            func.sum(UserUsage.cost),
            func.count(distinct(UserUsage.user_id)),
        )
        .filter(UserUsage.date >= since_day)
        .group_by(UserUsage.date)
        .order_by(UserUsage.date.desc())
        .all()
    )

    top = (
        db.query(
            User.id,
            User.name,
            User.email,
            func.sum(UserUsage.messages_sent).label("total_messages"),
            func.sum(UserUsage.tokens_used),
            func.sum(UserUsage.cost),
        )
        .join(UserUsage, UserUsage.user_id == User.id)
        .filter(UserUsage.date >= since_day)
        .group_by(User.id, User.name, User.email)
        .order_by(func.sum(UserUsage.messages_sent).desc())
        .limit(10)
        .all()
    )

    by_provider = (
        db.query(
            Conversation.provider,
            func.count(Message.id),
            func.coalesce(func.sum(Message.tokens_used), 0),
            func.coalesce(func.sum(Message.cost), 0.0),
        )
        .join(Message, Message.conversation_id == Conversation.id)
        .filter(Message.created_at >= since_ts)
        .group_by(Conversation.provider)
        .all()
    )

    return {
        "days": days,
        "daily_usage": [
            {
                "date": d,
                "messages": int(messages or 0),
                "tokens": int(tokens or 0),
                "cost": float(cost or 0.0),
                "active_users": active,
            }
            for d, messages, tokens, cost, active in daily
        ],
        "top_users": [
            {
                "id": uid,
                "name": name,
                "email": email,
                "total_messages": int(messages or 0),
                "total_tokens": int(tokens or 0),
                "total_cost": float(cost or 0.0),
            }
            for uid, name, email, messages, tokens, cost in top
        ],
        "provider_usage": [
            {
                "provider": provider,
                "message_count": count,
                "total_tokens": int(tokens),
                "total_cost": float(cost),
            }
            for provider, count, tokens, cost in by_provider
        ],
    }


def revenue_analytics(db: Session) -> dict:
    since = add_months(_midnight(), -12)

    total = (
        db.query(func.coalesce(func.sum(PaymentTransaction.amount), 0.0))
        .filter(PaymentTransaction.status == "completed")
        .scalar()
    )

    monthly: dict[str, dict] = defaultdict(lambda: {"revenue": 0.0, "transactions": 0})
    rows = (
        db.query(PaymentTransaction.created_at, PaymentTransaction.amount)
        .filter(PaymentTransaction.status == "completed", PaymentTransaction.created_at >= since)
        .all()
    )
    for created_at, amount in rows:
        bucket = monthly[_month_key(created_at)]
        bucket["revenue"] += amount or 0.0
        bucket["transactions"] += 1

    metrics = []
    for plan in db.query(SubscriptionPlan).order_by(SubscriptionPlan.id).all():
        active = (
            db.query(func.count(UserSubscription.id))
            .filter(UserSubscription.plan_id == plan.id, UserSubscription.status == "active")
            .scalar()
        )
        metrics.append({
            "plan_id": plan.id,
            "name": plan.name,
            "active_subscriptions": active,
            "monthly_recurring_revenue": round(active * (plan.price or 0.0), 2),
        })
    metrics.sort(key=lambda m: m["monthly_recurring_revenue"], reverse=True)

    growth: dict[str, int] = defaultdict(int)
    for (created_at,) in db.query(User.created_at).filter(User.created_at >= since).all():
        growth[_month_key(created_at)] += 1

    return {
        "total_revenue": float(total),
        "monthly_revenue": [
            {"month": month, "revenue": round(v["revenue"], 2), "transactions": v["transactions"]}
            for month, v in sorted(monthly.items())
        ],
        "subscription_metrics": metrics,
        "user_growth": [{"month": month, "new_users": n} for month, n in sorted(growth.items())],
    }


# ---------------------------------------------------------------------------
# Per-user
# ---------------------------------------------------------------------------


def conversation_rows(db: Session, user_id: int, search: str = ""):
    """Conversations of *user_id* with message count, token and cost sums."""
    q = (
        db.query(
            Conversation,
            func.count(Message.id),
            func.coalesce(func.sum(Message.tokens_used), 0),
            func.coalesce(func.sum(Message.cost), 0.0),
            func.max(Message.created_at),
        )
        .outerjoin(Message, Message.conversation_id == Conversation.id)
        .filter(Conversation.user_id == user_id)
    )
    if search:
        q = q.filter(Conversation.title.ilike(f"%{search}%"))
    return q.group_by(Conversation.id).order_by(Conversation.updated_at.desc(), Conversation.id.desc())


def user_dashboard(db: Session, user: User) -> dict:
    total_conversations = (
        db.query(func.count(Conversation.id)).filter(Conversation.user_id == user.id).scalar()
    )
    total_messages = (
        db.query(func.count(Message.id))
        .join(Conversation, Message.conversation_id == Conversation.id)
        .filter(Conversation.user_id == user.id)
        .scalar()
    )
    monthly = usage_since(db, user.id, 30)

    daily = (
        db.query(UserUsage)
        .filter(UserUsage.user_id == user.id, UserUsage.date >= today() - timedelta(days=7))
        .order_by(UserUsage.date.desc())
        .all()
    )
    todays = get_daily_usage(db, user.id)

    return {
        "stats": {
            "total_conversations": total_conversations,
            "total_messages": total_messages,
            "monthly_messages": monthly["messages_sent"],
            "monthly_tokens": monthly["tokens_used"],
            "monthly_cost": monthly["cost"],
            "today_messages": todays.messages_sent if todays else 0,
            "max_daily_messages": daily_message_limit(db, user),
        },
        "daily_usage": [
            {"date": u.date, "messages_sent": u.messages_sent, "tokens_used": u.tokens_used, "cost": u.cost}
            for u in daily
        ],
        "recent_conversations": [
            {
                "id": conv.id,
                "title": conv.title,
                "provider": conv.provider,
                "model": conv.model,
                "updated_at": conv.updated_at,
                "message_count": count,
            }
            for conv, count, _tokens, _cost, _last in conversation_rows(db, user.id).limit(5).all()
        ],
    }


def user_activity(db: Session, user_id: int, days: int = 7) -> dict:
    since = _midnight() - timedelta(days=days)

    rows = (
        db.query(Conversation.id, Conversation.provider, Conversation.model, Message.id, Message.tokens_used, Message.cost)
        .outerjoin(Message, Message.conversation_id == Conversation.id)
        .filter(Conversation.user_id == user_id, Conversation.created_at >= since)
        .all()
    )

    def _bucket():
        return {"conversations": set(), "messages": 0, "tokens": 0, "cost": 0.0}

    providers: dict[str, dict] = defaultdict(_bucket)
    models: dict[tuple[str, str], dict] = defaultdict(_bucket)
    for conv_id, provider, model, msg_id, tokens, cost in rows:
        for bucket in (providers[provider], models[(model, provider)]):
            bucket["conversations"].add(conv_id)
            if msg_id is not None:
                bucket["messages"] += 1
                bucket["tokens"] += tokens or 0
                bucket["cost"] += cost or 0.0

    hours: dict[int, int] = defaultdict(int)
    stamps = (
        db.query(Message.created_at)
        .join(Conversation, Message.conversation_id == Conversation.id)
        .filter(Conversation.user_id == user_id, Message.created_at >= since)
        .all()
    )
    for (created_at,) in stamps:
        if created_at is not None:
            hours[created_at.hour] += 1

    def _out(bucket: dict) -> dict:
        return {**bucket, "conversations": len(bucket["conversations"]), "cost": round(bucket["cost"], 6)}

    model_activity = [
        {"model": model, "provider": provider, **_out(bucket)} for (model, provider), bucket in models.items()
    ]
    model_activity.sort(key=lambda m: m["messages"], reverse=True)

    return {
        "days": days,
        "provider_activity": [{"provider": p, **_out(b)} for p, b in sorted(providers.items())],
        "model_activity": model_activity,
        "hourly_activity": [{"hour": h, "message_count": n} for h, n in sorted(hours.items())],
    }
