"""User self-service: dashboard, usage history, conversations, preferences, activity."""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from models.conversation import Message
from models.usage import UserUsage
from models.user import User, UserPreference
from schemas.user import ConversationTitleUpdate, PreferencesOut, PreferencesUpdate
from services.analytics import conversation_rows, user_activity, user_dashboard
from services.chat import ConversationNotFound, get_owned_conversation
from services.usage import today

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("/dashboard/")
def dashboard(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return user_dashboard(db, user)


@router.get("/usage-history/")
def usage_history(
    days: int = 30,
    limit: int = 20,
    offset: int = 0,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    base = (
        db.query(UserUsage)
        .filter(UserUsage.user_id == user.id, UserUsage.date >= today() - timedelta(days=days))
        .order_by(UserUsage.date.desc())
    )
    total = base.count()
    rows = base.offset(offset).limit(limit).all()
    return {
        "items": [
            {"date": u.date, "messages_sent": u.messages_sent, "tokens_used": u.tokens_used, "cost": u.cost}
            for u in rows
        ],
        "total": total,
    }


@router.get("/conversations/")
def list_conversations(
    search: str = "",
    limit: int = 20,
    offset: int = 0,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = conversation_rows(db, user.id, search.strip())
    total = query.count()
    items = [
        {
            "id": conv.id,
            "title": conv.title,
            "provider": conv.provider,
            "model": conv.model,
            "created_at": conv.created_at,
            "updated_at": conv.updated_at,
            "message_count": count,
            "total_tokens": int(tokens),
            "total_cost": float(cost),
        }
        for conv, count, tokens, cost, _last in query.offset(offset).limit(limit).all()
    ]
    return {"items": items, "total": total}


@router.put("/conversations/{conversation_id}/title/")
def update_conversation_title(
    conversation_id: int,
    payload: ConversationTitleUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    title = payload.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")
    try:
        conv = get_owned_conversation(db, user, conversation_id)
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found")
    conv.title = title
    db.commit()
    return {"id": conv.id, "title": conv.title}


@router.get("/conversations/{conversation_id}/export/")
def export_conversation(
    conversation_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        conv = get_owned_conversation(db, user, conversation_id)
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found")
    messages = (
        db.query(Message)
        .filter(Message.conversation_id == conv.id)
        .order_by(Message.created_at, Message.id)
        .all()
    )
    return {
        "conversation": {
            "title": conv.title,
            "provider": conv.provider,
            "model": conv.model,
            "created_at": conv.created_at,
            "user_name": user.name,
        },
        "messages": [
            {"role": m.role, "content": m.content, "timestamp": m.created_at} for m in messages
        ],
    }


@router.get("/preferences/", response_model=PreferencesOut)
def get_preferences(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    prefs = db.query(UserPreference).filter(UserPreference.user_id == user.id).first()
    return prefs if prefs is not None else PreferencesOut()


@router.put("/preferences/", response_model=PreferencesOut)
def update_preferences(
    payload: PreferencesUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    prefs = db.query(UserPreference).filter(UserPreference.user_id == user.id).first()
    if prefs is None:
        prefs = UserPreference(user_id=user.id, **PreferencesOut().model_dump())
        db.add(prefs)
    for attr, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(prefs, attr, value)
    db.commit()
    db.refresh(prefs)
    return prefs


@router.get("/activity/")
def activity(days: int = 7, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return user_activity(db, user.id, days)
