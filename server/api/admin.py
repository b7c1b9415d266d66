"""Admin back-office: dashboard, users, provider API keys, settings, analytics."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from auth import hash_password, require_admin
from database import get_db
from models.api_key import ApiKey
from models.billing import UserCredits
from models.conversation import Conversation
from models.setting import Setting
from models.usage import UserUsage
from models.user import User
from schemas.admin import (
    AdminUserCreate,
    AdminUserOut,
    AdminUserUpdate,
    ApiKeyIn,
    ApiKeyOut,
    ApiKeyUpdate,
    SettingOut,
    SettingUpdate,
)
from services.analytics import admin_dashboard, usage_analytics

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/dashboard/")
def dashboard(db: Session = Depends(get_db)):
    return admin_dashboard(db)


# ── Users ─────────────────────────────────────────────────────────────────────


def _user_out(db: Session, user: User) -> AdminUserOut:
    conversation_count = (
        db.query(func.count(Conversation.id)).filter(Conversation.user_id == user.id).scalar()
    )
    total_messages = (
        db.query(func.coalesce(func.sum(UserUsage.messages_sent), 0))
        .filter(UserUsage.user_id == user.id)
        .scalar()
    )
    return AdminUserOut(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        is_active=user.is_active,
        created_at=user.created_at,
        conversation_count=conversation_count,
        total_messages=int(total_messages),
    )


@router.get("/users/")
def list_users(
    search: str = "",
    limit: int = 20,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    base = db.query(User)
    if search:
        pattern = f"%{search}%"
        base = base.filter(or_(User.email.ilike(pattern), User.name.ilike(pattern)))
    total = base.count()
    users = base.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()
    return {"items": [_user_out(db, u) for u in users], "total": total}


@router.post("/users/", response_model=AdminUserOut, status_code=201)
def create_user(payload: AdminUserCreate, db: Session = Depends(get_db)):
    email = payload.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="User with this email already exists")
    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        name=payload.name,
        role=payload.role,
    )
    db.add(user)
    db.flush()
    db.add(UserCredits(user_id=user.id))
    db.commit()
    db.refresh(user)
    logger.info("Admin created user %s (%s)", user.id, user.role)
    return _user_out(db, user)


@router.put("/users/{user_id}/", response_model=AdminUserOut)
def update_user(user_id: int, payload: AdminUserUpdate, db: Session = Depends(get_db)):
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if "email" in updates:
        updates["email"] = updates["email"].lower()
        clash = db.query(User).filter(User.email == updates["email"], User.id != user_id).first()
        if clash:
            raise HTTPException(status_code=409, detail="User with this email already exists")
    for attr, value in updates.items():
        setattr(user, attr, value)
    db.commit()
    db.refresh(user)
    return _user_out(db, user)


@router.delete("/users/{user_id}/", status_code=204)
def delete_user(user_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    db.delete(user)
    db.commit()
    logger.info("Admin deleted user %s", user_id)


# ── Provider API keys ─────────────────────────────────────────────────────────


@router.get("/api-keys/", response_model=list[ApiKeyOut])
def list_api_keys(db: Session = Depends(get_db)):
    return db.query(ApiKey).order_by(ApiKey.created_at.desc(), ApiKey.id.desc()).all()


@router.post("/api-keys/", response_model=ApiKeyOut, status_code=201)
def create_api_key(payload: ApiKeyIn, db: Session = Depends(get_db)):
    key = ApiKey(
        provider=payload.provider,
        key_name=payload.key_name,
        api_key=payload.api_key,
        usage_limit=payload.usage_limit or None,
    )
    db.add(key)
    db.commit()
    db.refresh(key)
    logger.info("Added %s API key %s", key.provider, key.id)
    return key


@router.put("/api-keys/{key_id}/", response_model=ApiKeyOut)
def update_api_key(key_id: int, payload: ApiKeyUpdate, db: Session = Depends(get_db)):
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    key = db.get(ApiKey, key_id)
    if key is None:
        raise HTTPException(status_code=404, detail="API key not found")
    for attr, value in updates.items():
        setattr(key, attr, value)
    db.commit()
    db.refresh(key)
    return key


@router.delete("/api-keys/{key_id}/", status_code=204)
def delete_api_key(key_id: int, db: Session = Depends(get_db)):
    key = db.get(ApiKey, key_id)
    if key is None:
        raise HTTPException(status_code=404, detail="API key not found")
    db.delete(key)
    db.commit()


# ── Settings ──────────────────────────────────────────────────────────────────


@router.get("/settings/", response_model=list[SettingOut])
def list_settings(db: Session = Depends(get_db)):
    return db.query(Setting).order_by(Setting.key).all()


@router.put("/settings/{key}/", response_model=SettingOut)
def update_setting(key: str, payload: SettingUpdate, db: Session = Depends(get_db)):
    setting = Setting.put(db, key, payload.value, payload.description)
    db.commit()
    db.refresh(setting)
    logger.info("Setting %s updated", key)
    return setting


# ── Analytics ─────────────────────────────────────────────────────────────────


@router.get("/analytics/")
def analytics(days: int = 30, db: Session = Depends(get_db)):
    return usage_analytics(db, days)
