"""Account endpoints: register, login, current user, change password."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from auth import create_access_token, get_current_user, hash_password, verify_password
from database import get_db
from models.billing import UserCredits
from models.setting import Setting
from models.user import User
from schemas.auth import ChangePasswordRequest, LoginRequest, RegisterRequest, TokenResponse, UserOut

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/register/",
    response_model=TokenResponse,
    status_code=201,
    responses={403: {"description": "Registration disabled"}, 409: {"description": "Email taken"}},
)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    if not Setting.get_bool(db, "registration_enabled", True):
        raise HTTPException(status_code=403, detail="Registration is currently disabled")

    email = payload.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="User with this email already exists")

    user = User(email=email, password_hash=hash_password(payload.password), name=payload.name)
    db.add(user)
    db.flush()
    db.add(UserCredits(user_id=user.id))
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return {"token": create_access_token(user), "user": user}


@router.post("/login/", response_model=TokenResponse, responses={401: {"description": "Invalid credentials"}})
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if not user or not verify_password(user.password_hash, payload.password):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is deactivated")
    return {"token": create_access_token(user), "user": user}


@router.get("/me/", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/change-password/", status_code=204)
def change_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not verify_password(user.password_hash, payload.current_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password_hash = hash_password(payload.new_password)
    db.commit()
