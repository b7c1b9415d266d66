"""Bearer token authentication, admin gate and per-user rate limiting."""

from __future__ import annotations

import math
import threading
import time
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from logging_config import bind_user
from models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(stored_hash: str, password: str) -> bool:
    """Verify password against stored bcrypt hash."""
    if not stored_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), stored_hash.encode())
    except (ValueError, UnicodeDecodeError):
        return False


def create_access_token(user: User) -> str:
    expires = datetime.now(timezone.utc) + timedelta(days=settings.JWT_EXPIRE_DAYS)
    payload = {"userId": user.id, "role": user.role, "exp": expires}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _resolve_user(token: str, db: Session) -> User:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        user_id = int(payload["userId"])
    except (jwt.PyJWTError, KeyError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired token")

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User not found or inactive")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency: validate Bearer JWT and return the active User."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
    user = _resolve_user(credentials.credentials, db)
    bind_user(user.id)
    return user


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User | None:
    if credentials is None or not credentials.credentials:
        return None
    try:
        user = _resolve_user(credentials.credentials, db)
    except HTTPException:
        return None
    bind_user(user.id)
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class SlidingWindowRateLimiter:
    """In-memory sliding window: identity -> timestamps of accepted requests."""

    def __init__(self, max_requests: int, window_seconds: float, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, list[float]] = {}
        self._next_sweep = 0.0
        self._lock = threading.Lock()

    def hit(self, identity: str) -> float | None:
        """Record a request. Returns None when accepted, else seconds until retry."""
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(cutoff)
                self._next_sweep = now + self.window_seconds
            hits = [t for t in self._hits.get(identity, ()) if t > cutoff]
            if len(hits) >= self.max_requests:
                self._hits[identity] = hits
                return max(hits[0] + self.window_seconds - now, 0.0)
            hits.append(now)
            self._hits[identity] = hits
            return None

    def _sweep(self, cutoff: float) -> None:
        """Forget identities whose newest hit has left the window. Caller holds the lock."""
        stale = [identity for identity, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for identity in stale:
            del self._hits[identity]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


class UserRateLimit:
    """Dependency that throttles per authenticated user, or per client IP."""

    def __init__(self, max_requests: int, window_seconds: float):
        self.limiter = SlidingWindowRateLimiter(max_requests, window_seconds)

    def __call__(self, request: Request, user: User | None = Depends(get_optional_user)) -> None:
        if user is not None:
            identity = f"user:{user.id}"
        else:
            identity = f"ip:{request.client.host if request.client else 'unknown'}"
        retry_after = self.limiter.hit(identity)
        if retry_after is not None:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later.",
                headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
            )


chat_rate_limit = UserRateLimit(
    settings.CHAT_RATE_LIMIT_REQUESTS, settings.CHAT_RATE_LIMIT_WINDOW_SECONDS
)
