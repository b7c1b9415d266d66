"""Root conftest: shared fixtures for all server tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Ensure server/ is on sys.path
_server_dir = str(Path(__file__).resolve().parent)
if _server_dir not in sys.path:
    sys.path.insert(0, _server_dir)

# Set secrets for tests so config never writes a .env
if not os.environ.get("FIELD_ENCRYPTION_KEY"):
    from cryptography.fernet import Fernet
    os.environ["FIELD_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
import models  # noqa: F401  register all models with Base

# In-memory SQLite; StaticPool ensures all connections share the same DB
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(TEST_ENGINE, "connect")
def _enable_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestSession = sessionmaker(bind=TEST_ENGINE, autoflush=False, expire_on_commit=False)


@pytest.fixture(autouse=True)
def _setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture(autouse=True)
def _reset_rate_limit():
    from auth import chat_rate_limit

    chat_rate_limit.limiter.reset()
    yield
    chat_rate_limit.limiter.reset()


@pytest.fixture
def db():
    """Yield a test database session."""
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


def _make_user(db, email, name, role="user", password="testpass"):
    from auth import hash_password
    from models.billing import UserCredits
    from models.user import User

    user = User(email=email, name=name, role=role, password_hash=hash_password(password))
    db.add(user)
    db.flush()
    db.add(UserCredits(user_id=user.id))
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db):
    return _make_user(db, "user@example.com", "Test User")


@pytest.fixture
def other_user(db):
    return _make_user(db, "other@example.com", "Other User")


@pytest.fixture
def admin_user(db):
    return _make_user(db, "admin@example.com", "Administrator", role="admin")


@pytest.fixture
def app(db):
    """The FastAPI app with get_db overridden to use the test session."""
    from database import get_db
    from main import app as _app

    def _override_get_db():
        yield db

    _app.dependency_overrides[get_db] = _override_get_db
    yield _app
    _app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_client(app, user):
    from auth import create_access_token

    client = TestClient(app)
    client.headers["Authorization"] = f"Bearer {create_access_token(user)}"
    return client


@pytest.fixture
def admin_client(app, admin_user):
    from auth import create_access_token

    client = TestClient(app)
    client.headers["Authorization"] = f"Bearer {create_access_token(admin_user)}"
    return client


@pytest.fixture
def google_key(db):
    from models.api_key import ApiKey

    key = ApiKey(provider="google", key_name="Primary", api_key="AIzaTestKey123456")
    db.add(key)
    db.commit()
    db.refresh(key)
    return key


@pytest.fixture
def openrouter_key(db):
    from models.api_key import ApiKey

    key = ApiKey(provider="openrouter", key_name="Router", api_key="sk-or-test-abcdef")
    db.add(key)
    db.commit()
    db.refresh(key)
    return key
