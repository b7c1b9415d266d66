"""Tests for bearer-token auth, the admin gate and the account endpoints."""

from __future__ import annotations

import inspect
from datetime import datetime, timedelta, timezone

import jwt

from auth import create_access_token, get_current_user, get_optional_user, hash_password, verify_password
from config import settings
from models.billing import UserCredits
from models.setting import Setting
from models.user import User


class TestPasswords:
    def test_roundtrip(self):
        hashed = hash_password("s3cret")
        assert hashed != "s3cret"
        assert verify_password(hashed, "s3cret")
        assert not verify_password(hashed, "wrong")

    def test_empty_hash(self):
        assert not verify_password("", "anything")

    def test_garbage_hash(self):
        assert not verify_password("not-a-bcrypt-hash", "anything")


class TestToken:
    def test_claims(self, user):
        payload = jwt.decode(create_access_token(user), settings.SECRET_KEY, algorithms=["HS256"])
        assert payload["userId"] == user.id
        assert payload["role"] == "user"
        exp = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        assert timedelta(days=6) < exp - datetime.now(timezone.utc) <= timedelta(days=7)


class TestGetCurrentUser:
    def test_missing_token(self, client):
        resp = client.get("/api/v1/auth/me/")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Access token required"

    def test_garbage_token(self, client):
        resp = client.get("/api/v1/auth/me/", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Invalid or expired token"

    def test_expired_token(self, client, user):
        token = jwt.encode(
            {"userId": user.id, "role": "user", "exp": datetime.now(timezone.utc) - timedelta(seconds=1)},
            settings.SECRET_KEY,
            algorithm="HS256",
        )
        resp = client.get("/api/v1/auth/me/", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Invalid or expired token"

    def test_wrong_signing_key(self, client, user):
        token = jwt.encode({"userId": user.id, "role": "user"}, "another-key", algorithm="HS256")
        resp = client.get("/api/v1/auth/me/", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403

    def test_inactive_user(self, client, db, user):
        token = create_access_token(user)
        user.is_active = False
        db.commit()
        resp = client.get("/api/v1/auth/me/", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403
        assert resp.json()["detail"] == "User not found or inactive"

    def test_deleted_user(self, client, db, user):
        token = create_access_token(user)
        db.delete(user)
        db.commit()
        resp = client.get("/api/v1/auth/me/", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403
        assert resp.json()["detail"] == "User not found or inactive"

    def test_me(self, auth_client, user):
        resp = auth_client.get("/api/v1/auth/me/")
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == user.id
        assert data["email"] == "user@example.com"
        assert "password_hash" not in data

    def test_dependencies_run_in_threadpool(self):
        # sync dependencies keep their DB lookups off the event loop
        assert not inspect.iscoroutinefunction(get_current_user)
        assert not inspect.iscoroutinefunction(get_optional_user)


class TestRequireAdmin:
    def test_user_rejected(self, auth_client):
        resp = auth_client.get("/api/v1/admin/dashboard/")
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Admin access required"

    def test_admin_allowed(self, admin_client):
        assert admin_client.get("/api/v1/admin/dashboard/").status_code == 200


class TestRegister:
    def test_register(self, client, db):
        resp = client.post("/api/v1/auth/register/", json={
            "email": "New@Example.com", "password": "secret1", "name": "Newbie",
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["token"]
        assert data["user"]["email"] == "new@example.com"
        assert data["user"]["role"] == "user"
        created = db.query(User).filter(User.email == "new@example.com").one()
        assert db.query(UserCredits).filter(UserCredits.user_id == created.id).count() == 1

    def test_token_works(self, client):
        resp = client.post("/api/v1/auth/register/", json={
            "email": "a@example.com", "password": "secret1", "name": "Ann",
        })
        token = resp.json()["token"]
        me = client.get("/api/v1/auth/me/", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["name"] == "Ann"

    def test_duplicate_email(self, client, user):
        resp = client.post("/api/v1/auth/register/", json={
            "email": "user@example.com", "password": "secret1", "name": "Dup",
        })
        assert resp.status_code == 409

    def test_disabled(self, client, db):
        db.add(Setting(key="registration_enabled", value="false"))
        db.commit()
        resp = client.post("/api/v1/auth/register/", json={
            "email": "x@example.com", "password": "secret1", "name": "Xavier",
        })
        assert resp.status_code == 403

    def test_validation(self, client):
        resp = client.post("/api/v1/auth/register/", json={
            "email": "not-an-email", "password": "123", "name": "X",
        })
        assert resp.status_code == 422


class TestLogin:
    def test_login(self, client, user):
        resp = client.post("/api/v1/auth/login/", json={"email": "user@example.com", "password": "testpass"})
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == user.id

    def test_bad_password(self, client, user):
        resp = client.post("/api/v1/auth/login/", json={"email": "user@example.com", "password": "nope"})
        assert resp.status_code == 401

    def test_unknown_email(self, client):
        resp = client.post("/api/v1/auth/login/", json={"email": "ghost@example.com", "password": "x"})
        assert resp.status_code == 401

    def test_inactive(self, client, db, user):
        user.is_active = False
        db.commit()
        resp = client.post("/api/v1/auth/login/", json={"email": "user@example.com", "password": "testpass"})
        assert resp.status_code == 403


class TestChangePassword:
    def test_change(self, auth_client, client):
        resp = auth_client.post("/api/v1/auth/change-password/", json={
            "current_password": "testpass", "new_password": "brandnew",
        })
        assert resp.status_code == 204
        login = client.post("/api/v1/auth/login/", json={"email": "user@example.com", "password": "brandnew"})
        assert login.status_code == 200

    def test_wrong_current(self, auth_client):
        resp = auth_client.post("/api/v1/auth/change-password/", json={
            "current_password": "wrong", "new_password": "brandnew",
        })
        assert resp.status_code == 400
