"""Tests for the user self-service endpoints."""

from __future__ import annotations

from datetime import timedelta

from database import utcnow
from models.conversation import Conversation, Message
from models.setting import Setting
from models.user import UserPreference
from services.usage import record_usage, today


def _conversation(db, user, title="Chat", provider="google", model="gemini-pro", messages=()):
    conv = Conversation(user_id=user.id, title=title, provider=provider, model=model)
    db.add(conv)
    db.flush()
    for role, content, tokens, cost in messages:
        db.add(Message(conversation_id=conv.id, role=role, content=content, tokens_used=tokens, cost=cost))
    db.commit()
    return conv


class TestDashboard:
    def test_empty(self, auth_client):
        resp = auth_client.get("/api/v1/user/dashboard/")
        assert resp.status_code == 200
        stats = resp.json()["stats"]
        assert stats["total_conversations"] == 0
        assert stats["today_messages"] == 0
        assert stats["max_daily_messages"] == 100

    def test_with_activity(self, auth_client, db, user):
        db.add(Setting(key="max_messages_per_day", value="25"))
        _conversation(db, user, messages=[("user", "a", 0, 0.0), ("assistant", "b", 10, 0.01)])
        record_usage(db, user.id, 10, 0.01)
        record_usage(db, user.id, 5, 0.0, day=today() - timedelta(days=3))
        db.commit()

        data = auth_client.get("/api/v1/user/dashboard/").json()
        assert data["stats"]["total_conversations"] == 1
        assert data["stats"]["total_messages"] == 2
        assert data["stats"]["monthly_messages"] == 2
        assert data["stats"]["monthly_tokens"] == 15
        assert data["stats"]["today_messages"] == 1
        assert data["stats"]["max_daily_messages"] == 25
        assert len(data["daily_usage"]) == 2
        assert data["recent_conversations"][0]["message_count"] == 2

    def test_requires_auth(self, client):
        assert client.get("/api/v1/user/dashboard/").status_code == 401


class TestUsageHistory:
    def test_window_and_pagination(self, auth_client, db, user):
        for offset in (0, 1, 2, 40):
            record_usage(db, user.id, 1, 0.0, day=today() - timedelta(days=offset))
        db.commit()

        data = auth_client.get("/api/v1/user/usage-history/?days=30&limit=2").json()
        assert data["total"] == 3
        assert len(data["items"]) == 2
        assert data["items"][0]["date"] == today().isoformat()

        page2 = auth_client.get("/api/v1/user/usage-history/?days=30&limit=2&offset=2").json()
        assert len(page2["items"]) == 1


class TestConversations:
    def test_search_and_totals(self, auth_client, db, user, other_user):
        _conversation(db, user, "Python tips", messages=[("assistant", "x", 40, 0.02), ("assistant", "y", 60, 0.03)])
        _conversation(db, user, "Cooking")
        _conversation(db, other_user, "Python secrets")

        data = auth_client.get("/api/v1/user/conversations/?search=python").json()
        assert data["total"] == 1
        item = data["items"][0]
        assert item["title"] == "Python tips"
        assert item["message_count"] == 2
        assert item["total_tokens"] == 100
        assert abs(item["total_cost"] - 0.05) < 1e-9

    def test_list_all(self, auth_client, db, user):
        _conversation(db, user, "A")
        _conversation(db, user, "B")
        data = auth_client.get("/api/v1/user/conversations/").json()
        assert data["total"] == 2
        assert all(item["message_count"] == 0 for item in data["items"])

    def test_rename(self, auth_client, db, user):
        conv = _conversation(db, user, "Old")
        resp = auth_client.put(f"/api/v1/user/conversations/{conv.id}/title/", json={"title": "  New title  "})
        assert resp.status_code == 200
        db.refresh(conv)
        assert conv.title == "New title"

    def test_rename_blank(self, auth_client, db, user):
        conv = _conversation(db, user, "Old")
        resp = auth_client.put(f"/api/v1/user/conversations/{conv.id}/title/", json={"title": "   "})
        assert resp.status_code == 400

    def test_rename_foreign(self, auth_client, db, other_user):
        conv = _conversation(db, other_user, "Theirs")
        resp = auth_client.put(f"/api/v1/user/conversations/{conv.id}/title/", json={"title": "Mine now"})
        assert resp.status_code == 404
        db.refresh(conv)
        assert conv.title == "Theirs"

    def test_export(self, auth_client, db, user):
        conv = _conversation(db, user, "Exported", messages=[("user", "q", 0, 0.0), ("assistant", "a", 5, 0.0)])
        data = auth_client.get(f"/api/v1/user/conversations/{conv.id}/export/").json()
        assert data["conversation"]["title"] == "Exported"
        assert data["conversation"]["user_name"] == user.name
        assert [(m["role"], m["content"]) for m in data["messages"]] == [("user", "q"), ("assistant", "a")]
        assert "timestamp" in data["messages"][0]

    def test_export_foreign(self, auth_client, db, other_user):
        conv = _conversation(db, other_user)
        assert auth_client.get(f"/api/v1/user/conversations/{conv.id}/export/").status_code == 404


class TestPreferences:
    def test_defaults(self, auth_client):
        data = auth_client.get("/api/v1/user/preferences/").json()
        assert data == {
            "theme": "light",
            "language": "en",
            "notifications": True,
            "auto_save": True,
            "default_provider": "google",
            "default_model": "gemini-pro",
        }

    def test_update_persists(self, auth_client, db, user):
        resp = auth_client.put("/api/v1/user/preferences/", json={"theme": "dark", "default_provider": "openrouter"})
        assert resp.status_code == 200
        assert resp.json()["theme"] == "dark"
        prefs = db.query(UserPreference).filter(UserPreference.user_id == user.id).one()
        assert prefs.default_provider == "openrouter"
        assert prefs.language == "en"

        again = auth_client.get("/api/v1/user/preferences/").json()
        assert again["theme"] == "dark"

    def test_partial_update_keeps_other_fields(self, auth_client):
        auth_client.put("/api/v1/user/preferences/", json={"theme": "dark"})
        auth_client.put("/api/v1/user/preferences/", json={"notifications": False})
        data = auth_client.get("/api/v1/user/preferences/").json()
        assert data["theme"] == "dark"
        assert data["notifications"] is False

    def test_invalid_theme(self, auth_client):
        assert auth_client.put("/api/v1/user/preferences/", json={"theme": "neon"}).status_code == 422


class TestActivity:
    def test_breakdown(self, auth_client, db, user):
        _conversation(db, user, provider="google", model="gemini-pro",
                      messages=[("user", "a", 0, 0.0), ("assistant", "b", 10, 0.01)])
        _conversation(db, user, provider="openrouter", model="openai/gpt-4",
                      messages=[("user", "a", 0, 0.0), ("assistant", "b", 20, 0.02), ("assistant", "c", 5, 0.0)])
        _conversation(db, user, provider="openrouter", model="openai/gpt-4")

        data = auth_client.get("/api/v1/user/activity/?days=7").json()
        providers = {p["provider"]: p for p in data["provider_activity"]}
        assert providers["google"]["messages"] == 2
        assert providers["openrouter"]["conversations"] == 2
        assert providers["openrouter"]["messages"] == 3
        assert providers["openrouter"]["tokens"] == 25

        assert data["model_activity"][0]["model"] == "openai/gpt-4"
        assert sum(h["message_count"] for h in data["hourly_activity"]) == 5
        assert all(0 <= h["hour"] <= 23 for h in data["hourly_activity"])

    def test_old_conversations_excluded(self, auth_client, db, user):
        old = utcnow() - timedelta(days=30)
        db.add(Conversation(user_id=user.id, title="old", provider="google", model="gemini-pro",
                            created_at=old, updated_at=old))
        db.commit()
        data = auth_client.get("/api/v1/user/activity/?days=7").json()
        assert data["provider_activity"] == []
