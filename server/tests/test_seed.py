"""Tests for default data seeding."""

from __future__ import annotations

from auth import verify_password
from config import settings
from models.ai_model import AIModel
from models.billing import SubscriptionPlan, UserCredits
from models.setting import Setting
from models.user import User
from services.seed import DEFAULT_MODELS, DEFAULT_PLANS, DEFAULT_SETTINGS, seed_defaults


class TestSeedDefaults:
    def test_fresh_database(self, db):
        seed_defaults(db)

        admin = db.query(User).filter(User.role == "admin").one()
        assert admin.email == settings.DEFAULT_ADMIN_EMAIL
        assert verify_password(admin.password_hash, settings.DEFAULT_ADMIN_PASSWORD)
        assert db.query(UserCredits).filter(UserCredits.user_id == admin.id).count() == 1

        assert db.query(SubscriptionPlan).count() == len(DEFAULT_PLANS)
        assert db.query(AIModel).count() == len(DEFAULT_MODELS)
        assert db.query(Setting).count() == len(DEFAULT_SETTINGS)

        free = db.query(SubscriptionPlan).filter(SubscriptionPlan.name == "Free").one()
        assert free.message_limit == 10
        premium = db.query(SubscriptionPlan).filter(SubscriptionPlan.name == "Premium").one()
        assert premium.message_limit is None

    def test_idempotent(self, db):
        seed_defaults(db)
        seed_defaults(db)
        assert db.query(User).count() == 1
        assert db.query(SubscriptionPlan).count() == len(DEFAULT_PLANS)
        assert db.query(AIModel).count() == len(DEFAULT_MODELS)
        assert db.query(Setting).count() == len(DEFAULT_SETTINGS)

    def test_existing_admin_kept(self, db, admin_user):
        seed_defaults(db)
        admins = db.query(User).filter(User.role == "admin").all()
        assert [a.id for a in admins] == [admin_user.id]

    def test_existing_values_untouched(self, db):
        db.add(Setting(key="site_name", value="My Site"))
        db.commit()
        seed_defaults(db)
        assert Setting.get_value(db, "site_name") == "My Site"

    def test_registry_gates(self, db):
        seed_defaults(db)
        gates = {m.model_name: m.required_plan for m in db.query(AIModel).all()}
        assert gates["gemini-pro"] == "free"
        assert gates["openai/gpt-4"] == "premium"
        assert gates["anthropic/claude-3-sonnet"] == "credits"
