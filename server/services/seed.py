"""Idempotent default data: admin account, plans, model registry and settings."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from auth import hash_password
from config import settings
from models.ai_model import AIModel
from models.billing import SubscriptionPlan, UserCredits
from models.setting import Setting
from models.user import User

logger = logging.getLogger(__name__)

DEFAULT_PLANS = [
    {
        "name": "Free",
        "description": "Perfect for getting started",
        "price": 0.0,
        "billing_cycle": "monthly",
        "features": ["10 messages per day", "Basic AI models", "Community support"],
        "message_limit": 10,
    },
    {
        "name": "Premium",
        "description": "Unlimited access to all features",
        "price": 19.99,
        "billing_cycle": "monthly",
        "features": ["Unlimited messages", "All AI models", "Priority support", "Advanced analytics"],
        "message_limit": None,
    },
    {
        "name": "Pay-per-Message",
        "description": "Pay only for what you use",
        "price": 0.0,
        "billing_cycle": "one_time",
        "features": ["No monthly fees", "All AI models", "Flexible usage"],
        "message_limit": None,
    },
]

DEFAULT_MODELS = [
    {
        "provider": "google",
        "model_name": "gemini-pro",
        "display_name": "Gemini Pro",
        "description": "Google's most capable AI model",
        "cost_per_token": 0.0000005,
        "max_tokens": 8192,
        "required_plan": "free",
    },
    {
        "provider": "google",
        "model_name": "gemini-pro-vision",
        "display_name": "Gemini Pro Vision",
        "description": "Gemini Pro with vision capabilities",
        "cost_per_token": 0.0000008,
        "max_tokens": 4096,
        "required_plan": "premium",
    },
    {
        "provider": "openrouter",
        "model_name": "openai/gpt-4",
        "display_name": "GPT-4",
        "description": "OpenAI's most advanced model",
        "cost_per_token": 0.00003,
        "max_tokens": 8192,
        "required_plan": "premium",
    },
    {
        "provider": "openrouter",
        "model_name": "anthropic/claude-3-sonnet",
        "display_name": "Claude 3 Sonnet",
        "description": "Anthropic's balanced AI model",
        "cost_per_token": 0.000015,
        "max_tokens": 4096,
        "required_plan": "credits",
    },
]

DEFAULT_SETTINGS = [
    ("site_name", "AI Chatbot Platform", "Website name"),
    ("max_messages_per_day", "10", "Maximum messages per free user per day"),
    ("registration_enabled", "true", "Allow new user registration"),
    ("default_provider", "google", "Default AI provider"),
    ("default_model", "gemini-pro", "Default AI model"),
    ("stripe_publishable_key", "", "Stripe publishable key"),
    ("stripe_secret_key", "", "Stripe secret key"),
    ("stripe_webhook_secret", "", "Stripe webhook signing secret"),
    ("credits_per_dollar", "100", "Credits per dollar for pay-per-message"),
    ("credits_per_message", "1", "Credits charged per message beyond the daily limit"),
]


def seed_defaults(db: Session) -> None:
    """Insert any missing default rows and commit. Existing rows are left untouched."""
    if db.query(User).filter(User.role == "admin").first() is None:
        admin = User(
            email=settings.DEFAULT_ADMIN_EMAIL,
            password_hash=hash_password(settings.DEFAULT_ADMIN_PASSWORD),
            name="Administrator",
            role="admin",
        )
        db.add(admin)
        db.flush()
        db.add(UserCredits(user_id=admin.id))
        logger.info("Default admin user created: %s", admin.email)

    for plan in DEFAULT_PLANS:
        if db.query(SubscriptionPlan).filter(SubscriptionPlan.name == plan["name"]).first() is None:
            db.add(SubscriptionPlan(**plan))

    for model in DEFAULT_MODELS:
        exists = (
            db.query(AIModel)
            .filter(AIModel.provider == model["provider"], AIModel.model_name == model["model_name"])
            .first()
        )
        if exists is None:
            db.add(AIModel(**model))

    for key, value, description in DEFAULT_SETTINGS:
        if db.query(Setting).filter(Setting.key == key).first() is None:
            db.add(Setting(key=key, value=value, description=description))

    db.commit()
    logger.info("Default data ensured")
