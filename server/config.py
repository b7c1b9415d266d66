"""Pydantic settings loaded from .env."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent


# ---------------------------------------------------------------------------
# Secret auto-generation
# ---------------------------------------------------------------------------


def _ensure_secrets(env_file: Path) -> None:
    """Generate FIELD_ENCRYPTION_KEY and SECRET_KEY if missing, append to .env."""
    from cryptography.fernet import Fernet
    import secrets as _secrets

    lines_to_append: list[str] = []

    if not os.environ.get("FIELD_ENCRYPTION_KEY"):
        key = Fernet.generate_key().decode()
        os.environ["FIELD_ENCRYPTION_KEY"] = key
        lines_to_append.append(f"FIELD_ENCRYPTION_KEY={key}")

    if not os.environ.get("SECRET_KEY"):
        key = _secrets.token_urlsafe(32)
        os.environ["SECRET_KEY"] = key
        lines_to_append.append(f"SECRET_KEY={key}")

    if lines_to_append:
        env_file.parent.mkdir(parents=True, exist_ok=True)
        with open(env_file, "a") as f:
            f.write("\n" + "\n".join(lines_to_append) + "\n")


# ---------------------------------------------------------------------------
# Bootstrap: load .env, generate secrets
# ---------------------------------------------------------------------------

_env_file = BASE_DIR.parent / ".env"
load_dotenv(_env_file)
_ensure_secrets(_env_file)


class Settings(BaseSettings):
    SECRET_KEY: str = "change-me-in-production"
    DEBUG: bool = False

    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'db.sqlite3'}"

    FIELD_ENCRYPTION_KEY: str = ""

    CORS_ALLOW_ALL_ORIGINS: bool = True

    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_DAYS: int = 7

    FRONTEND_URL: str = "http://localhost:5173"
    GOOGLE_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    OPENROUTER_API_BASE: str = "https://openrouter.ai/api/v1"
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    PROVIDER_TIMEOUT_SECONDS: int = 60

    CHAT_RATE_LIMIT_REQUESTS: int = 30
    CHAT_RATE_LIMIT_WINDOW_SECONDS: int = 60

    DEFAULT_ADMIN_EMAIL: str = "admin@example.com"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    LOG_MAX_BYTES: int = 10_485_760
    LOG_BACKUP_COUNT: int = 5

    model_config = ConfigDict(
        env_file=str(BASE_DIR.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
