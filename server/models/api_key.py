"""Provider API key model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from database import Base
from models.encrypted import EncryptedString


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(primary_key=True)
    provider: Mapped[str] = mapped_column(String(20), index=True)  # google, openrouter
    key_name: Mapped[str] = mapped_column(String(100))
    api_key: Mapped[str] = mapped_column(EncryptedString(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    @property
    def masked_key(self) -> str:
        return f"{(self.api_key or '')[:8]}..."

    @property
    def has_capacity(self) -> bool:
        return self.usage_limit is None or self.usage_count < self.usage_limit

    def __repr__(self):
        return f"<ApiKey {self.key_name} ({self.provider})>"
