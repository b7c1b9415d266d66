"""Key/value system settings."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, Session, mapped_column

from database import Base

_TRUTHY = {"1", "true", "yes", "on"}


class Setting(Base):
    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    key: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    value: Mapped[str] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    @classmethod
    def get_value(cls, db: Session, key: str, default: str | None = None) -> str | None:
        obj = db.query(cls).filter(cls.key == key).first()
        return obj.value if obj is not None else default

    @classmethod
    def get_int(cls, db: Session, key: str, default: int) -> int:
        raw = cls.get_value(db, key)
        try:
            return int(raw) if raw not in (None, "") else default
        except ValueError:
            return default

    @classmethod
    def get_float(cls, db: Session, key: str, default: float) -> float:
        raw = cls.get_value(db, key)
        try:
            return float(raw) if raw not in (None, "") else default
        except ValueError:
            return default

    @classmethod
    def get_bool(cls, db: Session, key: str, default: bool) -> bool:
        raw = cls.get_value(db, key)
        if raw is None or raw == "":
            return default
        return raw.strip().lower() in _TRUTHY

    @classmethod
    def put(cls, db: Session, key: str, value: str, description: str | None = None) -> Setting:
        """Update a setting in place or create it. Does not commit."""
        obj = db.query(cls).filter(cls.key == key).first()
        if obj is None:
            obj = cls(key=key, value=value, description=description)
            db.add(obj)
        else:
            obj.value = value
            if description is not None:
                obj.description = description
        return obj

    def __repr__(self):
        return f"<Setting {self.key}={self.value!r}>"
