"""Per-user daily usage aggregate."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import Date, Float, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class UserUsage(Base):
    __tablename__ = "user_usage"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_user_usage_user_date"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    date: Mapped[dt.date] = mapped_column(Date)
    messages_sent: Mapped[int] = mapped_column(Integer, default=0)
    tokens_used: Mapped[int] = mapped_column(Integer, default=0)
    cost: Mapped[float] = mapped_column(Float, default=0.0)

    def __repr__(self):
        return f"<UserUsage user={self.user_id} {self.date} msgs={self.messages_sent}>"
