"""Chat schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ProviderStr = Literal["google", "openrouter"]


class SendMessageIn(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    conversation_id: int | None = None
    provider: ProviderStr
    model: str = Field(min_length=1)


class SendMessageOut(BaseModel):
    message: str
    conversation_id: int
    tokens_used: int
    cost: float


class ConversationOut(BaseModel):
    id: int
    title: str
    provider: str
    model: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    message_count: int = 0
    last_message_at: datetime | None = None


class MessageOut(BaseModel):
    id: int
    role: str
    content: str
    tokens_used: int = 0
    cost: float = 0.0
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ModelOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    max_tokens: int | None = None
    required_plan: str = "free"
