"""Admin back-office schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field

from schemas.chat import ProviderStr

RoleStr = Literal["user", "admin"]


class AdminUserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=2, max_length=50)
    role: RoleStr = "user"


class AdminUserUpdate(BaseModel):
    email: EmailStr | None = None
    name: str | None = Field(None, min_length=2, max_length=50)
    role: RoleStr | None = None
    is_active: bool | None = None


class AdminUserOut(BaseModel):
    id: int
    email: str
    name: str
    role: str
    is_active: bool
    created_at: datetime | None = None
    conversation_count: int = 0
    total_messages: int = 0


class ApiKeyIn(BaseModel):
    provider: ProviderStr
    key_name: str = Field(min_length=1, max_length=100)
    api_key: str = Field(min_length=1)
    usage_limit: int | None = Field(None, ge=0)


class ApiKeyUpdate(BaseModel):
    key_name: str | None = Field(None, min_length=1, max_length=100)
    is_active: bool | None = None
    usage_limit: int | None = Field(None, ge=0)


class ApiKeyOut(BaseModel):
    id: int
    provider: str
    key_name: str
    masked_key: str
    is_active: bool
    usage_limit: int | None = None
    usage_count: int = 0
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class SettingOut(BaseModel):
    key: str
    value: str
    description: str | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class SettingUpdate(BaseModel):
    value: str = Field(min_length=1)
    description: str | None = None
