"""User self-service schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from schemas.chat import ProviderStr


class ConversationTitleUpdate(BaseModel):
    title: str = Field(max_length=255)


class PreferencesOut(BaseModel):
    theme: Literal["light", "dark", "system"] = "light"
    language: str = "en"
    notifications: bool = True
    auto_save: bool = True
    default_provider: ProviderStr = "google"
    default_model: str = "gemini-pro"

    model_config = {"from_attributes": True}


class PreferencesUpdate(BaseModel):
    theme: Literal["light", "dark", "system"] | None = None
    language: str | None = Field(None, min_length=2, max_length=10)
    notifications: bool | None = None
    auto_save: bool | None = None
    default_provider: ProviderStr | None = None
    default_model: str | None = Field(None, min_length=1)
