"""Billing and subscription schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from schemas.chat import ProviderStr

BillingCycleStr = Literal["monthly", "yearly", "one_time"]
RequiredPlanStr = Literal["free", "premium", "credits"]
SubscriptionStatusStr = Literal["active", "cancelled", "expired", "pending"]


class PlanIn(BaseModel):
    id: int | None = None
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    price: float = Field(ge=0)
    billing_cycle: BillingCycleStr
    features: list[str] = []
    message_limit: int | None = Field(None, ge=0)
    is_active: bool = True


class PlanOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    price: float
    billing_cycle: str
    features: list[str] = []
    message_limit: int | None = None
    is_active: bool = True

    model_config = {"from_attributes": True}


class AIModelIn(BaseModel):
    id: int | None = None
    provider: ProviderStr
    model_name: str = Field(min_length=1, max_length=100)
    display_name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    cost_per_token: float = Field(0.0, ge=0)
    max_tokens: int = Field(4096, ge=1)
    is_active: bool = True
    required_plan: RequiredPlanStr = "free"


class AIModelOut(BaseModel):
    id: int
    provider: str
    model_name: str
    display_name: str
    description: str | None = None
    cost_per_token: float
    max_tokens: int
    is_active: bool
    required_plan: str

    model_config = {"from_attributes": True}


class SubscriptionAdminOut(BaseModel):
    id: int
    user_id: int
    plan_id: int
    status: str
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False
    stripe_subscription_id: str | None = None
    created_at: datetime | None = None
    email: str
    name: str
    plan_name: str
    price: float


class SubscriptionUpdate(BaseModel):
    status: SubscriptionStatusStr | None = None
    current_period_end: datetime | None = None


class CurrentSubscriptionOut(BaseModel):
    id: int
    plan_id: int
    status: str
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False
    plan_name: str
    plan_description: str | None = None
    price: float
    billing_cycle: str
    features: list[str] = []
    message_limit: int | None = None


class CreditsOut(BaseModel):
    credits: float = 0.0
    total_purchased: float = 0.0
    total_used: float = 0.0
    last_purchase_at: datetime | None = None

    model_config = {"from_attributes": True}


class CheckoutSessionIn(BaseModel):
    plan_id: int


class PurchaseCreditsIn(BaseModel):
    amount: float = Field(ge=1)


class CheckoutSessionOut(BaseModel):
    url: str


class PaymentOut(BaseModel):
    id: int
    type: str
    amount: float
    currency: str
    status: str
    description: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
