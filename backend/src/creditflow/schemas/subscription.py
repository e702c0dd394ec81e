"""Pydantic schemas for Subscription model."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from creditflow.models.subscription import SubscriptionStatus


class Subscription(BaseModel):
    """Schema for returning subscription data."""

    id: UUID
    user_id: str
    provider_subscription_ref: str | None
    status: SubscriptionStatus
    plan_ref: str | None
    plan_name: str | None
    amount: Decimal
    currency: str
    interval: str
    interval_count: int
    trial_start: datetime | None
    trial_end: datetime | None
    current_period_start: datetime | None
    current_period_end: datetime | None
    canceled_at: datetime | None
    ended_at: datetime | None
    failed_payment_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionList(BaseModel):
    """Schema for a user's subscriptions."""

    items: list[Subscription]
    total: int
