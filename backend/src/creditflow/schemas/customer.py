"""Pydantic schemas for user/provider-customer links."""
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CustomerLink(BaseModel):
    """Schema for linking a user to a provider customer."""

    user_id: str = Field(..., min_length=1)
    provider_customer_ref: str = Field(..., min_length=1, description="Stripe customer id (cus_...)")
    email: str | None = None


class Customer(CustomerLink):
    """Schema for returning a customer link."""

    id: UUID

    model_config = ConfigDict(from_attributes=True)
