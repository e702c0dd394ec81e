"""Pydantic schemas for credit balances."""
from pydantic import BaseModel, Field


class CreditGrant(BaseModel):
    """Schema for granting credits to a user (top-up or goodwill)."""

    user_id: str = Field(..., min_length=1, description="User receiving the credits")
    amount: int = Field(..., gt=0, description="Number of credits to add")


class CreditBalance(BaseModel):
    """Schema for a user's current credit balance."""

    user_id: str
    balance: int
