"""Pydantic schemas for Transaction model."""
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from creditflow.models.transaction import TransactionKind, TransactionStatus


class Transaction(BaseModel):
    """Schema for returning transaction data."""

    id: UUID
    user_id: str
    provider_payment_ref: str | None
    provider_session_ref: str | None
    amount: Decimal
    currency: str
    status: TransactionStatus
    kind: TransactionKind
    description: str | None
    extra_metadata: dict[str, Any] | None
    provider_fee: Decimal | None
    net_amount: Decimal | None
    failure_reason: str | None
    processed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionList(BaseModel):
    """Schema for a user's transaction history."""

    items: list[Transaction]
    total: int
