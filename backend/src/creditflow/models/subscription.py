"""Subscription model mirroring a payment-provider subscription."""
import enum

from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum, Integer, Numeric, String

from creditflow.models.base import Base


class SubscriptionStatus(enum.Enum):
    """Subscription lifecycle status."""

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"


class Subscription(Base):
    """
    One row per provider subscription object.

    Created on the subscription-created event and mutated by every later
    lifecycle event. Never deleted; cancellation is a terminal status.
    """

    __tablename__ = "subscriptions"

    user_id = Column(String, nullable=False, index=True)
    provider_subscription_ref = Column(String, nullable=True, unique=True, index=True)
    status = Column(SQLEnum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.ACTIVE, index=True)
    plan_ref = Column(String, nullable=True, index=True)
    plan_name = Column(String, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="usd")
    interval = Column(String, nullable=False, default="month")
    interval_count = Column(Integer, nullable=False, default=1)
    trial_start = Column(DateTime, nullable=True)
    trial_end = Column(DateTime, nullable=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True, index=True)
    canceled_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    failed_payment_count = Column(Integer, nullable=False, default=0)
    extra_metadata = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Subscription(id={self.id}, ref={self.provider_subscription_ref}, status={self.status.value})>"
