"""Mapping between local users and payment-provider customers."""
from sqlalchemy import Column, String

from creditflow.models.base import Base


class BillingCustomer(Base):
    """Links a local user id to the provider's customer reference."""

    __tablename__ = "billing_customers"

    user_id = Column(String, nullable=False, unique=True, index=True)
    provider_customer_ref = Column(String, nullable=False, unique=True, index=True)
    email = Column(String, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<BillingCustomer(user_id={self.user_id}, customer={self.provider_customer_ref})>"
