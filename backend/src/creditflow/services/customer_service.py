"""Service mapping payment-provider customers to local users."""
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.models.customer import BillingCustomer

logger = structlog.get_logger(__name__)


class CustomerService:
    """Resolves the provider's customer references to local user ids."""

    def __init__(self, db: AsyncSession):
        """Initialize customer service with database session."""
        self.db = db

    async def link(self, user_id: str, customer_ref: str, email: Optional[str] = None) -> BillingCustomer:
        """
        Link a user to a provider customer, replacing any previous link.

        Args:
            user_id: Local user identifier
            customer_ref: Provider customer id (cus_...)
            email: Optional customer email

        Returns:
            The stored mapping
        """
        result = await self.db.execute(select(BillingCustomer).where(BillingCustomer.user_id == user_id))
        customer = result.scalar_one_or_none()

        if customer is None:
            customer = BillingCustomer(user_id=user_id, provider_customer_ref=customer_ref, email=email)
            self.db.add(customer)
        elif customer.provider_customer_ref != customer_ref or email:
            customer.provider_customer_ref = customer_ref
            customer.email = email or customer.email

        await self.db.flush()
        logger.info("billing_customer_linked", user_id=user_id, customer_ref=customer_ref)
        return customer

    async def user_id_for(self, customer_ref: Optional[str]) -> Optional[str]:
        """Return the user linked to a provider customer, if any."""
        if not customer_ref:
            return None

        result = await self.db.execute(
            select(BillingCustomer.user_id).where(BillingCustomer.provider_customer_ref == customer_ref)
        )
        return result.scalar_one_or_none()
