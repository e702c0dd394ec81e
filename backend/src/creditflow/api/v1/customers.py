"""Provider customer mapping endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.deps import get_db
from creditflow.schemas.customer import Customer, CustomerLink
from creditflow.services.customer_service import CustomerService

router = APIRouter(prefix="/customers", tags=["customers"])


@router.post("", response_model=Customer, status_code=status.HTTP_201_CREATED)
async def link_customer(
    link: CustomerLink,
    db: AsyncSession = Depends(get_db),
) -> Customer:
    """
    Link a user to a Stripe customer.

    Webhook events name customers, not users; events for customers without a
    link are logged and skipped.
    """
    customer = await CustomerService(db).link(link.user_id, link.provider_customer_ref, email=link.email)
    return Customer.model_validate(customer)
