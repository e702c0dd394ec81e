"""Credit balance API endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.deps import get_db
from creditflow.schemas.credit import CreditBalance, CreditGrant
from creditflow.services.credit_service import CreditService

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/{user_id}", response_model=CreditBalance)
async def get_credit_balance(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> CreditBalance:
    """Get a user's credit balance. Users without an account have a balance of 0."""
    balance = await CreditService(db).get_balance(user_id)
    return CreditBalance(user_id=user_id, balance=balance)


@router.post("", response_model=CreditBalance, status_code=status.HTTP_201_CREATED)
async def grant_credits(
    grant: CreditGrant,
    db: AsyncSession = Depends(get_db),
) -> CreditBalance:
    """
    Grant credits to a user.

    Creates the credit account on the first grant.
    """
    credit_service = CreditService(db)
    await credit_service.add_credits(grant.user_id, grant.amount, reason="grant")
    await db.commit()

    balance = await credit_service.get_balance(grant.user_id)
    return CreditBalance(user_id=grant.user_id, balance=balance)
