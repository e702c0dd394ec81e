"""Transaction history API endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.deps import get_db
from creditflow.schemas.transaction import Transaction, TransactionList
from creditflow.services.transaction_service import TransactionService

router = APIRouter(prefix="/users", tags=["transactions"])


@router.get("/{user_id}/transactions", response_model=TransactionList)
async def list_user_transactions(
    user_id: str,
    limit: int = Query(50, ge=1, le=500, description="Maximum rows to return"),
    db: AsyncSession = Depends(get_db),
) -> TransactionList:
    """List a user's transactions, newest first."""
    transactions = await TransactionService(db).list_for_user(user_id, limit=limit)
    return TransactionList(
        items=[Transaction.model_validate(t) for t in transactions],
        total=len(transactions),
    )
