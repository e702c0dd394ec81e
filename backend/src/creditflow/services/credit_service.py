"""Service for the per-user credit ledger."""
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.exceptions import InsufficientCredits
from creditflow.metrics import credits_added_total, credits_deducted_total, credits_insufficient_total
from creditflow.models.credit_account import CreditAccount

logger = structlog.get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CreditService:
    """
    Service for reserving, refunding and granting credits.

    Balances are never read-modified-written in Python. Every mutation is a
    single atomic statement against the account row so concurrent callers for
    the same user cannot lose updates or overspend.
    """

    def __init__(self, db: AsyncSession):
        """Initialize credit service with database session."""
        self.db = db

    async def get_balance(self, user_id: str) -> int:
        """
        Get a user's current balance.

        Args:
            user_id: User identifier

        Returns:
            Balance in credits; 0 when the user has no account yet
        """
        result = await self.db.execute(
            select(CreditAccount.balance).where(CreditAccount.user_id == user_id)
        )
        balance = result.scalar_one_or_none()
        return balance or 0

    async def has_sufficient_credits(self, user_id: str, cost: int) -> bool:
        """Check whether the user can currently afford ``cost``."""
        return await self.get_balance(user_id) >= cost

    async def deduct_credits(self, user_id: str, cost: int) -> None:
        """
        Atomically reserve credits.

        Issues a conditional decrement guarded by ``balance >= cost``; of two
        concurrent reservations that only one balance can cover, exactly one
        updates the row.

        Args:
            user_id: User identifier
            cost: Credits to deduct

        Raises:
            ValueError: If cost is negative
            InsufficientCredits: If the account is missing or cannot cover cost
        """
        if cost < 0:
            raise ValueError("Credit cost cannot be negative")

        result = await self.db.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id, CreditAccount.balance >= cost)
            .values(balance=CreditAccount.balance - cost, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )

        if int(result.rowcount or 0) != 1:
            balance = await self.get_balance(user_id)
            credits_insufficient_total.inc()
            logger.info("credits_insufficient", user_id=user_id, cost=cost, balance=balance)
            raise InsufficientCredits(user_id=user_id, cost=cost, balance=balance)

        credits_deducted_total.inc(cost)
        logger.info("credits_deducted", user_id=user_id, cost=cost)

    async def add_credits(self, user_id: str, amount: int, reason: str = "top_up") -> None:
        """
        Atomically grant credits, creating the account on first grant.

        Used for purchased top-ups, admin grants and refunds of failed
        reservations alike.

        Args:
            user_id: User identifier
            amount: Credits to add
            reason: Metric/log label (top_up, grant, refund)

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError("Credit amount cannot be negative")

        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise RuntimeError(f"Credit upsert is not supported on {dialect}")

        now = datetime.utcnow()
        stmt = insert(CreditAccount).values(user_id=user_id, balance=amount, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CreditAccount.user_id],
            set_={"balance": CreditAccount.balance + amount, "updated_at": now},
        )
        await self.db.execute(stmt)

        credits_added_total.labels(reason=reason).inc(amount)
        logger.info("credits_added", user_id=user_id, amount=amount, reason=reason)
