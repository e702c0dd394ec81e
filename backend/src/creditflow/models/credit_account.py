"""Credit account model holding a user's prepaid credit balance."""
from sqlalchemy import CheckConstraint, Column, Integer, String

from creditflow.models.base import Base


class CreditAccount(Base):
    """
    Per-user credit balance.

    Rows are created lazily on the first grant and only ever mutated through
    atomic increments/decrements issued by CreditService.
    """

    __tablename__ = "credit_accounts"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_credit_accounts_balance_non_negative"),)

    user_id = Column(String, nullable=False, unique=True, index=True)
    balance = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        """String representation."""
        return f"<CreditAccount(user_id={self.user_id}, balance={self.balance})>"
