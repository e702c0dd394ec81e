"""Transaction model for money-movement events reported by the payment provider."""
import enum

from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum, Numeric, String, Text

from creditflow.models.base import Base


class TransactionStatus(enum.Enum):
    """Transaction status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class TransactionKind(enum.Enum):
    """Kind of money movement."""

    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"
    REFUND = "refund"
    PAYOUT = "payout"
    SETUP = "setup"


class Transaction(Base):
    """
    Append-mostly ledger row, one per provider event that moves money.

    Rows are looked up later by provider payment reference for status updates.
    """

    __tablename__ = "transactions"

    user_id = Column(String, nullable=False, index=True)
    provider_payment_ref = Column(String, nullable=True, index=True)
    provider_session_ref = Column(String, nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(SQLEnum(TransactionStatus), nullable=False, default=TransactionStatus.PENDING, index=True)
    kind = Column(SQLEnum(TransactionKind), nullable=False, default=TransactionKind.PAYMENT, index=True)
    description = Column(Text, nullable=True)
    extra_metadata = Column(JSON, nullable=True)
    provider_fee = Column(Numeric(10, 2), nullable=True)
    net_amount = Column(Numeric(10, 2), nullable=True)
    failure_reason = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Transaction(id={self.id}, user_id={self.user_id}, kind={self.kind.value}, status={self.status.value})>"
