"""Job model for credit-metered asynchronous text jobs."""
import enum

from sqlalchemy import Column, Enum as SQLEnum, Integer, String, Text

from creditflow.models.base import Base


class JobStatus(enum.Enum):
    """Job lifecycle status. COMPLETED and FAILED are terminal."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(Base):
    """
    Unit of asynchronous work paid for with credits.

    Created after a successful credit reservation; mutated only by the worker
    and by the enqueue-failure rollback path.
    """

    __tablename__ = "jobs"

    user_id = Column(String, nullable=False, index=True)
    input_ref = Column(String, nullable=True)
    output_ref = Column(String, nullable=True)
    cost = Column(Integer, nullable=False, default=1)
    tokens_used = Column(Integer, nullable=True)
    status = Column(SQLEnum(JobStatus), nullable=False, default=JobStatus.PENDING, index=True)
    error_message = Column(Text, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Job(id={self.id}, user_id={self.user_id}, status={self.status.value})>"
