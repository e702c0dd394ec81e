"""SQLAlchemy ORM models for the credit and payment ledgers."""
# Import all models here so they register with the declarative metadata

from creditflow.models.base import Base
from creditflow.models.credit_account import CreditAccount
from creditflow.models.customer import BillingCustomer
from creditflow.models.job import Job, JobStatus
from creditflow.models.subscription import Subscription, SubscriptionStatus
from creditflow.models.transaction import Transaction, TransactionKind, TransactionStatus
from creditflow.models.webhook_event import WebhookEvent, WebhookProcessingStatus

__all__ = [
    "Base",
    "BillingCustomer",
    "CreditAccount",
    "Job",
    "JobStatus",
    "Subscription",
    "SubscriptionStatus",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
    "WebhookEvent",
    "WebhookProcessingStatus",
]
