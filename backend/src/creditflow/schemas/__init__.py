"""Pydantic schemas for API request/response validation."""

from creditflow.schemas.credit import CreditBalance, CreditGrant
from creditflow.schemas.customer import Customer, CustomerLink
from creditflow.schemas.error import ErrorCode, ErrorDetail, ErrorResponse
from creditflow.schemas.job import Job, JobCreate
from creditflow.schemas.subscription import Subscription, SubscriptionList
from creditflow.schemas.transaction import Transaction, TransactionList
from creditflow.schemas.webhook_event import WebhookAck

__all__ = [
    # Credit
    "CreditBalance",
    "CreditGrant",
    # Customer
    "Customer",
    "CustomerLink",
    # Error
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    # Job
    "Job",
    "JobCreate",
    # Subscription
    "Subscription",
    "SubscriptionList",
    # Transaction
    "Transaction",
    "TransactionList",
    # Webhook
    "WebhookAck",
]
