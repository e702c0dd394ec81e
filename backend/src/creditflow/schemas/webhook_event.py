"""Pydantic schema for the webhook endpoint response."""
from pydantic import BaseModel


class WebhookAck(BaseModel):
    """Body returned to the provider; it only inspects the status code."""

    received: bool = True
    outcome: str
