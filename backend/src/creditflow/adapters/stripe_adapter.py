"""Stripe payment gateway adapter."""
import json
from typing import Any, Optional

import stripe

from creditflow.exceptions import InvalidSignature, MalformedEvent


class StripeAdapter:
    """
    Adapter for the Stripe webhook surface.

    Only inbound event verification is used; customers, sessions and
    subscriptions are created outside this service.
    """

    def __init__(self, webhook_secret: Optional[str], tolerance: int = 300, api_key: Optional[str] = None):
        """
        Initialize Stripe adapter.

        Args:
            webhook_secret: Endpoint signing secret (whsec_...)
            tolerance: Maximum accepted age of the signed timestamp, in seconds
            api_key: Stripe secret key, set globally on the SDK when given
        """
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        if api_key:
            stripe.api_key = api_key

    async def construct_webhook_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify a webhook payload and decode it.

        Args:
            payload: Raw request body, exactly as received
            signature: Value of the Stripe-Signature header

        Returns:
            Decoded event payload

        Raises:
            InvalidSignature: If no secret is configured or verification fails
            MalformedEvent: If the verified body is not a JSON object
        """
        if not self.webhook_secret:
            raise InvalidSignature("Webhook signing secret is not configured")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEvent("Webhook payload is not valid UTF-8") from e

        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature(f"Invalid signature: {e}") from e

        try:
            event = json.loads(body)
        except ValueError as e:
            raise MalformedEvent(f"Invalid payload: {e}") from e

        if not isinstance(event, dict):
            raise MalformedEvent("Webhook payload is not a JSON object")
        return event
